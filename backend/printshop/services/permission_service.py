# Overview: Authorization resolver and role/module capability matrix.

"""
Authorization Resolver with Multi-Tenant Module Gating

WHY: Every screen and every workflow transition asks one question:
may this user perform this capability on this module, in this company?

RESOLUTION ORDER (can_perform):
1. Superadmin acting in the root company: always allowed
2. Non-superadmin acting outside their own company: denied
3. Module must be active for the company (root company: always active)
4. Capability comes from RolePermission(role, module); missing row = deny
   (superadmin has implicit full capabilities, never stored)

DESIGN PRINCIPLES:
- Fail closed: unknown roles, missing rows and inactive modules deny
- can_perform is a pure lookup; require_capability logs denials only
- Context is explicit: user and company are parameters, never ambient
"""

from __future__ import annotations

from ..extensions import db
from ..models import Company, RolePermission, User
from ..permissions import Role, Module, Capability, DEFAULT_ROLE_PERMISSIONS
from . import module_service
from .audit_service import log_audit_event
from .errors import UnauthorizedError
from ..validation import ConflictError


def _role_of(user: User) -> Role | None:
    try:
        return Role(user.role)
    except ValueError:
        return None


def get_capabilities(role: Role, module: Module) -> set[Capability]:
    """
    Capabilities granted to a role on a module, independent of company.
    """
    if role == Role.SUPERADMIN:
        return set(Capability)

    grant = db.session.query(RolePermission).filter_by(
        role=Role(role).value,
        module=Module(module).value,
    ).first()
    if grant is None:
        return set()
    return {cap for cap in Capability if grant.allows(cap)}


def _denial_reason(user: User, company: Company, module: Module, capability: Capability) -> tuple[str, str] | None:
    """Return (event_type, reason) when denied, None when allowed."""
    role = _role_of(user)
    if role is None:
        return "PERMISSION_DENIED", f"Unknown role '{user.role}'"
    if not user.is_active:
        return "PERMISSION_DENIED", "User is inactive"

    if role == Role.SUPERADMIN and company.is_root:
        return None

    if role != Role.SUPERADMIN and user.company_id != company.id:
        return "CROSS_TENANT_ACCESS_DENIED", f"User belongs to company {user.company_id}, not {company.id}"

    if not module_service.is_active(company, module):
        return "PERMISSION_DENIED", f"Module {Module(module).value} is not active for company {company.id}"

    if capability not in get_capabilities(role, module):
        return "PERMISSION_DENIED", f"Role {role.value} lacks {Capability(capability).value} on {Module(module).value}"

    return None


def can_perform(user: User, company: Company, module: Module, capability: Capability) -> bool:
    """
    Decide whether user may exercise capability on module within company.

    Pure: no writes, no logging.
    """
    return _denial_reason(user, company, Module(module), Capability(capability)) is None


def require_capability(
    user: User,
    company: Company,
    module: Module,
    capability: Capability,
    *,
    resource: str | None = None,
) -> None:
    """
    Require a capability, logging and raising UnauthorizedError on denial.

    Usage:
        require_capability(actor, company, Module.VENDAS, Capability.EDIT, resource=f"order:{order_id}")
    """
    module = Module(module)
    capability = Capability(capability)
    denial = _denial_reason(user, company, module, capability)
    if denial is None:
        return

    event_type, reason = denial
    log_audit_event(
        event_type=event_type,
        success=False,
        user_id=user.id,
        company_id=company.id,
        resource=resource,
        action=f"{module.value}:{capability.value}",
        reason=reason,
    )
    raise UnauthorizedError(f"Permission denied: {module.value}:{capability.value}")


def navigation_for(user: User, company: Company) -> dict[str, dict[str, bool]]:
    """
    Capability map for every module, as seen by user inside company.

    Drives which screens and actions the console offers.
    """
    return {
        module.value: {
            capability.value: can_perform(user, company, module, capability)
            for capability in Capability
        }
        for module in Module
    }


# =============================================================================
# MATRIX MANAGEMENT (superadmin only)
# =============================================================================

def list_role_permissions(role: Role | None = None) -> list[dict]:
    """Full matrix rows; missing (role, module) pairs are reported all-false."""
    roles = [Role(role)] if role else [r for r in Role if r != Role.SUPERADMIN]
    result = []
    for r in roles:
        for module in Module:
            caps = get_capabilities(r, module)
            result.append({
                "role": r.value,
                "module": module.value,
                "editable": r != Role.SUPERADMIN,
                **{f"can_{cap.value}": cap in caps for cap in Capability},
            })
    return result


def set_role_permission(
    role: Role,
    module: Module,
    *,
    actor: User,
    can_view: bool | None = None,
    can_edit: bool | None = None,
    can_delete: bool | None = None,
    can_export: bool | None = None,
) -> RolePermission:
    """
    Update the capability row of (role, module). Omitted flags keep their value.

    Raises UnauthorizedError unless actor is a superadmin.
    Raises ConflictError when targeting the superadmin role.
    """
    role = Role(role)
    module = Module(module)

    if actor.role != Role.SUPERADMIN.value:
        log_audit_event(
            event_type="PERMISSION_DENIED",
            success=False,
            user_id=actor.id,
            company_id=actor.company_id,
            resource=f"permissions:{role.value}:{module.value}",
            action="set_role_permission",
            reason="Only superadmin may edit the permission matrix",
        )
        raise UnauthorizedError("Only superadmin may edit the permission matrix")

    if role == Role.SUPERADMIN:
        raise ConflictError("Superadmin permissions are not editable")

    row = db.session.query(RolePermission).filter_by(role=role.value, module=module.value).first()
    if row is None:
        row = RolePermission(
            role=role.value,
            module=module.value,
            can_view=False,
            can_edit=False,
            can_delete=False,
            can_export=False,
        )
        db.session.add(row)

    for attr, value in (
        ("can_view", can_view),
        ("can_edit", can_edit),
        ("can_delete", can_delete),
        ("can_export", can_export),
    ):
        if value is not None:
            setattr(row, attr, bool(value))

    log_audit_event(
        event_type="PERMISSION_CHANGED",
        success=True,
        user_id=actor.id,
        company_id=actor.company_id,
        resource=f"permissions:{role.value}:{module.value}",
        action="update",
        commit=False,
    )
    db.session.commit()
    return row


def assign_default_role_permissions() -> int:
    """
    Seed RolePermission rows from DEFAULT_ROLE_PERMISSIONS.

    Idempotent: existing rows are left untouched so manual edits survive.
    Returns the number of rows created.
    """
    created_count = 0

    for role, modules in DEFAULT_ROLE_PERMISSIONS.items():
        for module in Module:
            existing = db.session.query(RolePermission).filter_by(
                role=role.value,
                module=module.value,
            ).first()
            if existing:
                continue

            caps = modules.get(module, set())
            db.session.add(RolePermission(
                role=role.value,
                module=module.value,
                can_view=Capability.VIEW in caps,
                can_edit=Capability.EDIT in caps,
                can_delete=Capability.DELETE in caps,
                can_export=Capability.EXPORT in caps,
            ))
            created_count += 1

    db.session.commit()
    return created_count
