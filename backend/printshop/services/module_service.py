# Overview: Per-company module activation store.

"""
Module Activation Store

WHY: One deployment serves several branded storefronts. Each company sees
only the feature modules a superadmin activated for it.

RULES:
- A missing row means the module is inactive (fail closed)
- The root company always has every module active, regardless of rows,
  so the operating business can never lock itself out of its console
- Only superadmins may toggle modules; toggles are idempotent and audited
"""

from __future__ import annotations

from ..extensions import db
from ..models import Company, CompanyModule, User
from ..permissions import Module, Role, get_module_definition
from .audit_service import log_audit_event
from .errors import UnauthorizedError


def is_active(company: Company, module: Module) -> bool:
    if company.is_root:
        return True
    row = db.session.query(CompanyModule).filter_by(
        company_id=company.id,
        module=Module(module).value,
    ).first()
    return bool(row and row.is_active)


def active_modules(company: Company) -> list[Module]:
    """All modules active for the company, in declaration order."""
    if company.is_root:
        return list(Module)
    rows = db.session.query(CompanyModule.module).filter_by(
        company_id=company.id,
        is_active=True,
    ).all()
    active = {r[0] for r in rows}
    return [m for m in Module if m.value in active]


def list_modules(company: Company) -> list[dict]:
    """Every known module with its activation flag (admin screen rows)."""
    active = set(active_modules(company))
    result = []
    for module in Module:
        entry = get_module_definition(module)
        entry["is_active"] = module in active
        result.append(entry)
    return result


def set_active(company: Company, module: Module, active: bool, *, actor: User) -> CompanyModule:
    """
    Activate or deactivate a module for a company.

    Raises UnauthorizedError unless actor is a superadmin.
    """
    module = Module(module)
    if actor.role != Role.SUPERADMIN.value:
        log_audit_event(
            event_type="PERMISSION_DENIED",
            success=False,
            user_id=actor.id,
            company_id=company.id,
            resource=f"module:{module.value}",
            action="set_active",
            reason="Only superadmin may change module activation",
        )
        raise UnauthorizedError("Only superadmin may change module activation")

    row = db.session.query(CompanyModule).filter_by(
        company_id=company.id,
        module=module.value,
    ).first()

    if row is None:
        row = CompanyModule(company_id=company.id, module=module.value)
        db.session.add(row)

    changed = bool(row.is_active) != bool(active)
    row.is_active = bool(active)
    row.updated_by_user_id = actor.id

    if changed:
        log_audit_event(
            event_type="MODULE_TOGGLED",
            success=True,
            user_id=actor.id,
            company_id=company.id,
            resource=f"module:{module.value}",
            action="activate" if active else "deactivate",
            commit=False,
        )

    db.session.commit()
    return row
