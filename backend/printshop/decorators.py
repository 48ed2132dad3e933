# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .permissions import Role
from .services import session_service, tenant_service
from .services.audit_service import log_audit_event
from .models import Company


COMPANY_HEADER = "X-Company-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'company')


def _is_superadmin() -> bool:
    return _is_authenticated() and g.current_user.role == Role.SUPERADMIN.value


def _switch_company(context) -> Company | None:
    """
    Resolve the company a superadmin asked to act in via X-Company-Id.

    Returns None when the header is absent. Non-superadmins never switch;
    the attempt is audited and refused (None).
    """
    raw = request.headers.get(COMPANY_HEADER)
    if not raw:
        return None

    if context.user.role != Role.SUPERADMIN.value:
        log_audit_event(
            event_type="COMPANY_SWITCH_DENIED",
            success=False,
            user_id=context.user.id,
            company_id=context.company.id,
            resource=request.path,
            action=request.method,
            reason=f"Non-superadmin requested company {raw}",
        )
        return None

    try:
        return tenant_service.validate_company_active(int(raw))
    except (ValueError, tenant_service.TenantAccessError):
        return None


def require_auth(f):
    """
    Require authentication and establish company context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.company: The company being acted in (the user's own, or the
      X-Company-Id target for a superadmin)
    - g.session_context: The full SessionContext object

    Returns 401 if:
    - No Authorization header
    - Invalid, expired or idle token
    - User or company deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        if request.headers.get(COMPANY_HEADER):
            switched = _switch_company(context)
            if switched is None:
                return jsonify({"error": "Company not available"}), 403
            g.company = switched
        else:
            g.company = context.company

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_superadmin(f):
    """Require the authenticated user to be a superadmin."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, 'current_user'):
            return jsonify({"error": "Authentication required"}), 401
        if not _is_superadmin():
            return jsonify({"error": "Superadmin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
