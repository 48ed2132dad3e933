# Overview: Flask API routes for superadmin administration; parses input and returns JSON responses.

"""
Admin API routes (superadmin only)

- Module activation per company
- The role x module permission matrix
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..permissions import parse_role, parse_module
from ..services import module_service
from ..services import permission_service
from ..services import tenant_service
from ..services.errors import WorkflowError
from ..validation import ConflictError, ValidationError, json_object
from ..decorators import require_auth, require_superadmin


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")

CAPABILITY_FIELDS = ("can_view", "can_edit", "can_delete", "can_export")


@admin_bp.get("/companies")
@require_auth
@require_superadmin
def list_companies_route():
    try:
        companies = tenant_service.list_companies()
        return jsonify({"companies": [c.to_dict() for c in companies]}), 200

    except Exception:
        current_app.logger.exception("Failed to list companies")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/companies/<int:company_id>/modules")
@require_auth
@require_superadmin
def list_company_modules_route(company_id: int):
    try:
        company = tenant_service.get_company(company_id)
        if not company:
            return jsonify({"error": "Company not found"}), 404

        return jsonify({
            "company": company.to_dict(),
            "modules": module_service.list_modules(company),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to list company modules")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/companies/<int:company_id>/modules/<module>")
@require_auth
@require_superadmin
def set_company_module_route(company_id: int, module: str):
    """Body: {"is_active": true|false}"""
    try:
        data = json_object(request.get_json(silent=True))
        if not isinstance(data.get("is_active"), bool):
            return jsonify({"error": "is_active (boolean) required"}), 400

        try:
            module_enum = parse_module(module)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        company = tenant_service.get_company(company_id)
        if not company:
            return jsonify({"error": "Company not found"}), 404

        row = module_service.set_active(company, module_enum, data["is_active"], actor=g.current_user)
        return jsonify({"module": row.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to set company module")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/permissions")
@require_auth
@require_superadmin
def list_permissions_route():
    """Query: role (optional)."""
    try:
        role = request.args.get("role")
        try:
            role_enum = parse_role(role) if role else None
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        return jsonify({"permissions": permission_service.list_role_permissions(role_enum)}), 200

    except Exception:
        current_app.logger.exception("Failed to list permissions")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.put("/permissions/<role>/<module>")
@require_auth
@require_superadmin
def set_permission_route(role: str, module: str):
    """
    Update one (role, module) row. Omitted flags keep their value.

    Body: {"can_view": bool, "can_edit": bool, "can_delete": bool, "can_export": bool}
    """
    try:
        data = json_object(request.get_json(silent=True))
        flags = {k: data[k] for k in CAPABILITY_FIELDS if k in data}
        if not flags:
            return jsonify({"error": f"one of {', '.join(CAPABILITY_FIELDS)} required"}), 400
        if any(not isinstance(v, bool) for v in flags.values()):
            return jsonify({"error": "capability flags must be booleans"}), 400

        try:
            role_enum = parse_role(role)
            module_enum = parse_module(module)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        row = permission_service.set_role_permission(
            role_enum, module_enum, actor=g.current_user, **flags,
        )
        return jsonify({"permission": row.to_dict()}), 200

    except WorkflowError as e:
        return jsonify(e.to_dict()), e.http_status
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to set permission")
        return jsonify({"error": "Internal server error"}), 500
