# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

Users log in to a company (by slug) with email and password and receive a
bearer token. Only the token hash is stored.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import tenant_service
from ..services import module_service
from ..services import permission_service
from ..validation import ValidationError, json_object
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Body: {"company": "<slug>", "email": "...", "password": "..."}
    Token must be included in Authorization header for protected routes.
    """
    try:
        data = json_object(request.get_json(silent=True))
        slug = data.get("company") or data.get("company_slug")
        email = data.get("email")
        password = data.get("password")

        if not all([slug, email, password]):
            return jsonify({"error": "company, email and password required"}), 400

        company = tenant_service.get_company_by_slug(slug)
        if not company or not company.is_active:
            return jsonify({"error": "Invalid credentials"}), 401

        user = auth_service.authenticate(company.id, email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(user.id)

        return jsonify({
            "user": user.to_dict(),
            "company": company.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful"
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the current session token."""
    try:
        token = request.headers.get("Authorization").split(" ", 1)[1]
        session_service.revoke_session(token, reason="User logout")
        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Current user, the company being acted in, and the navigation map.

    navigation: {module: {capability: bool}} as decided by the resolver.
    """
    try:
        user = g.current_user
        company = g.company
        return jsonify({
            "user": user.to_dict(),
            "company": company.to_dict(),
            "active_modules": [m.value for m in module_service.active_modules(company)],
            "navigation": permission_service.navigation_for(user, company),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to load current user")
        return jsonify({"error": "Internal server error"}), 500
