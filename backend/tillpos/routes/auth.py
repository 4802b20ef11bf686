# Overview: Flask API routes for admin auth operations; login, logout, company signup and password change.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service, session_service, tenant_service
from ..services.auth_service import AuthenticationError, PasswordValidationError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate a company admin and create a session token.

    Request body:
    {
        "company_code": "ACME",
        "username": "admin",
        "password": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    company_code = data.get("company_code")
    username = data.get("username")
    password = data.get("password")

    if not all([company_code, username, password]):
        return jsonify({"error": "company_code, username and password required"}), 400

    try:
        company = auth_service.authenticate(company_code, username, password)
    except AuthenticationError as e:
        return jsonify({"error": str(e)}), 401

    session, token = session_service.create_session(
        company,
        username=username,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    current_app.logger.info("Admin login for company %s", company.id)

    return jsonify({
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "company": company.to_dict(),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.auth_token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    settings = tenant_service.get_settings(g.company_id)
    return jsonify({
        "company": g.company.to_dict(),
        "settings": settings.to_dict(),
        "session": g.admin_session.to_dict(),
    }), 200


@auth_bp.post("/register-company")
def register_company_route():
    """
    Self-service signup. New companies start on the free plan.

    Request body:
    {
        "name": "Acme Coffee",
        "code": "ACME",
        "admin_username": "admin",
        "admin_password": "..."
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        company = tenant_service.create_company(
            name=data.get("name"),
            code=data.get("code"),
            admin_username=data.get("admin_username"),
            admin_password=data.get("admin_password") or "",
        )
    except (ValidationError, PasswordValidationError) as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to register company")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"company": company.to_dict()}), 201


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    data = request.get_json(silent=True) or {}
    settings = tenant_service.get_settings(g.company_id)
    try:
        auth_service.authenticate(g.company.code, settings.admin_username, data.get("current_password") or "")
        auth_service.change_admin_password(g.company_id, data.get("new_password") or "")
    except AuthenticationError:
        return jsonify({"error": "Current password is incorrect"}), 401
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"message": "Password changed"}), 200
