# Overview: Flask API routes for company profile and payment gateway settings.

from flask import Blueprint, request, jsonify, g

from ..services import tenant_service
from ..validation import ValidationError
from ..decorators import require_auth


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/company")
@require_auth
def get_company_settings_route():
    return jsonify({"settings": tenant_service.get_settings(g.company_id).to_dict()}), 200


@settings_bp.put("/company")
@require_auth
def update_company_settings_route():
    try:
        settings = tenant_service.update_settings(g.company_id, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"settings": settings.to_dict()}), 200


@settings_bp.get("/payments")
@require_auth
def get_payment_settings_route():
    """Gateway settings. Secrets are reported as present/absent only."""
    return jsonify({"settings": tenant_service.get_api_settings(g.company_id).to_dict()}), 200


@settings_bp.put("/payments")
@require_auth
def update_payment_settings_route():
    """
    Request body (all optional):
    {
        "gateway_enabled": true,
        "gateway_access_token": "APP_USR-...",
        "gateway_public_key": "APP_USR-...",
        "gateway_user_id": "123456",
        "gateway_store_id": "STORE001",
        "gateway_pos_id": "1234"
    }
    """
    try:
        settings = tenant_service.update_api_settings(g.company_id, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"settings": settings.to_dict()}), 200
