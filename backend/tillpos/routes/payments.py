# Overview: Flask API routes for payment gateway webhooks; verifies signatures and updates intents.

"""
Gateway webhooks.

SECURITY: Every notification must carry a valid x-signature
(HMAC-SHA256 over "id:<data.id>;request-id:<x-request-id>;ts:<ts>;" with
PAYMENT_WEBHOOK_SECRET). Unsigned or mis-signed notifications get 401 and
change nothing.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import payment_gateway
from ..services.payment_gateway import WebhookSignatureError
from ..validation import ValidationError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _verify(payload: dict):
    data_id = (payload.get("data") or {}).get("id") or request.args.get("data.id")
    payment_gateway.verify_webhook_signature(
        request.headers.get("x-signature"),
        request.headers.get("x-request-id"),
        str(data_id) if data_id is not None else None,
        current_app.config.get("PAYMENT_WEBHOOK_SECRET", ""),
    )


@payments_bp.post("/webhooks/qr")
def qr_webhook_route():
    payload = request.get_json(silent=True) or {}
    try:
        _verify(payload)
        intent = payment_gateway.handle_qr_webhook(payload)
    except WebhookSignatureError as e:
        current_app.logger.warning("Rejected QR webhook: %s", e)
        return jsonify({"error": str(e)}), 401
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"received": True, "payment": intent.to_dict() if intent else None}), 200


@payments_bp.post("/webhooks/point")
def point_webhook_route():
    payload = request.get_json(silent=True) or {}
    try:
        _verify(payload)
        intent = payment_gateway.handle_point_webhook(payload)
    except WebhookSignatureError as e:
        current_app.logger.warning("Rejected card device webhook: %s", e)
        return jsonify({"error": str(e)}), 401
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"received": True, "payment": intent.to_dict() if intent else None}), 200
