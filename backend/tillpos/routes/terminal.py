# Overview: Flask API routes for the cashier terminal, addressed by the register access token.

"""
Terminal API Routes

SECURITY: The <token> path segment is the terminal's only credential. It
resolves to exactly one register and therefore one company; nothing here
accepts a company or register id from the client.

DESIGN:
- A closed register can be viewed but cannot sell or start payments
  (409 with "register_closed": true), with no fallback
- Electronic payments create a PaymentIntent first; the sale is posted
  with payment_reference once the intent is approved
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import (
    loyalty_service,
    payment_gateway,
    persistence,
    register_service,
    sales_service,
    session_ledger,
)
from ..services.payment_gateway import PaymentGatewayError, PaymentStateError
from ..services.persistence import NotFoundError, PersistenceError
from ..services.register_service import RegisterClosedError
from ..services.session_ledger import InconsistentStateError, NoOpenSessionError
from ..validation import ValidationError
from ..decorators import require_terminal


terminal_bp = Blueprint("terminal", __name__, url_prefix="/api/terminal/<token>")


def _closed_response(e: RegisterClosedError):
    return jsonify({"error": str(e), "register_closed": True}), 409


@terminal_bp.get("")
@require_terminal
def terminal_info_route():
    register = g.register
    session = session_ledger.get_open_session(register.company_id, register.id)
    return jsonify({
        "register": register.to_dict(include_token=False),
        "is_open": bool(register.is_active),
        "session": session.to_dict() if session else None,
    }), 200


@terminal_bp.get("/products")
@require_terminal
def terminal_products_route():
    products = persistence.list_products(g.company_id)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@terminal_bp.post("/sales")
@require_terminal
def terminal_sale_route():
    """
    Record a sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2}],
        "payment_method": "cash",            (cash | card | qr)
        "received_amount_cents": 1000,       (cash only)
        "customer_id": 7,                    (optional)
        "payment_reference": "qr-..."        (optional, approved payment intent)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        result = sales_service.checkout(
            g.register,
            data.get("items"),
            data.get("payment_method"),
            received_amount_cents=data.get("received_amount_cents"),
            customer_id=data.get("customer_id"),
            payment_reference=data.get("payment_reference"),
        )
        return jsonify(result.to_dict()), 201
    except RegisterClosedError as e:
        return _closed_response(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InconsistentStateError as e:
        return jsonify({"error": str(e), "inconsistent": True}), 409
    except NoOpenSessionError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to record terminal sale")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CUSTOMERS
# =============================================================================

@terminal_bp.get("/customers/<qr_code>")
@require_terminal
def terminal_customer_route(qr_code: str):
    try:
        customer = loyalty_service.find_customer_by_qr(g.company_id, qr_code)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"customer": customer.to_dict()}), 200


@terminal_bp.post("/customers")
@require_terminal
def terminal_register_customer_route():
    try:
        customer = loyalty_service.register_customer(g.company_id, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"customer": customer.to_dict()}), 201


# =============================================================================
# PAYMENTS
# =============================================================================

@terminal_bp.post("/payments/<method>")
@require_terminal
def terminal_create_payment_route(method: str):
    """
    Start an electronic payment.

    method:
    - card: standalone card terminal, confirmed by the cashier
    - qr: dynamic QR order on the gateway
    - point: order pushed to the company's card device

    Request body:
    {
        "amount_cents": 1250,
        "description": "Sale"
    }
    """
    creators = {
        "card": payment_gateway.create_card_intent,
        "qr": payment_gateway.create_qr_order,
        "point": payment_gateway.create_point_order,
    }
    creator = creators.get(method)
    if creator is None:
        return jsonify({"error": "method must be card, qr or point"}), 404

    data = request.get_json(silent=True) or {}
    try:
        register_service.require_terminal_open(g.register)
        intent = creator(
            g.company_id,
            data.get("amount_cents"),
            description=data.get("description"),
            cash_register_id=g.register.id,
        )
        return jsonify({"payment": intent.to_dict()}), 201
    except RegisterClosedError as e:
        return _closed_response(e)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PaymentGatewayError as e:
        return jsonify({"error": str(e)}), 502


@terminal_bp.get("/payments/<reference>")
@require_terminal
def terminal_payment_status_route(reference: str):
    try:
        intent = payment_gateway.qr_status(g.company_id, reference)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"payment": intent.to_dict()}), 200


@terminal_bp.post("/payments/<reference>/confirm")
@require_terminal
def terminal_confirm_payment_route(reference: str):
    """Cashier confirms a card payment accepted on a standalone terminal."""
    try:
        intent = payment_gateway.confirm_card_intent(g.company_id, reference)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentStateError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"payment": intent.to_dict()}), 200


@terminal_bp.post("/payments/<reference>/cancel")
@require_terminal
def terminal_cancel_payment_route(reference: str):
    try:
        intent = payment_gateway.cancel_payment_intent(g.company_id, reference)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PaymentStateError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"payment": intent.to_dict()}), 200


@terminal_bp.post("/payments/<reference>/wait")
@require_terminal
def terminal_wait_payment_route(reference: str):
    """
    Block until the payment is final, or cancel it after the poll window
    (CARD_POLL_INTERVAL_SECONDS x CARD_POLL_MAX_ATTEMPTS).
    """
    try:
        intent = payment_gateway.wait_for_payment(g.company_id, reference)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"payment": intent.to_dict()}), 200


@terminal_bp.get("/devices")
@require_terminal
def terminal_devices_route():
    try:
        devices = payment_gateway.list_devices(g.company_id)
    except PaymentGatewayError as e:
        return jsonify({"error": str(e)}), 502
    return jsonify({"devices": devices}), 200
