# Overview: Flask API routes for loyalty program settings and customers.

from flask import Blueprint, request, jsonify, g

from ..services import loyalty_service
from ..services.persistence import NotFoundError
from ..validation import ValidationError
from ..decorators import require_auth


loyalty_bp = Blueprint("loyalty", __name__, url_prefix="/api/loyalty")


@loyalty_bp.get("/program")
@require_auth
def get_program_route():
    program = loyalty_service.get_program(g.company_id)
    return jsonify({"program": program.to_dict() if program else None}), 200


@loyalty_bp.put("/program")
@require_auth
def save_program_route():
    """
    Request body:
    {
        "name": "Coffee club",
        "calculation_type": "amount",     (amount | quantity)
        "points_per_unit": 1,
        "unit_value": 1000,               (cents for amount, items for quantity)
        "min_purchase_cents": 500,        (optional)
        "min_items": null,                (optional)
        "reward_threshold_points": 10,    (optional)
        "reward_label": "Free coffee",    (optional)
        "is_active": true
    }
    """
    try:
        program = loyalty_service.save_program(g.company_id, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"program": program.to_dict()}), 200


@loyalty_bp.get("/customers")
@require_auth
def list_customers_route():
    customers = loyalty_service.list_customers(g.company_id)
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@loyalty_bp.post("/customers")
@require_auth
def create_customer_route():
    try:
        customer = loyalty_service.register_customer(g.company_id, request.get_json(silent=True))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"customer": customer.to_dict()}), 201


@loyalty_bp.get("/customers/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = loyalty_service.get_customer(g.company_id, customer_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"customer": customer.to_dict()}), 200
