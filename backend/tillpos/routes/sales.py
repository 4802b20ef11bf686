# Overview: Flask API routes for sales history; filtered listing for the back office.

from flask import Blueprint, request, jsonify, g

from ..services import sales_service
from ..models.sales import PAYMENT_METHODS
from ..time_utils import parse_range_bound
from ..decorators import require_auth


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params:
    - register_id, session_id
    - payment_method: cash | card | qr
    - start, end: ISO date or datetime (inclusive, on sale date)
    - archived: true | false (default false: live sales only)
    - limit (default 500)
    """
    payment_method = request.args.get("payment_method")
    if payment_method and payment_method not in PAYMENT_METHODS:
        return jsonify({"error": f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}"}), 400

    try:
        start = parse_range_bound(request.args.get("start"))
        end = parse_range_bound(request.args.get("end"), end=True)
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 dates"}), 400

    archived_arg = request.args.get("archived", "false").lower()
    archived = None if archived_arg == "all" else archived_arg in ("1", "true", "yes")

    sales = sales_service.list_sales(
        g.company_id,
        register_id=request.args.get("register_id", type=int),
        session_id=request.args.get("session_id"),
        payment_method=payment_method,
        start=start,
        end=end,
        archived=archived,
        limit=request.args.get("limit", default=500, type=int),
    )
    return jsonify({
        "sales": [s.to_dict() for s in sales],
        "count": len(sales),
        "total_cents": sum(s.total_cents for s in sales),
    }), 200
