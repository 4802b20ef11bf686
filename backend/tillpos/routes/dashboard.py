# Overview: Flask API route for the back-office dashboard summary.

from flask import Blueprint, request, jsonify, g

from ..services import reporting_service
from ..services.persistence import PersistenceError
from ..decorators import require_auth


dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard_route():
    """
    Query params:
    - include_archived: true | false (default false)
    """
    include_archived = request.args.get("include_archived", "false").lower() in ("1", "true", "yes")
    try:
        summary = reporting_service.dashboard_summary(g.company_id, include_archived=include_archived)
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    return jsonify(summary), 200
