# Overview: Flask API routes for archive operations; archiving, archived retrieval, export and import.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import archive_service
from ..services.archive_service import DuplicateImportError, ImportIdCollisionError
from ..services.persistence import NotFoundError, PersistenceError
from ..time_utils import parse_range_bound
from ..validation import ValidationError
from ..decorators import require_auth


archive_bp = Blueprint("archive", __name__, url_prefix="/api/archive")


@archive_bp.post("/run")
@require_auth
def run_archive_route():
    """
    Archive closed sessions and sales.

    Request body (optional):
    {
        "per_session": false   (true: only sales of the sessions being archived)
    }
    """
    data = request.get_json(silent=True) or {}
    per_session = data.get("per_session", False)
    if not isinstance(per_session, bool):
        return jsonify({"error": "per_session must be true or false"}), 400
    try:
        result = archive_service.run_archive(g.company_id, per_session=per_session)
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    return jsonify(result), 200


@archive_bp.get("")
@require_auth
def list_archived_route():
    """
    Query params: start, end (ISO date or datetime, inclusive, on archived_at)
    """
    try:
        start = parse_range_bound(request.args.get("start"))
        end = parse_range_bound(request.args.get("end"), end=True)
    except ValueError:
        return jsonify({"error": "start/end must be ISO-8601 dates"}), 400

    data = archive_service.retrieve_archived(g.company_id, start=start, end=end)
    return jsonify({
        "sales": [s.to_dict() for s in data["sales"]],
        "sessions": [s.to_dict() for s in data["sessions"]],
    }), 200


@archive_bp.get("/sessions/<session_id>/export")
@require_auth
def export_session_route(session_id: str):
    try:
        document = archive_service.export_session(g.company_id, session_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    response = jsonify(document)
    response.headers["Content-Disposition"] = f'attachment; filename="{archive_service.export_filename(document)}"'
    return response, 200


@archive_bp.post("/import")
@require_auth
def import_session_route():
    """Import a session export document (the JSON produced by the export route)."""
    document = request.get_json(silent=True)
    try:
        result = archive_service.import_session_export(g.company_id, document)
        return jsonify(result), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except DuplicateImportError as e:
        return jsonify({"error": str(e), "duplicate": True}), 409
    except ImportIdCollisionError as e:
        return jsonify({"error": str(e), "duplicate": False}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to import session")
        return jsonify({"error": "Internal server error"}), 500
