# Overview: Flask API routes for registers operations; parses input and returns JSON responses.

"""
Register Management API Routes

DESIGN:
- Register CRUD (rename, cashier assignment, token rotation)
- Lifecycle: open -> close, with an explicit conflict on double open
- Reconciliation: inconsistent registers are reported, never fixed
  silently; repair is a separate operator-confirmed call
- Session history and per-session summaries

ERRORS:
- 409 + "open_session" when opening over an existing open session
- 409 + "inconsistent": true when closing an active register with no session,
  or one with several open sessions
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import persistence, register_service, session_ledger
from ..services.persistence import CashRegisterPatch, NotFoundError, PersistenceError
from ..services.register_service import OpenSessionConflictError
from ..services.session_ledger import InconsistentStateError, NoOpenSessionError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth


registers_bp = Blueprint("registers", __name__, url_prefix="/api/registers")


def _with_session(register) -> dict:
    data = register.to_dict()
    current_session = session_ledger.get_open_session(register.company_id, register.id)
    data["current_session"] = current_session.to_dict() if current_session else None
    return data


# =============================================================================
# REGISTER MANAGEMENT
# =============================================================================

@registers_bp.get("")
@require_auth
def list_registers_route():
    registers = persistence.list_registers(g.company_id)
    return jsonify({"registers": [_with_session(r) for r in registers]}), 200


@registers_bp.post("")
@require_auth
def create_register_route():
    """
    Request body:
    {
        "name": "Front Counter",
        "employee_id": 3  (optional, must be an active cashier)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        patch = CashRegisterPatch.from_payload(data)
        register = register_service.create_register(
            g.company_id,
            name=patch.changes().get("name"),
            employee_id=patch.changes().get("employee_id"),
        )
        return jsonify({"register": register.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/inconsistencies")
@require_auth
def list_inconsistencies_route():
    problems = register_service.find_inconsistencies(g.company_id)
    return jsonify({"registers": [p.to_dict() for p in problems]}), 200


@registers_bp.get("/<int:register_id>")
@require_auth
def get_register_route(register_id: int):
    try:
        report = register_service.inspect_register(g.company_id, register_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    result = report.register.to_dict()
    result["state"] = report.state
    result["open_session_count"] = report.open_session_count
    result["current_session"] = report.open_session.to_dict() if report.open_session else None
    return jsonify(result), 200


@registers_bp.patch("/<int:register_id>")
@require_auth
def update_register_route(register_id: int):
    try:
        patch = CashRegisterPatch.from_payload(request.get_json(silent=True))
        if patch.is_empty():
            return jsonify({"error": "No fields to update"}), 400
        register = register_service.update_register(g.company_id, register_id, patch)
        return jsonify({"register": register.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.delete("/<int:register_id>")
@require_auth
def delete_register_route(register_id: int):
    try:
        register_service.delete_register(g.company_id, register_id)
        return jsonify({"message": "Register deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503


@registers_bp.post("/<int:register_id>/rotate-token")
@require_auth
def rotate_token_route(register_id: int):
    try:
        register = register_service.rotate_access_token(g.company_id, register_id)
        return jsonify({"register": register.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503


@registers_bp.post("/fix-tokens")
@require_auth
def fix_tokens_route():
    fixed = register_service.fix_invalid_tokens(g.company_id)
    return jsonify({"fixed": len(fixed), "registers": [r.to_dict() for r in fixed]}), 200


# =============================================================================
# LIFECYCLE
# =============================================================================

@registers_bp.post("/<int:register_id>/open")
@require_auth
def open_register_route(register_id: int):
    """
    Open the register with a counted opening balance.

    Request body:
    {
        "opening_balance_cents": 10000,
        "employee_id": 3,            (optional)
        "force_close_stale": false   (optional; closes a leftover open session first)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        force = data.get("force_close_stale", False)
        if not isinstance(force, bool):
            return jsonify({"error": "force_close_stale must be true or false"}), 400

        session = register_service.open_register(
            g.company_id,
            register_id,
            data.get("opening_balance_cents"),
            employee_id=data.get("employee_id"),
            force_close_stale=force,
        )
        register = persistence.get_register(g.company_id, register_id)
        return jsonify({"register": register.to_dict(), "session": session.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except OpenSessionConflictError as e:
        return jsonify({"error": str(e), "open_session": e.session.to_dict()}), 409
    except InconsistentStateError as e:
        return jsonify({"error": str(e), "inconsistent": True}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to open register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/close")
@require_auth
def close_register_route(register_id: int):
    """
    Close the register's open session.

    Request body:
    {
        "counted_balance_cents": 10450
    }

    Response includes variance_cents (counted - expected); negative is short.
    """
    try:
        data = request.get_json(silent=True) or {}
        session = register_service.close_register(g.company_id, register_id, data.get("counted_balance_cents"))
        register = persistence.get_register(g.company_id, register_id)
        return jsonify({
            "register": register.to_dict(),
            "session": session.to_dict(),
            "variance_cents": session.variance_cents,
        }), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except InconsistentStateError as e:
        return jsonify({"error": str(e), "inconsistent": True}), 409
    except NoOpenSessionError as e:
        return jsonify({"error": str(e), "inconsistent": False}), 409
    except ConflictError as e:
        return jsonify({"error": str(e), "inconsistent": True}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to close register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:register_id>/repair")
@require_auth
def repair_register_route(register_id: int):
    """
    Repair an inconsistent register (active, no open session) or one with
    several open sessions.

    Requires {"confirm": true}: the register's balance is discarded
    without a closing entry.
    """
    data = request.get_json(silent=True) or {}
    if data.get("confirm") is not True:
        return jsonify({"error": "Repair discards the register balance; send confirm=true"}), 400
    try:
        register = register_service.repair_register(g.company_id, register_id)
        return jsonify({"register": register.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503


# =============================================================================
# SESSIONS
# =============================================================================

@registers_bp.get("/sessions")
@require_auth
def list_sessions_route():
    """
    Query params: register_id, status (open|closed), archived (true|false), limit
    """
    archived_arg = request.args.get("archived")
    archived = None if archived_arg is None else archived_arg.lower() in ("1", "true", "yes")
    sessions = session_ledger.list_sessions(
        g.company_id,
        register_id=request.args.get("register_id", type=int),
        status=request.args.get("status"),
        archived=archived,
        limit=request.args.get("limit", default=100, type=int),
    )
    return jsonify({"sessions": [s.to_dict() for s in sessions]}), 200


@registers_bp.get("/sessions/<session_id>")
@require_auth
def get_session_route(session_id: str):
    try:
        return jsonify(session_ledger.get_session_summary(g.company_id, session_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
