# Overview: Flask API routes for employees operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import catalog_service, persistence
from ..services.persistence import NotFoundError, PersistenceError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth


employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")


@employees_bp.get("")
@require_auth
def list_employees_route():
    active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
    employees = persistence.list_employees(g.company_id, active_only=active_only)
    return jsonify({"employees": [e.to_dict() for e in employees]}), 200


@employees_bp.post("")
@require_auth
def create_employee_route():
    """
    Request body:
    {
        "name": "Ana",
        "email": "ana@example.com",
        "phone": "555-0100",
        "role": "cashier"
    }
    """
    try:
        employee = catalog_service.create_employee(g.company_id, request.get_json(silent=True))
        return jsonify({"employee": employee.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create employee")
        return jsonify({"error": "Internal server error"}), 500


@employees_bp.patch("/<int:employee_id>")
@require_auth
def update_employee_route(employee_id: int):
    try:
        employee = catalog_service.update_employee(g.company_id, employee_id, request.get_json(silent=True))
        return jsonify({"employee": employee.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update employee")
        return jsonify({"error": "Internal server error"}), 500


@employees_bp.delete("/<int:employee_id>")
@require_auth
def delete_employee_route(employee_id: int):
    try:
        catalog_service.delete_employee(g.company_id, employee_id)
        return jsonify({"message": "Employee deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
