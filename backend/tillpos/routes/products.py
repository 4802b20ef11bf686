# Overview: Flask API routes for products operations; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import catalog_service, persistence
from ..services.persistence import NotFoundError, PersistenceError
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    products = persistence.list_products(g.company_id)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.post("")
@require_auth
def create_product_route():
    """
    Request body:
    {
        "name": "Espresso",
        "cash_price_cents": 250,
        "card_price_cents": 275,
        "category": "Coffee",
        "stock": 100
    }
    """
    try:
        product = catalog_service.create_product(g.company_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    try:
        product = catalog_service.update_product(g.company_id, product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        catalog_service.delete_product(g.company_id, product_id)
        return jsonify({"message": "Product deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 503
