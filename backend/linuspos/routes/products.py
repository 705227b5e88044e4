# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product (inventory) routes.

SECURITY: All routes require authentication.
- Reads are open to every cashier (the checkout screen lists products)
- Writes require canManageInventory
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import products_service
from ..services.permission_service import CAN_MANAGE_INVENTORY
from ..services.settings_service import get_settings
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - q: str (optional) - name or barcode substring
    - category: str (optional) - exact category
    """
    threshold = get_settings().low_stock_threshold
    products = products_service.list_products(
        search=request.args.get("q"),
        category=request.args.get("category"),
    )
    items = [p.to_dict(low_stock_threshold=threshold) for p in products]
    return jsonify({"items": items, "count": len(items)})


@products_bp.get("/categories")
@require_auth
def list_categories():
    return jsonify({"items": products_service.list_categories()})


@products_bp.get("/barcode/<path:barcode>")
@require_auth
def get_by_barcode(barcode: str):
    product = products_service.find_by_barcode(barcode)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product.to_dict(low_stock_threshold=get_settings().low_stock_threshold))


@products_bp.get("/<product_id>")
@require_auth
def get_product(product_id: str):
    product = products_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify(product.to_dict(low_stock_threshold=get_settings().low_stock_threshold))


@products_bp.post("")
@require_auth
@require_permission(CAN_MANAGE_INVENTORY)
def upsert_products_route():
    """
    Bulk upsert: body is one product object or a list of them.
    All rows are saved or none are.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        saved = products_service.upsert_products(payload)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to save products")
        return jsonify({"error": "Internal server error"}), 500

    threshold = get_settings().low_stock_threshold
    items = [p.to_dict(low_stock_threshold=threshold) for p in saved]
    return jsonify({"items": items, "count": len(items)}), 200


@products_bp.delete("/<product_id>")
@require_auth
@require_permission(CAN_MANAGE_INVENTORY)
def delete_product_route(product_id: str):
    try:
        deleted = products_service.delete_product(product_id)
    except Exception:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500

    if not deleted:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"success": True}), 200


@products_bp.delete("")
@require_auth
@require_permission(CAN_MANAGE_INVENTORY)
def clear_products_route():
    try:
        deleted = products_service.clear_products()
    except Exception:
        current_app.logger.exception("Failed to clear inventory")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("Inventory cleared: %s product(s) removed", deleted)
    return jsonify({"success": True, "deleted": deleted}), 200
