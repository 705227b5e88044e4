# Overview: Flask API routes for cart totals; pure computation, nothing is stored.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth
from ..services.settings_service import get_settings
from ..totals import compute_totals, ZERO
from ..validation import ValidationError, require_money, require_positive_quantity

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.post("/totals")
@require_auth
def cart_totals_route():
    """
    Body: {items: [{price, quantity}, ...], discount?}
    Returns the same totals a commit of this cart would store.
    """
    payload = request.get_json(silent=True) or {}
    items = payload.get("items") or []
    if not isinstance(items, list):
        return jsonify({"error": "items must be a list"}), 400

    try:
        lines = [
            (
                require_money(item.get("price") if isinstance(item, dict) else None, field=f"items[{i}].price"),
                require_positive_quantity(item.get("quantity") if isinstance(item, dict) else None,
                                          field=f"items[{i}].quantity"),
            )
            for i, item in enumerate(items)
        ]
        discount = ZERO
        if payload.get("discount") not in (None, ""):
            discount = require_money(payload["discount"], field="discount")
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    settings = get_settings()
    totals = compute_totals(lines, settings.tax_rate, discount)
    body = totals.to_dict()
    body["taxRate"] = float(settings.tax_rate)
    body["currency"] = settings.currency
    return jsonify(body)
