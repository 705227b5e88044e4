# Overview: Flask API routes for notifications; the low-stock set the terminal poller shows.

from flask import Blueprint, jsonify

from ..decorators import require_auth
from ..services.products_service import list_products
from ..services.settings_service import get_settings
from ..services.stock_service import low_stock_notifications

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("/low-stock")
@require_auth
def low_stock_route():
    threshold = get_settings().low_stock_threshold
    items = low_stock_notifications(list_products(), threshold)
    return jsonify({"items": items, "count": len(items), "threshold": threshold})
