# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

"""
Sales routes.

POST /api/sales is the checkout: one request commits the sale header, its
lines and the stock decrements together (see sales_service.commit_sale).
Sales are append-only; there is no update or delete route.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..services import sales_service
from ..services.export_service import render_receipt
from ..services.permission_service import CAN_VIEW_REPORTS
from ..services.sales_service import SaleCommitError
from ..services.settings_service import get_settings
from ..time_utils import parse_iso_date
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def parse_date_range():
    """?start=YYYY-MM-DD&end=YYYY-MM-DD; raises ValidationError on bad input."""
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        raise ValidationError("start and end must be dates (YYYY-MM-DD)")
    return start, end


@sales_bp.get("")
@require_auth
@require_permission(CAN_VIEW_REPORTS)
def list_sales_route():
    try:
        start, end = parse_date_range()
        sales = sales_service.list_sales(start, end)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    items = [s.to_dict() for s in sales]
    return jsonify({"items": items, "count": len(items)})


@sales_bp.post("")
@require_auth
def commit_sale_route():
    payload = request.get_json(silent=True)
    if payload is None:
        return jsonify({"error": "Invalid JSON payload"}), 400

    try:
        sale = sales_service.commit_sale(
            payload,
            user_id=g.current_user.id,
            cashier=g.current_user.name,
        )
        return jsonify(sale.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except SaleCommitError as e:
        current_app.logger.info("Sale rejected: %s %s", e, e.details)
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to commit sale")
        return jsonify({"error": "Sale could not be saved; nothing was recorded"}), 500


@sales_bp.get("/<sale_id>")
@require_auth
def get_sale_route(sale_id: str):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify(sale.to_dict())


@sales_bp.get("/<sale_id>/receipt")
@require_auth
def receipt_route(sale_id: str):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    html = render_receipt(sale, get_settings())
    return current_app.response_class(html, mimetype="text/html")
