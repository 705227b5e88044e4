# Overview: Flask API routes for reports and exports; summary JSON, CSV downloads, printable HTML.

from flask import Blueprint, Response, jsonify

from ..decorators import require_auth, require_permission
from ..services import export_service, reporting_service
from ..services.permission_service import CAN_VIEW_REPORTS
from ..services.products_service import list_products
from ..services.sales_service import list_sales
from ..services.settings_service import get_settings
from ..time_utils import utcnow
from ..validation import ValidationError
from .sales import parse_date_range

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _csv_response(body: str, filename: str) -> Response:
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


def _html_response(body: str) -> Response:
    return Response(body, mimetype="text/html")


@reports_bp.get("/summary")
@require_auth
@require_permission(CAN_VIEW_REPORTS)
def summary_route():
    try:
        start, end = parse_date_range()
        return jsonify(reporting_service.sales_summary(start, end))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@reports_bp.get("/sales.csv")
@require_auth
@require_permission(CAN_VIEW_REPORTS)
def sales_csv_route():
    try:
        start, end = parse_date_range()
        sales = list_sales(start, end)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return _csv_response(export_service.sales_csv(sales), "sales_report.csv")


@reports_bp.get("/sales.html")
@require_auth
@require_permission(CAN_VIEW_REPORTS)
def sales_html_route():
    try:
        start, end = parse_date_range()
        sales = list_sales(start, end)
        summary = reporting_service.sales_summary(start, end)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return _html_response(export_service.render_sales_report(sales, summary, get_settings()))


@reports_bp.get("/inventory.csv")
@require_auth
def inventory_csv_route():
    filename = f"inventory_{utcnow().date().isoformat()}.csv"
    return _csv_response(export_service.inventory_csv(list_products()), filename)


@reports_bp.get("/inventory.html")
@require_auth
def inventory_html_route():
    return _html_response(export_service.render_inventory_report(list_products(), get_settings()))
