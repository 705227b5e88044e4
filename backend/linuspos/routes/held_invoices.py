# Overview: Flask API routes for held invoices; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import held_invoice_service
from ..services.held_invoice_service import HeldInvoiceNotFoundError
from ..validation import ValidationError
from ..decorators import require_auth

held_invoices_bp = Blueprint("held_invoices", __name__, url_prefix="/api/held-invoices")


@held_invoices_bp.get("")
@require_auth
def list_held_route():
    invoices = held_invoice_service.list_held_invoices()
    items = [inv.to_dict() for inv in invoices]
    return jsonify({"items": items, "count": len(items)})


@held_invoices_bp.post("")
@require_auth
def hold_route():
    """Body: {items: [cart item, ...]} (a bare list is accepted too)."""
    payload = request.get_json(silent=True)
    items = payload.get("items") if isinstance(payload, dict) else payload

    try:
        invoice = held_invoice_service.hold_invoice(items, user_id=g.current_user.id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to hold invoice")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(invoice.to_dict()), 201


@held_invoices_bp.post("/<invoice_id>/restore")
@require_auth
def restore_route(invoice_id: str):
    try:
        items = held_invoice_service.restore_held_invoice(invoice_id)
    except HeldInvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"id": invoice_id, "items": items})


@held_invoices_bp.delete("/<invoice_id>")
@require_auth
def discard_route(invoice_id: str):
    try:
        held_invoice_service.discard_held_invoice(invoice_id)
    except HeldInvoiceNotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"success": True})
