# Overview: Service-layer operations for held (suspended) carts; hold, list, restore and discard.

from __future__ import annotations

import uuid

from flask import current_app

from ..extensions import db
from ..models import HeldInvoice, HeldInvoiceLine
from .concurrency import begin_write_transaction, run_with_retry
from ..signals import notify_changed
from ..time_utils import utcnow
from ..validation import ValidationError, require_money, require_positive_quantity


class HeldInvoiceNotFoundError(Exception):
    """Raised when a held invoice id does not exist (already restored or discarded)."""


def _int_or_zero(value, *, field: str) -> int:
    if value in (None, ""):
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer")


def _freeze_line(position: int, raw) -> HeldInvoiceLine:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{position}] must be an object")

    product_id = str(raw.get("id") or "").strip()
    name = str(raw.get("name") or "").strip()
    if not product_id or not name:
        raise ValidationError(f"items[{position}] needs an id and a name")

    image = raw.get("image")
    return HeldInvoiceLine(
        position=position,
        product_id=product_id,
        name=name,
        price=require_money(raw.get("price"), field=f"items[{position}].price"),
        category=str(raw.get("category") or ""),
        stock=_int_or_zero(raw.get("stock"), field=f"items[{position}].stock"),
        barcode=str(raw.get("barcode") or ""),
        image=str(image) if image else None,
        quantity=require_positive_quantity(raw.get("quantity"), field=f"items[{position}].quantity"),
    )


def hold_invoice(items, *, user_id: int | None = None) -> HeldInvoice:
    """
    Park a cart. Stock is not touched; the items are stored exactly as sent.

    Raises:
        ValidationError: if the cart is empty or an item is malformed
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Cannot hold an empty cart")

    invoice = HeldInvoice(
        id=uuid.uuid4().hex,
        created_at=utcnow(),
        created_by_user_id=user_id,
    )
    for position, raw in enumerate(items):
        invoice.lines.append(_freeze_line(position, raw))

    db.session.add(invoice)
    db.session.commit()
    notify_changed(current_app._get_current_object(), "held_invoices")
    return invoice


def list_held_invoices() -> list[HeldInvoice]:
    return (
        db.session.query(HeldInvoice)
        .order_by(HeldInvoice.created_at.desc(), HeldInvoice.id.desc())
        .all()
    )


def _claim_invoice(invoice_id: str) -> list[dict]:
    """
    Delete the invoice and return its frozen items, or raise if another
    terminal got there first. Only the caller whose DELETE matched the row
    gets the items.
    """
    invoices = HeldInvoice.__table__
    lines = HeldInvoiceLine.__table__

    def _op():
        begin_write_transaction()
        items = [
            line.to_item()
            for line in db.session.query(HeldInvoiceLine)
            .filter(HeldInvoiceLine.invoice_id == invoice_id)
            .order_by(HeldInvoiceLine.position)
        ]
        db.session.execute(lines.delete().where(lines.c.invoice_id == invoice_id))
        deleted = db.session.execute(
            invoices.delete().where(invoices.c.id == invoice_id)
        ).rowcount
        if deleted != 1:
            raise HeldInvoiceNotFoundError(f"Held invoice {invoice_id} not found")
        db.session.commit()
        return items

    try:
        items = run_with_retry(_op)
    except Exception:
        db.session.rollback()
        raise

    notify_changed(current_app._get_current_object(), "held_invoices")
    return items


def restore_held_invoice(invoice_id: str) -> list[dict]:
    """
    Return the frozen cart items and delete the held invoice in the same
    transaction, so an invoice can only be restored once.
    """
    return _claim_invoice(invoice_id)


def discard_held_invoice(invoice_id: str) -> None:
    _claim_invoice(invoice_id)
