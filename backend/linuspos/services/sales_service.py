"""
Sales Service - atomic checkout

A cart becomes a sale in exactly one transaction: header, lines (in cart
order) and the stock decrements for those lines. Either all of it is
committed or none of it is.

Stock is decremented with a conditional UPDATE (stock >= quantity), so two
terminals racing for the last units cannot both succeed: the first commit
wins and the second is rejected with the current stock in its details.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime, time, timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..models.sales import PAYMENT_METHODS, STATUS_COMPLETED, STATUS_PENDING
from ..signals import notify_changed
from ..time_utils import utcnow
from ..totals import ZERO, compute_totals
from ..validation import ConflictError, ValidationError, require_money, require_positive_quantity
from .concurrency import begin_write_transaction, run_with_retry
from .settings_service import get_settings


class SaleCommitError(Exception):
    """Raised when a sale cannot be committed against current stock."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def derive_status(payment_method: str) -> str:
    return STATUS_PENDING if payment_method == "Credit" else STATUS_COMPLETED


def new_sale_id() -> str:
    return uuid.uuid4().hex


def _clean_items(raw_items) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Sale must contain at least one item")

    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")

        # Cart items carry product fields (id/name); stored lines use productId/productName
        product_id = raw.get("productId", raw.get("id"))
        product_id = str(product_id).strip() if product_id is not None else ""
        if not product_id:
            raise ValidationError(f"items[{idx}].productId is required")

        name = raw.get("productName", raw.get("name"))
        name = str(name).strip() if name is not None else ""
        if not name:
            raise ValidationError(f"items[{idx}].productName is required")

        items.append({
            "product_id": product_id,
            "product_name": name,
            "quantity": require_positive_quantity(raw.get("quantity"), field=f"items[{idx}].quantity"),
            "price": require_money(raw.get("price"), field=f"items[{idx}].price"),
        })
    return items


def _optional_text(payload: dict, key: str, max_len: int) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    if len(value) > max_len:
        raise ValidationError(f"{key} exceeds max length {max_len}")
    return value


def _decrement_stock(product_id: str, quantity: int) -> bool:
    products = Product.__table__
    result = db.session.execute(
        products.update()
        .where(products.c.id == product_id)
        .where(products.c.stock >= quantity)
        .values(
            stock=products.c.stock - quantity,
            version_id=products.c.version_id + 1,
        )
    )
    return result.rowcount == 1


def commit_sale(payload: dict, *, user_id: int | None = None, cashier: str | None = None) -> Sale:
    """
    Validate a checkout payload and persist it atomically.

    Totals are computed here from the submitted lines and the current tax
    rate; any totals sent by the client are ignored.

    Raises:
        ValidationError: bad payload (nothing written)
        ConflictError: sale id already committed
        SaleCommitError: missing product or insufficient stock (rolled back)
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    items = _clean_items(payload.get("items"))

    payment_method = payload.get("paymentMethod") or "Cash"
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"paymentMethod must be one of: {', '.join(PAYMENT_METHODS)}")

    discount = ZERO
    if payload.get("discount") not in (None, ""):
        discount = require_money(payload["discount"], field="discount")

    sale_id = payload.get("id")
    sale_id = str(sale_id).strip() if sale_id is not None else ""
    if len(sale_id) > 64:
        raise ValidationError("id exceeds max length 64")
    sale_id = sale_id or new_sale_id()

    # The authenticated user is the cashier; the body only fills in for callers without one
    cashier_name = cashier or _optional_text(payload, "cashier", 120)
    if not cashier_name:
        raise ValidationError("cashier is required")
    customer_name = _optional_text(payload, "customerName", 255)
    payment_details = _optional_text(payload, "paymentDetails", 255)

    settings = get_settings()
    tax_rate = settings.tax_rate
    currency = settings.currency

    totals = compute_totals(
        ((item["price"], item["quantity"]) for item in items),
        tax_rate,
        discount,
    )
    if totals.discount > totals.subtotal + totals.tax:
        raise ValidationError("discount cannot exceed subtotal plus tax")

    def _op():
        begin_write_transaction()

        if db.session.get(Sale, sale_id) is not None:
            raise ConflictError(f"Sale {sale_id} has already been recorded")

        sale = Sale(
            id=sale_id,
            date=utcnow(),
            subtotal=totals.subtotal,
            tax=totals.tax,
            discount=totals.discount,
            total=totals.total,
            tax_rate=tax_rate,
            currency=currency,
            cashier=cashier_name,
            customer_name=customer_name,
            payment_method=payment_method,
            payment_details=payment_details,
            status=derive_status(payment_method),
            created_by_user_id=user_id,
        )
        for position, item in enumerate(items):
            sale.items.append(SaleItem(position=position, **item))

        db.session.add(sale)
        db.session.flush()

        failures = []
        for item in items:
            if _decrement_stock(item["product_id"], item["quantity"]):
                continue
            on_hand = (
                db.session.query(Product.stock)
                .filter(Product.id == item["product_id"])
                .scalar()
            )
            failures.append({
                "productId": item["product_id"],
                "productName": item["product_name"],
                "requestedQuantity": item["quantity"],
                "stock": on_hand,
                "reason": "not_found" if on_hand is None else "insufficient_stock",
            })

        if failures:
            raise SaleCommitError(
                "Sale could not be completed; stock has changed",
                details={"items": failures},
            )

        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except IntegrityError:
        # Lost a race on the same sale id
        db.session.rollback()
        raise ConflictError(f"Sale {sale_id} has already been recorded")
    except (ConflictError, SaleCommitError):
        db.session.rollback()
        raise
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Sale %s rolled back", sale_id)
        raise

    current_app.logger.info(
        "Sale %s committed: %s line(s), total %s %s",
        sale.id, len(items), totals.rounded().total, currency,
    )
    notify_changed(current_app._get_current_object(), "sales", "products")
    return sale


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def list_sales(start: date | None = None, end: date | None = None) -> list[Sale]:
    """Newest first. start/end are inclusive calendar dates (UTC)."""
    if start and end and start > end:
        raise ValidationError("start must be on or before end")

    query = db.session.query(Sale)
    if start:
        query = query.filter(Sale.date >= _day_start(start))
    if end:
        query = query.filter(Sale.date < _day_start(end + timedelta(days=1)))
    return query.order_by(Sale.date.desc(), Sale.id.desc()).all()


def get_sale(sale_id: str) -> Sale | None:
    return db.session.get(Sale, sale_id)
