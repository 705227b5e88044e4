# backend/linuspos/services/products_service.py
"""
Products Service

Inventory CRUD against the products table. Writes from the inventory screen
arrive as a bulk upsert (one product or the whole edited list); the batch is
validated up front and applied in a single transaction so a bad row never
leaves half the list saved.
"""
from __future__ import annotations

import uuid

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product
from ..signals import notify_changed
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    validate_payload,
)

PRODUCT_MUTABLE_FIELDS = {"name", "price", "category", "stock", "barcode", "image"}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"id"} | PRODUCT_MUTABLE_FIELDS,
    required_on_create={"name", "price", "barcode"},
)


def new_product_id() -> str:
    return uuid.uuid4().hex


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _clean_product(payload: dict, *, existing: Product | None) -> tuple[dict, int | None]:
    """Validate one upsert row. Returns (patch, expected_version)."""
    if not isinstance(payload, dict):
        raise ValidationError("Each product must be a JSON object")

    payload = dict(payload)
    expected_version = payload.pop("version", None)
    # Read-only fields echoed back by clients that re-send what they listed
    for key in ("createdAt", "updatedAt", "isLowStock"):
        payload.pop(key, None)

    patch = validate_payload(
        model=Product,
        payload=payload,
        policy=PRODUCT_POLICY,
        partial=existing is not None,
    )
    enforce_rules_product(patch)

    if expected_version is not None:
        if isinstance(expected_version, bool) or not isinstance(expected_version, int):
            raise ValidationError("version must be an integer")

    return patch, expected_version


def list_products(
    *,
    search: str | None = None,
    category: str | None = None,
) -> list[Product]:
    """
    All products ordered by name.

    search matches a case-insensitive name substring or a barcode substring
    (what the checkout search box does); category filters exactly.
    """
    query = db.session.query(Product)

    if search:
        term = search.strip()
        if term:
            query = query.filter(
                or_(
                    func.lower(Product.name).contains(term.lower(), autoescape=True),
                    Product.barcode.contains(term, autoescape=True),
                )
            )
    if category:
        query = query.filter(Product.category == category)

    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_categories() -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.category != "")
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [row[0] for row in rows]


def get_product(product_id: str) -> Product | None:
    return db.session.get(Product, product_id)


def find_by_barcode(barcode: str) -> Product | None:
    """Exact barcode match (scanner input). Barcodes are not unique; first by name wins."""
    return (
        db.session.query(Product)
        .filter(Product.barcode == barcode.strip())
        .order_by(Product.name.asc(), Product.id.asc())
        .first()
    )


def upsert_products(payloads: list[dict] | dict) -> list[Product]:
    """
    Insert or replace products in one transaction.

    - Rows with an unknown or missing id are created (id generated if absent)
      and must carry name, price and barcode.
    - Rows with a known id are updated with the provided fields only.
    - A row carrying `version` is applied only if the stored version still
      matches; otherwise the whole batch fails with ConflictError.

    Raises:
        ValidationError: if any row is invalid (nothing is written)
        ConflictError: on a stale version (nothing is written)
    """
    rows = payloads if isinstance(payloads, list) else [payloads]
    if not rows:
        raise ValidationError("No products provided")

    def _op():
        seen: set[str] = set()
        touched: list[Product] = []

        for raw in rows:
            product_id = raw.get("id") if isinstance(raw, dict) else None
            if product_id is not None:
                product_id = str(product_id).strip()
                if not product_id:
                    product_id = None
            if product_id and product_id in seen:
                raise ValidationError(f"Duplicate product id in batch: {product_id}")

            existing = get_product(product_id) if product_id else None
            patch, expected_version = _clean_product(raw, existing=existing)

            if existing is not None:
                if expected_version is not None and expected_version != existing.version_id:
                    raise ConflictError(
                        f"Product {existing.id} was changed by someone else; reload and retry."
                    )
                apply_product_patch(existing, patch)
                product = existing
            else:
                product = Product(id=product_id or new_product_id())
                patch.setdefault("category", "")
                patch.setdefault("stock", 0)
                apply_product_patch(product, patch)
                db.session.add(product)

            seen.add(product.id)
            touched.append(product)

        db.session.flush()
        db.session.commit()
        return touched

    try:
        saved = _op()
    except StaleDataError:
        db.session.rollback()
        raise ConflictError("A product was changed by someone else; reload and retry.")
    except (ValidationError, ConflictError):
        db.session.rollback()
        raise

    notify_changed(current_app._get_current_object(), "products")
    return saved


def delete_product(product_id: str) -> bool:
    """
    Delete one product. Returns False if it did not exist.

    Sales keep their own name/price snapshot, so history is unaffected.
    """
    p = get_product(product_id)
    if not p:
        return False

    db.session.delete(p)
    db.session.commit()
    notify_changed(current_app._get_current_object(), "products")
    return True


def clear_products() -> int:
    """Delete every product (the inventory screen's "clear all"). Returns the count removed."""
    deleted = db.session.query(Product).delete(synchronize_session=False)
    db.session.commit()
    db.session.expire_all()
    notify_changed(current_app._get_current_object(), "products")
    return deleted
