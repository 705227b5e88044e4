from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import SystemSettings
from ..models.settings import CURRENCIES, SETTINGS_ROW_ID
from ..signals import notify_changed
from ..validation import ValidationError
from ..totals import to_decimal

SETTINGS_FIELDS = {
    "storeName": "store_name",
    "currency": "currency",
    "lowStockThreshold": "low_stock_threshold",
    "taxRate": "tax_rate",
}


def _default_settings() -> SystemSettings:
    cfg = current_app.config
    return SystemSettings(
        id=SETTINGS_ROW_ID,
        store_name=cfg.get("DEFAULT_STORE_NAME", "Linus POS"),
        currency=cfg.get("DEFAULT_CURRENCY", "SAR"),
        low_stock_threshold=int(cfg.get("DEFAULT_LOW_STOCK_THRESHOLD", 5)),
        tax_rate=to_decimal(cfg.get("DEFAULT_TAX_RATE", "0.15"), field="tax_rate"),
    )


def get_settings(*, create: bool = True) -> SystemSettings:
    """
    Load the settings singleton, creating it from config defaults on first use.
    """
    settings = db.session.get(SystemSettings, SETTINGS_ROW_ID)
    if settings is None and create:
        settings = _default_settings()
        db.session.add(settings)
        db.session.commit()
    return settings


def _clean(patch: dict) -> dict:
    unknown = [k for k in patch if k not in SETTINGS_FIELDS]
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    cleaned: dict = {}

    if "storeName" in patch:
        name = str(patch["storeName"] or "").strip()
        if not name:
            raise ValidationError("storeName cannot be blank")
        if len(name) > 120:
            raise ValidationError("storeName exceeds max length 120")
        cleaned["store_name"] = name

    if "currency" in patch:
        currency = str(patch["currency"] or "").strip().upper()
        if currency not in CURRENCIES:
            raise ValidationError(f"currency must be one of: {', '.join(CURRENCIES)}")
        cleaned["currency"] = currency

    if "lowStockThreshold" in patch:
        raw = patch["lowStockThreshold"]
        if isinstance(raw, bool):
            raise ValidationError("lowStockThreshold must be an integer")
        try:
            threshold = int(raw)
        except (TypeError, ValueError):
            raise ValidationError("lowStockThreshold must be an integer")
        if isinstance(raw, float) and not raw.is_integer():
            raise ValidationError("lowStockThreshold must be an integer")
        if threshold < 0:
            raise ValidationError("lowStockThreshold must be >= 0")
        cleaned["low_stock_threshold"] = threshold

    if "taxRate" in patch:
        try:
            rate = to_decimal(patch["taxRate"], field="taxRate")
        except ValueError as exc:
            raise ValidationError(str(exc))
        if not rate.is_finite() or rate < 0 or rate > 1:
            raise ValidationError("taxRate must be a fraction between 0 and 1")
        cleaned["tax_rate"] = rate.quantize(Decimal("0.0001"))

    return cleaned


def update_settings(patch: dict, *, user_id: int | None = None) -> SystemSettings:
    """
    Validate and persist a partial settings update.

    Every successful change is committed immediately and announced with the
    data_changed signal (the low-stock monitor rescans on it).
    """
    if not isinstance(patch, dict):
        raise ValidationError("Invalid JSON payload")

    cleaned = _clean(patch)
    settings = get_settings()

    for attr, value in cleaned.items():
        setattr(settings, attr, value)
    settings.updated_by_user_id = user_id

    db.session.commit()
    notify_changed(current_app._get_current_object(), "settings")
    return settings
