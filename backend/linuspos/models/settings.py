from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

CURRENCIES = ("SAR", "USD", "YER")

SETTINGS_ROW_ID = 1


class SystemSettings(db.Model):
    """
    Store-wide settings singleton (always row id 1).

    Loaded once per terminal session and re-read by the server on every
    request that needs it; written on every change through settings_service.
    """
    __tablename__ = "system_settings"
    __table_args__ = (
        db.CheckConstraint("id = 1", name="ck_system_settings_singleton"),
        db.CheckConstraint("low_stock_threshold >= 0", name="ck_system_settings_threshold"),
    )

    id = db.Column(db.Integer, primary_key=True, default=SETTINGS_ROW_ID)

    store_name = db.Column(db.String(120), nullable=False)
    currency = db.Column(db.String(8), nullable=False)
    low_stock_threshold = db.Column(db.Integer, nullable=False)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False)

    updated_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "storeName": self.store_name,
            "currency": self.currency,
            "lowStockThreshold": self.low_stock_threshold,
            "taxRate": float(self.tax_rate),
            "updatedAt": to_utc_z(self.updated_at),
        }
