from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

PAYMENT_METHODS = ("Cash", "Electronic", "Credit")

STATUS_COMPLETED = "Completed"
STATUS_PENDING = "Pending"


class Sale(db.Model):
    """
    Sale header.

    APPEND-ONLY: rows are written once by sales_service.commit_sale together
    with their items and the stock decrements, inside a single transaction.
    Nothing updates or deletes them afterwards.

    Totals are stored as computed at commit time (tax_rate is snapshotted so a
    later settings change never re-derives historical tax).
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_date", "date"),
        db.Index("ix_sales_status_date", "status", "date"),
    )

    # Client-supplied ids (e.g. a terminal's checkout id) make the commit idempotent
    id = db.Column(db.String(64), primary_key=True)

    date = db.Column(db.DateTime(timezone=True), nullable=False)

    # Full precision, never rounded before storage
    subtotal = db.Column(db.Numeric(18, 6), nullable=False)
    tax = db.Column(db.Numeric(18, 6), nullable=False)
    discount = db.Column(db.Numeric(18, 6), nullable=False, default=0)
    total = db.Column(db.Numeric(18, 6), nullable=False)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False)

    currency = db.Column(db.String(8), nullable=False)
    cashier = db.Column(db.String(120), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(16), nullable=False, default="Cash")
    payment_details = db.Column(db.String(255), nullable=True)

    # Derived: Credit -> Pending, anything else -> Completed
    status = db.Column(db.String(16), nullable=False, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    items = db.relationship(
        "SaleItem",
        backref="sale",
        order_by="SaleItem.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_utc_z(self.date),
            "items": [item.to_dict() for item in self.items],
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "discount": float(self.discount),
            "total": float(self.total),
            "taxRate": float(self.tax_rate),
            "currency": self.currency,
            "cashier": self.cashier,
            "customerName": self.customer_name,
            "paymentMethod": self.payment_method,
            "paymentDetails": self.payment_details,
            "status": self.status,
        }


class SaleItem(db.Model):
    """One line of a sale. A snapshot: no foreign key to products."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "position", name="uq_sale_items_sale_position"),
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(64), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "price": float(self.price),
        }
