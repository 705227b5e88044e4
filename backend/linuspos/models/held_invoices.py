from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class HeldInvoice(db.Model):
    """
    A suspended cart.

    Lives only until it is restored or discarded. Holding never touches stock,
    and the lines are a frozen copy of the cart items as they were when the
    cashier parked them (restoring does not re-validate stock).
    """
    __tablename__ = "held_invoices"

    id = db.Column(db.String(64), primary_key=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    lines = db.relationship(
        "HeldInvoiceLine",
        backref="invoice",
        order_by="HeldInvoiceLine.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": to_utc_z(self.created_at),
            "items": [line.to_item() for line in self.lines],
        }


class HeldInvoiceLine(db.Model):
    __tablename__ = "held_invoice_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.String(64), db.ForeignKey("held_invoices.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="")
    stock = db.Column(db.Integer, nullable=False, default=0)
    barcode = db.Column(db.String(64), nullable=False, default="")
    image = db.Column(db.Text, nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    def to_item(self) -> dict:
        """Cart-item shape (product fields + quantity)."""
        return {
            "id": self.product_id,
            "name": self.name,
            "price": float(self.price),
            "category": self.category,
            "stock": self.stock,
            "barcode": self.barcode,
            "image": self.image,
            "quantity": self.quantity,
        }
