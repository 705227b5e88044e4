from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    STOCK: `stock` is the on-hand counter and the only contended value in the
    system. It is decremented by sale commits with a conditional UPDATE
    (see sales_service) and the CHECK constraint below keeps it >= 0 even if a
    caller bypasses the service layer.

    VERSIONING: `version_id` is SQLAlchemy's optimistic lock column. Inventory
    edits that carry an expected version fail with StaleDataError when someone
    else changed the row first; stock decrements bump it explicitly.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_barcode", "barcode"),
        db.Index("ix_products_category", "category"),
    )

    id = db.Column(db.String(64), primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    category = db.Column(db.String(120), nullable=False, default="")
    stock = db.Column(db.Integer, nullable=False, default=0)

    # Not unique: two products may share a barcode; lookups return the first by name
    barcode = db.Column(db.String(64), nullable=False)
    image = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} stock={self.stock}>"

    def to_dict(self, low_stock_threshold: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "price": float(self.price) if self.price is not None else None,
            "category": self.category,
            "stock": self.stock,
            "barcode": self.barcode,
            "image": self.image,
            "version": self.version_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if low_stock_threshold is not None:
            from ..services.stock_service import is_low_stock
            data["isLowStock"] = is_low_stock(self.stock, low_stock_threshold)
        return data
