"""
The checkout cart.

Lives only on the terminal. Nothing here touches persisted stock: the cart
only refuses obviously impossible quantities using the latest product list it
has seen, and the server has the final word when the sale is committed.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional

from ..totals import Totals, compute_totals, to_decimal, ZERO
from .errors import OutOfStockError


@dataclass
class CartItem:
    id: str
    name: str
    price: Decimal
    quantity: int = 1
    category: str = ""
    stock: int = 0
    barcode: str = ""
    image: Optional[str] = None

    @classmethod
    def from_product(cls, product: Mapping[str, Any], quantity: int = 1) -> "CartItem":
        return cls(
            id=str(product["id"]),
            name=product["name"],
            price=to_decimal(product["price"], field="price"),
            quantity=int(product.get("quantity", quantity)),
            category=product.get("category") or "",
            stock=int(product.get("stock") or 0),
            barcode=product.get("barcode") or "",
            image=product.get("image"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price": float(self.price),
            "quantity": self.quantity,
            "category": self.category,
            "stock": self.stock,
            "barcode": self.barcode,
            "image": self.image,
        }


@dataclass
class Cart:
    items: list[CartItem] = field(default_factory=list)
    discount: Decimal = ZERO
    # Latest stock seen per product id (from the product refresh poller)
    known_stock: dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, item_id: str) -> Optional[CartItem]:
        for item in self.items:
            if item.id == item_id:
                return item
        return None

    def add_item(self, product: Mapping[str, Any]) -> CartItem:
        """
        Add one unit of `product`.

        Raises OutOfStockError when the product shows no stock. A product
        already in the cart gets its quantity bumped instead.
        """
        stock = int(product.get("stock") or 0)
        if stock <= 0:
            raise OutOfStockError(f"{product.get('name', 'Product')} is out of stock")

        self.known_stock[str(product["id"])] = stock
        existing = self.find(str(product["id"]))
        if existing:
            existing.quantity += 1
            return existing

        item = CartItem.from_product(product, quantity=1)
        item.quantity = 1
        self.items.append(item)
        return item

    def change_quantity(self, item_id: str, delta: int) -> bool:
        """
        Adjust a line by `delta`, never below 1.

        Returns False (quantity unchanged) when the line is missing or the new
        quantity exceeds the latest known stock.
        """
        item = self.find(item_id)
        if item is None:
            return False

        new_qty = max(1, item.quantity + delta)
        stock = self.known_stock.get(item_id)
        if stock is not None and new_qty > stock:
            return False

        item.quantity = new_qty
        return True

    def remove_item(self, item_id: str) -> None:
        self.items = [item for item in self.items if item.id != item_id]

    def clear(self) -> None:
        self.items = []
        self.discount = ZERO

    def replace(self, items: Iterable[Mapping[str, Any]]) -> None:
        """Load a frozen item list (restored held invoice) as-is."""
        self.items = [CartItem.from_product(raw) for raw in items]
        self.discount = ZERO
        for item in self.items:
            self.known_stock.setdefault(item.id, item.stock)

    def refresh_stock(self, products: Iterable[Mapping[str, Any]]) -> None:
        for product in products:
            pid = str(product["id"])
            stock = int(product.get("stock") or 0)
            self.known_stock[pid] = stock
            item = self.find(pid)
            if item is not None:
                item.stock = stock

    def set_discount(self, amount: Any) -> None:
        value = to_decimal(amount, field="discount")
        if value < 0:
            raise ValueError("discount must be >= 0")
        self.discount = value

    def totals(self, tax_rate: Any) -> Totals:
        return compute_totals(
            ((item.price, item.quantity) for item in self.items),
            tax_rate,
            self.discount,
        )

    def to_payload(self) -> list[dict]:
        return [item.to_dict() for item in self.items]
