# Overview: Low-stock detection for notifications and the inventory view.
"""
Two comparisons exist on purpose:

- Notifications use ``stock <= threshold``: a product sitting exactly at the
  threshold already needs reordering, so the cashier is told.
- The inventory table flag uses ``stock < threshold``: it highlights rows
  that have dropped below the configured level.

A product at exactly the threshold is therefore notified but not flagged in
the inventory table. Both functions read the same threshold from settings.
"""
from __future__ import annotations

from typing import Iterable, Mapping, Any


def is_low_stock(stock: int, threshold: int) -> bool:
    """Inventory-view flag (exclusive)."""
    return stock < threshold


def needs_restock_notice(stock: int, threshold: int) -> bool:
    """Notification poller check (inclusive)."""
    return stock <= threshold


def _field(product: Any, name: str):
    if isinstance(product, Mapping):
        return product[name]
    return getattr(product, name)


def low_stock_notifications(products: Iterable[Any], threshold: int) -> list[dict]:
    """
    Build the full notification set for one scan.

    Accepts ORM products or product dicts. The previous set is not consulted:
    every scan replaces it, so a restocked product simply drops out.
    """
    notifications = []
    for product in products:
        stock = int(_field(product, "stock"))
        if not needs_restock_notice(stock, threshold):
            continue
        product_id = _field(product, "id")
        name = _field(product, "name")
        notifications.append({
            "id": f"low_stock_{product_id}",
            "productId": product_id,
            "name": name,
            "stock": stock,
            "message": f"Low stock: {name} (stock: {stock})",
            "type": "warning",
            "read": False,
        })
    return notifications


def count_low_stock(products: Iterable[Any], threshold: int) -> int:
    """Inventory-view count used by the reports dashboard."""
    return sum(1 for p in products if is_low_stock(int(_field(p, "stock")), threshold))
