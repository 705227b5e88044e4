"""Terminal-side client: REST gateway, cart, session context and pollers."""

from .cart import Cart, CartItem
from .gateway import Gateway
from .pollers import LowStockMonitor, ProductRefresher, RepeatingTask
from .session import TerminalSession

__all__ = [
    "Cart",
    "CartItem",
    "Gateway",
    "LowStockMonitor",
    "ProductRefresher",
    "RepeatingTask",
    "TerminalSession",
]
