"""
TerminalSession: everything one logged-in terminal needs, in one object.

It owns the gateway, the current user and settings, the cart and the two
pollers. Nothing is global, so two sessions (two tills in one test process)
never see each other's cart.
"""
from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Optional

from ..signals import notify_changed
from ..totals import Totals
from .cart import Cart
from .errors import (
    CartNotEmptyError,
    CheckoutInProgressError,
    ConfirmationRequiredError,
    EmptyCartError,
    GatewayConflictError,
    GatewayNotFoundError,
    NotAuthenticatedError,
)
from .gateway import Gateway
from .pollers import (
    LowStockMonitor,
    ProductRefresher,
    connect_to_data_changed,
    disconnect_from_data_changed,
)

logger = logging.getLogger(__name__)


class TerminalSession:
    def __init__(
        self,
        gateway: Gateway,
        *,
        low_stock_interval: float = 30.0,
        product_refresh_interval: float = 5.0,
        start_pollers: bool = True,
    ):
        self.gateway = gateway
        self.low_stock_interval = low_stock_interval
        self.product_refresh_interval = product_refresh_interval
        self.start_pollers = start_pollers

        self.user: Optional[dict] = None
        self.settings: Optional[dict] = None
        self.cart = Cart()
        self.products: list[dict] = []

        self.low_stock_monitor: Optional[LowStockMonitor] = None
        self.product_refresher: Optional[ProductRefresher] = None

        self._checkout_lock = threading.Lock()
        # Reused across retries of the same checkout so the server can reject a double post
        self._pending_sale_id: Optional[str] = None

    @classmethod
    def for_app(cls, app, **kwargs) -> "TerminalSession":
        """A session talking to `app` in-process, poll intervals taken from its config."""
        kwargs.setdefault("low_stock_interval", app.config["LOW_STOCK_POLL_SECONDS"])
        kwargs.setdefault("product_refresh_interval", app.config["PRODUCT_REFRESH_SECONDS"])
        return cls(Gateway(app=app), **kwargs)

    # -- auth --------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    def _require_login(self) -> None:
        if not self.is_authenticated:
            raise NotAuthenticatedError("Log in first")

    def login(self, username: str, password: str) -> dict:
        self.user = self.gateway.login(username, password)
        self.settings = self.gateway.get_settings()
        self.cart = Cart()
        self.refresh_products()
        if self.start_pollers:
            self._start_pollers()
        logger.info("Terminal session opened for %s", self.user["username"])
        return self.user

    def logout(self) -> None:
        # Pollers stop first; an in-flight checkout finishes on its own thread
        self._stop_pollers()
        try:
            self.gateway.logout()
        finally:
            if self.user:
                logger.info("Terminal session closed for %s", self.user["username"])
            self.user = None
            self.settings = None
            self.cart = Cart()
            self.products = []
            self._pending_sale_id = None

    def has_permission(self, code: str) -> bool:
        if not self.user:
            return False
        return bool((self.user.get("permissions") or {}).get(code))

    # -- pollers -----------------------------------------------------------

    def _start_pollers(self) -> None:
        self.low_stock_monitor = LowStockMonitor(
            fetch_products=self.gateway.list_products,
            get_threshold=self._current_threshold,
            interval=self.low_stock_interval,
        )
        self.product_refresher = ProductRefresher(
            fetch_products=self.gateway.list_products,
            on_refresh=self._apply_products,
            interval=self.product_refresh_interval,
        )
        for task in (self.low_stock_monitor, self.product_refresher):
            connect_to_data_changed(task)
            task.start()

    def _stop_pollers(self) -> None:
        for task in (self.low_stock_monitor, self.product_refresher):
            if task is None:
                continue
            disconnect_from_data_changed(task)
            task.stop()
        self.low_stock_monitor = None
        self.product_refresher = None

    def _current_threshold(self) -> int:
        # Re-read so a threshold changed on another terminal applies on the next scan
        self.settings = self.gateway.get_settings()
        return int(self.settings["lowStockThreshold"])

    @property
    def notifications(self) -> list[dict]:
        return self.low_stock_monitor.notifications if self.low_stock_monitor else []

    def _apply_products(self, products: list[dict]) -> None:
        self.products = products
        self.cart.refresh_stock(products)

    def refresh_products(self) -> list[dict]:
        self._require_login()
        self._apply_products(self.gateway.list_products())
        return self.products

    # -- cart --------------------------------------------------------------

    def add_to_cart(self, product: dict):
        self._pending_sale_id = None
        return self.cart.add_item(product)

    def scan_barcode(self, barcode: str):
        self._require_login()
        return self.add_to_cart(self.gateway.product_by_barcode(barcode))

    def change_quantity(self, item_id: str, delta: int) -> bool:
        self._pending_sale_id = None
        return self.cart.change_quantity(item_id, delta)

    def remove_from_cart(self, item_id: str) -> None:
        self._pending_sale_id = None
        self.cart.remove_item(item_id)

    def totals(self) -> Totals:
        self._require_login()
        return self.cart.totals(self.settings["taxRate"])

    def checkout(
        self,
        payment_method: str = "Cash",
        *,
        customer_name: Optional[str] = None,
        payment_details: Optional[str] = None,
    ) -> dict:
        """
        Commit the cart as a sale. Single-flight: a second call while one is
        in progress raises CheckoutInProgressError.

        The cart is cleared only after the server confirms. On a stock
        conflict the cart is kept and the error carries the server's details.
        """
        self._require_login()
        if not self._checkout_lock.acquire(blocking=False):
            raise CheckoutInProgressError("A checkout is already in progress")

        try:
            if self.cart.is_empty:
                raise EmptyCartError("Cart is empty")

            if self._pending_sale_id is None:
                self._pending_sale_id = uuid.uuid4().hex
            payload = {
                "id": self._pending_sale_id,
                "items": self.cart.to_payload(),
                "discount": str(self.cart.discount),
                "paymentMethod": payment_method,
                "customerName": customer_name,
                "paymentDetails": payment_details,
            }

            try:
                sale = self.gateway.commit_sale(payload)
            except GatewayConflictError as exc:
                if exc.details:
                    raise
                # Duplicate id: an earlier attempt got through but its response was lost
                sale = self._recover_committed_sale(self._pending_sale_id, exc)

            self.cart.clear()
            self._pending_sale_id = None
            notify_changed(self, "sales", "products")
            return sale
        finally:
            self._checkout_lock.release()

    def _recover_committed_sale(self, sale_id: str, original: Exception) -> dict:
        try:
            return self.gateway.get_sale(sale_id)
        except GatewayNotFoundError:
            raise original

    # -- held invoices -----------------------------------------------------

    def hold(self) -> dict:
        self._require_login()
        if self.cart.is_empty:
            raise EmptyCartError("Cannot hold an empty cart")
        invoice = self.gateway.hold_invoice(self.cart.to_payload())
        self.cart.clear()
        self._pending_sale_id = None
        notify_changed(self, "held_invoices")
        return invoice

    def held_invoices(self) -> list[dict]:
        self._require_login()
        return self.gateway.list_held_invoices()

    def restore_held_invoice(self, invoice_id: str, confirm_override: bool = False) -> list[dict]:
        """
        Replace the cart with a held invoice's frozen items.

        Raises CartNotEmptyError (nothing is sent) when the cart has items and
        the cashier has not confirmed discarding them.
        """
        self._require_login()
        if not self.cart.is_empty and not confirm_override:
            raise CartNotEmptyError("The current cart will be replaced")

        items = self.gateway.restore_held_invoice(invoice_id)
        self.cart.replace(items)
        self._pending_sale_id = None
        notify_changed(self, "held_invoices")
        return items

    def discard_held_invoice(self, invoice_id: str, confirm: bool = False) -> None:
        """Delete a held invoice for good. Nothing is sent until the cashier confirms."""
        self._require_login()
        if not confirm:
            raise ConfirmationRequiredError(f"Discard held invoice {invoice_id}?")
        self.gateway.discard_held_invoice(invoice_id)
        notify_changed(self, "held_invoices")

    # -- settings & inventory ----------------------------------------------

    def update_settings(self, patch: dict) -> dict:
        self._require_login()
        self.settings = self.gateway.update_settings(patch)
        notify_changed(self, "settings")
        return self.settings

    def save_products(self, products: Any) -> list[dict]:
        self._require_login()
        saved = self.gateway.save_products(products)
        notify_changed(self, "products")
        return saved
