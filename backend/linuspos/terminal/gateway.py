"""
REST client for the Linus POS API.

One Gateway per terminal. It keeps the bearer token, maps error responses to
the exceptions in terminal.errors and otherwise returns decoded JSON.

The same client serves a remote server (base_url) or an app running in the
same process (app=...), which goes through httpx's WSGI transport with no
network in between.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from .errors import (
    AccountDisabledError,
    GatewayAuthError,
    GatewayConflictError,
    GatewayError,
    GatewayNotFoundError,
    GatewayPermissionError,
    GatewayValidationError,
)

logger = logging.getLogger(__name__)

EMBEDDED_BASE_URL = "http://linuspos.local"

def _segment(value: Any) -> str:
    """Quote one path segment so ids like "12?3" or "50%" reach the right route."""
    return quote(str(value), safe="")


_STATUS_ERRORS = {
    400: GatewayValidationError,
    401: GatewayAuthError,
    403: GatewayPermissionError,
    404: GatewayNotFoundError,
    409: GatewayConflictError,
}


class Gateway:
    def __init__(
        self,
        base_url: str = "http://127.0.0.1:5000",
        *,
        app=None,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if app is not None:
            transport = httpx.WSGITransport(app=app)
            base_url = EMBEDDED_BASE_URL
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)
        self.token: Optional[str] = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        self.client.close()

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self.client.request(method, path, headers=self._headers(), **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise GatewayError(f"Server unreachable: {exc}") from exc

        if response.status_code >= 400:
            self._raise_for_status(response)
        return response

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = body.get("error") or f"HTTP {response.status_code}"
        details = body.get("details") or {}
        status = response.status_code

        if status == 403 and body.get("disabled"):
            raise AccountDisabledError(message, status, details)
        error_cls = _STATUS_ERRORS.get(status, GatewayError)
        raise error_cls(message, status, details)

    def _json(self, method: str, path: str, **kwargs) -> Any:
        return self._request(method, path, **kwargs).json()

    # -- auth --------------------------------------------------------------

    def login(self, username: str, password: str) -> dict:
        """Returns the user dict and keeps the token for later calls."""
        data = self._json("POST", "/api/auth/login", json={"username": username, "password": password})
        self.token = data["token"]
        return data["user"]

    def logout(self) -> None:
        if not self.token:
            return
        try:
            self._request("POST", "/api/auth/logout")
        finally:
            self.token = None

    def me(self) -> dict:
        return self._json("GET", "/api/auth/me")["user"]

    def health(self) -> dict:
        return self._json("GET", "/api/health")

    # -- products ----------------------------------------------------------

    def list_products(self, search: str | None = None, category: str | None = None) -> list[dict]:
        params = {}
        if search:
            params["q"] = search
        if category:
            params["category"] = category
        return self._json("GET", "/api/products", params=params)["items"]

    def list_categories(self) -> list[str]:
        return self._json("GET", "/api/products/categories")["items"]

    def product_by_barcode(self, barcode: str) -> dict:
        return self._json("GET", f"/api/products/barcode/{_segment(barcode)}")

    def save_products(self, products: list[dict] | dict) -> list[dict]:
        return self._json("POST", "/api/products", json=products)["items"]

    def delete_product(self, product_id: str) -> None:
        self._request("DELETE", f"/api/products/{_segment(product_id)}")

    def clear_products(self) -> int:
        return self._json("DELETE", "/api/products")["deleted"]

    # -- sales -------------------------------------------------------------

    def cart_totals(self, items: list[dict], discount: Any = 0) -> dict:
        return self._json("POST", "/api/cart/totals", json={"items": items, "discount": discount})

    def commit_sale(self, payload: dict) -> dict:
        return self._json("POST", "/api/sales", json=payload)

    def list_sales(self, start: str | None = None, end: str | None = None) -> list[dict]:
        params = {k: v for k, v in (("start", start), ("end", end)) if v}
        return self._json("GET", "/api/sales", params=params)["items"]

    def get_sale(self, sale_id: str) -> dict:
        return self._json("GET", f"/api/sales/{_segment(sale_id)}")

    def receipt_html(self, sale_id: str) -> str:
        return self._request("GET", f"/api/sales/{_segment(sale_id)}/receipt").text

    # -- held invoices -----------------------------------------------------

    def list_held_invoices(self) -> list[dict]:
        return self._json("GET", "/api/held-invoices")["items"]

    def hold_invoice(self, items: list[dict]) -> dict:
        return self._json("POST", "/api/held-invoices", json={"items": items})

    def restore_held_invoice(self, invoice_id: str) -> list[dict]:
        return self._json("POST", f"/api/held-invoices/{_segment(invoice_id)}/restore")["items"]

    def discard_held_invoice(self, invoice_id: str) -> None:
        self._request("DELETE", f"/api/held-invoices/{_segment(invoice_id)}")

    # -- users & settings --------------------------------------------------

    def list_users(self) -> list[dict]:
        return self._json("GET", "/api/users")["items"]

    def create_user(self, **fields) -> dict:
        return self._json("POST", "/api/users", json=fields)

    def toggle_user(self, username: str) -> dict:
        return self._json("PUT", f"/api/users/{_segment(username)}/toggle")

    def get_settings(self) -> dict:
        return self._json("GET", "/api/settings")

    def update_settings(self, patch: dict) -> dict:
        return self._json("PUT", "/api/settings", json=patch)

    # -- notifications & reports -------------------------------------------

    def low_stock_notifications(self) -> list[dict]:
        return self._json("GET", "/api/notifications/low-stock")["items"]

    def report_summary(self, start: str | None = None, end: str | None = None) -> dict:
        params = {k: v for k, v in (("start", start), ("end", end)) if v}
        return self._json("GET", "/api/reports/summary", params=params)
