"""
Terminal-side exceptions.

Gateway errors mirror the server's status codes so callers can react without
parsing messages. Cart and session errors are raised before anything is sent.
"""
from __future__ import annotations


class GatewayError(Exception):
    """Transport failure or unexpected server error. Safe to retry."""
    def __init__(self, message: str, status_code: int | None = None, details: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


class GatewayValidationError(GatewayError):
    """400: the request was rejected before anything was written."""


class GatewayAuthError(GatewayError):
    """401: missing, invalid or expired session (or bad credentials on login)."""


class GatewayPermissionError(GatewayError):
    """403: the user lacks the permission for this operation."""


class AccountDisabledError(GatewayPermissionError):
    """403 on login: the password was right but the account is deactivated."""


class GatewayNotFoundError(GatewayError):
    pass


class GatewayConflictError(GatewayError):
    """409: duplicate, stale version, protected account or stock conflict."""


class TerminalError(Exception):
    pass


class OutOfStockError(TerminalError):
    pass


class EmptyCartError(TerminalError):
    pass


class ConfirmationRequiredError(TerminalError):
    """A destructive action was requested without the cashier confirming it."""


class CartNotEmptyError(TerminalError):
    """Restoring a held invoice would discard the current cart."""


class CheckoutInProgressError(TerminalError):
    pass


class NotAuthenticatedError(TerminalError):
    pass
