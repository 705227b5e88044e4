from .inventory import Product
from .sales import Sale, SaleItem
from .held_invoices import HeldInvoice, HeldInvoiceLine
from .auth import User, UserPermission, SessionToken
from .settings import SystemSettings

__all__ = [
    'Product',
    'Sale', 'SaleItem',
    'HeldInvoice', 'HeldInvoiceLine',
    'User', 'UserPermission', 'SessionToken',
    'SystemSettings',
]
