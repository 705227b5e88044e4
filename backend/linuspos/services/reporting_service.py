# Overview: Service-layer operations for reporting; period sales summary for the reports dashboard.

from __future__ import annotations

from collections import OrderedDict
from datetime import date

from ..extensions import db
from ..models import Product
from ..totals import ZERO, round_money
from .sales_service import list_sales
from .settings_service import get_settings
from .stock_service import count_low_stock


def top_product(sales) -> str | None:
    """Product name with the most units sold; ties go to the alphabetically first name."""
    counts: dict[str, int] = {}
    for sale in sales:
        for item in sale.items:
            counts[item.product_name] = counts.get(item.product_name, 0) + item.quantity
    if not counts:
        return None
    return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]


def sales_by_day(sales) -> list[dict]:
    days: "OrderedDict[str, dict]" = OrderedDict()
    for sale in sorted(sales, key=lambda s: s.date):
        key = sale.date.date().isoformat()
        bucket = days.setdefault(key, {"date": key, "total": ZERO, "count": 0})
        bucket["total"] += sale.total
        bucket["count"] += 1
    return [
        {"date": b["date"], "total": float(round_money(b["total"])), "count": b["count"]}
        for b in days.values()
    ]


def sales_summary(start: date | None = None, end: date | None = None) -> dict:
    """
    Revenue, sale count, average ticket, top product and low-stock count for
    an inclusive date range. Both bounds are optional.
    """
    sales = list_sales(start, end)
    settings = get_settings()

    revenue = sum((s.total for s in sales), ZERO)
    count = len(sales)
    average = revenue / count if count else ZERO

    products = db.session.query(Product.id, Product.stock).all()
    low_stock = count_low_stock(
        ({"id": pid, "stock": stock} for pid, stock in products),
        settings.low_stock_threshold,
    )

    return {
        "start": start.isoformat() if start else None,
        "end": end.isoformat() if end else None,
        "currency": settings.currency,
        "revenue": float(round_money(revenue)),
        "salesCount": count,
        "averageTicket": float(round_money(average)),
        "topProduct": top_product(sales),
        "lowStockCount": low_stock,
        "salesByDay": sales_by_day(sales),
    }
