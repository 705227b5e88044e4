"""
Export Service

CSV and printable HTML renderings of inventory and sales. Formatting only:
callers pick the rows (date filtering happens in sales_service.list_sales).
Money is rounded to 2 places here and nowhere earlier.
"""
from __future__ import annotations

import csv
import io

from flask import render_template

from ..time_utils import to_utc_z, utcnow
from ..totals import format_money
from .stock_service import is_low_stock

# Excel needs the BOM to open UTF-8 (Arabic product names) correctly
UTF8_BOM = "\ufeff"

INVENTORY_HEADERS = ["Product", "Category", "Price", "Stock", "Barcode"]
SALES_HEADERS = ["ID", "Date", "Cashier", "Total", "Currency"]


def _write_csv(headers: list[str], rows) -> str:
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(row)
    return UTF8_BOM + output.getvalue()


def inventory_csv(products) -> str:
    # Leading apostrophe keeps spreadsheets from turning barcodes into numbers
    return _write_csv(INVENTORY_HEADERS, (
        [p.name, p.category, format_money(p.price), p.stock, f"'{p.barcode}"]
        for p in products
    ))


def sales_csv(sales) -> str:
    return _write_csv(SALES_HEADERS, (
        [s.id, to_utc_z(s.date), s.cashier or "-", format_money(s.total), s.currency]
        for s in sales
    ))


def render_receipt(sale, settings) -> str:
    return render_template(
        "receipt.html",
        sale=sale,
        settings=settings,
        money=format_money,
        date=to_utc_z(sale.date),
    )


def render_inventory_report(products, settings) -> str:
    rows = [
        {
            "name": p.name,
            "category": p.category,
            "price": format_money(p.price),
            "stock": p.stock,
            "barcode": p.barcode,
            "low": is_low_stock(p.stock, settings.low_stock_threshold),
        }
        for p in products
    ]
    return render_template(
        "inventory_report.html",
        rows=rows,
        settings=settings,
        generated_at=to_utc_z(utcnow()),
    )


def render_sales_report(sales, summary: dict, settings) -> str:
    return render_template(
        "sales_report.html",
        sales=sales,
        summary=summary,
        settings=settings,
        money=format_money,
        to_utc_z=to_utc_z,
        generated_at=to_utc_z(utcnow()),
    )
