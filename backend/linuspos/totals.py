"""
Money arithmetic shared by the server and the terminal.

Amounts are Decimal end to end. Sums and tax are accumulated at full
precision; rounding to cents happens only when a value is presented
(receipts, CSV, UI), never while totals are being built.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any, *, field: str = "amount") -> Decimal:
    """Coerce JSON numbers/strings to Decimal without going through float rounding."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{field} must be a number")
    try:
        # str() keeps 0.1 as "0.1" instead of the binary float expansion
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field} must be a number")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal | int | float | str) -> str:
    """Presentation only: '28.75'."""
    return f"{round_money(to_decimal(value)):.2f}"


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal

    def rounded(self) -> "Totals":
        return Totals(
            subtotal=round_money(self.subtotal),
            tax=round_money(self.tax),
            discount=round_money(self.discount),
            total=round_money(self.total),
        )

    def to_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "discount": float(self.discount),
            "total": float(self.total),
            "display": {
                "subtotal": format_money(self.subtotal),
                "tax": format_money(self.tax),
                "discount": format_money(self.discount),
                "total": format_money(self.total),
            },
        }


def compute_totals(
    lines: Iterable[tuple[Any, int]],
    tax_rate: Any,
    discount: Any = ZERO,
) -> Totals:
    """
    subtotal = sum(price * quantity); tax = subtotal * tax_rate;
    total = subtotal + tax - discount.

    `lines` is any iterable of (price, quantity) pairs. Pure function.
    """
    rate = to_decimal(tax_rate, field="tax_rate")
    disc = to_decimal(discount, field="discount")
    subtotal = ZERO
    for price, quantity in lines:
        subtotal += to_decimal(price, field="price") * int(quantity)
    tax = subtotal * rate
    return Totals(subtotal=subtotal, tax=tax, discount=disc, total=subtotal + tax - disc)
