"""Pricing functions for the storefront.

Prices arrive from the catalog in USD and are charged in INR. Every figure is
a ``Decimal``; nothing is rounded until :func:`round_money` is applied for
display, so totals never drift from the sum of their parts.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Iterable, NamedTuple, Protocol, Union

USD_TO_INR = Decimal("83.12")
GST_RATE = Decimal("0.18")
FREE_SHIPPING_THRESHOLD = Decimal("999")
SHIPPING_FEE = Decimal("99")

Number = Union[Decimal, int, float, str]


class Priced(Protocol):
    price: float
    discount_percentage: float


class PricedLine(Priced, Protocol):
    quantity: int


class CartTotals(NamedTuple):
    """Result of pricing a whole cart."""

    subtotal: Decimal
    gst: Decimal
    shipping: Decimal
    total: Decimal


def to_decimal(value: Number | None) -> Decimal:
    """Convert via ``str`` so float inputs keep their shortest repr."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round to specified decimal places using banker's rounding."""
    quantize_str = "0." + "0" * places if places else "1"
    return amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_EVEN)


def unit_price(item: Priced, rate: Number = USD_TO_INR) -> Decimal:
    base = to_decimal(item.price) * to_decimal(rate)
    discount = to_decimal(item.discount_percentage)
    if discount <= 0:
        return base
    return base * (1 - discount / 100)


def line_total(line: PricedLine, rate: Number = USD_TO_INR) -> Decimal:
    return unit_price(line, rate) * line.quantity


def subtotal(lines: Iterable[PricedLine], rate: Number = USD_TO_INR) -> Decimal:
    return sum((line_total(line, rate) for line in lines), Decimal("0"))


def tax(amount: Number, rate: Number = GST_RATE) -> Decimal:
    return to_decimal(amount) * to_decimal(rate)


def shipping(
    amount: Number,
    free_threshold: Number = FREE_SHIPPING_THRESHOLD,
    flat_fee: Number = SHIPPING_FEE,
) -> Decimal:
    if to_decimal(amount) >= to_decimal(free_threshold):
        return Decimal("0")
    return to_decimal(flat_fee)


def compute_totals(
    lines: Iterable[PricedLine],
    *,
    rate: Number = USD_TO_INR,
    gst_rate: Number = GST_RATE,
    free_threshold: Number = FREE_SHIPPING_THRESHOLD,
    flat_fee: Number = SHIPPING_FEE,
) -> CartTotals:
    """Price a cart in one pass.

    Args:
        lines: Cart lines (anything exposing price, discount_percentage, quantity)
        rate: USD to INR exchange rate
        gst_rate: Tax rate applied to the subtotal
        free_threshold: Subtotal at or above which shipping is free
        flat_fee: Shipping charged below the threshold

    Returns:
        CartTotals with unrounded figures
    """
    sub = subtotal(lines, rate)
    gst = tax(sub, gst_rate)
    ship = shipping(sub, free_threshold, flat_fee)
    return CartTotals(subtotal=sub, gst=gst, shipping=ship, total=sub + gst + ship)


def grand_total(lines: Iterable[PricedLine], **kwargs) -> Decimal:
    return compute_totals(lines, **kwargs).total
