from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, Mapping, Tuple

from .cart import CartStore
from .config import settings
from .errors import AddressValidationError, EmptyCartError
from .schemas import OrderConfirmation, OrderTotals, ShippingAddress

logger = logging.getLogger(__name__)

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
PHONE_PATTERN = r"^[6-9]\d{9}$"  # Indian mobile number
PIN_CODE_PATTERN = r"^[1-9][0-9]{5}$"

FIELD_MAX_DIGITS = {"phone": 10, "pin_code": 6}

ADDRESS_FIELDS = ("full_name", "email", "phone", "address", "city", "state", "pin_code")


def clean_input(name: str, value: str) -> str:
    """Keep digits only for numeric fields, truncated to their length."""
    limit = FIELD_MAX_DIGITS.get(name)
    if limit is None:
        return value
    return re.sub(r"\D", "", value or "")[:limit]


def validate_field(name: str, value: str) -> str:
    """Return the error message for one field, or an empty string."""

    value = value or ""
    if name == "full_name":
        return "Full name must be at least 2 characters" if len(value.strip()) < 2 else ""
    if name == "email":
        return "" if re.fullmatch(EMAIL_PATTERN, value) else "Please enter a valid email address"
    if name == "phone":
        return "" if re.fullmatch(PHONE_PATTERN, value) else "Please enter a valid 10-digit mobile number"
    if name == "address":
        return "Address must be at least 10 characters" if len(value.strip()) < 10 else ""
    if name == "city":
        return "City is required" if not value.strip() else ""
    if name == "state":
        return "State is required" if not value.strip() else ""
    if name == "pin_code":
        if re.fullmatch(PIN_CODE_PATTERN, value):
            return ""
        return "PIN code must be 6 digits (first digit cannot be 0)"
    return ""


def validate_address(address: ShippingAddress) -> Tuple[bool, Dict[str, str]]:
    """
    Validate every address field.

    Returns:
        Tuple of (passed, errors) where errors maps field name to message
    """
    errors: Dict[str, str] = {}
    for name in ADDRESS_FIELDS:
        message = validate_field(name, getattr(address, name))
        if message:
            errors[name] = message
    return (len(errors) == 0), errors


def parse_address(data: Mapping[str, Any]) -> ShippingAddress:
    """Build an address from raw form data, cleaning numeric fields."""

    address = ShippingAddress.model_validate(
        {key: str(value) for key, value in data.items() if value is not None}
    )
    cleaned = {name: clean_input(name, getattr(address, name)) for name in FIELD_MAX_DIGITS}
    return address.model_copy(update=cleaned)


def generate_order_number(clock: Callable[[], float] = time.time) -> str:
    """``SH`` followed by the last 8 digits of the epoch-ms timestamp."""
    return "SH" + str(int(clock() * 1000))[-8:]


def place_order(
    cart: CartStore,
    address: ShippingAddress,
    delay: float | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.time,
) -> OrderConfirmation:
    """Validate, price and confirm an order, then empty the cart.

    Totals are captured before the cart is cleared so the confirmation keeps
    the amounts that were charged.

    Raises:
        EmptyCartError: the cart has no lines
        AddressValidationError: one or more address fields are invalid
    """
    if not cart.lines:
        raise EmptyCartError("Cannot place an order with an empty cart")

    passed, errors = validate_address(address)
    if not passed:
        raise AddressValidationError(errors)

    lines = cart.lines
    item_count = cart.item_count()
    totals = cart.totals()

    sleep(settings.checkout_delay_seconds if delay is None else delay)
    order_number = generate_order_number(clock)

    cart.clear()
    logger.info("Order %s placed for %d items", order_number, item_count)

    return OrderConfirmation(
        order_number=order_number,
        address=address,
        lines=lines,
        totals=OrderTotals(
            subtotal=totals.subtotal,
            gst=totals.gst,
            shipping=totals.shipping,
            total=totals.total,
        ),
        item_count=item_count,
    )
