"""Shopping cart: a pure transition function plus a persisting store.

``transition`` never touches storage; ``CartStore`` validates commands,
applies them through ``transition`` and writes the result after every
successful mutation.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from pydantic import ValidationError

from . import pricing
from .config import settings
from .errors import StorageError
from .schemas import CartLine, Product
from .storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

ProductId = Union[int, str]


@dataclass(frozen=True)
class CartState:
    lines: Tuple[CartLine, ...] = ()


@dataclass(frozen=True)
class Add:
    line: CartLine


@dataclass(frozen=True)
class Remove:
    product_id: ProductId


@dataclass(frozen=True)
class SetQuantity:
    product_id: ProductId
    quantity: int


@dataclass(frozen=True)
class Clear:
    pass


@dataclass(frozen=True)
class Load:
    lines: Tuple[CartLine, ...] = field(default_factory=tuple)


CartAction = Union[Add, Remove, SetQuantity, Clear, Load]


def transition(state: CartState, action: CartAction) -> CartState:
    """Return the state produced by applying ``action`` to ``state``."""

    if isinstance(action, Add):
        incoming = action.line
        if any(line.id == incoming.id for line in state.lines):
            return CartState(
                tuple(
                    line.with_quantity(line.quantity + incoming.quantity)
                    if line.id == incoming.id
                    else line
                    for line in state.lines
                )
            )
        return CartState(state.lines + (incoming,))

    if isinstance(action, Remove):
        return CartState(tuple(line for line in state.lines if line.id != action.product_id))

    if isinstance(action, SetQuantity):
        if action.quantity <= 0:
            return transition(state, Remove(action.product_id))
        return CartState(
            tuple(
                line.with_quantity(action.quantity) if line.id == action.product_id else line
                for line in state.lines
            )
        )

    if isinstance(action, Clear):
        return CartState()

    if isinstance(action, Load):
        return CartState(tuple(action.lines))

    return state


class AddResult(NamedTuple):
    """Outcome of :meth:`CartStore.add`; declines are values, not exceptions."""

    accepted: bool
    reason: str = ""
    available: int = 0


def default_pricing_options() -> Dict[str, Any]:
    return {
        "rate": settings.usd_to_inr,
        "gst_rate": settings.gst_rate,
        "free_threshold": settings.free_shipping_threshold,
        "flat_fee": settings.shipping_fee,
    }


class CartStore:
    """Owns the cart and is its only writer."""

    def __init__(
        self,
        store: KeyValueStore | None = None,
        storage_key: str | None = None,
        cap_quantity_at_stock: bool | None = None,
        pricing_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.storage_key = storage_key or settings.cart_key
        self.cap_quantity_at_stock = (
            settings.cap_quantity_at_stock if cap_quantity_at_stock is None else cap_quantity_at_stock
        )
        self.pricing_options = pricing_options or default_pricing_options()
        self.state = CartState()
        self._restore_persisted()

    # Commands

    def add(self, product: Product, quantity: int = 1) -> AddResult:
        if quantity <= 0:
            return AddResult(False, "Quantity must be positive", self._available(product))

        available = self._available(product)
        if quantity > available:
            logger.warning(
                "Cannot add %d of %s. Only %d available.", quantity, product.id, available
            )
            return AddResult(False, f"Only {available} available", available)

        self._dispatch(Add(CartLine.from_product(product, quantity)))
        return AddResult(True, "", available - quantity)

    def remove(self, product_id: ProductId) -> None:
        self._dispatch(Remove(product_id))

    def set_quantity(self, product_id: ProductId, quantity: int) -> None:
        if self.cap_quantity_at_stock and quantity > 0:
            line = self.line_for(product_id)
            if line is not None:
                quantity = min(quantity, line.stock)
        self._dispatch(SetQuantity(product_id, quantity))

    def clear(self) -> None:
        self._dispatch(Clear())

    def restore(self, lines: Iterable[CartLine]) -> None:
        """Replace the cart verbatim; nothing is validated or persisted."""
        self.state = transition(self.state, Load(tuple(lines)))

    # Queries

    @property
    def lines(self) -> List[CartLine]:
        return list(self.state.lines)

    def line_for(self, product_id: ProductId) -> Optional[CartLine]:
        return next((line for line in self.state.lines if line.id == product_id), None)

    def item_count(self) -> int:
        return sum(line.quantity for line in self.state.lines)

    def contains(self, product_id: ProductId) -> bool:
        return self.line_for(product_id) is not None

    def quantity_of(self, product_id: ProductId) -> int:
        line = self.line_for(product_id)
        return line.quantity if line else 0

    def totals(self) -> pricing.CartTotals:
        return pricing.compute_totals(self.state.lines, **self.pricing_options)

    def subtotal(self) -> Decimal:
        return self.totals().subtotal

    def tax(self) -> Decimal:
        return self.totals().gst

    def shipping(self) -> Decimal:
        return self.totals().shipping

    def grand_total(self) -> Decimal:
        return self.totals().total

    # Effects

    def _available(self, product: Product) -> int:
        return max(product.stock - self.quantity_of(product.id), 0)

    def _dispatch(self, action: CartAction) -> None:
        self.state = transition(self.state, action)
        self._persist()

    def _persist(self) -> None:
        payload = json.dumps([line.model_dump(by_alias=True) for line in self.state.lines])
        try:
            self.store.set_item(self.storage_key, payload)
        except StorageError as exc:
            logger.error("Failed to save cart: %s", exc)

    def _restore_persisted(self) -> None:
        try:
            raw = self.store.get_item(self.storage_key)
            if raw is None:
                return
            items = json.loads(raw)
            if not isinstance(items, list):
                raise ValueError(f"expected a list, got {type(items).__name__}")
            lines = [CartLine.model_validate(item) for item in items]
        except (StorageError, ValueError, ValidationError) as exc:
            logger.warning("Failed to load cart from storage: %s", exc)
            return
        self.restore(lines)
