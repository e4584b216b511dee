from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Product(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: int | str
    title: str
    price: float = Field(..., gt=0)
    discount_percentage: float = Field(0.0, ge=0.0, le=100.0, alias="discountPercentage")
    stock: int = Field(0, ge=0)
    category: str = ""
    rating: float = Field(0.0, ge=0.0, le=5.0)
    brand: Optional[str] = None
    thumbnail: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None


class CartLine(BaseModel):
    """Product snapshot taken at add-time plus the ordered quantity.

    No quantity or stock constraints: lines restored from storage load as they
    were written, including stale quantities above the captured stock.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: int | str
    title: str
    price: float
    discount_percentage: float = Field(0.0, alias="discountPercentage")
    stock: int = 0
    category: str = ""
    rating: float = 0.0
    brand: Optional[str] = None
    thumbnail: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    description: Optional[str] = None
    quantity: int

    @classmethod
    def from_product(cls, product: Product, quantity: int) -> "CartLine":
        snapshot = product.model_dump(include=set(cls.model_fields) - {"quantity"})
        return cls(**snapshot, quantity=quantity)

    def with_quantity(self, quantity: int) -> "CartLine":
        return self.model_copy(update={"quantity": quantity})


class CacheEntry(BaseModel):
    data: Any = None
    timestamp: int  # epoch milliseconds

    def is_valid(self, now_ms: int, ttl_ms: int) -> bool:
        return now_ms - self.timestamp < ttl_ms


class ShippingAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field("", alias="fullName")
    email: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    pin_code: str = Field("", alias="pinCode")


class OrderTotals(BaseModel):
    subtotal: Decimal
    gst: Decimal
    shipping: Decimal
    total: Decimal


class OrderConfirmation(BaseModel):
    order_number: str
    address: ShippingAddress
    lines: List[CartLine]
    totals: OrderTotals
    item_count: int
