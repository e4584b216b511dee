from __future__ import annotations

from typing import Any, Callable, List, Union

import pytest
import requests

from shophub.cart import CartStore
from shophub.catalog import CatalogStore
from shophub.fetch_client import CachingFetchClient
from shophub.schemas import Product
from shophub.storage import MemoryStore


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, reason: str = "OK", body_error: bool = False):
        self._payload = payload
        self.status_code = status_code
        self.reason = reason
        self._body_error = body_error

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if self._body_error:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


Scripted = Union[FakeResponse, Exception, Callable[[str], Any]]


class FakeSession:
    """Stands in for requests.Session; replies from a script, in order."""

    def __init__(self, *replies: Scripted) -> None:
        self.replies: List[Scripted] = list(replies)
        self.calls: List[str] = []

    def queue(self, *replies: Scripted) -> None:
        self.replies.extend(replies)

    def get(self, url: str, headers=None, timeout=None) -> FakeResponse:
        self.calls.append(url)
        if not self.replies:
            raise AssertionError(f"Unexpected request to {url}")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return _as_response(reply(url))
        return reply


def _as_response(value: Any) -> FakeResponse:
    if isinstance(value, Exception):
        raise value
    return value if isinstance(value, FakeResponse) else FakeResponse(value)


class ManualClock:
    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_product(product_id: int = 1, **overrides: Any) -> Product:
    data = {
        "id": product_id,
        "title": f"Product {product_id}",
        "price": 10.0,
        "discountPercentage": 0.0,
        "stock": 5,
        "category": "beauty",
        "rating": 4.0,
        "brand": "Acme",
        "thumbnail": f"https://cdn.example.com/{product_id}.png",
    }
    data.update(overrides)
    return Product.model_validate(data)


def product_payload(*products: Product) -> dict:
    return {
        "products": [p.model_dump(by_alias=True) for p in products],
        "total": len(products),
        "skip": 0,
        "limit": len(products),
    }


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client(store, session, clock, sleeps):
    return CachingFetchClient(
        store=store,
        base_url="https://api.test",
        session=session,
        max_attempts=3,
        backoff_base=1.0,
        default_ttl=1800,
        cache_prefix="shophub_cache_",
        clock=clock,
        sleep=sleeps.append,
    )


@pytest.fixture
def catalog(client):
    return CatalogStore(client)


@pytest.fixture
def cart(store):
    return CartStore(store=store, storage_key="shophub_react_cart", cap_quantity_at_stock=False)


@pytest.fixture
def transport_error():
    return requests.ConnectionError("Connection refused")
