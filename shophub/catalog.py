from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from pydantic import ValidationError

from .errors import ShopHubError
from .fetch_client import CachingFetchClient
from .schemas import Product

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"

FALLBACK_CATEGORIES = [
    "beauty", "fragrances", "furniture", "groceries", "home-decoration",
    "kitchen-accessories", "laptops", "mens-shirts", "mens-shoes",
    "mens-watches", "mobile-accessories", "motorcycle", "skin-care",
    "smartphones", "sports-accessories", "sunglasses", "tablets",
    "tops", "vehicle", "womens-bags", "womens-dresses",
    "womens-jewellery", "womens-shoes", "womens-watches",
]

PRODUCT_FIELDS = "id,title,price,thumbnail,category,rating,stock,discountPercentage,brand"


@dataclass(frozen=True)
class Resource:
    """A named remote resource: cache key template, URL path template, TTL."""

    name: str
    key_template: str
    path_template: str
    ttl_seconds: float
    limit: Optional[int] = None

    def key(self, **params: Any) -> str:
        return self.key_template.format(**params)

    def path(self, **params: Any) -> str:
        quoted = {k: quote(str(v), safe="") for k, v in params.items()}
        return self.path_template.format(limit=self.limit, **quoted)


DEFAULT_RESOURCES: Dict[str, Resource] = {
    "products": Resource(
        "products", "products", "/products?limit={limit}&select=" + PRODUCT_FIELDS, 30 * 60, 50
    ),
    "product": Resource("product", "product_{id}", "/products/{id}", 30 * 60),
    "categories": Resource("categories", "categories", "/products/category-list", 24 * 60 * 60),
    "category": Resource(
        "category", "category_{category}", "/products/category/{category}?limit={limit}", 30 * 60, 30
    ),
    "search": Resource(
        "search", "search_{query}", "/products/search?q={query}&limit={limit}", 15 * 60, 30
    ),
}


def build_resources(overrides: Optional[Dict[str, Dict[str, Any]]] = None) -> Dict[str, Resource]:
    """Apply ``ttl_seconds``/``limit`` overrides (see ``load_catalog_config``)."""

    resources = dict(DEFAULT_RESOURCES)
    for name, override in (overrides or {}).items():
        if name not in resources:
            raise ValueError(f"Unknown catalog resource: {name}")
        changes = {k: override[k] for k in ("ttl_seconds", "limit") if override.get(k) is not None}
        resources[name] = replace(resources[name], **changes)
    return resources


SORTERS: Dict[str, Callable[[List[Product]], List[Product]]] = {
    "price-low": lambda items: sorted(items, key=lambda p: p.price),
    "price-high": lambda items: sorted(items, key=lambda p: p.price, reverse=True),
    "rating": lambda items: sorted(items, key=lambda p: p.rating, reverse=True),
    "name": lambda items: sorted(items, key=lambda p: ((p.title or "").casefold(), p.title or "")),
    "discount": lambda items: sorted(items, key=lambda p: p.discount_percentage, reverse=True),
}


@dataclass
class CatalogState:
    products: List[Product] = field(default_factory=list)
    filtered_products: List[Product] = field(default_factory=list)
    categories: List[str] = field(default_factory=list)
    current_product: Optional[Product] = None
    loading: bool = False
    error: Optional[str] = None
    search_query: str = ""
    selected_category: str = ALL_CATEGORIES


class CatalogStore:
    """Product list, filtered view and category state on top of the fetch client.

    Every request that replaces the filtered view takes a ticket from a
    monotonic counter; a response whose ticket is no longer the latest is
    dropped, so the most recently issued search or filter always wins.
    """

    def __init__(
        self,
        client: CachingFetchClient,
        resources: Optional[Dict[str, Resource]] = None,
    ) -> None:
        self.client = client
        self.resources = resources or dict(DEFAULT_RESOURCES)
        self.state = CatalogState()
        self._generation = 0

    # Remote resolvers

    def fetch_products(self, limit: int | None = None) -> Any:
        res = self._resource("products", limit)
        return self.client.resolve(res.key(), res.path(), res.ttl_seconds)

    def fetch_product(self, product_id: int | str) -> Any:
        res = self.resources["product"]
        return self.client.resolve(res.key(id=product_id), res.path(id=product_id), res.ttl_seconds)

    def fetch_categories(self) -> Any:
        res = self.resources["categories"]
        return self.client.resolve(res.key(), res.path(), res.ttl_seconds)

    def fetch_category(self, category: str, limit: int | None = None) -> Any:
        res = self._resource("category", limit)
        return self.client.resolve(
            res.key(category=category), res.path(category=category), res.ttl_seconds
        )

    def fetch_search(self, query: str, limit: int | None = None) -> Any:
        res = self._resource("search", limit)
        return self.client.resolve(res.key(query=query), res.path(query=query), res.ttl_seconds)

    # View operations

    def load_products(self, limit: int | None = None) -> List[Product]:
        ticket = self._next_ticket()
        self.state.loading = True
        try:
            products = parse_products(self.fetch_products(limit))
        except ShopHubError as exc:
            self._fail(exc, "Failed to load products")
            return []
        if self._is_current(ticket):
            self.state = CatalogState(
                products=products,
                filtered_products=list(products),
                categories=self.state.categories,
                current_product=self.state.current_product,
            )
        else:
            self.state.loading = False
        return products

    def load_categories(self) -> List[str]:
        try:
            data = self.fetch_categories()
            if isinstance(data, dict):
                raw = data.get("categories") or []
            else:
                raw = data if isinstance(data, list) else []
            if not isinstance(raw, list):
                raw = []
            categories = [c for c in raw if isinstance(c, str) and c.strip()]
        except ShopHubError as exc:
            logger.warning("Category load failed, using built-in list: %s", exc)
            categories = list(FALLBACK_CATEGORIES)
        self.state.categories = categories
        return categories

    def load_product(self, product_id: int | str) -> Optional[Product]:
        self.state.loading = True
        try:
            product = Product.model_validate(self.fetch_product(product_id))
        except (ValidationError, ShopHubError) as exc:
            self._fail(exc, "Product not found")
            return None
        self.state.current_product = product
        self.state.loading = False
        return product

    def filter_by_category(self, category: str) -> List[Product]:
        ticket = self._next_ticket()
        self.state.selected_category = category or ALL_CATEGORIES
        self.state.loading = True
        try:
            if not category or category == ALL_CATEGORIES:
                filtered = list(self.state.products)
            else:
                filtered = parse_products(self.fetch_category(category))
        except ShopHubError as exc:
            self._fail(exc, "Failed to load category products")
            return []
        finally:
            self.state.loading = False
        if self._is_current(ticket):
            self.state.filtered_products = filtered
        return filtered

    def search(self, query: str) -> List[Product]:
        """Filter the loaded products by title substring and active category."""
        self._next_ticket()
        self.state.search_query = query
        filtered = self._apply_category(_match_title(self.state.products, query))
        self.state.filtered_products = filtered
        return filtered

    def search_remote(self, query: str, limit: int | None = None) -> List[Product]:
        if not query or not query.strip():
            return self.search("")
        ticket = self._next_ticket()
        self.state.search_query = query
        self.state.loading = True
        try:
            results = self._apply_category(parse_products(self.fetch_search(query, limit)))
        except ShopHubError as exc:
            self._fail(exc, "Search failed")
            return []
        finally:
            self.state.loading = False
        if self._is_current(ticket):
            self.state.filtered_products = results
        else:
            logger.debug("Dropping stale search result for %r", query)
        return results

    def sort(self, criterion: str) -> List[Product]:
        sorter = SORTERS.get(criterion)
        if sorter is None:
            logger.debug("Unknown sort criterion %r, order unchanged", criterion)
            return self.state.filtered_products
        self.state.filtered_products = sorter(self.state.filtered_products)
        return self.state.filtered_products

    def clear_error(self) -> None:
        self.state.error = None

    # Helpers

    def _resource(self, name: str, limit: int | None) -> Resource:
        res = self.resources[name]
        return replace(res, limit=limit) if limit is not None else res

    def _next_ticket(self) -> int:
        self._generation += 1
        return self._generation

    def _is_current(self, ticket: int) -> bool:
        return ticket == self._generation

    def _apply_category(self, products: List[Product]) -> List[Product]:
        selected = self.state.selected_category
        if not selected or selected == ALL_CATEGORIES:
            return products
        return [p for p in products if p.category == selected]

    def _fail(self, exc: Exception, fallback: str) -> None:
        logger.error("%s: %s", fallback, exc)
        self.state.error = str(exc) or fallback
        self.state.loading = False


def _match_title(products: List[Product], query: str) -> List[Product]:
    if not query or not query.strip():
        return list(products)
    needle = query.lower()
    return [p for p in products if needle in p.title.lower()]


def parse_products(data: Any) -> List[Product]:
    """Extract ``products`` from a listing payload, skipping malformed items."""

    items = (data.get("products") or []) if isinstance(data, dict) else []
    if not isinstance(items, list):
        items = []
    products: List[Product] = []
    for item in items:
        try:
            products.append(Product.model_validate(item))
        except ValidationError as exc:
            logger.warning("Skipping malformed product %r: %s", item.get("id") if isinstance(item, dict) else item, exc)
    return products
