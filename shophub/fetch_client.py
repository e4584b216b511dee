from __future__ import annotations

import json
import logging
import time
from typing import Any, Callable, Dict, Optional, Union

import requests
from pydantic import ValidationError

from .config import settings
from .errors import FetchError, ResourceUnavailableError, StorageError
from .schemas import CacheEntry
from .storage import KeyValueStore, MemoryStore

logger = logging.getLogger(__name__)

UrlBuilder = Union[str, Callable[[], str]]


class CachingFetchClient:
    """Resolve a logical key to JSON via memory cache, durable cache, then HTTP.

    Concurrent resolves of the same key are not de-duplicated; each one walks
    the lookup chain independently and may hit the network.
    """

    def __init__(
        self,
        store: KeyValueStore | None = None,
        base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        default_ttl: float | None = None,
        cache_prefix: str | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.store = store if store is not None else MemoryStore()
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout
        self.max_attempts = max_attempts or settings.max_attempts
        self.backoff_base = backoff_base if backoff_base is not None else settings.backoff_base_seconds
        self.default_ttl = default_ttl or settings.cache_ttl_seconds
        self.cache_prefix = cache_prefix if cache_prefix is not None else settings.cache_prefix
        self._session = session or requests.Session()
        self._clock = clock
        self._sleep = sleep
        self._memory: Dict[str, CacheEntry] = {}

    def resolve(self, key: str, url_builder: UrlBuilder, ttl: float | None = None) -> Any:
        """Return the JSON payload for ``key``.

        Args:
            key: Logical cache key (e.g. ``product_12``)
            url_builder: Absolute URL, path relative to base_url, or a callable producing either
            ttl: Entry lifetime in seconds (default: client default_ttl)

        Raises:
            ResourceUnavailableError: every network attempt failed
        """
        ttl_ms = int(round((ttl if ttl is not None else self.default_ttl) * 1000))

        entry = self._read_memory(key, ttl_ms)
        if entry is not None:
            logger.debug("Using cached data for %s", key)
            return entry.data

        entry = self._read_durable(key, ttl_ms)
        if entry is not None:
            logger.debug("Using durable cache for %s", key)
            self._memory[key] = entry
            return entry.data

        url = self._build_url(url_builder() if callable(url_builder) else url_builder)
        data = self._fetch_with_retry(key, url)

        entry = CacheEntry(data=data, timestamp=self._now_ms())
        self._memory[key] = entry
        self._write_durable(key, entry)
        return data

    def invalidate(self, key: str) -> None:
        self._memory.pop(key, None)
        try:
            self.store.remove_item(self._storage_key(key))
        except StorageError as exc:
            logger.warning("Cache delete error for %s: %s", key, exc)

    def clear(self) -> None:
        """Drop every cached entry from both tiers."""
        self._memory.clear()
        try:
            for stored in self.store.keys():
                if stored.startswith(self.cache_prefix):
                    self.store.remove_item(stored)
        except StorageError as exc:
            logger.warning("Cache clear error: %s", exc)

    def _now_ms(self) -> int:
        return int(round(self._clock() * 1000))

    def _storage_key(self, key: str) -> str:
        return f"{self.cache_prefix}{key}"

    def _build_url(self, target: str) -> str:
        if target.startswith(("http://", "https://")):
            return target
        if not target.startswith("/"):
            target = f"/{target}"
        return f"{self.base_url}{target}"

    def _read_memory(self, key: str, ttl_ms: int) -> Optional[CacheEntry]:
        entry = self._memory.get(key)
        if entry is None:
            return None
        if entry.is_valid(self._now_ms(), ttl_ms):
            return entry
        del self._memory[key]
        return None

    def _read_durable(self, key: str, ttl_ms: int) -> Optional[CacheEntry]:
        storage_key = self._storage_key(key)
        try:
            raw = self.store.get_item(storage_key)
            if raw is None:
                return None
            try:
                entry = CacheEntry.model_validate(json.loads(raw))
            except (ValueError, ValidationError) as exc:
                logger.warning("Discarding corrupt cache entry %s: %s", key, exc)
                self.store.remove_item(storage_key)
                return None
            if entry.is_valid(self._now_ms(), ttl_ms):
                return entry
            self.store.remove_item(storage_key)
        except StorageError as exc:
            logger.warning("Cache read error for %s: %s", key, exc)
        return None

    def _write_durable(self, key: str, entry: CacheEntry) -> None:
        try:
            self.store.set_item(self._storage_key(key), entry.model_dump_json())
        except StorageError as exc:
            logger.warning("Cache write error for %s: %s", key, exc)

    def _fetch_with_retry(self, key: str, url: str) -> Any:
        last_err: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            logger.info("Fetching from API: %s (attempt %d/%d)", url, attempt, self.max_attempts)
            try:
                return self._fetch_once(url)
            except FetchError as exc:
                logger.warning("API fetch attempt %d failed: %s", attempt, exc)
                last_err = exc
            if attempt < self.max_attempts:
                self._sleep(attempt * self.backoff_base)
        raise ResourceUnavailableError(key, self.max_attempts, last_err)

    def _fetch_once(self, url: str) -> Any:
        try:
            response = self._session.get(
                url,
                headers={"Accept": "application/json", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise FetchError(str(exc)) from exc

        if not 200 <= response.status_code < 300:
            raise FetchError(f"HTTP {response.status_code}: {response.reason}")
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"Invalid JSON from {url}: {exc}") from exc
