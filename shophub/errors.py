from __future__ import annotations

from typing import Dict


class ShopHubError(Exception):
    """Base class for every error raised by the data layer."""


class FetchError(ShopHubError):
    """A single network attempt failed (transport, status or body)."""


class ResourceUnavailableError(ShopHubError):
    """All fetch attempts for a resource were exhausted."""

    def __init__(self, key: str, attempts: int, last_error: Exception | None) -> None:
        self.key = key
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error is not None else "unknown error"
        super().__init__(f"Failed to load data after {attempts} attempts: {detail}")


class StorageError(ShopHubError):
    """The durable key-value store could not complete a read or write."""


class StorageQuotaExceeded(StorageError):
    """A write would push the durable store past its configured quota."""


class AddressValidationError(ShopHubError):
    """One or more shipping address fields failed validation."""

    def __init__(self, errors: Dict[str, str]) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Invalid address fields: {fields}")


class EmptyCartError(ShopHubError):
    """An order was requested for a cart with no lines."""
