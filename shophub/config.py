from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic_settings import BaseSettings
from rich.logging import RichHandler


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables."""

    api_base_url: str = "https://dummyjson.com"
    request_timeout: float = 10.0
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0
    cache_ttl_seconds: float = 30 * 60
    cache_prefix: str = "shophub_cache_"

    storage_path: str = "shophub.db"
    storage_quota_bytes: int | None = None
    cart_key: str = "shophub_react_cart"
    cap_quantity_at_stock: bool = False

    usd_to_inr: float = 83.12
    gst_rate: float = 0.18
    free_shipping_threshold: float = 999
    shipping_fee: float = 99
    checkout_delay_seconds: float = 2.5

    log_level: str = "INFO"

    class Config:
        env_prefix = "SHOPHUB_"
        env_file = "config/.env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def load_settings() -> Settings:
    """Provide a reusable settings singleton."""

    return Settings()


def load_catalog_config(path: str | Path = "config/catalog.yaml") -> dict[str, Any]:
    """Load per-resource catalog overrides (ttl_seconds, limit) from YAML.

    Returns a mapping of resource name to its override dict.
    """

    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(f"Catalog config not found at {cfg_path}")

    with cfg_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    resources = data.get("resources")
    if not isinstance(resources, dict):
        raise ValueError("catalog.yaml must contain a 'resources' mapping.")

    for name, override in resources.items():
        if not isinstance(override, dict):
            raise ValueError(f"Resource '{name}' must map to a dict of overrides.")
        ttl = override.get("ttl_seconds")
        if ttl is not None and float(ttl) <= 0:
            raise ValueError(f"Resource '{name}' has a non-positive ttl_seconds.")

    return resources


def configure_logging(level: str | None = None) -> None:
    """Route library logging through rich; safe to call more than once."""

    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


settings = load_settings()
