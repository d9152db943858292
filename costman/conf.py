"""
Costman configuration.

Usage in settings.py:
    COSTMAN = {
        "BASE_CURRENCY": "EUR",
        "LOCAL_CURRENCY": "TRY",
        "DEFAULTS_BACKEND": "costman.adapters.workbook.WorkbookDefaultsBackend",
        "WORKBOOK_PATH": BASE_DIR / "data" / "maliyet.xlsx",
        "RATES_BACKEND": "costman.adapters.exchange_rate.ExchangeRateApiBackend",
        "EXCHANGE_API_KEY": env("EXCHANGE_API_KEY"),
    }
"""

import importlib
import threading
from dataclasses import dataclass, field
from typing import Any

from django.conf import settings


def _default_ranges() -> list[str]:
    return ["0-50", "51-100", "101-200"]


@dataclass
class CostmanSettings:
    """Costman configuration settings."""

    BATCH_RANGES: list[str] = field(default_factory=_default_ranges)
    DEFAULT_BATCH: dict[str, int] = field(
        default_factory=lambda: {"0-50": 25, "51-100": 75, "101-200": 150}
    )
    # (min, max) applied to every range unless a range has its own entry
    BATCH_BOUNDS: dict[str, tuple[int, int]] = field(default_factory=dict)
    MIN_BATCH_SIZE: int = 1
    MAX_BATCH_SIZE: int = 10000

    SUPPORTED_CURRENCIES: list[str] = field(default_factory=lambda: ["EUR", "USD", "GBP"])
    BASE_CURRENCY: str = "EUR"
    LOCAL_CURRENCY: str = "TRY"
    DEFAULT_EXCHANGE_RATES: dict[str, float] = field(
        default_factory=lambda: {"EUR": 37.99, "USD": 33.99, "GBP": 44.93}
    )

    # Sources
    DEFAULTS: dict[str, Any] | None = None
    DEFAULTS_BACKEND: str = "costman.adapters.static.StaticDefaultsBackend"
    RATES_BACKEND: str | None = None
    WORKBOOK_PATH: str | None = None
    WORKBOOK_SHEET: str | None = None
    WORKBOOK_LAYOUT: dict[str, str] | None = None

    EXCHANGE_API_KEY: str | None = None
    EXCHANGE_API_URL: str = "https://v6.exchangerate-api.com/v6/{key}/latest/{base}"
    EXCHANGE_API_TIMEOUT: float = 10.0
    EXCHANGE_API_RETRIES: int = 3
    EXCHANGE_API_RETRY_DELAY: float = 1.0
    RATES_FALLBACK: bool = True

    # Caching (seconds)
    CACHE_ALIAS: str = "default"
    DEFAULTS_CACHE_TIMEOUT: int = 5 * 60
    RATES_CACHE_TIMEOUT: int = 15 * 60
    RESULT_CACHE_TIMEOUT: int = 2 * 60


def get_costman_settings() -> CostmanSettings:
    """Load settings from Django settings."""
    user_settings: dict[str, Any] = getattr(settings, "COSTMAN", {})
    return CostmanSettings(**user_settings)


class _LazySettings:
    """Lazy proxy that re-reads settings on every attribute access."""

    def __getattr__(self, name):
        return getattr(get_costman_settings(), name)


costman_settings = _LazySettings()


def get_engine_config():
    """Build the EngineConfig for the current settings."""
    from costman.protocols.params import EngineConfig

    conf = get_costman_settings()
    bounds = {
        range_key: tuple(conf.BATCH_BOUNDS.get(range_key, (conf.MIN_BATCH_SIZE, conf.MAX_BATCH_SIZE)))
        for range_key in conf.BATCH_RANGES
    }
    return EngineConfig(
        ranges=tuple(conf.BATCH_RANGES),
        currencies=tuple(conf.SUPPORTED_CURRENCIES),
        base_currency=conf.BASE_CURRENCY,
        local_currency=conf.LOCAL_CURRENCY,
        default_batch=dict(conf.DEFAULT_BATCH),
        batch_bounds=bounds,
    )


def get_cache():
    """Return the Django cache used by Costman."""
    from django.core.cache import caches

    return caches[costman_settings.CACHE_ALIAS]


# Backend singletons
_backend_lock = threading.Lock()
_defaults_backend_instance = None
_rates_backend_instance = None


def _load_backend(path: str):
    module_path, cls_name = path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls = getattr(module, cls_name)
    return cls()


def get_defaults_backend():
    """
    Return the configured DefaultsBackend instance.

    Loads from COSTMAN["DEFAULTS_BACKEND"] setting (dotted path).
    If _defaults_backend_instance was set directly (e.g. in tests), returns it as-is.
    """
    global _defaults_backend_instance
    if _defaults_backend_instance is not None:
        return _defaults_backend_instance
    with _backend_lock:
        if _defaults_backend_instance is None:
            _defaults_backend_instance = _load_backend(costman_settings.DEFAULTS_BACKEND)
    return _defaults_backend_instance


def get_rates_backend():
    """Return the configured RatesBackend instance, or None."""
    global _rates_backend_instance
    if _rates_backend_instance is not None:
        return _rates_backend_instance
    backend_path = costman_settings.RATES_BACKEND
    if not backend_path:
        return None
    with _backend_lock:
        if _rates_backend_instance is None:
            _rates_backend_instance = _load_backend(backend_path)
    return _rates_backend_instance


def reset_backends():
    """Reset backend singletons (for tests)."""
    global _defaults_backend_instance, _rates_backend_instance
    _defaults_backend_instance = None
    _rates_backend_instance = None
