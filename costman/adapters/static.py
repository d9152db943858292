"""
Static sources -- defaults for projects without a workbook or rate API.

Usage in settings.py:
    COSTMAN = {
        "DEFAULTS_BACKEND": "costman.adapters.static.StaticDefaultsBackend",
        "DEFAULTS": {
            "rates": {"EUR": 38.50, "USD": 34.20, "GBP": 45.10},
            "fabric": {"unit_price": 5.00},
            "vat": 20,
            "commission": 5,
        },
    }

Without COSTMAN["DEFAULTS"] the hard-coded fallback defaults are used.
"""

from __future__ import annotations

import copy
from typing import Any

from costman.conf import get_costman_settings
from costman.protocols.params import FABRIC_FIELDS
from costman.protocols.sources import DefaultsBackend, RatesBackend

FALLBACK_VAT = 20
FALLBACK_COMMISSION = 5


def fallback_defaults() -> dict[str, Any]:
    """Hard-coded defaults: default rates, VAT 20, commission 5, everything else 0."""
    conf = get_costman_settings()
    zeros = {range_key: 0 for range_key in conf.BATCH_RANGES}
    return {
        "rates": dict(conf.DEFAULT_EXCHANGE_RATES),
        "fabric": {name: 0 for name in FABRIC_FIELDS},
        "overhead": dict(zeros),
        "profit": dict(zeros),
        "vat": FALLBACK_VAT,
        "commission": FALLBACK_COMMISSION,
        "operations": {},
    }


class StaticDefaultsBackend:
    """DefaultsBackend returning COSTMAN["DEFAULTS"], or the fallback defaults."""

    def get_defaults(self) -> dict[str, Any]:
        configured = get_costman_settings().DEFAULTS
        if configured is None:
            return fallback_defaults()
        return copy.deepcopy(configured)


class StaticRatesBackend:
    """RatesBackend returning COSTMAN["DEFAULT_EXCHANGE_RATES"]."""

    def get_rates(self) -> dict[str, float]:
        return dict(get_costman_settings().DEFAULT_EXCHANGE_RATES)


# Verify protocol compliance at import time.
if not isinstance(StaticDefaultsBackend(), DefaultsBackend):
    raise TypeError("StaticDefaultsBackend does not implement DefaultsBackend protocol")
if not isinstance(StaticRatesBackend(), RatesBackend):
    raise TypeError("StaticRatesBackend does not implement RatesBackend protocol")
