"""Costman adapters."""

from costman.adapters.exchange_rate import ExchangeRateApiBackend
from costman.adapters.static import StaticDefaultsBackend, StaticRatesBackend
from costman.adapters.workbook import WorkbookDefaultsBackend

__all__ = [
    "ExchangeRateApiBackend",
    "StaticDefaultsBackend",
    "StaticRatesBackend",
    "WorkbookDefaultsBackend",
]
