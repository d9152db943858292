"""
Parameter source protocols.

Costman never reads spreadsheets or calls rate APIs from inside the engine.
Sources are pluggable backends selected in settings:

    COSTMAN = {
        "DEFAULTS_BACKEND": "costman.adapters.workbook.WorkbookDefaultsBackend",
        "RATES_BACKEND": "costman.adapters.exchange_rate.ExchangeRateApiBackend",
    }
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DefaultsBackend(Protocol):
    """
    Interface for loading persisted default parameters.

    Returns the parameter structure (rates, fabric, overhead, profit,
    vat, commission, operations). Batch sizes are engine constants and
    are not expected here.
    """

    def get_defaults(self) -> dict[str, Any]:
        """
        Return default parameters.

        Raises:
            SourceUnavailableError: the source cannot be read.
            MalformedSourceError: the source cannot be parsed.
        """
        ...


@runtime_checkable
class RatesBackend(Protocol):
    """Interface for fetching exchange rates (local units per foreign unit)."""

    def get_rates(self) -> dict[str, float]:
        """Return {currency: rate} for every supported currency."""
        ...
