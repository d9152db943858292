"""Costman protocols."""

from costman.protocols.params import (
    CalculationParameters,
    CalculationResult,
    EngineConfig,
    RangeResult,
)
from costman.protocols.sources import DefaultsBackend, RatesBackend

__all__ = [
    "CalculationParameters",
    "CalculationResult",
    "DefaultsBackend",
    "EngineConfig",
    "RangeResult",
    "RatesBackend",
]
