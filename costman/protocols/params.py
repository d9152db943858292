"""Calculation value objects."""

from dataclasses import dataclass, field, fields
from types import MappingProxyType
from typing import Any, Mapping


# Monetary fields of RangeResult, in calculation order.
MONETARY_FIELDS = (
    "fabric_cost",
    "per_unit_ops_local",
    "per_unit_ops_foreign",
    "per_unit_foreign",
    "raw_cost",
    "overhead",
    "profit",
    "taxable",
    "vat",
    "commission",
)

FABRIC_FIELDS = ("unit_price", "base_price", "metre_price")


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({k: _freeze(v) for k, v in value.items()})
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _thaw(v) for k, v in value.items()}
    return value


def _hashable(value: Any) -> Any:
    if isinstance(value, Mapping):
        return frozenset((k, _hashable(v)) for k, v in value.items())
    return value


class _ReadOnly:
    """Pickle (cache backends) and hash support for dataclasses holding mapping views."""

    def __reduce__(self):
        return (self.__class__, tuple(_thaw(getattr(self, f.name)) for f in fields(self)))

    def _frozen_hash(self) -> int:
        return hash((self.__class__, tuple(_hashable(getattr(self, f.name)) for f in fields(self))))


@dataclass(frozen=True)
class EngineConfig(_ReadOnly):
    """Fixed domain configuration: ranges, currencies and batch bounds."""

    ranges: tuple[str, ...]
    currencies: tuple[str, ...]
    base_currency: str
    local_currency: str
    default_batch: dict[str, int] = field(default_factory=dict)
    batch_bounds: dict[str, tuple[int, int]] = field(default_factory=dict)

    __hash__ = _ReadOnly._frozen_hash

    @property
    def output_currencies(self) -> tuple[str, ...]:
        """Base, local, then every other supported currency."""
        ordered = [self.base_currency, self.local_currency]
        ordered += [c for c in self.currencies if c not in ordered]
        return tuple(ordered)


@dataclass(frozen=True)
class CalculationParameters(_ReadOnly):
    """Fully merged and validated parameter set. Read-only."""

    rates: Mapping[str, float]
    fabric: Mapping[str, float | None]
    overhead: Mapping[str, float]
    profit: Mapping[str, float]
    vat: float
    commission: float
    operations: Mapping[str, Mapping[str, float]]
    batch: Mapping[str, int]

    __hash__ = _ReadOnly._frozen_hash

    def __post_init__(self):
        for name in ("rates", "fabric", "overhead", "profit", "operations", "batch"):
            object.__setattr__(self, name, _freeze(getattr(self, name)))

    def as_dict(self) -> dict:
        return {
            "rates": _thaw(self.rates),
            "fabric": _thaw(self.fabric),
            "overhead": _thaw(self.overhead),
            "profit": _thaw(self.profit),
            "vat": self.vat,
            "commission": self.commission,
            "operations": _thaw(self.operations),
            "batch": _thaw(self.batch),
        }


@dataclass(frozen=True)
class RangeResult(_ReadOnly):
    """Cost breakdown for one batch range. Monetary values are rounded to 2 decimals."""

    range: str
    batch_size: int
    fabric_cost: float
    per_unit_ops_local: float
    per_unit_ops_foreign: float
    per_unit_foreign: float
    raw_cost: float
    overhead: float
    profit: float
    taxable: float
    vat: float
    commission: float
    finals: Mapping[str, float]
    per_unit_finals: Mapping[str, float]
    warnings: tuple[str, ...] = ()

    __hash__ = _ReadOnly._frozen_hash

    def __post_init__(self):
        object.__setattr__(self, "finals", _freeze(self.finals))
        object.__setattr__(self, "per_unit_finals", _freeze(self.per_unit_finals))

    def final(self, currency: str) -> float:
        return self.finals[currency]

    def as_dict(self) -> dict:
        data = {"range": self.range, "batch_size": self.batch_size}
        for name in MONETARY_FIELDS:
            data[name] = getattr(self, name)
        data["finals"] = dict(self.finals)
        data["per_unit_finals"] = dict(self.per_unit_finals)
        data["warnings"] = list(self.warnings)
        return data


@dataclass(frozen=True)
class CalculationResult(_ReadOnly):
    """Output of one calculation: parameters used and per-range breakdown."""

    parameters: CalculationParameters
    result: Mapping[str, RangeResult]
    metadata: Mapping[str, Any] = field(default_factory=dict)

    __hash__ = _ReadOnly._frozen_hash

    def __post_init__(self):
        object.__setattr__(self, "result", MappingProxyType(dict(self.result)))
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    @property
    def warnings(self) -> list[str]:
        return [w for r in self.result.values() for w in r.warnings]

    def as_dict(self) -> dict:
        return {
            **self.parameters.as_dict(),
            "result": {key: r.as_dict() for key, r in self.result.items()},
            "metadata": dict(self.metadata),
        }
