"""
Parameter resolution.

Merges three layers into one CalculationParameters:

    system_overrides  >  user_input  >  defaults

Scalars take the first non-None value. Mapping fields are merged key by key
with the same precedence (shallow: an operation supplied by the caller
replaces that operation's whole range map). Validation collects every
violation before raising.
"""

import math
from decimal import Decimal
from typing import Any, Mapping

from costman.exceptions import FieldError, ValidationError
from costman.protocols.params import FABRIC_FIELDS, CalculationParameters, EngineConfig


MAPPING_FIELDS = ("rates", "fabric", "overhead", "profit", "operations", "batch")
SCALAR_FIELDS = ("vat", "commission")
FIELDS = MAPPING_FIELDS + SCALAR_FIELDS


# ======================================================================
# MERGE
# ======================================================================


def merge_scalar(default: Any, user: Any = None, override: Any = None) -> Any:
    """override ?? user ?? default"""
    if override is not None:
        return override
    if user is not None:
        return user
    return default


def merge_mapping(
    default: Mapping | None,
    user: Mapping | None = None,
    override: Mapping | None = None,
) -> dict:
    """Shallow key merge; later layers replace earlier keys."""
    merged = dict(default or {})
    merged.update(user or {})
    merged.update(override or {})
    return merged


def complete_range_map(values: Mapping, ranges: tuple[str, ...]) -> dict:
    """Every configured range present; absent or None values become 0."""
    completed = {key: 0 if values.get(key) is None else values[key] for key in ranges}
    # unknown keys are kept so validation can report them
    for key, value in values.items():
        if key not in completed:
            completed[key] = value
    return completed


def merge_range_map(
    default: Mapping | None,
    user: Mapping | None,
    override: Mapping | None,
    ranges: tuple[str, ...],
) -> dict:
    return complete_range_map(merge_mapping(default, user, override), ranges)


def merge_operations(
    default: Mapping | None,
    user: Mapping | None,
    override: Mapping | None,
    ranges: tuple[str, ...],
) -> dict:
    merged = merge_mapping(default, user, override)
    return {
        name: complete_range_map(costs, ranges) if isinstance(costs, Mapping) else costs
        for name, costs in merged.items()
    }


def merge_batch(
    engine_default: Mapping,
    default: Mapping | None,
    user: Mapping | None,
    override: Mapping | None,
) -> dict:
    """Batch sizes start from the engine constants, then the three layers."""
    return merge_mapping(merge_mapping(engine_default, default), user, override)


# ======================================================================
# VALIDATION
# ======================================================================


def to_number(value: Any) -> float:
    """
    Convert a JSON-like value to a finite float.

    Raises:
        TypeError: value is not numeric (booleans included)
        ValueError: value is a non-numeric string or not finite
    """
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    if isinstance(value, str) and value.strip():
        value = value.strip()
    elif not isinstance(value, (int, float, Decimal)):
        raise TypeError(f"{value!r} is not a number")
    try:
        number = float(value)
    except OverflowError as e:
        raise ValueError("must be finite") from e
    if not math.isfinite(number):
        raise ValueError("must be finite")
    return number


class _Checker:
    def __init__(self):
        self.errors: list[FieldError] = []

    def fail(self, field: str, reason: str) -> None:
        self.errors.append(FieldError(field=field, reason=reason))

    def number(
        self,
        field: str,
        value: Any,
        *,
        minimum: float | None = None,
        maximum: float | None = None,
        positive: bool = False,
    ) -> float | None:
        try:
            number = to_number(value)
        except (TypeError, ValueError):
            self.fail(field, f"must be a finite number, got {value!r}")
            return None
        if positive and number <= 0:
            self.fail(field, f"must be greater than 0, got {number:g}")
            return None
        if minimum is not None and number < minimum:
            self.fail(field, f"must be at least {minimum:g}, got {number:g}")
            return None
        if maximum is not None and number > maximum:
            self.fail(field, f"must be at most {maximum:g}, got {number:g}")
            return None
        return number

    def percentage(self, field: str, value: Any) -> float | None:
        return self.number(field, value, minimum=0, maximum=100)

    def range_map(self, prefix: str, values: Mapping, ranges: tuple[str, ...], check) -> dict:
        checked = {}
        for key, value in values.items():
            if key not in ranges:
                self.fail(f"{prefix}.{key}", "unknown batch range")
                continue
            checked[key] = check(f"{prefix}.{key}", value)
        return checked


def _split_layer(layer: Mapping | None, name: str, checker: _Checker) -> dict:
    """Drop (and report) unknown fields and mis-shaped mapping fields of one layer."""
    if layer is None:
        return {}
    if not isinstance(layer, Mapping):
        checker.fail(name, "must be a mapping")
        return {}
    clean = {}
    for key, value in layer.items():
        if key not in FIELDS:
            checker.fail(key, f"unknown field in {name}")
        elif key in MAPPING_FIELDS and value is not None and not isinstance(value, Mapping):
            checker.fail(key, f"must be a mapping in {name}")
        else:
            clean[key] = value
    return clean


def _check_rates(checker: _Checker, rates: Mapping, config: EngineConfig) -> dict:
    checked = {}
    for currency in config.currencies:
        if rates.get(currency) is None:
            checker.fail(f"rates.{currency}", "missing exchange rate")
            continue
        checked[currency] = checker.number(f"rates.{currency}", rates[currency], positive=True)
    for currency in rates:
        if currency not in config.currencies:
            checker.fail(f"rates.{currency}", "unsupported currency")
    return checked


def _check_fabric(checker: _Checker, fabric: Mapping) -> dict:
    checked = {}
    for key, value in fabric.items():
        if key not in FABRIC_FIELDS:
            checker.fail(f"fabric.{key}", "unknown fabric price field")
        elif value is None:
            checked[key] = None
        else:
            checked[key] = checker.number(f"fabric.{key}", value, minimum=0)
    return checked


def _check_operations(checker: _Checker, operations: Mapping, config: EngineConfig) -> dict:
    checked = {}
    for name, costs in operations.items():
        if not isinstance(name, str) or not name.strip():
            checker.fail(f"operations.{name}", "operation name must be a non-empty string")
            continue
        if not isinstance(costs, Mapping):
            checker.fail(f"operations.{name}", "must be a mapping of range to cost")
            continue
        checked[name] = checker.range_map(
            f"operations.{name}",
            costs,
            config.ranges,
            lambda field, value: checker.number(field, value, minimum=0),
        )
    return checked


def _check_batch(checker: _Checker, batch: Mapping, config: EngineConfig) -> dict:
    def check(field, value):
        number = checker.number(field, value)
        if number is None:
            return None
        if not number.is_integer():
            checker.fail(field, f"must be a whole number of units, got {number:g}")
            return None
        low, high = config.batch_bounds.get(field.split(".", 1)[1], (1, math.inf))
        if not low <= number <= high:
            checker.fail(field, f"must be between {low} and {high}, got {int(number)}")
            return None
        return int(number)

    for key in config.ranges:
        if batch.get(key) is None:
            checker.fail(f"batch.{key}", "missing batch size")
    present = {k: v for k, v in batch.items() if v is not None}
    return checker.range_map("batch", present, config.ranges, check)


# ======================================================================
# RESOLVE
# ======================================================================


def resolve_parameters(
    defaults: Mapping,
    user_input: Mapping | None = None,
    system_overrides: Mapping | None = None,
    *,
    config: EngineConfig | None = None,
) -> CalculationParameters:
    """
    Merge defaults, user input and system overrides into validated parameters.

    Args:
        defaults: Persisted defaults (required)
        user_input: Caller-supplied partial parameters
        system_overrides: Operator-level parameters, highest precedence
        config: Engine configuration (settings when omitted)

    Returns:
        CalculationParameters with every range key present

    Raises:
        ValidationError: listing every violated field
    """
    if config is None:
        from costman.conf import get_engine_config

        config = get_engine_config()

    checker = _Checker()
    if defaults is None:
        raise ValidationError([FieldError("defaults", "defaults are required")])

    base = _split_layer(defaults, "defaults", checker)
    user = _split_layer(user_input, "user_input", checker)
    override = _split_layer(system_overrides, "system_overrides", checker)

    def layers(name):
        return base.get(name), user.get(name), override.get(name)

    rates = _check_rates(checker, merge_mapping(*layers("rates")), config)
    fabric = _check_fabric(checker, merge_mapping(*layers("fabric")))
    overhead = checker.range_map(
        "overhead", merge_range_map(*layers("overhead"), config.ranges), config.ranges, checker.percentage
    )
    profit = checker.range_map(
        "profit", merge_range_map(*layers("profit"), config.ranges), config.ranges, checker.percentage
    )

    scalars = {}
    for name in SCALAR_FIELDS:
        value = merge_scalar(*layers(name))
        if value is None:
            checker.fail(name, "missing percentage")
        else:
            scalars[name] = checker.percentage(name, value)

    operations = _check_operations(
        checker, merge_operations(*layers("operations"), config.ranges), config
    )
    batch = _check_batch(checker, merge_batch(config.default_batch, *layers("batch")), config)

    if checker.errors:
        raise ValidationError(checker.errors)

    return CalculationParameters(
        rates=rates,
        fabric=fabric,
        overhead=overhead,
        profit=profit,
        vat=scalars["vat"],
        commission=scalars["commission"],
        operations=operations,
        batch=batch,
    )
