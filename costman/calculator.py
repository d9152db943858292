"""
Range calculator.

For each batch range, with n = batch size:

    per-unit ops (base)  = sum(operation costs) / n / rate[base]
    per-unit (base)      = fabric + per-unit ops
    raw                  = per-unit * n
    taxable              = raw + raw * overhead% + raw * profit%
    final (base)         = taxable + taxable * vat% + taxable * commission%
    final (local)        = final (base) * rate[base]
    final (other)        = final (local) / rate[other]

Values are kept at full float precision and rounded to 2 decimals
(half away from zero) only in the returned RangeResult.
"""

import hashlib
import json
import logging
import math
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Mapping

from costman.exceptions import CalculationError
from costman.protocols.params import (
    CalculationParameters,
    CalculationResult,
    EngineConfig,
    RangeResult,
)
from costman.resolver import resolve_parameters

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
PERCENTAGE_DIVISOR = 100


def round_money(value: float) -> float:
    """Round to 2 decimals, half away from zero, using the shortest repr of the float."""
    amount = Decimal(repr(value))
    with localcontext() as ctx:
        # quantize needs every integer digit plus the 2 decimals
        ctx.prec = max(28, amount.adjusted() + 3)
        return float(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def safe_divide(numerator: float, denominator: float) -> float:
    """Division by a batch size. Returns 0 instead of dividing by zero."""
    if denominator == 0:
        logger.warning("Division by zero avoided (numerator=%s)", numerator)
        return 0.0
    return numerator / denominator


def apply_percentage(base: float, percentage: float) -> float:
    return base * percentage / PERCENTAGE_DIVISOR


def fabric_cost(fabric: Mapping[str, float | None]) -> float:
    """unit_price if positive, else base_price if present, else 0."""
    unit_price = fabric.get("unit_price")
    if unit_price is not None and unit_price > 0:
        return float(unit_price)
    base_price = fabric.get("base_price")
    if base_price is not None:
        return float(base_price)
    return 0.0


def _rate(range_key: str, params: CalculationParameters, currency: str) -> float:
    rate = params.rates.get(currency)
    if rate is None or not math.isfinite(rate) or rate <= 0:
        raise CalculationError(
            range_key, f"rates.{currency}", f"Exchange rate for {currency} is unusable: {rate!r}"
        )
    return rate


def _check_finite(range_key: str, values: Mapping[str, float]) -> None:
    for name, value in values.items():
        if value is None or not math.isfinite(value):
            raise CalculationError(range_key, name, f"Non-finite value for {name} in range {range_key}")


def _get_config(config: EngineConfig | None) -> EngineConfig:
    if config is None:
        from costman.conf import get_engine_config

        return get_engine_config()
    return config


def calculate_range(
    range_key: str,
    params: CalculationParameters,
    *,
    config: EngineConfig | None = None,
) -> RangeResult:
    """
    Compute the cost breakdown for a single batch range.

    Raises:
        CalculationError: a required input is missing or a value is not finite
    """
    config = _get_config(config)
    batch_size = params.batch.get(range_key)
    if batch_size is None:
        raise CalculationError(range_key, f"batch.{range_key}", f"No batch size for range {range_key}")
    base_rate = _rate(range_key, params, config.base_currency)

    warnings = []
    if batch_size == 0:
        warnings.append(f"Batch size is 0 for range {range_key}; per-unit values set to 0")

    total_ops_local = 0.0
    for costs in params.operations.values():
        total_ops_local += costs.get(range_key) or 0.0

    per_unit_ops_local = safe_divide(total_ops_local, batch_size)
    per_unit_ops_foreign = per_unit_ops_local / base_rate
    fabric = fabric_cost(params.fabric)
    per_unit_foreign = fabric + per_unit_ops_foreign
    raw_cost = per_unit_foreign * batch_size
    overhead = apply_percentage(raw_cost, params.overhead.get(range_key, 0.0))
    profit = apply_percentage(raw_cost, params.profit.get(range_key, 0.0))
    taxable = raw_cost + overhead + profit
    vat = apply_percentage(taxable, params.vat)
    commission = apply_percentage(taxable, params.commission)
    final_foreign = taxable + vat + commission
    final_local = final_foreign * base_rate

    breakdown = {
        "operations": total_ops_local,
        "fabric_cost": fabric,
        "per_unit_ops_local": per_unit_ops_local,
        "per_unit_ops_foreign": per_unit_ops_foreign,
        "per_unit_foreign": per_unit_foreign,
        "raw_cost": raw_cost,
        "overhead": overhead,
        "profit": profit,
        "taxable": taxable,
        "vat": vat,
        "commission": commission,
    }
    _check_finite(range_key, breakdown)

    finals = {config.base_currency: final_foreign, config.local_currency: final_local}
    for currency in config.output_currencies[2:]:
        finals[currency] = final_local / _rate(range_key, params, currency)
    _check_finite(range_key, {f"finals.{c}": v for c, v in finals.items()})

    per_unit_finals = {c: safe_divide(v, batch_size) for c, v in finals.items()}

    del breakdown["operations"]
    return RangeResult(
        range=range_key,
        batch_size=batch_size,
        **{name: round_money(value) for name, value in breakdown.items()},
        finals={c: round_money(v) for c, v in finals.items()},
        per_unit_finals={c: round_money(v) for c, v in per_unit_finals.items()},
        warnings=tuple(warnings),
    )


def calculate_ranges(
    params: CalculationParameters,
    *,
    config: EngineConfig | None = None,
    executor=None,
) -> dict[str, RangeResult]:
    """
    Compute every configured range.

    Ranges are independent; pass a concurrent.futures executor to compute
    them in parallel. The first failing range aborts the whole batch.
    """
    config = _get_config(config)

    def compute(range_key):
        return calculate_range(range_key, params, config=config)

    if executor is None:
        results = [compute(range_key) for range_key in config.ranges]
    else:
        results = list(executor.map(compute, config.ranges))
    return {r.range: r for r in results}


def input_hash(*layers) -> str:
    """Stable hash of the calculation inputs."""
    payload = json.dumps(layers, sort_keys=True, default=str)
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


def parameters_hash(params: CalculationParameters, config: EngineConfig) -> str:
    """Hash of resolved parameters and engine configuration (keys are validated strings)."""
    return input_hash(params.as_dict(), asdict(config))


def calculate_parameters(
    params: CalculationParameters,
    *,
    config: EngineConfig | None = None,
    executor=None,
) -> CalculationResult:
    """
    Compute every batch range of already resolved parameters.

    Raises:
        CalculationError: a range could not be computed
    """
    from costman import __version__

    config = _get_config(config)
    result = calculate_ranges(params, config=config, executor=executor)
    return CalculationResult(
        parameters=params,
        result=result,
        metadata={
            "calculated_at": datetime.now(timezone.utc).isoformat(),
            "input_hash": parameters_hash(params, config),
            "version": __version__,
        },
    )


def calculate(
    defaults: Mapping,
    user_input: Mapping | None = None,
    system_overrides: Mapping | None = None,
    *,
    config: EngineConfig | None = None,
    executor=None,
) -> CalculationResult:
    """
    Resolve parameters and compute every batch range.

    Raises:
        ValidationError: merged parameters are invalid (nothing is computed)
        CalculationError: a range could not be computed
    """
    config = _get_config(config)
    params = resolve_parameters(defaults, user_input, system_overrides, config=config)
    return calculate_parameters(params, config=config, executor=executor)
