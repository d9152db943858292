"""
Costman public API.

CORE (essential):
    CostingService.calculate(user_input, overrides) - Cost breakdown per batch range
    CostingService.get_defaults()                   - Defaults with live rates applied

CONVENIENCE (helpers):
    CostingService.clear_cache()                    - Drop cached defaults and results
"""

import logging
import time
from typing import Any, Mapping

from costman.calculator import calculate_parameters, parameters_hash
from costman.conf import (
    costman_settings,
    get_cache,
    get_defaults_backend,
    get_engine_config,
    get_rates_backend,
)
from costman.exceptions import CostingError, MalformedSourceError
from costman.protocols.params import CalculationResult
from costman.resolver import resolve_parameters

logger = logging.getLogger(__name__)

DEFAULTS_CACHE_KEY = "costman:defaults"
RESULT_CACHE_PREFIX = "costman:result:"
GENERATION_CACHE_KEY = "costman:generation"


def _dotted_name(obj) -> str:
    cls = type(obj)
    return f"{cls.__module__}.{cls.__qualname__}"


def _result_key(cache, input_key: str) -> str:
    generation = cache.get_or_set(GENERATION_CACHE_KEY, 0, None)
    return f"{RESULT_CACHE_PREFIX}{generation}:{input_key}"


class CostingService:
    """
    Costman public API.

    Uses @classmethod for extensibility (override _load_defaults for custom sources).

    CORE (essential):
        calculate(...)   - Resolve parameters and compute every range
        get_defaults()   - Defaults from DEFAULTS_BACKEND, rates from RATES_BACKEND

    CONVENIENCE (helpers):
        clear_cache()    - Forget cached defaults and results
    """

    # ======================================================================
    # CORE API
    # ======================================================================

    @classmethod
    def calculate(
        cls,
        user_input: Mapping[str, Any] | None = None,
        system_overrides: Mapping[str, Any] | None = None,
        defaults: Mapping[str, Any] | None = None,
        use_cache: bool = True,
    ) -> CalculationResult:
        """
        Calculate the cost breakdown for every batch range.

        Args:
            user_input: Caller-supplied partial parameters
            system_overrides: Operator-level parameters (highest precedence)
            defaults: Explicit defaults; loaded from the backend when omitted
            use_cache: Reuse a cached result for identical inputs

        Returns:
            CalculationResult

        Raises:
            ValidationError: Invalid merged parameters (every field listed)
            CalculationError: A range could not be computed
            SourceUnavailableError: Defaults could not be loaded
        """
        started = time.monotonic()
        if defaults is None:
            defaults = cls.get_defaults()

        config = get_engine_config()
        try:
            params = resolve_parameters(defaults, user_input, system_overrides, config=config)
        except CostingError as e:
            logger.warning("Calculation rejected: %s", e)
            raise

        key = parameters_hash(params, config)
        cache = get_cache()
        cache_key = _result_key(cache, key)
        if use_cache:
            cached = cache.get(cache_key)
            if cached is not None:
                logger.debug("Using cached calculation result %s", key)
                return cached

        try:
            result = calculate_parameters(params, config=config)
        except CostingError as e:
            logger.warning("Calculation %s failed: %s", key, e)
            raise

        duration_ms = (time.monotonic() - started) * 1000
        if use_cache:
            cache.set(cache_key, result, costman_settings.RESULT_CACHE_TIMEOUT)

        logger.info(
            "Cost calculation %s completed: %d ranges in %.1fms", key, len(result.result), duration_ms
        )
        for warning in result.warnings:
            logger.warning("Calculation %s: %s", key, warning)

        from costman.signals import calculation_completed

        calculation_completed.send(
            sender=cls, result=result, input_hash=key, duration_ms=duration_ms
        )
        return result

    @classmethod
    def get_defaults(cls, use_cache: bool = True) -> dict[str, Any]:
        """
        Return default parameters.

        Live rates from RATES_BACKEND (if configured) replace the
        defaults' rates key by key.

        Raises:
            SourceUnavailableError: The backend could not deliver defaults
        """
        cache = get_cache()
        if use_cache:
            cached = cache.get(DEFAULTS_CACHE_KEY)
            if cached is not None:
                logger.debug("Using cached defaults")
                return cached

        backend = get_defaults_backend()
        defaults = cls._load_defaults(backend)

        rates_backend = get_rates_backend()
        if rates_backend is not None:
            defaults["rates"] = {**(defaults.get("rates") or {}), **rates_backend.get_rates()}

        if use_cache:
            cache.set(DEFAULTS_CACHE_KEY, defaults, costman_settings.DEFAULTS_CACHE_TIMEOUT)

        from costman.signals import defaults_loaded

        defaults_loaded.send(sender=cls, defaults=defaults, source=_dotted_name(backend))
        return defaults

    @classmethod
    def _load_defaults(cls, backend) -> dict[str, Any]:
        """Internal: read the backend. Override for custom sources."""
        defaults = backend.get_defaults()
        if not isinstance(defaults, Mapping):
            raise MalformedSourceError(
                _dotted_name(backend), f"expected a mapping, got {type(defaults).__name__}"
            )
        return dict(defaults)

    # ======================================================================
    # CONVENIENCE API
    # ======================================================================

    @classmethod
    def clear_cache(cls) -> None:
        """Drop cached defaults and calculation results."""
        cache = get_cache()
        cache.delete(DEFAULTS_CACHE_KEY)
        try:
            cache.incr(GENERATION_CACHE_KEY)
        except ValueError:
            cache.set(GENERATION_CACHE_KEY, 1, None)
