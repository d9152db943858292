"""Pytest fixtures for Costman tests."""

import copy

import pytest
from django.core.cache import caches

from costman.conf import reset_backends
from costman.protocols.params import EngineConfig


RANGES = ("0-50", "51-100", "101-200")


@pytest.fixture(autouse=True)
def clean_state():
    """Fresh cache and backend singletons for every test."""
    caches["default"].clear()
    reset_backends()
    yield
    caches["default"].clear()
    reset_backends()


@pytest.fixture
def config():
    """Engine configuration matching the default settings."""
    return EngineConfig(
        ranges=RANGES,
        currencies=("EUR", "USD", "GBP"),
        base_currency="EUR",
        local_currency="TRY",
        default_batch={"0-50": 25, "51-100": 75, "101-200": 150},
        batch_bounds={r: (1, 10000) for r in RANGES},
    )


@pytest.fixture
def zero_batch_config(config):
    """Engine configuration that permits empty batches."""
    return EngineConfig(
        ranges=config.ranges,
        currencies=config.currencies,
        base_currency=config.base_currency,
        local_currency=config.local_currency,
        default_batch=config.default_batch,
        batch_bounds={r: (0, 10000) for r in RANGES},
    )


DEFAULTS = {
    "rates": {"EUR": 38.50, "USD": 34.20, "GBP": 45.10},
    "fabric": {"unit_price": 0, "base_price": 4.50, "metre_price": 2.00},
    "overhead": {"0-50": 10, "51-100": 8, "101-200": 5},
    "profit": {"0-50": 20, "51-100": 15, "101-200": 10},
    "vat": 20,
    "commission": 5,
    "operations": {
        "Kesim": {"0-50": 770, "51-100": 1155, "101-200": 1540},
        "Dikiş": {"0-50": 1925, "51-100": 2887.5, "101-200": 3850},
    },
}


@pytest.fixture
def defaults():
    """Realistic workbook-like defaults (rates in TRY per unit)."""
    return copy.deepcopy(DEFAULTS)


@pytest.fixture
def zero_defaults():
    """Defaults with no markups and no operation costs."""
    zeros = {r: 0 for r in RANGES}
    return {
        "rates": {"EUR": 37.99, "USD": 33.99, "GBP": 44.93},
        "fabric": {},
        "overhead": dict(zeros),
        "profit": dict(zeros),
        "vat": 20,
        "commission": 5,
        "operations": {"Kesim": dict(zeros), "Dikiş": dict(zeros)},
    }


@pytest.fixture
def scenario_a_input():
    """Rates, fabric, VAT and commission of the reference scenario."""
    return {
        "rates": {"EUR": 38.50, "USD": 34.20, "GBP": 45.10},
        "fabric": {"unit_price": 5.00},
        "vat": 18,
        "commission": 3,
        "batch": {"0-50": 25},
    }


@pytest.fixture
def costman_settings(settings, defaults):
    """Settings with static defaults configured."""
    settings.COSTMAN = {**settings.COSTMAN, "DEFAULTS": defaults}
    return settings
