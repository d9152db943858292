"""
Exchange-rate RatesBackend -- live rates over HTTP.

Usage in settings.py:
    COSTMAN = {
        "RATES_BACKEND": "costman.adapters.exchange_rate.ExchangeRateApiBackend",
        "EXCHANGE_API_KEY": os.environ["EXCHANGE_API_KEY"],
    }

The API is queried with the local currency as base, so it quotes
"foreign units per local unit". Costman rates are "local units per foreign
unit", so quotes are inverted.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping

import requests

from costman.conf import get_cache, get_costman_settings
from costman.exceptions import MalformedSourceError, SourceUnavailableError
from costman.protocols.sources import RatesBackend

logger = logging.getLogger(__name__)

RATES_CACHE_KEY = "costman:rates"
SOURCE = "exchange-rate-api"


class ExchangeRateApiBackend:
    """
    RatesBackend using an exchangerate-api.com compatible endpoint.

    Retries with linear backoff. Without an API key, or (when RATES_FALLBACK
    is on) after every attempt failed, the configured default rates are
    returned instead.
    """

    def __init__(self, session: requests.Session | None = None):
        from costman import __version__

        self.session = session or requests.Session()
        self.session.headers.update(
            {"User-Agent": f"django-costman/{__version__}", "Accept": "application/json"}
        )

    def get_rates(self) -> dict[str, float]:
        conf = get_costman_settings()
        cache = get_cache()
        cached = cache.get(RATES_CACHE_KEY)
        if cached is not None:
            logger.debug("Using cached exchange rates")
            return cached

        if not conf.EXCHANGE_API_KEY:
            logger.warning("Exchange API key not configured, using default rates")
            return dict(conf.DEFAULT_EXCHANGE_RATES)

        started = time.monotonic()
        try:
            rates = self.fetch(conf)
        except SourceUnavailableError:
            if not conf.RATES_FALLBACK:
                raise
            logger.error("Failed to fetch exchange rates, using defaults", exc_info=True)
            return dict(conf.DEFAULT_EXCHANGE_RATES)

        cache.set(RATES_CACHE_KEY, rates, conf.RATES_CACHE_TIMEOUT)
        logger.info(
            "Exchange rates fetched in %.0fms: %s", (time.monotonic() - started) * 1000, rates
        )
        return rates

    def fetch(self, conf) -> dict[str, float]:
        """
        Fetch rates, retrying transport and HTTP errors.

        Raises:
            SourceUnavailableError: every attempt failed
            MalformedSourceError: the response could not be interpreted
        """
        url = conf.EXCHANGE_API_URL.format(key=conf.EXCHANGE_API_KEY, base=conf.LOCAL_CURRENCY)
        attempts = max(1, conf.EXCHANGE_API_RETRIES)
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            try:
                response = self.session.get(url, timeout=conf.EXCHANGE_API_TIMEOUT)
                response.raise_for_status()
                data = response.json()
            except (requests.RequestException, ValueError) as e:
                last_error = e
                if attempt < attempts:
                    delay = conf.EXCHANGE_API_RETRY_DELAY * attempt
                    logger.warning(
                        "Exchange rate API attempt %d/%d failed, retrying in %.1fs: %s",
                        attempt, attempts, delay, e,
                    )
                    time.sleep(delay)
                continue
            return self.parse_response(data, conf)

        logger.error("All %d attempts failed for exchange rate API", attempts)
        raise SourceUnavailableError(SOURCE, str(last_error)) from last_error

    def parse_response(self, data: Any, conf) -> dict[str, float]:
        """Convert an API payload into {currency: local units per foreign unit}."""
        if not isinstance(data, Mapping):
            raise MalformedSourceError(SOURCE, "response is not a JSON object")
        if data.get("result") == "error":
            raise SourceUnavailableError(SOURCE, str(data.get("error-type", "unknown error")))

        quotes = data.get("conversion_rates", data.get("rates"))
        if not isinstance(quotes, Mapping):
            raise MalformedSourceError(SOURCE, "response has no rates")

        rates = {}
        for currency in conf.SUPPORTED_CURRENCIES:
            quote = quotes.get(currency)
            if isinstance(quote, (int, float)) and not isinstance(quote, bool) and quote > 0:
                rates[currency] = 1 / quote

        missing = [c for c in conf.SUPPORTED_CURRENCIES if c not in rates]
        if missing:
            logger.warning("Exchange rates missing from API response, using defaults: %s", missing)
            for currency in missing:
                rates[currency] = conf.DEFAULT_EXCHANGE_RATES.get(currency)
        return rates


# Verify protocol compliance at import time.
if not issubclass(ExchangeRateApiBackend, RatesBackend):
    raise TypeError("ExchangeRateApiBackend does not implement RatesBackend protocol")
