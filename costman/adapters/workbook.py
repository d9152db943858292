"""
Workbook DefaultsBackend -- reads default parameters from an .xlsx file.

Cells are addressed through a named layout, not fixed offsets:

    COSTMAN = {
        "DEFAULTS_BACKEND": "costman.adapters.workbook.WorkbookDefaultsBackend",
        "WORKBOOK_PATH": "/srv/data/maliyet.xlsx",
        "WORKBOOK_LAYOUT": {"vat": "C19"},  # merged over DEFAULT_LAYOUT
    }

Layout keys are "<group>.<key>" for mapping fields ("rates.EUR",
"overhead.0-50"), bare names for scalars ("vat"), and "operations" for the
operations block: a cell range whose first column holds the operation name
and whose following columns hold the costs per batch range, in
BATCH_RANGES order.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from costman.adapters.static import FALLBACK_COMMISSION, FALLBACK_VAT
from costman.conf import get_cache, get_costman_settings
from costman.exceptions import MalformedSourceError, SourceUnavailableError
from costman.protocols.sources import DefaultsBackend

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT = {
    "rates.EUR": "B3",
    "rates.USD": "B4",
    "rates.GBP": "B5",
    "fabric.base_price": "E3",
    "fabric.metre_price": "E4",
    "fabric.unit_price": "E5",
    "overhead.0-50": "B8",
    "overhead.51-100": "C9",
    "overhead.101-200": "D10",
    "profit.0-50": "B14",
    "profit.51-100": "C15",
    "profit.101-200": "D16",
    "vat": "B19",
    "commission": "B20",
    "operations": "A30:D36",
}

SCALAR_FALLBACKS = {"vat": FALLBACK_VAT, "commission": FALLBACK_COMMISSION}


def cell_number(value: Any, *, field: str, source: str) -> float | None:
    """Cell value as float; empty cells are None, text that is not a number is malformed."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedSourceError(source, f"{field}: expected a number, got {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return float(text)
    except ValueError as e:
        raise MalformedSourceError(source, f"{field}: expected a number, got {text!r}") from e


class WorkbookDefaultsBackend:
    """DefaultsBackend reading the first (or WORKBOOK_SHEET) sheet of an .xlsx workbook."""

    def __init__(self, path: str | Path | None = None, layout: dict[str, str] | None = None):
        conf = get_costman_settings()
        self.path = Path(path or conf.WORKBOOK_PATH) if (path or conf.WORKBOOK_PATH) else None
        self.layout = {**DEFAULT_LAYOUT, **(conf.WORKBOOK_LAYOUT or {}), **(layout or {})}

    def get_defaults(self) -> dict[str, Any]:
        """
        Return defaults parsed from the workbook.

        Parsed results are cached per file modification time.

        Raises:
            SourceUnavailableError: no path configured, or the file cannot be read
            MalformedSourceError: the file is not a workbook or a cell is not numeric
        """
        if self.path is None:
            raise SourceUnavailableError("workbook", "WORKBOOK_PATH is not configured")
        source = str(self.path)
        try:
            mtime = self.path.stat().st_mtime_ns
        except OSError as e:
            raise SourceUnavailableError(source, f"cannot access workbook: {e}") from e

        cache = get_cache()
        cache_key = self.cache_key(mtime)
        cached = cache.get(cache_key)
        if cached is not None:
            logger.debug("Using cached workbook defaults from %s", source)
            return cached

        defaults = self.parse()
        cache.set(cache_key, defaults, get_costman_settings().DEFAULTS_CACHE_TIMEOUT)
        logger.info("Workbook defaults parsed from %s", source)
        return defaults

    def cache_key(self, mtime: int) -> str:
        """Key covering the file version and every setting that shapes the parsed result."""
        conf = get_costman_settings()
        payload = json.dumps(
            [
                str(self.path),
                mtime,
                conf.WORKBOOK_SHEET,
                self.layout,
                conf.BATCH_RANGES,
                conf.SUPPORTED_CURRENCIES,
                conf.DEFAULT_EXCHANGE_RATES,
            ],
            sort_keys=True,
            default=str,
        )
        return f"costman:workbook:{hashlib.md5(payload.encode('utf-8')).hexdigest()}"

    def parse(self) -> dict[str, Any]:
        source = str(self.path)
        try:
            wb = load_workbook(filename=source, data_only=True)
        except OSError as e:
            raise SourceUnavailableError(source, f"cannot read workbook: {e}") from e
        except Exception as e:
            raise MalformedSourceError(source, f"not a valid .xlsx workbook: {e}") from e

        sheet_name = get_costman_settings().WORKBOOK_SHEET
        try:
            ws = wb[sheet_name] if sheet_name else wb.worksheets[0]
        except (KeyError, IndexError) as e:
            raise MalformedSourceError(source, f"sheet {sheet_name or 0!r} not found") from e
        return self.extract(ws)

    def extract(self, ws) -> dict[str, Any]:
        """Map layout cells of a worksheet to the defaults structure."""
        conf = get_costman_settings()
        source = str(self.path)
        defaults: dict[str, Any] = {
            "rates": {},
            "fabric": {},
            "overhead": {},
            "profit": {},
            "operations": {},
        }

        for name, ref in self.layout.items():
            if name == "operations":
                defaults["operations"] = self._extract_operations(ws, ref, conf.BATCH_RANGES)
                continue
            value = cell_number(ws[ref].value, field=name, source=source)
            group, _, key = name.partition(".")
            if not key:
                defaults[group] = value
            else:
                defaults.setdefault(group, {})[key] = value

        return self._apply_fallbacks(defaults, conf)

    def _extract_operations(self, ws, ref: str, ranges: list[str]) -> dict[str, dict[str, float]]:
        source = str(self.path)
        operations = {}
        for row in ws[ref]:
            name = row[0].value
            if not isinstance(name, str) or not name.strip():
                continue
            name = name.strip()
            operations[name] = {
                range_key: cell_number(cell.value, field=f"operations.{name}.{range_key}", source=source) or 0.0
                for range_key, cell in zip(ranges, row[1:])
            }
        return operations

    def _apply_fallbacks(self, defaults: dict[str, Any], conf) -> dict[str, Any]:
        for currency in conf.SUPPORTED_CURRENCIES:
            rate = defaults["rates"].get(currency)
            if rate is None or rate <= 0:
                fallback = conf.DEFAULT_EXCHANGE_RATES.get(currency)
                logger.warning("Using default exchange rate for %s: %s", currency, fallback)
                defaults["rates"][currency] = fallback

        for group in ("fabric", "overhead", "profit"):
            defaults[group] = {k: 0.0 if v is None else v for k, v in defaults[group].items()}

        for name, fallback in SCALAR_FALLBACKS.items():
            if defaults.get(name) is None:
                logger.warning("Workbook has no %s value, using %s", name, fallback)
                defaults[name] = fallback
        return defaults


# Verify protocol compliance at import time.
if not issubclass(WorkbookDefaultsBackend, DefaultsBackend):
    raise TypeError("WorkbookDefaultsBackend does not implement DefaultsBackend protocol")
