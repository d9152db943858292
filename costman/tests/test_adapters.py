"""Tests for Costman adapters."""

from unittest.mock import MagicMock

import pytest
import requests
from openpyxl import Workbook, load_workbook

from costman.adapters.exchange_rate import RATES_CACHE_KEY, ExchangeRateApiBackend
from costman.adapters.static import StaticDefaultsBackend, StaticRatesBackend, fallback_defaults
from costman.adapters.workbook import WorkbookDefaultsBackend, cell_number
from costman.conf import get_cache
from costman.exceptions import MalformedSourceError, SourceUnavailableError
from costman.protocols import DefaultsBackend, RatesBackend


# ═══════════════════════════════════════════════════════════════════
# Static
# ═══════════════════════════════════════════════════════════════════


class TestStaticBackends:
    def test_protocols(self):
        assert isinstance(StaticDefaultsBackend(), DefaultsBackend)
        assert isinstance(StaticRatesBackend(), RatesBackend)

    def test_configured_defaults(self, costman_settings, defaults):
        assert StaticDefaultsBackend().get_defaults() == defaults

    def test_returns_copy(self, costman_settings):
        backend = StaticDefaultsBackend()
        backend.get_defaults()["rates"]["EUR"] = 1
        assert backend.get_defaults()["rates"]["EUR"] == 38.50

    def test_fallback(self):
        data = StaticDefaultsBackend().get_defaults()
        assert data == fallback_defaults()
        assert data["rates"] == {"EUR": 37.99, "USD": 33.99, "GBP": 44.93}
        assert data["vat"] == 20
        assert data["commission"] == 5
        assert data["overhead"] == {"0-50": 0, "51-100": 0, "101-200": 0}

    def test_static_rates(self):
        assert StaticRatesBackend().get_rates() == {"EUR": 37.99, "USD": 33.99, "GBP": 44.93}


# ═══════════════════════════════════════════════════════════════════
# Workbook
# ═══════════════════════════════════════════════════════════════════


def _write_workbook(path, **cells):
    wb = Workbook()
    ws = wb.active
    ws.title = "Maliyet"
    values = {
        "B3": 38.50, "B4": 34.20, "B5": 45.10,
        "E3": 4.50, "E4": 2.00, "E5": 0,
        "B8": 10, "C9": 8, "D10": 5,
        "B14": 20, "C15": 15, "D16": 10,
        "B19": 20, "B20": 5,
        "A30": "Kesim", "B30": 770, "C30": 1155, "D30": 1540,
        "A31": "Dikiş", "B31": 1925, "C31": 2887.5, "D31": 3850,
        "A32": "Ütü", "B32": None, "C32": 100, "D32": None,
    }
    values.update(cells)
    for ref, value in values.items():
        ws[ref] = value
    wb.save(path)
    return path


@pytest.fixture
def workbook_path(tmp_path):
    return _write_workbook(tmp_path / "maliyet.xlsx")


class TestWorkbookBackend:
    def test_protocol(self, workbook_path):
        assert isinstance(WorkbookDefaultsBackend(workbook_path), DefaultsBackend)

    def test_extracts_layout(self, workbook_path):
        data = WorkbookDefaultsBackend(workbook_path).get_defaults()
        assert data["rates"] == {"EUR": 38.50, "USD": 34.20, "GBP": 45.10}
        assert data["fabric"] == {"base_price": 4.5, "metre_price": 2.0, "unit_price": 0.0}
        assert data["overhead"] == {"0-50": 10, "51-100": 8, "101-200": 5}
        assert data["profit"] == {"0-50": 20, "51-100": 15, "101-200": 10}
        assert data["vat"] == 20
        assert data["commission"] == 5

    def test_operations_block(self, workbook_path):
        operations = WorkbookDefaultsBackend(workbook_path).get_defaults()["operations"]
        assert list(operations) == ["Kesim", "Dikiş", "Ütü"]
        assert operations["Dikiş"] == {"0-50": 1925, "51-100": 2887.5, "101-200": 3850}
        assert operations["Ütü"] == {"0-50": 0, "51-100": 100, "101-200": 0}

    def test_path_from_settings(self, settings, workbook_path):
        settings.COSTMAN = {**settings.COSTMAN, "WORKBOOK_PATH": str(workbook_path)}
        assert WorkbookDefaultsBackend().get_defaults()["vat"] == 20

    def test_layout_override(self, tmp_path):
        path = _write_workbook(tmp_path / "custom.xlsx", C19=8)
        backend = WorkbookDefaultsBackend(path, layout={"vat": "C19"})
        assert backend.get_defaults()["vat"] == 8

    def test_named_sheet(self, settings, workbook_path):
        settings.COSTMAN = {**settings.COSTMAN, "WORKBOOK_SHEET": "Maliyet"}
        assert WorkbookDefaultsBackend(workbook_path).get_defaults()["commission"] == 5

    def test_missing_sheet(self, settings, workbook_path):
        settings.COSTMAN = {**settings.COSTMAN, "WORKBOOK_SHEET": "Yok"}
        with pytest.raises(MalformedSourceError):
            WorkbookDefaultsBackend(workbook_path).get_defaults()

    def test_numeric_text_cells(self, tmp_path):
        path = _write_workbook(tmp_path / "text.xlsx", B19="18")
        assert WorkbookDefaultsBackend(path).get_defaults()["vat"] == 18.0

    def test_fallbacks(self, tmp_path, caplog):
        """Empty rate, VAT and commission cells use the configured defaults."""
        path = _write_workbook(tmp_path / "empty.xlsx", B4=None, B19=None, B20=None, B8=None)
        data = WorkbookDefaultsBackend(path).get_defaults()
        assert data["rates"]["USD"] == 33.99
        assert data["vat"] == 20
        assert data["commission"] == 5
        assert data["overhead"]["0-50"] == 0
        assert "Using default exchange rate for USD" in caplog.text

    def test_zero_vat_kept(self, tmp_path):
        path = _write_workbook(tmp_path / "zero.xlsx", B19=0)
        assert WorkbookDefaultsBackend(path).get_defaults()["vat"] == 0

    def test_text_in_numeric_cell(self, tmp_path):
        path = _write_workbook(tmp_path / "bad.xlsx", B19="yirmi")
        with pytest.raises(MalformedSourceError) as exc:
            WorkbookDefaultsBackend(path).get_defaults()
        assert "vat" in exc.value.data["reason"]

    def test_no_path(self):
        with pytest.raises(SourceUnavailableError) as exc:
            WorkbookDefaultsBackend().get_defaults()
        assert exc.value.code == "SOURCE_UNAVAILABLE"

    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceUnavailableError) as exc:
            WorkbookDefaultsBackend(tmp_path / "yok.xlsx").get_defaults()
        assert not isinstance(exc.value, MalformedSourceError)

    def test_not_a_workbook(self, tmp_path):
        path = tmp_path / "maliyet.xlsx"
        path.write_text("not a workbook")
        with pytest.raises(MalformedSourceError):
            WorkbookDefaultsBackend(path).get_defaults()

    def test_layout_setting_change_not_served_stale(self, settings, tmp_path):
        path = _write_workbook(tmp_path / "layout.xlsx", C19=8)
        assert WorkbookDefaultsBackend(path).get_defaults()["vat"] == 20
        settings.COSTMAN = {**settings.COSTMAN, "WORKBOOK_LAYOUT": {"vat": "C19"}}
        assert WorkbookDefaultsBackend(path).get_defaults()["vat"] == 8

    def test_sheet_setting_change_not_served_stale(self, settings, tmp_path):
        path = tmp_path / "sheets.xlsx"
        _write_workbook(path)
        wb = load_workbook(path)
        wb.create_sheet("Yedek")["B19"] = 10
        wb["Yedek"]["B20"] = 2
        wb.save(path)

        assert WorkbookDefaultsBackend(path).get_defaults()["vat"] == 20
        settings.COSTMAN = {**settings.COSTMAN, "WORKBOOK_SHEET": "Yedek"}
        data = WorkbookDefaultsBackend(path).get_defaults()
        assert data["vat"] == 10
        assert data["commission"] == 2

    def test_cached_until_modified(self, workbook_path, monkeypatch):
        backend = WorkbookDefaultsBackend(workbook_path)
        backend.get_defaults()
        parse = MagicMock(side_effect=AssertionError("parsed twice"))
        monkeypatch.setattr(backend, "parse", parse)
        assert backend.get_defaults()["vat"] == 20
        parse.assert_not_called()


class TestCellNumber:
    @pytest.mark.parametrize("value,expected", [(None, None), ("", None), (5, 5.0), (" 2.5 ", 2.5)])
    def test_values(self, value, expected):
        assert cell_number(value, field="vat", source="test") == expected

    def test_boolean_rejected(self):
        with pytest.raises(MalformedSourceError):
            cell_number(True, field="vat", source="test")


# ═══════════════════════════════════════════════════════════════════
# Exchange rate API
# ═══════════════════════════════════════════════════════════════════


def _response(payload=None, error=None):
    response = MagicMock()
    if error is not None:
        response.raise_for_status.side_effect = error
    response.json.return_value = payload
    return response


@pytest.fixture
def api_settings(settings):
    settings.COSTMAN = {**settings.COSTMAN, "EXCHANGE_API_KEY": "test-key"}
    return settings


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session, headers={})


SUCCESS = {
    "result": "success",
    "base_code": "TRY",
    "conversion_rates": {"TRY": 1, "EUR": 0.015625, "USD": 0.03125, "GBP": 0.0078125},
}


class TestExchangeRateBackend:
    def test_protocol(self, session):
        assert isinstance(ExchangeRateApiBackend(session), RatesBackend)

    def test_inverts_quotes(self, api_settings, session):
        session.get.return_value = _response(SUCCESS)
        rates = ExchangeRateApiBackend(session).get_rates()
        assert rates == {"EUR": 64.0, "USD": 32.0, "GBP": 128.0}

    def test_request(self, api_settings, session):
        session.get.return_value = _response(SUCCESS)
        ExchangeRateApiBackend(session).get_rates()
        url = session.get.call_args[0][0]
        assert url == "https://v6.exchangerate-api.com/v6/test-key/latest/TRY"
        assert session.get.call_args[1]["timeout"] == 10.0
        assert session.headers["Accept"] == "application/json"

    def test_cached(self, api_settings, session):
        session.get.return_value = _response(SUCCESS)
        backend = ExchangeRateApiBackend(session)
        backend.get_rates()
        backend.get_rates()
        assert session.get.call_count == 1
        assert get_cache().get(RATES_CACHE_KEY)["EUR"] == 64.0

    def test_no_api_key(self, session):
        assert ExchangeRateApiBackend(session).get_rates() == {"EUR": 37.99, "USD": 33.99, "GBP": 44.93}
        session.get.assert_not_called()

    def test_retries_then_succeeds(self, api_settings, session):
        session.get.side_effect = [
            requests.ConnectionError("down"),
            _response(error=requests.HTTPError("502")),
            _response(SUCCESS),
        ]
        assert ExchangeRateApiBackend(session).get_rates()["EUR"] == 64.0
        assert session.get.call_count == 3

    def test_all_attempts_fail_falls_back(self, api_settings, session, caplog):
        session.get.side_effect = requests.Timeout("slow")
        rates = ExchangeRateApiBackend(session).get_rates()
        assert rates == {"EUR": 37.99, "USD": 33.99, "GBP": 44.93}
        assert session.get.call_count == 3
        assert "All 3 attempts failed" in caplog.text
        assert get_cache().get(RATES_CACHE_KEY) is None

    def test_all_attempts_fail_without_fallback(self, api_settings, session):
        api_settings.COSTMAN = {**api_settings.COSTMAN, "RATES_FALLBACK": False}
        session.get.side_effect = requests.ConnectionError("down")
        with pytest.raises(SourceUnavailableError) as exc:
            ExchangeRateApiBackend(session).get_rates()
        assert exc.value.source == "exchange-rate-api"

    def test_invalid_json_retried(self, api_settings, session):
        bad = _response()
        bad.json.side_effect = ValueError("no json")
        session.get.side_effect = [bad, _response(SUCCESS)]
        assert ExchangeRateApiBackend(session).get_rates()["GBP"] == 128.0

    def test_api_error_payload(self, api_settings, session):
        api_settings.COSTMAN = {**api_settings.COSTMAN, "RATES_FALLBACK": False}
        session.get.return_value = _response({"result": "error", "error-type": "invalid-key"})
        with pytest.raises(SourceUnavailableError) as exc:
            ExchangeRateApiBackend(session).get_rates()
        assert exc.value.data["reason"] == "invalid-key"

    def test_malformed_payload(self, api_settings, session):
        api_settings.COSTMAN = {**api_settings.COSTMAN, "RATES_FALLBACK": False}
        session.get.return_value = _response(["EUR", 0.025])
        with pytest.raises(MalformedSourceError):
            ExchangeRateApiBackend(session).get_rates()

    def test_malformed_payload_falls_back(self, api_settings, session):
        session.get.return_value = _response({"result": "success"})
        assert ExchangeRateApiBackend(session).get_rates()["EUR"] == 37.99

    def test_missing_currency_uses_default(self, api_settings, session):
        payload = {"result": "success", "rates": {"EUR": 0.015625, "USD": 0}}
        session.get.return_value = _response(payload)
        rates = ExchangeRateApiBackend(session).get_rates()
        assert rates == {"EUR": 64.0, "USD": 33.99, "GBP": 44.93}
