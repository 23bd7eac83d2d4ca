"""Tests for NBU exchange-rate lookup."""

import os
from datetime import date
from unittest import TestCase
from unittest.mock import patch
from urllib.error import HTTPError, URLError

import pandas as pd

from fop_tax_calculator import rates
from fop_tax_calculator.errors import RateUnavailableError
from fop_tax_calculator.rates import ExchangeRateResolver


def _nbu_frame(code: str = "USD", rate: object = 41.25, day: str = "10.03.2026") -> pd.DataFrame:
    """Build dataframe shaped like an NBU JSON answer."""
    return pd.DataFrame(
        [{"r030": 840, "txt": "Долар США", "rate": rate, "cc": code, "exchangedate": day}]
    )


class TestExchangeRateResolver(TestCase):
    """Test NBU rate resolution and error translation."""

    def test_get_exchange_rate_builds_dated_url_and_returns_rate(self) -> None:
        """Test dated request URL and returned rate."""
        with patch.object(rates.pd, "read_json", return_value=_nbu_frame()) as read_json:
            rate = ExchangeRateResolver.get_exchange_rate("USD", date(2026, 3, 10))
        self.assertEqual(rate, 41.25)
        read_json.assert_called_once_with(
            "https://bank.gov.ua/NBUStatService/v1/statdirectory/exchange"
            "?valcode=USD&date=20260310&json",
            dtype=False,
        )

    def test_base_url_uses_env_override(self) -> None:
        """Test endpoint resolves from environment override."""
        with patch.dict(os.environ, {"FOP_TAX_CALCULATOR_NBU_URL": "http://nbu.local/x"}):
            self.assertEqual(ExchangeRateResolver.base_url(), "http://nbu.local/x")

    def test_get_exchange_rate_rejects_local_currency(self) -> None:
        """Test UAH has no NBU lookup."""
        with patch.object(rates.pd, "read_json") as read_json:
            with self.assertRaises(RateUnavailableError):
                ExchangeRateResolver.get_exchange_rate("UAH", date(2026, 3, 10))
        read_json.assert_not_called()

    def test_get_exchange_rate_raises_on_empty_answer(self) -> None:
        """Test empty NBU answer means rate unavailable."""
        with patch.object(rates.pd, "read_json", return_value=pd.DataFrame()):
            with self.assertRaises(RateUnavailableError):
                ExchangeRateResolver.get_exchange_rate("EUR", date(2026, 3, 10))

    def test_get_exchange_rate_skips_non_positive_rate(self) -> None:
        """Test zero rate is treated as missing."""
        with patch.object(rates.pd, "read_json", return_value=_nbu_frame(rate=0)):
            with self.assertRaises(RateUnavailableError):
                ExchangeRateResolver.get_exchange_rate("USD", date(2026, 3, 10))

    def test_get_exchange_rate_translates_transport_errors(self) -> None:
        """Test HTTP and connection failures raise domain error."""
        errors = [
            HTTPError("url", 500, "boom", {}, None),  # type: ignore[arg-type]
            URLError("down"),
            ValueError("bad json"),
        ]
        for error in errors:
            with patch.object(rates.pd, "read_json", side_effect=error):
                with self.assertRaises(RateUnavailableError):
                    ExchangeRateResolver.get_exchange_rate("USD", date(2026, 3, 10))

    def test_get_today_rates_skips_failed_currencies(self) -> None:
        """Test today's rates keep successful lookups only."""

        def _read_json(url: str, **_kwargs: object) -> pd.DataFrame:
            if "valcode=USD" in url:
                return _nbu_frame("USD", "41,5", "19.10.2026")
            raise URLError("down")

        with patch.object(rates.pd, "read_json", side_effect=_read_json):
            today = ExchangeRateResolver.get_today_rates()
        self.assertEqual(len(today), 1)
        self.assertEqual(today[0].code, "USD")
        self.assertEqual(today[0].rate, 41.5)
        self.assertEqual(today[0].date, date(2026, 10, 19))
