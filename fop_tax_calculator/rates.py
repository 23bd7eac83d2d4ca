"""NBU exchange-rate lookup helpers."""

import os
from dataclasses import dataclass
from datetime import date, datetime
from urllib.error import URLError

import pandas as pd

from fop_tax_calculator.config import FOREIGN_CURRENCIES
from fop_tax_calculator.errors import RateUnavailableError


@dataclass(frozen=True, slots=True)
class NbuRate:
    """One published NBU rate."""

    code: str
    rate: float
    date: date


class ExchangeRateResolver:
    """Singleton class resolving UAH rates from the NBU statistics service."""

    _url_env_var_name = "FOP_TAX_CALCULATOR_NBU_URL"
    _default_url = "https://bank.gov.ua/NBUStatService/v1/statdirectory/exchange"

    @classmethod
    def base_url(cls) -> str:
        """Return NBU exchange endpoint URL."""
        return os.environ.get(cls._url_env_var_name) or cls._default_url

    @classmethod
    def get_exchange_rate(cls, currency: str, date_: date) -> float:
        """Return UAH per one unit of currency published for the date."""
        if currency not in FOREIGN_CURRENCIES:
            raise RateUnavailableError(f"No NBU rate lookup for {currency}.")
        url = f"{cls.base_url()}?valcode={currency}&date={date_.strftime('%Y%m%d')}&json"
        rates = cls._fetch_rates(url)
        if not rates:
            raise RateUnavailableError(f"NBU rate not found for {currency} on {date_}.")
        return rates[0].rate

    @classmethod
    def get_today_rates(cls, codes: tuple[str, ...] = FOREIGN_CURRENCIES) -> list[NbuRate]:
        """Return today's NBU rates, skipping currencies that cannot be fetched."""
        results: list[NbuRate] = []
        for code in codes:
            try:
                rates = cls._fetch_rates(f"{cls.base_url()}?valcode={code}&json")
            except RateUnavailableError:
                continue
            if rates:
                results.append(rates[0])
        return results

    @classmethod
    def _fetch_rates(cls, url: str) -> list[NbuRate]:
        """Fetch and parse NBU JSON rows, translating transport errors."""
        try:
            raw = pd.read_json(url, dtype=False)
        except (OSError, URLError, ValueError) as error:
            raise RateUnavailableError(f"NBU API error: {error}") from error
        if raw.empty or "rate" not in raw.columns:
            return []
        rates: list[NbuRate] = []
        for row in raw.to_dict(orient="records"):
            rate = cls._try_to_cast_to_float(row.get("rate"))
            if rate is None or rate <= 0.0:
                continue
            rates.append(
                NbuRate(
                    code=str(row.get("cc", "")),
                    rate=rate,
                    date=cls._parse_exchange_date(row.get("exchangedate")),
                )
            )
        return rates

    @staticmethod
    def _try_to_cast_to_float(value: object) -> float | None:
        """Convert NBU rate value to float."""
        try:
            return float(str(value).replace(",", "."))
        except (ValueError, TypeError):
            return None

    @staticmethod
    def _parse_exchange_date(value: object) -> date:
        """Parse NBU `dd.mm.yyyy` exchange date, defaulting to today."""
        try:
            return datetime.strptime(str(value), "%d.%m.%Y").date()
        except ValueError:
            return datetime.now().date()
