"""Core tax constants and data models shared by the calculator, store and UI."""

import math
from bisect import bisect_right
from dataclasses import dataclass, field
from datetime import date
from enum import IntEnum
from typing import Any, Literal, cast

import pandas as pd

from fop_tax_calculator.validators import clean_number, parse_amount

Currency = Literal["UAH", "USD", "EUR"]
IncomeSource = Literal["manual", "ai-scan"]
Period = Literal["month", "year"]
ChatRole = Literal["user", "assistant"]

CURRENCIES: tuple[Currency, ...] = ("UAH", "USD", "EUR")
FOREIGN_CURRENCIES: tuple[Currency, ...] = ("USD", "EUR")
LOCAL_CURRENCY: Currency = "UAH"


class FopGroup(IntEnum):
    """FOP registration group."""

    GROUP_1 = 1
    GROUP_2 = 2
    GROUP_3 = 3


TAX_RATE_5 = 0.05
TAX_RATE_3 = 0.03
TAX_RATES = (TAX_RATE_5, TAX_RATE_3)

# 2026 annual income ceilings, UAH.
FOP_LIMITS: dict[FopGroup, float] = {
    FopGroup.GROUP_1: 1_444_049.0,
    FopGroup.GROUP_2: 7_211_598.0,
    FopGroup.GROUP_3: 10_091_049.0,
}

# 2026 monthly payments, UAH.
MONTHLY_ESV = 1902.34
MILITARY_LEVY_FIXED = 864.70
MILITARY_LEVY_RATE_G3 = 0.01
FLAT_TAX: dict[FopGroup, float] = {
    FopGroup.GROUP_1: 332.80,
    FopGroup.GROUP_2: 1729.00,
}

PERIOD_MONTHS: dict[Period, int] = {"month": 1, "year": 12}
LIMIT_ALERT_PERCENT = 80.0


def _optional_text(value: object) -> str | None:
    """Return stripped text or None for empty values."""
    text = str(value).strip() if value is not None else ""
    return text or None


def _optional_number(value: object) -> float | None:
    """Return stored number, or None for empty and unparsable values."""
    if value is None or value == "":
        return None
    try:
        number = parse_amount(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


@dataclass(frozen=True, slots=True)
class Income:
    """One income transaction with its optional UAH equivalent."""

    id: str
    amount: float
    currency: Currency
    date: date
    description: str = ""
    source: IncomeSource = "manual"
    amount_uah: float | None = None
    original_document: str | None = None
    client_or_project: str | None = None
    comment: str | None = None
    category: str | None = None
    attachments: tuple[str, ...] = ()

    @property
    def amount_in_uah(self) -> float:
        """Return UAH amount counted into totals, zero when unconverted."""
        if self.amount_uah is not None:
            return self.amount_uah
        return self.amount if self.currency == LOCAL_CURRENCY else 0.0

    @property
    def is_unconverted(self) -> bool:
        """Return whether a foreign-currency record lacks a UAH equivalent."""
        return self.currency != LOCAL_CURRENCY and self.amount_uah is None

    @property
    def month_key(self) -> str:
        """Return `YYYY-MM` key used by month filters."""
        return self.date.strftime("%Y-%m")

    def to_entry_data(self) -> dict[str, Any]:
        """Build document payload, omitting absent optional fields."""
        payload: dict[str, Any] = {
            "id": self.id,
            "amount": self.amount,
            "currency": self.currency,
            "date": self.date.isoformat(),
            "description": self.description,
            "source": self.source,
        }
        if self.amount_uah is not None:
            payload["amount_uah"] = self.amount_uah
        if self.original_document:
            payload["original_document"] = self.original_document
        if self.client_or_project:
            payload["client_or_project"] = self.client_or_project
        if self.comment:
            payload["comment"] = self.comment
        if self.category:
            payload["category"] = self.category
        if self.attachments:
            payload["attachments"] = list(self.attachments)
        return payload

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "Income":
        """Build record from stored payload, cleaning numeric fields."""
        raw_date = data["date"]
        return cls(
            id=str(data["id"]),
            amount=clean_number(data.get("amount")),
            currency=cast(Currency, data.get("currency", LOCAL_CURRENCY)),
            date=raw_date if isinstance(raw_date, date) else date.fromisoformat(str(raw_date)),
            description=str(data.get("description") or ""),
            source=cast(IncomeSource, data.get("source", "manual")),
            amount_uah=_optional_number(data.get("amount_uah")),
            original_document=_optional_text(data.get("original_document")),
            client_or_project=_optional_text(data.get("client_or_project")),
            comment=_optional_text(data.get("comment")),
            category=_optional_text(data.get("category")),
            attachments=tuple(data.get("attachments") or ()),
        )


@dataclass(frozen=True, slots=True)
class UserProfile:
    """Per-user tax profile."""

    name: str = "Entrepreneur"
    email: str | None = None
    photo_url: str | None = None
    group: FopGroup = FopGroup.GROUP_3
    tax_rate: float = TAX_RATE_5
    has_employees: bool = False
    is_onboarded: bool = False

    @property
    def limit(self) -> float:
        """Return annual income ceiling for the profile group."""
        return FOP_LIMITS[self.group]

    def to_entry_data(self) -> dict[str, Any]:
        """Build profile payload for persisted document."""
        payload: dict[str, Any] = {
            "name": self.name,
            "group": int(self.group),
            "tax_rate": float(self.tax_rate),
            "has_employees": self.has_employees,
            "is_onboarded": self.is_onboarded,
        }
        if self.email:
            payload["email"] = self.email
        if self.photo_url:
            payload["photo_url"] = self.photo_url
        return payload

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "UserProfile":
        """Build profile from stored payload with defaults for missing keys."""
        default = cls()
        return cls(
            name=str(data.get("name") or default.name),
            email=_optional_text(data.get("email")),
            photo_url=_optional_text(data.get("photo_url")),
            group=FopGroup(int(data.get("group", default.group))),
            tax_rate=float(data.get("tax_rate", default.tax_rate)),
            has_employees=bool(data.get("has_employees", default.has_employees)),
            is_onboarded=bool(data.get("is_onboarded", default.is_onboarded)),
        )


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One advisor chat message."""

    id: str
    role: ChatRole
    content: str
    timestamp: int

    def to_entry_data(self) -> dict[str, Any]:
        """Build message payload."""
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "ChatMessage":
        """Build message from stored payload."""
        return cls(
            id=str(data["id"]),
            role=cast(ChatRole, data["role"]),
            content=str(data.get("content", "")),
            timestamp=int(data.get("timestamp", 0)),
        )


@dataclass(frozen=True, slots=True)
class Chat:
    """Advisor conversation."""

    id: str
    title: str
    messages: tuple[ChatMessage, ...] = ()
    timestamp: int = 0

    def to_entry_data(self) -> dict[str, Any]:
        """Build chat payload."""
        return {
            "id": self.id,
            "title": self.title,
            "messages": [message.to_entry_data() for message in self.messages],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "Chat":
        """Build chat from stored payload."""
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            messages=tuple(ChatMessage.from_entry_data(x) for x in data.get("messages") or ()),
            timestamp=int(data.get("timestamp") or 0),
        )


@dataclass(frozen=True, slots=True)
class LimitStatus:
    """Annual ceiling usage."""

    ceiling: float
    used: float
    remaining: float
    percent_used: float

    @property
    def is_over_limit(self) -> bool:
        """Return whether usage exceeds the ceiling."""
        return self.used > self.ceiling

    def to_dict(self) -> dict[str, float]:
        """Serialize to report-row labels and numeric values."""
        return {
            "Limit": self.ceiling,
            "Limit Used": self.used,
            "Limit Remaining": self.remaining,
            "Limit Used %": self.percent_used,
        }


@dataclass(frozen=True, slots=True)
class TaxBreakdown:
    """Liability components for one period."""

    flat_levy: float = 0.0
    percent_levy: float = 0.0
    military_levy: float = 0.0
    social_contribution: float = 0.0
    estimated_tax: float = 0.0
    total_liability: float = 0.0

    def to_dict(self) -> dict[str, float]:
        """Serialize to report-row labels and numeric values."""
        return {
            "Single Tax (Flat)": self.flat_levy,
            "Single Tax (Percent)": self.percent_levy,
            "Military Levy": self.military_levy,
            "ESV": self.social_contribution,
            "Estimated Tax": self.estimated_tax,
            "Total Liability": self.total_liability,
        }


@dataclass(frozen=True, slots=True)
class TransactionBreakdown:
    """Tax view of a single transaction."""

    amount_uah: float
    tax_amount: float
    net_income: float


@dataclass(frozen=True)
class PeriodSummary:
    """Dashboard figures for one reporting period."""

    period: Period
    total_income: float
    tax_breakdown: TaxBreakdown
    net_income: float
    limit_status: LimitStatus
    unconverted_income: dict[str, float] = field(default_factory=dict)

    @property
    def limit_alert(self) -> bool:
        """Return whether limit usage is above the alert threshold."""
        return (
            self.limit_status.percent_used > LIMIT_ALERT_PERCENT
            or self.limit_status.is_over_limit
        )

    def to_dict(self) -> dict[str, float]:
        """Serialize summary to report-row labels and numeric values."""
        return {
            "Total Income": self.total_income,
            **self.tax_breakdown.to_dict(),
            "Net Income": self.net_income,
            **self.limit_status.to_dict(),
            **{
                f"Unconverted {currency}": amount
                for currency, amount in sorted(self.unconverted_income.items())
            },
        }

    def to_dataframe(self) -> pd.DataFrame:
        """Convert summary to one-column dataframe with formatted values."""
        column = "Month" if self.period == "month" else "Year"
        return (
            pd.Series(self.to_dict(), name=column, dtype=float)
            .map(lambda value: f"{value:,.2f}")
            .to_frame()
        )


class AppLogs(list[str]):
    """User-visible log lines kept in ascending date order."""

    def __init__(self) -> None:
        super().__init__()
        self._dates: list[date] = []

    def add(self, log_date: date, text: str) -> None:
        """Insert one line after all lines with the same or earlier date."""
        index = bisect_right(self._dates, log_date)
        self._dates.insert(index, log_date)
        self.insert(index, text)

    def clear(self) -> None:
        """Drop all lines."""
        super().clear()
        self._dates.clear()
