"""Income entry and transaction-list helpers."""

import math
from collections.abc import Callable, Iterable
from datetime import date, datetime
from typing import cast
from uuid import uuid4

from fop_tax_calculator.config import (
    CURRENCIES,
    LOCAL_CURRENCY,
    AppLogs,
    Currency,
    Income,
    IncomeSource,
)
from fop_tax_calculator.errors import IncomeValidationError, RateUnavailableError
from fop_tax_calculator.rates import ExchangeRateResolver
from fop_tax_calculator.validators import parse_amount

RateLookup = Callable[[str, date], float]


def new_id() -> str:
    """Return short random record identifier."""
    return uuid4().hex[:9]


def format_warning(log_date: date, action: str, detail: str) -> str:
    """Format one user-visible warning line."""
    return (
        f"[\x1b[95m{log_date.strftime('%m/%d/%Y')}\x1b[0m] "
        f"[\x1b[33m{action}\x1b[0m] {detail}"
    )


def build_income(
    amount: object,
    currency: str,
    date_: date | str,
    description: str = "",
    *,
    income_id: str | None = None,
    source: IncomeSource | None = None,
    original_document: str | None = None,
    client_or_project: str | None = None,
    comment: str | None = None,
    category: str | None = None,
    attachments: Iterable[str] = (),
    rate_lookup: RateLookup | None = None,
    logs: AppLogs | None = None,
) -> Income:
    """Validate form input and build an income record with its UAH equivalent.

    Invalid amount, currency or date raise `IncomeValidationError` before any
    conversion is attempted. A failed NBU lookup is not fatal: the record is
    built without `amount_uah` and a warning is appended to `logs`.
    """
    try:
        numeric_amount = parse_amount(amount)
    except ValueError as error:
        raise IncomeValidationError("Please enter a valid amount.") from error
    if not math.isfinite(numeric_amount):
        raise IncomeValidationError("Please enter a valid amount.")
    if currency not in CURRENCIES:
        raise IncomeValidationError(f"Unsupported currency: {currency}.")
    try:
        income_date = date_ if isinstance(date_, date) else date.fromisoformat(str(date_).strip())
    except ValueError as error:
        raise IncomeValidationError("Date must be in YYYY-MM-DD format.") from error

    amount_uah: float | None
    if currency == LOCAL_CURRENCY:
        amount_uah = numeric_amount
    else:
        lookup = rate_lookup or ExchangeRateResolver.get_exchange_rate
        try:
            amount_uah = numeric_amount * lookup(currency, income_date)
        except RateUnavailableError:
            amount_uah = None
            if logs is not None:
                logs.add(
                    datetime.now().date(),
                    format_warning(
                        income_date,
                        "NBU rate unavailable",
                        f"Could not fetch the NBU rate for {currency}. The transaction is "
                        "saved without a UAH amount; you can add the rate manually later.",
                    ),
                )

    return Income(
        id=income_id or new_id(),
        amount=numeric_amount,
        currency=cast(Currency, currency),
        date=income_date,
        description=description.strip(),
        source=source or ("ai-scan" if original_document else "manual"),
        amount_uah=amount_uah,
        original_document=original_document or None,
        client_or_project=(client_or_project or "").strip() or None,
        comment=(comment or "").strip() or None,
        category=(category or "").strip() or None,
        attachments=tuple(attachments),
    )


def filter_transactions(
    incomes: Iterable[Income],
    month: str | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    descending: bool = True,
) -> list[Income]:
    """Filter by `YYYY-MM` month and inclusive date bounds, then sort by amount."""
    filtered = [
        income
        for income in incomes
        if (month is None or income.month_key == month)
        and (from_date is None or income.date >= from_date)
        and (to_date is None or income.date <= to_date)
    ]
    return sorted(filtered, key=lambda income: income.amount, reverse=descending)


def month_options(incomes: Iterable[Income]) -> list[str]:
    """Return sorted distinct `YYYY-MM` keys present in incomes."""
    return sorted({income.month_key for income in incomes})

