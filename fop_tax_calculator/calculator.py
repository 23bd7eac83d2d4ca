"""Limit tracking, tax liabilities and period aggregation for FOP income."""

from collections import defaultdict
from collections.abc import Iterable
from datetime import date, datetime

from fop_tax_calculator.config import (
    FLAT_TAX,
    FOP_LIMITS,
    MILITARY_LEVY_FIXED,
    MILITARY_LEVY_RATE_G3,
    MONTHLY_ESV,
    PERIOD_MONTHS,
    FopGroup,
    Income,
    LimitStatus,
    Period,
    PeriodSummary,
    TaxBreakdown,
    TransactionBreakdown,
    UserProfile,
)


def limit_usage(group: FopGroup, cumulative_income: float) -> LimitStatus:
    """Return annual ceiling usage; remaining and percent are clamped."""
    ceiling = FOP_LIMITS[FopGroup(group)]
    used = max(cumulative_income, 0.0)
    remaining = max(ceiling - used, 0.0)
    percent_used = min(used / ceiling * 100.0, 100.0) if ceiling > 0 else 0.0
    return LimitStatus(
        ceiling=ceiling,
        used=used,
        remaining=remaining,
        percent_used=percent_used,
    )


def liabilities(
    group: FopGroup,
    tax_rate: float,
    period_income: float,
    months: int,
) -> TaxBreakdown:
    """Return liability components for a period of `months` months.

    Nothing is computed when the period has no positive income. Group 3 pays a
    percentage of income plus a 1% military levy; groups 1 and 2 pay fixed
    monthly amounts and their whole monthly payment, military levy included,
    is multiplied by the number of months for the period total.
    """
    if period_income <= 0:
        return TaxBreakdown()
    group = FopGroup(group)
    social_contribution = MONTHLY_ESV * months
    if group == FopGroup.GROUP_3:
        percent_levy = period_income * tax_rate
        military_levy = period_income * MILITARY_LEVY_RATE_G3
        estimated_tax = percent_levy + military_levy
        return TaxBreakdown(
            percent_levy=percent_levy,
            military_levy=military_levy,
            social_contribution=social_contribution,
            estimated_tax=estimated_tax,
            total_liability=estimated_tax + social_contribution,
        )
    flat_levy = FLAT_TAX[group]
    return TaxBreakdown(
        flat_levy=flat_levy,
        military_levy=MILITARY_LEVY_FIXED,
        social_contribution=social_contribution,
        estimated_tax=flat_levy + MILITARY_LEVY_FIXED,
        total_liability=(flat_levy + MILITARY_LEVY_FIXED + MONTHLY_ESV) * months,
    )


def filter_period(
    incomes: Iterable[Income],
    period: Period,
    today: date | None = None,
) -> list[Income]:
    """Return incomes in the calendar month of `today`, or all for annual period."""
    if period == "year":
        return list(incomes)
    today = today or datetime.now().date()
    return [
        income
        for income in incomes
        if income.date.year == today.year and income.date.month == today.month
    ]


def total_income(incomes: Iterable[Income]) -> float:
    """Sum UAH amounts; unconverted foreign records contribute zero."""
    return sum((income.amount_in_uah for income in incomes), 0.0)


def unconverted_income(incomes: Iterable[Income]) -> dict[str, float]:
    """Sum original amounts of foreign records lacking a UAH equivalent."""
    totals: dict[str, float] = defaultdict(float)
    for income in incomes:
        if income.is_unconverted:
            totals[income.currency] += income.amount
    return dict(totals)


def summarize(
    incomes: Iterable[Income],
    profile: UserProfile,
    period: Period,
    today: date | None = None,
) -> PeriodSummary:
    """Compute dashboard figures for a freshly loaded income list."""
    filtered = filter_period(incomes, period, today)
    income_total = total_income(filtered)
    tax_breakdown = liabilities(
        profile.group,
        profile.tax_rate,
        income_total,
        PERIOD_MONTHS[period],
    )
    return PeriodSummary(
        period=period,
        total_income=income_total,
        tax_breakdown=tax_breakdown,
        net_income=max(income_total - tax_breakdown.total_liability, 0.0),
        limit_status=limit_usage(profile.group, income_total),
        unconverted_income=unconverted_income(filtered),
    )


def transaction_breakdown(income: Income, profile: UserProfile) -> TransactionBreakdown:
    """Return tax estimate and net income attributable to one transaction."""
    amount_uah = income.amount_uah if income.amount_uah is not None else income.amount
    if profile.group == FopGroup.GROUP_3:
        tax_amount = amount_uah * profile.tax_rate + amount_uah * MILITARY_LEVY_RATE_G3
    else:
        tax_amount = FLAT_TAX[FopGroup(profile.group)] + MILITARY_LEVY_FIXED + MONTHLY_ESV
    return TransactionBreakdown(
        amount_uah=amount_uah,
        tax_amount=tax_amount,
        net_income=max(amount_uah - tax_amount, 0.0),
    )
