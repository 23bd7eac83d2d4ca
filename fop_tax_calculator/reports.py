"""Book-of-income export and AI report helpers."""

from collections.abc import Sequence
from datetime import date
from pathlib import Path

import pandas as pd

from fop_tax_calculator.calculator import summarize
from fop_tax_calculator.config import Income, UserProfile

DECLARATION_REPORT = "Декларація_ФОП"
ESV_REPORT = "Звіт_ЄСВ"
REPORT_TYPES = {
    DECLARATION_REPORT: "Single tax payer declaration",
    ESV_REPORT: "ESV report (Appendix 1)",
}
INCOME_BOOK_FILENAME = "book_of_income.csv"


def income_book_csv(incomes: Sequence[Income]) -> str:
    """Render incomes as book-of-income CSV text."""
    df = pd.DataFrame(
        [
            {
                "ID": income.id,
                "Date": income.date.isoformat(),
                "Amount": income.amount,
                "Currency": income.currency,
                "Description": income.description,
                "Source": income.source,
            }
            for income in incomes
        ],
        columns=["ID", "Date", "Amount", "Currency", "Description", "Source"],
    )
    return df.to_csv(index=False, lineterminator="\n")


def report_context(report_type: str, profile: UserProfile, incomes: Sequence[Income]) -> str:
    """Build plain-text data summary sent to the report generator."""
    summary = summarize(incomes, profile, "year")
    return "\n".join(
        [
            f"Тип звіту: {report_type}",
            f"ПІБ ФОП: {profile.name}",
            f"Група: {int(profile.group)}",
            f"Загальний дохід: {summary.total_income:.2f} UAH",
            f"Податок до сплати: {summary.tax_breakdown.estimated_tax:.2f} UAH",
            f"ЄСВ: {summary.tax_breakdown.social_contribution:.2f} UAH",
            f"Кількість операцій: {len(incomes)}",
        ]
    )


def report_filename(report_type: str, today: date) -> str:
    """Return download file name for a generated report."""
    return f"{report_type}_{today.isoformat()}.txt"


def write_report(directory: Path, filename: str, content: str) -> Path:
    """Write report text into directory and return file path."""
    directory = directory.expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / filename
    path.write_text(content, encoding="utf-8")
    return path
