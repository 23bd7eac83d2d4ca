"""Shared input parsers and validators used by income entry and UI prompts."""

import re
from collections.abc import Callable
from datetime import date

PromptValidator = Callable[[str], bool | str]

_WHITESPACE = re.compile(r"[\s ]")


def parse_amount(raw: object) -> float:
    """Parse user amount text: spaces dropped, comma accepted as decimal separator."""
    if isinstance(raw, bool):
        raise ValueError(f"Invalid amount: {raw!r}")
    if isinstance(raw, (int, float)):
        return float(raw)
    text = _WHITESPACE.sub("", str(raw)).replace(",", ".", 1)
    if not text:
        raise ValueError("Amount is required.")
    return float(text)


def clean_number(value: object) -> float:
    """Coerce stored numeric value to float, falling back to zero."""
    if not value:
        return 0.0
    try:
        return parse_amount(value)
    except ValueError:
        return 0.0


def validate_amount(raw: str) -> bool | str:
    """Validate non-empty numeric amount input."""
    if not raw.strip():
        return "Amount is required."
    try:
        parse_amount(raw)
    except ValueError:
        return "Amount must be a number."
    return True


def validate_date(raw: str) -> bool | str:
    """Validate ISO `YYYY-MM-DD` date input."""
    if not (text := raw.strip()):
        return "Date is required."
    try:
        date.fromisoformat(text)
    except ValueError:
        return "Date must be in YYYY-MM-DD format."
    return True


def validate_optional_date(raw: str) -> bool | str:
    """Validate empty or ISO date input."""
    if not raw.strip():
        return True
    return validate_date(raw)


def validate_email(raw: str) -> bool | str:
    """Validate minimal email shape."""
    if not (text := raw.strip()):
        return "Email is required."
    if "@" not in text or text.startswith("@") or text.endswith("@"):
        return "Email must look like name@example.com."
    return True


def validate_required(raw: str) -> bool | str:
    """Validate non-empty text input."""
    if not raw.strip():
        return "This field is required."
    return True
