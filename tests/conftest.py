"""Shared pytest fixtures for data-dir isolation and network blocking."""

import socket
import urllib.request
from datetime import date
from pathlib import Path

import pytest

from fop_tax_calculator.config import Income


@pytest.fixture(autouse=True)
def isolate_data_dir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Force document writes into per-test temporary directory."""
    monkeypatch.setenv("FOP_TAX_CALCULATOR_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("FOP_TAX_CALCULATOR_NBU_URL", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Block network access in all tests."""

    def blocked(*_args: object, **_kwargs: object) -> None:
        """Raise explicit error when any test attempts network access."""
        raise AssertionError("Network access is blocked in tests.")

    monkeypatch.setattr(urllib.request, "urlopen", blocked)
    monkeypatch.setattr(socket, "create_connection", blocked)
    monkeypatch.setattr(socket.socket, "connect", blocked)
    monkeypatch.setattr(socket.socket, "connect_ex", blocked)


def build_income(
    amount: float,
    currency: str = "UAH",
    day: date = date(2026, 3, 10),
    amount_uah: float | None = None,
    income_id: str = "abc123",
    **kwargs: object,
) -> Income:
    """Build income record; UAH records default to amount_uah == amount."""
    if amount_uah is None and currency == "UAH":
        amount_uah = amount
    return Income(
        id=income_id,
        amount=amount,
        currency=currency,  # type: ignore[arg-type]
        date=day,
        amount_uah=amount_uah,
        **kwargs,  # type: ignore[arg-type]
    )
