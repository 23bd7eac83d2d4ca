"""Tests for income entry and transaction-list helpers."""

from datetime import date
from unittest import TestCase
from unittest.mock import Mock, patch

from conftest import build_income as make_income

from fop_tax_calculator import incomes
from fop_tax_calculator.config import AppLogs
from fop_tax_calculator.errors import IncomeValidationError, RateUnavailableError


class TestBuildIncome(TestCase):
    """Test form input validation and UAH conversion."""

    def test_uah_record_sets_amount_uah_without_lookup(self) -> None:
        """Test UAH record carries its amount as UAH equivalent."""
        lookup = Mock()
        income = incomes.build_income("1 500,50", "UAH", "2026-03-10", rate_lookup=lookup)
        self.assertEqual(income.amount, 1500.5)
        self.assertEqual(income.amount_uah, 1500.5)
        self.assertEqual(income.source, "manual")
        lookup.assert_not_called()

    def test_foreign_record_multiplies_by_rate(self) -> None:
        """Test foreign amount is converted with the rate of the income date."""
        lookup = Mock(return_value=41.0)
        income = incomes.build_income(
            100, "USD", date(2026, 3, 10), "Consulting", rate_lookup=lookup
        )
        lookup.assert_called_once_with("USD", date(2026, 3, 10))
        self.assertAlmostEqual(income.amount_uah or 0.0, 4100.0)
        self.assertEqual(income.description, "Consulting")

    def test_missing_rate_keeps_record_and_logs_warning(self) -> None:
        """Test failed lookup saves record without UAH amount."""
        logs = AppLogs()
        lookup = Mock(side_effect=RateUnavailableError("down"))
        income = incomes.build_income(
            "100", "EUR", "2026-03-10", rate_lookup=lookup, logs=logs
        )
        self.assertIsNone(income.amount_uah)
        self.assertTrue(income.is_unconverted)
        self.assertEqual(len(logs), 1)
        self.assertIn("NBU rate unavailable", logs[0])

    def test_default_lookup_uses_nbu_resolver(self) -> None:
        """Test NBU resolver is used when no lookup is injected."""
        with patch.object(
            incomes.ExchangeRateResolver, "get_exchange_rate", return_value=2.0
        ) as get_rate:
            income = incomes.build_income("3", "USD", "2026-03-10")
        get_rate.assert_called_once_with("USD", date(2026, 3, 10))
        self.assertEqual(income.amount_uah, 6.0)

    def test_invalid_inputs_raise_validation_error(self) -> None:
        """Test non-numeric amount, bad currency and bad date are rejected."""
        cases = [
            ("abc", "UAH", "2026-03-10"),
            ("", "UAH", "2026-03-10"),
            ("nan", "UAH", "2026-03-10"),
            ("10", "GBP", "2026-03-10"),
            ("10", "UAH", "10.03.2026"),
        ]
        for amount, currency, raw_date in cases:
            with self.assertRaises(IncomeValidationError):
                incomes.build_income(amount, currency, raw_date, rate_lookup=Mock())

    def test_scanned_document_marks_ai_source_and_keeps_fields(self) -> None:
        """Test document-backed record gets ai-scan source."""
        income = incomes.build_income(
            "10",
            "UAH",
            "2026-03-10",
            income_id="fixed",
            original_document="/tmp/invoice.png",
            client_or_project="  Acme ",
            comment="",
            attachments=["a.png"],
        )
        self.assertEqual(income.id, "fixed")
        self.assertEqual(income.source, "ai-scan")
        self.assertEqual(income.client_or_project, "Acme")
        self.assertIsNone(income.comment)
        self.assertEqual(income.attachments, ("a.png",))

    def test_explicit_source_is_preserved(self) -> None:
        """Test edited record keeps its original source."""
        income = incomes.build_income("10", "UAH", "2026-03-10", source="ai-scan")
        self.assertEqual(income.source, "ai-scan")


class TestTransactionList(TestCase):
    """Test filtering, sorting and month options."""

    def setUp(self) -> None:
        self.records = [
            make_income(300.0, day=date(2026, 1, 15), income_id="a"),
            make_income(100.0, day=date(2026, 2, 1), income_id="b"),
            make_income(200.0, day=date(2026, 2, 28), income_id="c"),
        ]

    def test_filter_by_month_sorted_descending(self) -> None:
        """Test month filter and default descending amount order."""
        result = incomes.filter_transactions(self.records, month="2026-02")
        self.assertEqual([x.id for x in result], ["c", "b"])

    def test_filter_by_inclusive_date_range_ascending(self) -> None:
        """Test inclusive date bounds and ascending order."""
        result = incomes.filter_transactions(
            self.records,
            from_date=date(2026, 1, 15),
            to_date=date(2026, 2, 1),
            descending=False,
        )
        self.assertEqual([x.id for x in result], ["b", "a"])

    def test_month_options_are_sorted_and_distinct(self) -> None:
        """Test month keys present in records."""
        self.assertEqual(incomes.month_options(self.records), ["2026-01", "2026-02"])

    def test_new_id_is_short_hex(self) -> None:
        """Test generated record identifiers."""
        record_id = incomes.new_id()
        self.assertEqual(len(record_id), 9)
        int(record_id, 16)
