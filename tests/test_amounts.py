"""
Tests for monetary amount parsing.
"""

from decimal import Decimal

import pytest

from branch_reporting.ingestion.amounts import InvalidAmount, parse_amount


class TestParseAmount:
    """Separator conventions seen in bank exports."""

    @pytest.mark.parametrize("value, expected", [
        ("1000000", Decimal("1000000")),
        ("1,000,000", Decimal("1000000")),
        ("1,000,000.50", Decimal("1000000.50")),
        ("1.000.000,50", Decimal("1000000.50")),
        ("1,5", Decimal("1.5")),
        ("12.75", Decimal("12.75")),
        ("1E+6", Decimal("1000000")),
        ("Rp 1.500.000", Decimal("1500000")),
        ("Rp. 1.000.000", Decimal("1000000")),
        ("IDR 2,500", Decimal("2500")),
        (" 250 000 ", Decimal("250000")),
        ("1 000", Decimal("1000")),
    ])
    def test_text_values(self, value, expected):
        assert parse_amount(value) == expected

    def test_native_numbers(self):
        """Workbook cells arrive as int, float or Decimal."""
        assert parse_amount(1000000) == Decimal("1000000")
        assert parse_amount(1000000.5) == Decimal("1000000.5")
        assert parse_amount(Decimal("42.10")) == Decimal("42.10")

    def test_sign_is_preserved(self):
        assert parse_amount("-1,000") == Decimal("-1000")
        assert parse_amount("(500)") == Decimal("-500")
        assert parse_amount("-Rp 5.000") == Decimal("-5000")
        assert parse_amount("Rp -5.000") == Decimal("-5000")

    @pytest.mark.parametrize("value", [None, "", "   ", "-", "abc", "N/A", True, float("nan"), float("inf")])
    def test_rejects_non_amounts(self, value):
        with pytest.raises(InvalidAmount):
            parse_amount(value)

    @pytest.mark.parametrize("value", [".1.000.000", ",5", "Rp..5"])
    def test_rejects_leading_separator(self, value):
        with pytest.raises(InvalidAmount, match="misplaced separator"):
            parse_amount(value)

    def test_invalid_amount_is_value_error(self):
        with pytest.raises(ValueError):
            parse_amount("twelve")
