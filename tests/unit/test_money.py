"""
Unit tests for amount parsing and exact money arithmetic.

Verifies:
- Blank and formatted amount text
- Float prohibition
- Rounding determinism (ROUND_HALF_UP, two places)
- Canonical storage text
"""

import pytest
from decimal import Decimal

from hypothesis import given
from hypothesis import strategies as st

from inventory_kernel.domain.values import (
    MONEY_DECIMAL_PLACES,
    compute_tax,
    format_amount,
    is_blank,
    parse_amount,
    round_money,
    sum_amounts,
)
from inventory_kernel.exceptions import InvalidAmountError


class TestParseAmount:
    """Tests for parse_amount."""

    def test_simple_decimal(self):
        assert parse_amount("100.50") == Decimal("100.50")

    def test_blank_is_zero(self):
        assert parse_amount(None) == Decimal("0")
        assert parse_amount("") == Decimal("0")
        assert parse_amount("   ") == Decimal("0")

    def test_currency_symbol_and_separators(self):
        assert parse_amount("$1,234.50") == Decimal("1234.50")

    def test_int_and_decimal_pass_through(self):
        assert parse_amount(7) == Decimal("7")
        assert parse_amount(Decimal("2.5")) == Decimal("2.5")

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            parse_amount(1.5)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            parse_amount(True)

    def test_garbage_raises_invalid_amount(self):
        with pytest.raises(InvalidAmountError) as exc_info:
            parse_amount("twelve dollars")
        assert exc_info.value.code == "INVALID_AMOUNT"
        assert exc_info.value.value == "twelve dollars"

    def test_non_finite_rejected(self):
        with pytest.raises(InvalidAmountError):
            parse_amount("NaN")
        with pytest.raises(InvalidAmountError):
            parse_amount("Infinity")


class TestRounding:
    """ROUND_HALF_UP to two places."""

    def test_half_up(self):
        assert round_money(Decimal("0.005")) == Decimal("0.01")
        assert round_money(Decimal("2.675")) == Decimal("2.68")

    def test_places(self):
        assert MONEY_DECIMAL_PLACES == 2
        assert round_money(Decimal("1")) == Decimal("1.00")

    def test_no_float_drift(self):
        """0.1 + 0.2 is exactly 0.3 with stored text."""
        assert sum_amounts(["0.1", "0.2"]) == Decimal("0.3")


class TestSumAmounts:
    def test_blank_entries_count_as_zero(self):
        assert sum_amounts(["10.00", None, "", "5.25"]) == Decimal("15.25")

    def test_empty(self):
        assert sum_amounts([]) == Decimal("0")


class TestComputeTax:
    def test_no_rate_no_tax(self):
        assert compute_tax(Decimal("100.00"), None) == Decimal("0.00")

    def test_rate_percentage(self):
        assert compute_tax(Decimal("100.00"), Decimal("8.25")) == Decimal("8.25")

    def test_tax_rounded_to_cents(self):
        assert compute_tax(Decimal("19.99"), Decimal("7.5")) == Decimal("1.50")


class TestFormatAmount:
    def test_two_places(self):
        assert format_amount("12.5") == "12.50"
        assert format_amount(Decimal("3")) == "3.00"

    def test_negative_zero_normalized(self):
        assert format_amount(Decimal("-0.001")) == "0.00"

    def test_blank_formats_as_zero(self):
        assert format_amount(None) == "0.00"

    @given(st.decimals(min_value=-10**9, max_value=10**9, places=2, allow_nan=False))
    def test_format_is_stable(self, value):
        """Formatting canonical text again returns the same text."""
        text = format_amount(value)
        assert format_amount(text) == text
        assert parse_amount(text) == value


class TestIsBlank:
    def test_blank_values(self):
        assert is_blank(None)
        assert is_blank("")
        assert is_blank("  ")

    def test_zero_is_not_blank(self):
        assert not is_blank("0")
        assert not is_blank(Decimal("0"))
