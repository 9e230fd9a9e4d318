"""
Tests for the Money value object, Result and largest remainder allocation.
"""
from decimal import Decimal

import pytest

from costcontrol.domain.exceptions import CurrencyMismatchError, DomainError, ValidationError
from costcontrol.domain.result import Result
from costcontrol.domain.values import Money, allocate_largest_remainder, first_currency_mismatch, sum_money


class TestMoney:
    """Tests for Money construction and arithmetic."""

    def test_amount_coerced_to_decimal(self):
        money = Money(10.1, "usd")
        assert money.amount == Decimal("10.1")
        assert money.currency == "USD"

    def test_invalid_currency_rejected(self):
        with pytest.raises(ValueError):
            Money(1, "US")

    def test_non_finite_amount_rejected(self):
        with pytest.raises(ValueError):
            Money(Decimal("NaN"), "USD")

    def test_create_returns_failure_instead_of_raising(self):
        result = Money.create("abc", "USD")
        assert result.is_failure
        assert isinstance(result.error, ValidationError)

    def test_addition_and_subtraction(self):
        assert Money(100, "USD") + Money("0.50", "USD") == Money("100.50", "USD")
        assert Money(100, "USD") - Money(150, "USD") == Money(-50, "USD")

    def test_mixed_currency_arithmetic_raises(self):
        with pytest.raises(CurrencyMismatchError):
            Money(1, "USD") + Money(1, "EUR")

    def test_ordering(self):
        assert Money(5, "USD") < Money(6, "USD")
        assert Money(6, "USD") >= Money(6, "USD")
        assert max(Money(1, "USD"), Money(3, "USD")) == Money(3, "USD")

    def test_rounding_is_half_up(self):
        assert Money("2.345", "USD").rounded() == Money("2.35", "USD")
        assert Money("-2.345", "USD").rounded() == Money("-2.35", "USD")

    def test_cents_round_trip(self):
        assert Money("12.34", "USD").to_cents() == 1234
        assert Money.from_cents(-505, "USD") == Money("-5.05", "USD")

    def test_percent_of_zero_whole(self):
        assert Money(5, "USD").percent_of(Money.zero("USD")) == 0.0
        assert Money(25, "USD").percent_of(Money(200, "USD")) == pytest.approx(12.5)

    def test_sum_money_and_mismatch_helpers(self):
        amounts = [Money(1, "USD"), Money(2, "USD")]
        assert sum_money(amounts, "USD") == Money(3, "USD")
        assert sum_money([], "USD").is_zero
        assert first_currency_mismatch(amounts + [Money(1, "CAD")], "USD").currency == "CAD"


class TestResult:
    """Tests for the Result outcome type."""

    def test_ok(self):
        result = Result.ok(5)
        assert result.is_success
        assert result.unwrap() == 5
        assert result.message is None

    def test_fail_wraps_string(self):
        result = Result.fail("boom")
        assert result.is_failure
        assert result.code == "DOMAIN_ERROR"
        with pytest.raises(DomainError, match="boom"):
            result.unwrap()


class TestLargestRemainder:
    """Tests for allocate_largest_remainder."""

    def test_total_preserved(self):
        shares = allocate_largest_remainder(10000, [1, 1, 1])
        assert sum(shares) == 10000
        assert sorted(shares) == [3333, 3333, 3334]

    def test_weighted(self):
        assert allocate_largest_remainder(1000, [Decimal("60"), Decimal("40")]) == [600, 400]

    def test_negative_total(self):
        shares = allocate_largest_remainder(-100, [1, 2])
        assert sum(shares) == -100

    def test_empty_and_single(self):
        assert allocate_largest_remainder(500, []) == []
        assert allocate_largest_remainder(500, [7]) == [500]
