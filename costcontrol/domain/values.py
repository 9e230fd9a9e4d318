"""
Values - immutable money value object shared by every aggregate.

Provides:
- Money: Decimal amount paired with an ISO-4217-shaped currency code
- Same-currency arithmetic and ordering (mixing currencies raises)
- Cent conversion helpers for exact allocation
- sum_money / first_currency_mismatch helpers used by aggregates

No currency conversion is performed anywhere in this package.
"""
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import total_ordering
from typing import Iterable, Optional

from .exceptions import CurrencyMismatchError, ValidationError
from .result import Result

CURRENCY_PATTERN = re.compile(r"^[A-Z]{3}$")
CENT = Decimal("0.01")


@total_ordering
@dataclass(frozen=True)
class Money:
    """
    Monetary amount.

    Amounts may be negative: variances, ending balances and
    over/under billings are signed.

    Attributes:
        amount: Decimal amount (coerced through str, never float math)
        currency: Upper-case three-letter currency code
    """

    amount: Decimal
    currency: str

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            try:
                object.__setattr__(self, "amount", Decimal(str(self.amount)))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount!r}") from e
        if not self.amount.is_finite():
            raise ValueError(f"Amount must be finite, got {self.amount}")

        normalized = self.currency.strip().upper() if isinstance(self.currency, str) else ""
        if not CURRENCY_PATTERN.match(normalized):
            raise ValueError(f"Invalid currency code: {self.currency!r}")
        object.__setattr__(self, "currency", normalized)

    @classmethod
    def create(cls, amount, currency: str) -> Result["Money"]:
        """Fallible constructor returning a Result instead of raising."""
        try:
            return Result.ok(cls(amount, currency))
        except ValueError as e:
            return Result.fail(ValidationError("money", str(e)))

    @classmethod
    def zero(cls, currency: str) -> "Money":
        return cls(Decimal("0"), currency)

    @classmethod
    def from_cents(cls, cents: int, currency: str) -> "Money":
        return cls(Decimal(cents) / 100, currency)

    # =========================================================================
    # Predicates
    # =========================================================================

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def same_currency(self, other: "Money") -> bool:
        return self.currency == other.currency

    # =========================================================================
    # Arithmetic
    # =========================================================================

    def _check_currency(self, other: "Money", context: str = "amount") -> None:
        if not isinstance(other, Money):
            raise TypeError(f"Expected Money, got {type(other).__name__}")
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency, other.currency, context)

    def __add__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: "Money") -> "Money":
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.amount, self.currency)

    def __abs__(self) -> "Money":
        return Money(abs(self.amount), self.currency)

    def multiply(self, factor) -> "Money":
        """Multiply by a scalar; the result is rounded to cents."""
        return Money(self.amount * Decimal(str(factor)), self.currency).rounded()

    def __lt__(self, other: "Money") -> bool:
        self._check_currency(other)
        return self.amount < other.amount

    def rounded(self, places: int = 2) -> "Money":
        quantum = Decimal(1).scaleb(-places)
        return Money(self.amount.quantize(quantum, rounding=ROUND_HALF_UP), self.currency)

    def to_cents(self) -> int:
        return int((self.amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def percent_of(self, whole: "Money") -> float:
        """This amount as a percentage of ``whole`` (0.0 when whole is zero)."""
        self._check_currency(whole)
        if whole.amount == 0:
            return 0.0
        return float(self.amount / whole.amount * 100)

    def to_dict(self) -> dict:
        return {"amount": str(self.amount), "currency": self.currency}

    def __str__(self) -> str:
        return f"{self.amount:,.2f} {self.currency}"


def parse_decimal(value, field_name: str) -> Result[Decimal]:
    """Coerce ``value`` to a finite Decimal through ``str()``."""
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return Result.fail(ValidationError(field_name, f"{value!r} is not a number"))
    if not number.is_finite():
        return Result.fail(ValidationError(field_name, f"{value!r} is not a finite number"))
    return Result.ok(number)


def parse_percent(value, field_name: str) -> Result[Decimal]:
    """Coerce ``value`` to a Decimal percentage between 0 and 100 inclusive."""
    parsed = parse_decimal(value, field_name)
    if parsed.is_failure:
        return parsed
    if parsed.value < 0 or parsed.value > 100:
        return Result.fail(ValidationError(field_name, "must be between 0 and 100"))
    return parsed


def first_currency_mismatch(amounts: Iterable[Money], currency: str) -> Optional[Money]:
    """Return the first amount whose currency differs from ``currency``."""
    for money in amounts:
        if money.currency != currency:
            return money
    return None


def sum_money(amounts: Iterable[Money], currency: str) -> Money:
    """Sum amounts, starting from zero in ``currency``."""
    total = Money.zero(currency)
    for money in amounts:
        total = total + money
    return total


def allocate_largest_remainder(total_cents: int, weights: list) -> list:
    """
    Allocate total_cents to buckets using the Largest Remainder Method.

    Guarantees sum(result) == total_cents exactly, with no penny drift.

    Args:
        total_cents: Total amount to allocate (integer cents, may be negative)
        weights: Non-negative weights; normalized internally

    Returns:
        List of integer cents, one per weight
    """
    if not weights:
        return []

    if len(weights) == 1:
        return [total_cents]

    if total_cents < 0:
        return [-c for c in allocate_largest_remainder(-total_cents, weights)]

    weight_sum = sum(Decimal(str(w)) for w in weights)
    if weight_sum == 0:
        base = total_cents // len(weights)
        result = [base] * len(weights)
        result[0] += total_cents - sum(result)
        return result

    exact = [Decimal(total_cents) * Decimal(str(w)) / weight_sum for w in weights]
    floored = [int(e) for e in exact]
    remainders = [e - f for e, f in zip(exact, floored)]

    leftover = total_cents - sum(floored)
    sorted_indices = sorted(range(len(remainders)), key=lambda i: remainders[i], reverse=True)
    for i in range(leftover):
        floored[sorted_indices[i % len(floored)]] += 1

    return floored
