"""
Cash Flow Projection Aggregate - thirteen-week cash forecast.

Implements:
- Exactly 13 weekly buckets spanning 84-98 days
- Best-case / expected / worst-case scenarios
- Project-level or company-wide (project_id is None) horizons
- Week replacement by week number
- Liquidity aggregates (totals, lowest balance, negative weeks)
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Iterable, Optional, Tuple
from uuid import UUID, uuid4

from ..exceptions import (
    CurrencyMismatchError,
    DuplicateOperationError,
    InvariantViolationError,
    ValidationError,
    WeekNotFoundError,
)
from ..result import Result
from ..values import CURRENCY_PATTERN, Money, first_currency_mismatch, sum_money
from .budget_line import parse_enum

logger = logging.getLogger(__name__)

WEEKS_IN_PROJECTION = 13
MIN_SPAN_DAYS = 84
MAX_SPAN_DAYS = 98


class CashFlowScenario(str, Enum):
    BEST_CASE = "best-case"
    EXPECTED = "expected"
    WORST_CASE = "worst-case"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CashFlowWeek:
    """
    One week of projected cash movement.

    Attributes:
        week_number: 1-based position in the projection
        week_start_date / week_end_date: Week boundaries
        inflows_ar: Collections on receivables
        inflows_other: Other receipts
        outflows_ap: Payables disbursements
        outflows_payroll: Payroll
        outflows_other: Other disbursements
        net_cash_flow: Inflows minus outflows
        ending_balance: Cash on hand at week end
    """

    week_number: int
    week_start_date: date
    week_end_date: date
    inflows_ar: Money
    inflows_other: Money
    outflows_ap: Money
    outflows_payroll: Money
    outflows_other: Money
    net_cash_flow: Money
    ending_balance: Money

    @classmethod
    def create(cls, **props) -> Result["CashFlowWeek"]:
        try:
            week = cls(**props)
        except TypeError as e:
            return Result.fail(ValidationError("week", str(e)))

        if week.week_start_date is None or week.week_end_date is None:
            return Result.fail(ValidationError("week_start_date", "week dates are required"))
        if any(amount is None for amount in week.amounts()):
            return Result.fail(ValidationError("week", "every week amount is required"))

        if not isinstance(week.week_number, int) or week.week_number < 1:
            return Result.fail(ValidationError("week_number", "week number must be a positive integer"))
        if week.week_end_date < week.week_start_date:
            return Result.fail(ValidationError("week_end_date", "week cannot end before it starts"))

        mismatch = first_currency_mismatch(week.amounts(), week.currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(week.currency, mismatch.currency, f"week {week.week_number}"))
        return Result.ok(week)

    @classmethod
    def build(
        cls,
        week_number: int,
        week_start_date: date,
        week_end_date: date,
        beginning_balance: Money,
        inflows_ar: Money,
        inflows_other: Money,
        outflows_ap: Money,
        outflows_payroll: Money,
        outflows_other: Money,
    ) -> Result["CashFlowWeek"]:
        """Derive net cash flow and ending balance from a beginning balance."""
        amounts = (inflows_ar, inflows_other, outflows_ap, outflows_payroll, outflows_other)
        mismatch = first_currency_mismatch(amounts, beginning_balance.currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(
                beginning_balance.currency, mismatch.currency, f"week {week_number}"
            ))

        net = (inflows_ar + inflows_other) - (outflows_ap + outflows_payroll + outflows_other)
        return cls.create(
            week_number=week_number,
            week_start_date=week_start_date,
            week_end_date=week_end_date,
            inflows_ar=inflows_ar,
            inflows_other=inflows_other,
            outflows_ap=outflows_ap,
            outflows_payroll=outflows_payroll,
            outflows_other=outflows_other,
            net_cash_flow=net,
            ending_balance=beginning_balance + net,
        )

    @property
    def currency(self) -> str:
        return self.inflows_ar.currency

    @property
    def total_inflows(self) -> Money:
        return self.inflows_ar + self.inflows_other

    @property
    def total_outflows(self) -> Money:
        return self.outflows_ap + self.outflows_payroll + self.outflows_other

    def amounts(self) -> Tuple[Money, ...]:
        return (
            self.inflows_ar,
            self.inflows_other,
            self.outflows_ap,
            self.outflows_payroll,
            self.outflows_other,
            self.net_cash_flow,
            self.ending_balance,
        )

    def to_dict(self) -> dict:
        return {
            "week_number": self.week_number,
            "week_start_date": self.week_start_date.isoformat(),
            "week_end_date": self.week_end_date.isoformat(),
            "inflows_ar": self.inflows_ar.to_dict(),
            "inflows_other": self.inflows_other.to_dict(),
            "outflows_ap": self.outflows_ap.to_dict(),
            "outflows_payroll": self.outflows_payroll.to_dict(),
            "outflows_other": self.outflows_other.to_dict(),
            "net_cash_flow": self.net_cash_flow.to_dict(),
            "ending_balance": self.ending_balance.to_dict(),
        }


@dataclass(eq=False)
class CashFlowProjection:
    """Thirteen-week cash flow projection for one scenario."""

    name: str
    scenario: CashFlowScenario
    currency: str
    start_date: date
    end_date: date
    opening_balance: Money
    weeks: Tuple[CashFlowWeek, ...]
    created_by: str
    project_id: Optional[UUID] = None
    description: Optional[str] = None
    assumptions: Tuple[str, ...] = ()
    notes: str = ""
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        name: str,
        scenario,
        currency: str,
        start_date: date,
        end_date: date,
        opening_balance: Money,
        weeks: Iterable[CashFlowWeek],
        created_by: str,
        project_id: Optional[UUID] = None,
        description: Optional[str] = None,
        assumptions: Iterable[str] = (),
        notes: str = "",
        id: Optional[UUID] = None,
    ) -> Result["CashFlowProjection"]:
        required = {
            "name": name,
            "start_date": start_date,
            "end_date": end_date,
            "opening_balance": opening_balance,
            "weeks": weeks,
            "created_by": created_by,
        }
        for field_name, value in required.items():
            if value is None:
                return Result.fail(ValidationError(field_name, f"{field_name} is required"))

        scenario_result = parse_enum(CashFlowScenario, scenario, "scenario")
        if scenario_result.is_failure:
            return scenario_result

        currency = (currency or "").strip().upper()
        if not CURRENCY_PATTERN.match(currency):
            return Result.fail(ValidationError("currency", f"'{currency}' is not a valid currency code"))

        span = (end_date - start_date).days
        if span < MIN_SPAN_DAYS or span > MAX_SPAN_DAYS:
            return Result.fail(ValidationError(
                "end_date",
                f"Projection must span approximately 13 weeks ({MIN_SPAN_DAYS}-{MAX_SPAN_DAYS} days), got {span}",
            ))

        weeks = tuple(weeks)
        if len(weeks) != WEEKS_IN_PROJECTION:
            return Result.fail(ValidationError(
                "weeks", f"Projection must contain exactly {WEEKS_IN_PROJECTION} weeks, got {len(weeks)}"
            ))

        numbers = [w.week_number for w in weeks]
        if len(set(numbers)) != len(numbers):
            return Result.fail(DuplicateOperationError("Week numbers must be unique within a projection"))

        expected_numbers = set(range(1, WEEKS_IN_PROJECTION + 1))
        if set(numbers) != expected_numbers:
            return Result.fail(InvariantViolationError(
                "week_numbers", f"1-{WEEKS_IN_PROJECTION}", sorted(numbers)
            ))
        weeks = tuple(sorted(weeks, key=lambda w: w.week_number))

        for week in weeks:
            mismatch = first_currency_mismatch(week.amounts(), currency)
            if mismatch is not None:
                return Result.fail(CurrencyMismatchError(currency, mismatch.currency, f"week {week.week_number}"))

        if opening_balance.currency != currency:
            return Result.fail(CurrencyMismatchError(currency, opening_balance.currency, "opening_balance"))

        return Result.ok(cls(
            name=name,
            scenario=scenario_result.value,
            currency=currency,
            start_date=start_date,
            end_date=end_date,
            opening_balance=opening_balance,
            weeks=weeks,
            created_by=created_by,
            project_id=project_id,
            description=description,
            assumptions=tuple(assumptions),
            notes=notes,
            id=id or uuid4(),
        ))

    def touch(self) -> None:
        self.updated_at = _utcnow()

    @property
    def is_company_wide(self) -> bool:
        return self.project_id is None

    # =========================================================================
    # Mutators
    # =========================================================================

    def find_week(self, week_number: int) -> Optional[CashFlowWeek]:
        for week in self.weeks:
            if week.week_number == week_number:
                return week
        return None

    def update_week_data(self, week_number: int, week: CashFlowWeek) -> Result[None]:
        if self.find_week(week_number) is None:
            return Result.fail(WeekNotFoundError(week_number))
        if week.week_number != week_number:
            return Result.fail(ValidationError(
                "week_number", f"replacement week is numbered {week.week_number}, expected {week_number}"
            ))
        mismatch = first_currency_mismatch(week.amounts(), self.currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(self.currency, mismatch.currency, f"week {week_number}"))

        self.weeks = tuple(week if w.week_number == week_number else w for w in self.weeks)
        self.touch()
        logger.debug(f"Projection {self.id}: week {week_number} replaced")
        return Result.ok()

    def add_assumption(self, assumption: str) -> Result[None]:
        if not assumption or not assumption.strip():
            return Result.fail(ValidationError("assumption", "Assumption cannot be empty"))
        self.assumptions = self.assumptions + (assumption.strip(),)
        self.touch()
        return Result.ok()

    def remove_assumption(self, index: int) -> Result[None]:
        if index < 0 or index >= len(self.assumptions):
            return Result.fail(ValidationError("index", f"no assumption at index {index}"))
        self.assumptions = self.assumptions[:index] + self.assumptions[index + 1:]
        self.touch()
        return Result.ok()

    def add_note(self, note: str) -> Result[None]:
        if not note or not note.strip():
            return Result.fail(ValidationError("note", "Note cannot be empty"))
        self.notes = f"{self.notes}\n{note.strip()}" if self.notes else note.strip()
        self.touch()
        return Result.ok()

    # =========================================================================
    # Aggregates
    # =========================================================================

    @property
    def total_inflows(self) -> Money:
        return sum_money((w.total_inflows for w in self.weeks), self.currency)

    @property
    def total_outflows(self) -> Money:
        return sum_money((w.total_outflows for w in self.weeks), self.currency)

    @property
    def total_net_cash_flow(self) -> Money:
        return sum_money((w.net_cash_flow for w in self.weeks), self.currency)

    @property
    def final_balance(self) -> Money:
        if not self.weeks:
            return self.opening_balance
        return self.weeks[-1].ending_balance

    @property
    def lowest_balance_week(self) -> Optional[CashFlowWeek]:
        if not self.weeks:
            return None
        return min(self.weeks, key=lambda w: w.ending_balance.amount)

    @property
    def lowest_balance(self) -> Money:
        week = self.lowest_balance_week
        return week.ending_balance if week else self.opening_balance

    @property
    def weeks_with_negative_balance(self) -> int:
        return sum(1 for w in self.weeks if w.ending_balance.is_negative)

    @property
    def is_cash_flow_positive(self) -> bool:
        return self.total_net_cash_flow.is_positive

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id) if self.project_id else None,
            "name": self.name,
            "scenario": self.scenario.value,
            "currency": self.currency,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "opening_balance": self.opening_balance.to_dict(),
            "weeks": [w.to_dict() for w in self.weeks],
            "total_inflows": self.total_inflows.to_dict(),
            "total_outflows": self.total_outflows.to_dict(),
            "final_balance": self.final_balance.to_dict(),
            "lowest_balance": self.lowest_balance.to_dict(),
            "weeks_with_negative_balance": self.weeks_with_negative_balance,
            "assumptions": list(self.assumptions),
        }
