"""
Budget Line - one planned/committed/actual row of a project budget.

Immutable value object: a changed line is a new BudgetLine swapped in
with ProjectBudget.replace_line().
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from ..exceptions import CurrencyMismatchError, ValidationError
from ..result import Result
from ..values import Money


class BudgetStatus(str, Enum):
    DRAFT = "draft"
    APPROVED = "approved"
    IN_REVIEW = "in-review"
    BASELINE = "baseline"
    CLOSED = "closed"


class CostCategory(str, Enum):
    LABOR = "labor"
    MATERIALS = "materials"
    EQUIPMENT = "equipment"
    SUBCONTRACTOR = "subcontractor"
    GENERAL_CONDITIONS = "general-conditions"
    CONTINGENCY = "contingency"
    OTHER = "other"


def parse_enum(enum_cls, value, field_name: str) -> Result:
    """Coerce ``value`` to ``enum_cls``; fail with a ValidationError otherwise."""
    if isinstance(value, enum_cls):
        return Result.ok(value)
    try:
        return Result.ok(enum_cls(value))
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        return Result.fail(ValidationError(field_name, f"'{value}' is not one of: {allowed}"))


@dataclass(frozen=True)
class BudgetLine:
    """
    Budget line binding a cost code to planned, committed and actual money.

    Attributes:
        line_id: Identifier unique within the owning budget
        cost_code: Cost code string (e.g. CONC-0310)
        category: Cost category
        description: Non-empty description
        planned_amount: Budgeted amount
        committed_amount: Contracted/committed amount
        actual_amount: Actual incurred amount
    """

    cost_code: str
    category: CostCategory
    description: str
    planned_amount: Money
    committed_amount: Money
    actual_amount: Money
    line_id: UUID = field(default_factory=uuid4)

    @classmethod
    def create(
        cls,
        cost_code: str,
        category,
        description: str,
        planned_amount: Money,
        committed_amount: Optional[Money] = None,
        actual_amount: Optional[Money] = None,
        line_id: Optional[UUID] = None,
    ) -> Result["BudgetLine"]:
        if not cost_code or not cost_code.strip():
            return Result.fail(ValidationError("cost_code", "cost code is required"))
        if planned_amount is None:
            return Result.fail(ValidationError("planned_amount", "planned amount is required"))

        category_result = parse_enum(CostCategory, category, "category")
        if category_result.is_failure:
            return category_result

        if not description or not description.strip():
            return Result.fail(ValidationError("description", "description must not be empty"))

        currency = planned_amount.currency
        committed_amount = committed_amount or Money.zero(currency)
        actual_amount = actual_amount or Money.zero(currency)
        for name, amount in (("committed_amount", committed_amount), ("actual_amount", actual_amount)):
            if amount.currency != currency:
                return Result.fail(CurrencyMismatchError(currency, amount.currency, name))

        return Result.ok(cls(
            cost_code=cost_code.strip(),
            category=category_result.value,
            description=description.strip(),
            planned_amount=planned_amount,
            committed_amount=committed_amount,
            actual_amount=actual_amount,
            line_id=line_id or uuid4(),
        ))

    def with_amounts(
        self,
        planned_amount: Optional[Money] = None,
        committed_amount: Optional[Money] = None,
        actual_amount: Optional[Money] = None,
    ) -> Result["BudgetLine"]:
        """Re-validated copy with some amounts replaced, keeping the line id."""
        return BudgetLine.create(
            self.cost_code,
            self.category,
            self.description,
            planned_amount or self.planned_amount,
            committed_amount or self.committed_amount,
            actual_amount or self.actual_amount,
            line_id=self.line_id,
        )

    @property
    def currency(self) -> str:
        return self.planned_amount.currency

    def variance(self) -> Money:
        """
        Calculate budget variance.

        Returns:
            Positive = under budget (savings)
            Negative = over budget (overrun)
        """
        return self.planned_amount - self.actual_amount

    def variance_percent(self) -> float:
        """Calculate variance as percentage of the planned amount."""
        if self.planned_amount.is_zero:
            return 0.0
        return float(self.variance().amount / self.planned_amount.amount * 100)

    @property
    def is_over_budget(self) -> bool:
        return self.actual_amount > self.planned_amount

    def estimated_at_completion(self) -> Money:
        """Greater of committed and actual: spend already locked in for this line."""
        return max(self.committed_amount, self.actual_amount)

    def to_dict(self) -> dict:
        return {
            "line_id": str(self.line_id),
            "cost_code": self.cost_code,
            "category": self.category.value,
            "description": self.description,
            "planned_amount": self.planned_amount.to_dict(),
            "committed_amount": self.committed_amount.to_dict(),
            "actual_amount": self.actual_amount.to_dict(),
            "variance": self.variance().to_dict(),
            "variance_percent": round(self.variance_percent(), 2),
        }
