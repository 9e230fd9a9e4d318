"""
Job Cost Record Aggregate - one cost transaction against a project budget.

Implements:
- Same-currency planned / committed / actual amounts, anchored on planned
- One-way approval (a second approve() fails and changes nothing)
- Amount updates before or after approval
- Notes and tags for cost review workflows
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Tuple
from uuid import UUID, uuid4

from ..exceptions import CurrencyMismatchError, DuplicateOperationError, ValidationError
from ..result import Result
from ..values import Money
from .budget_line import CostCategory, parse_enum

logger = logging.getLogger(__name__)

MIN_DESCRIPTION_LENGTH = 3


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class JobCostRecord:
    """
    Actual/committed cost posted against a budget and cost code.

    Attributes:
        project_id: Owning project
        budget_id: Budget the cost is recorded against
        cost_code: Cost code string (matches a budget line's cost code)
        category: Cost category
        description: At least three characters
        transaction_date: Date the cost was incurred
        planned_amount: Planned amount; its currency is the record's currency
        committed_amount: Committed amount
        actual_amount: Actual amount
        phase, task: Optional schedule references
        resource_type, resource_id: Optional resource references
        invoice_id, purchase_order_id: Optional document references
        approved: One-way approval flag
    """

    project_id: UUID
    budget_id: UUID
    cost_code: str
    category: CostCategory
    description: str
    transaction_date: date
    planned_amount: Money
    committed_amount: Money
    actual_amount: Money
    phase: Optional[str] = None
    task: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    invoice_id: Optional[str] = None
    purchase_order_id: Optional[str] = None
    approved: bool = False
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    notes: Optional[str] = None
    tags: Tuple[str, ...] = ()
    created_by: Optional[str] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        project_id: UUID,
        budget_id: UUID,
        cost_code: str,
        category,
        description: str,
        transaction_date: date,
        planned_amount: Money,
        committed_amount: Optional[Money] = None,
        actual_amount: Optional[Money] = None,
        **optional,
    ) -> Result["JobCostRecord"]:
        """
        Validate and build an unapproved record.

        ``optional`` accepts the reference fields (phase, task, resource_type,
        resource_id, invoice_id, purchase_order_id, notes, tags, created_by, id).
        """
        if project_id is None or budget_id is None:
            return Result.fail(ValidationError("project_id", "project and budget ids are required"))
        if not cost_code or not cost_code.strip():
            return Result.fail(ValidationError("cost_code", "cost code is required"))
        if transaction_date is None:
            return Result.fail(ValidationError("transaction_date", "transaction date is required"))
        if planned_amount is None:
            return Result.fail(ValidationError("planned_amount", "planned amount is required"))

        category_result = parse_enum(CostCategory, category, "category")
        if category_result.is_failure:
            return category_result

        if not description or len(description.strip()) < MIN_DESCRIPTION_LENGTH:
            return Result.fail(ValidationError(
                "description", f"description must be at least {MIN_DESCRIPTION_LENGTH} characters"
            ))

        currency = planned_amount.currency
        committed_amount = committed_amount or Money.zero(currency)
        actual_amount = actual_amount or Money.zero(currency)
        for name, amount in (("committed_amount", committed_amount), ("actual_amount", actual_amount)):
            if amount.currency != currency:
                return Result.fail(CurrencyMismatchError(currency, amount.currency, name))

        unknown = set(optional) - _OPTIONAL_FIELDS
        if unknown:
            return Result.fail(ValidationError(sorted(unknown)[0], "unknown job cost field"))

        tags = tuple(dict.fromkeys(optional.pop("tags", None) or ()))
        record_id = optional.pop("id", None) or uuid4()
        return Result.ok(cls(
            project_id=project_id,
            budget_id=budget_id,
            cost_code=cost_code.strip(),
            category=category_result.value,
            description=description.strip(),
            transaction_date=transaction_date,
            planned_amount=planned_amount,
            committed_amount=committed_amount,
            actual_amount=actual_amount,
            tags=tags,
            id=record_id,
            **optional,
        ))

    def touch(self) -> None:
        self.updated_at = _utcnow()

    @property
    def currency(self) -> str:
        return self.planned_amount.currency

    # =========================================================================
    # Approval
    # =========================================================================

    def approve(self, approved_by: str) -> Result[None]:
        if self.approved:
            return Result.fail(DuplicateOperationError("Job cost record is already approved"))
        if not approved_by or not approved_by.strip():
            return Result.fail(ValidationError("approved_by", "approver is required"))

        self.approved = True
        self.approved_by = approved_by
        self.approved_at = _utcnow()
        self.touch()
        logger.debug(f"Job cost record {self.id} approved by {approved_by}")
        return Result.ok()

    # =========================================================================
    # Amounts
    # =========================================================================

    def update_actual_amount(self, amount: Money) -> Result[None]:
        if amount.currency != self.currency:
            return Result.fail(CurrencyMismatchError(self.currency, amount.currency, "actual_amount"))
        self.actual_amount = amount
        self.touch()
        return Result.ok()

    def update_committed_amount(self, amount: Money) -> Result[None]:
        if amount.currency != self.currency:
            return Result.fail(CurrencyMismatchError(self.currency, amount.currency, "committed_amount"))
        self.committed_amount = amount
        self.touch()
        return Result.ok()

    # =========================================================================
    # Notes & Tags
    # =========================================================================

    def add_note(self, note: str) -> Result[None]:
        if not note or not note.strip():
            return Result.fail(ValidationError("note", "note must not be empty"))
        self.notes = f"{self.notes}\n{note.strip()}" if self.notes else note.strip()
        self.touch()
        return Result.ok()

    def add_tag(self, tag: str) -> None:
        if tag not in self.tags:
            self.tags = self.tags + (tag,)
            self.touch()

    def remove_tag(self, tag: str) -> None:
        if tag in self.tags:
            self.tags = tuple(t for t in self.tags if t != tag)
            self.touch()

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    # =========================================================================
    # Variance
    # =========================================================================

    def variance(self) -> Money:
        """Planned minus actual; negative means over budget."""
        return self.planned_amount - self.actual_amount

    def variance_percent(self) -> float:
        if self.planned_amount.is_zero:
            return 0.0
        return float(self.variance().amount / self.planned_amount.amount * 100)

    @property
    def is_over_budget(self) -> bool:
        return self.actual_amount > self.planned_amount

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "budget_id": str(self.budget_id),
            "cost_code": self.cost_code,
            "category": self.category.value,
            "description": self.description,
            "transaction_date": self.transaction_date.isoformat(),
            "planned_amount": self.planned_amount.to_dict(),
            "committed_amount": self.committed_amount.to_dict(),
            "actual_amount": self.actual_amount.to_dict(),
            "variance": self.variance().to_dict(),
            "variance_percent": round(self.variance_percent(), 2),
            "phase": self.phase,
            "task": self.task,
            "invoice_id": self.invoice_id,
            "purchase_order_id": self.purchase_order_id,
            "approved": self.approved,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "tags": list(self.tags),
        }


_OPTIONAL_FIELDS = {
    "phase",
    "task",
    "resource_type",
    "resource_id",
    "invoice_id",
    "purchase_order_id",
    "notes",
    "tags",
    "created_by",
    "id",
}
