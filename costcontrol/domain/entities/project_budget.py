"""
Project Budget Aggregate - versioned collection of budget lines.

Implements:
- Line collection management (add / replace / remove by line id)
- Single-currency invariant across every line
- Baseline approval freezing a baseline total
- Uncached planned / committed / actual totals

The version is an informational revision label assigned by the caller
(BudgetService.create_budget_version issues latest + 1); no mutator
changes it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional, Tuple
from uuid import UUID, uuid4

from ..exceptions import (
    BudgetLineNotFoundError,
    CurrencyMismatchError,
    DuplicateOperationError,
    ImmutableAggregateError,
    ValidationError,
)
from ..result import Result
from ..values import CURRENCY_PATTERN, Money, sum_money
from .budget_line import BudgetLine, BudgetStatus, parse_enum

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class ProjectBudget:
    """
    Budget for one project at one revision.

    Attributes:
        id: Unique identifier
        project_id: Owning project
        version: Revision label (>= 1)
        status: Budget workflow status
        currency: Upper-case currency shared by every line
        lines: Immutable tuple of budget lines
        baseline_total: Total frozen by approve_baseline()
    """

    project_id: UUID
    version: int
    status: BudgetStatus
    currency: str
    lines: Tuple[BudgetLine, ...] = ()
    baseline_total: Optional[Money] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        project_id: UUID,
        version: int,
        currency: str,
        lines: Iterable[BudgetLine],
        status=BudgetStatus.DRAFT,
        baseline_total: Optional[Money] = None,
        id: Optional[UUID] = None,
    ) -> Result["ProjectBudget"]:
        if project_id is None:
            return Result.fail(ValidationError("project_id", "project id is required"))

        status_result = parse_enum(BudgetStatus, status, "status")
        if status_result.is_failure:
            return status_result

        if not isinstance(version, int) or version < 1:
            return Result.fail(ValidationError("version", f"version must be at least 1, got {version}"))

        currency = (currency or "").strip().upper()
        if not CURRENCY_PATTERN.match(currency):
            return Result.fail(ValidationError("currency", f"'{currency}' is not a valid currency code"))

        lines = tuple(lines or ())
        if not lines:
            return Result.fail(ValidationError("lines", "a budget requires at least one line"))

        seen = set()
        for line in lines:
            if line.currency != currency:
                return Result.fail(CurrencyMismatchError(currency, line.currency, f"line {line.line_id}"))
            if line.line_id in seen:
                return Result.fail(DuplicateOperationError(f"Budget line {line.line_id} appears more than once"))
            seen.add(line.line_id)

        if baseline_total is not None and baseline_total.currency != currency:
            return Result.fail(CurrencyMismatchError(currency, baseline_total.currency, "baseline_total"))

        return Result.ok(cls(
            project_id=project_id,
            version=version,
            status=status_result.value,
            currency=currency,
            lines=lines,
            baseline_total=baseline_total,
            id=id or uuid4(),
        ))

    def touch(self) -> None:
        self.updated_at = _utcnow()

    # =========================================================================
    # Line Collection
    # =========================================================================

    def _check_mutable(self, operation: str) -> Optional[Result]:
        if self.status == BudgetStatus.CLOSED:
            return Result.fail(ImmutableAggregateError("project budget", self.status.value, operation))
        return None

    def find_line(self, line_id: UUID) -> Optional[BudgetLine]:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        return None

    def add_line(self, line: BudgetLine) -> Result[None]:
        blocked = self._check_mutable("add line")
        if blocked is not None:
            return blocked
        if line.currency != self.currency:
            return Result.fail(CurrencyMismatchError(self.currency, line.currency, "budget line"))
        if self.find_line(line.line_id) is not None:
            return Result.fail(DuplicateOperationError(f"Budget line {line.line_id} already exists"))

        self.lines = self.lines + (line,)
        self.touch()
        return Result.ok()

    def remove_line(self, line_id: UUID) -> Result[None]:
        blocked = self._check_mutable("remove line")
        if blocked is not None:
            return blocked
        if self.find_line(line_id) is None:
            return Result.fail(BudgetLineNotFoundError(line_id))

        self.lines = tuple(line for line in self.lines if line.line_id != line_id)
        self.touch()
        return Result.ok()

    def replace_line(self, line: BudgetLine) -> Result[None]:
        """Swap in ``line`` for the existing line with the same line id."""
        blocked = self._check_mutable("replace line")
        if blocked is not None:
            return blocked
        if self.find_line(line.line_id) is None:
            return Result.fail(BudgetLineNotFoundError(line.line_id))
        if line.currency != self.currency:
            return Result.fail(CurrencyMismatchError(self.currency, line.currency, "budget line"))

        self.lines = tuple(line if existing.line_id == line.line_id else existing for existing in self.lines)
        self.touch()
        return Result.ok()

    # =========================================================================
    # Status
    # =========================================================================

    def approve_baseline(self, total: Money) -> Result[None]:
        """Freeze ``total`` as the baseline and move to baseline status."""
        blocked = self._check_mutable("approve baseline")
        if blocked is not None:
            return blocked
        if total.currency != self.currency:
            return Result.fail(CurrencyMismatchError(self.currency, total.currency, "baseline total"))

        self.baseline_total = total
        self.status = BudgetStatus.BASELINE
        self.touch()
        logger.info(f"Budget {self.id} v{self.version} baselined at {total}")
        return Result.ok()

    def update_status(self, status) -> Result[None]:
        status_result = parse_enum(BudgetStatus, status, "status")
        if status_result.is_failure:
            return status_result

        self.status = status_result.value
        self.touch()
        return Result.ok()

    # =========================================================================
    # Totals (recomputed on every access)
    # =========================================================================

    @property
    def planned_total(self) -> Money:
        return sum_money((line.planned_amount for line in self.lines), self.currency)

    @property
    def committed_total(self) -> Money:
        return sum_money((line.committed_amount for line in self.lines), self.currency)

    @property
    def actual_total(self) -> Money:
        return sum_money((line.actual_amount for line in self.lines), self.currency)

    @property
    def variance_total(self) -> Money:
        return self.planned_total - self.actual_total

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "version": self.version,
            "status": self.status.value,
            "currency": self.currency,
            "lines": [line.to_dict() for line in self.lines],
            "baseline_total": self.baseline_total.to_dict() if self.baseline_total else None,
            "planned_total": self.planned_total.to_dict(),
            "committed_total": self.committed_total.to_dict(),
            "actual_total": self.actual_total.to_dict(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
