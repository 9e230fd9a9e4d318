"""
Budget Service - budget versioning, baseline approval and budget reports.

Provides:
1. New budget versions (latest version + 1)
2. Baseline approval
3. Budget line total updates
4. Job cost report per budget
5. Retention and progress invoice calculations
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from costcontrol.config import FinanceConfig, get_config
from costcontrol.domain.entities import (
    BudgetLine,
    BudgetStatus,
    CostCategory,
    CostCode,
    ProjectBudget,
)
from costcontrol.domain.exceptions import BudgetLineNotFoundError, BudgetNotFoundError, ValidationError
from costcontrol.domain.result import Result
from costcontrol.domain.values import Money, parse_decimal, parse_percent
from costcontrol.infrastructure.repositories import ProjectBudgetRepository

from .service_support import repository_boundary, validate_input

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================

class BudgetLineInput(BaseModel):
    """Schema for one line of a new budget version."""
    line_id: Optional[UUID] = Field(None, description="Keep an existing line id")
    cost_code: str = Field(..., min_length=1, max_length=20, description="Cost code (AA-####)")
    category: CostCategory
    description: str = Field(..., min_length=1, max_length=500)
    planned_amount: Decimal = Field(..., ge=0)
    committed_amount: Decimal = Field(Decimal("0"), ge=0)
    actual_amount: Decimal = Field(Decimal("0"), ge=0)


class CreateBudgetVersionInput(BaseModel):
    """Schema for creating a budget version."""
    project_id: UUID
    currency: str = Field(..., pattern=r"^[A-Za-z]{3}$")
    status: BudgetStatus = BudgetStatus.DRAFT
    lines: List[BudgetLineInput] = Field(..., min_length=1)
    baseline_total: Optional[Decimal] = None


# =============================================================================
# Report Types
# =============================================================================

@dataclass
class JobCostLineReport:
    line_id: UUID
    cost_code: str
    description: str
    category: CostCategory
    planned: Money
    committed: Money
    actual: Money
    variance: Money
    variance_percent: float


@dataclass
class JobCostReport:
    project_id: UUID
    budget_id: UUID
    version: int
    currency: str
    planned_total: Money
    committed_total: Money
    actual_total: Money
    variance_total: Money
    baseline_total: Optional[Money] = None
    lines: List[JobCostLineReport] = field(default_factory=list)


@dataclass
class RetentionSummary:
    amount: Money
    withheld: Money
    release: Money
    retention_percent: Decimal


@dataclass
class ProgressInvoiceSummary:
    budget_id: UUID
    percent_complete: Decimal
    planned_value: Money
    earned_value: Money
    previously_billed: Money
    current_billable: Money
    retention_withheld: Money
    amount_due: Money


class BudgetService:
    """
    Application service for project budgets.

    Loads budgets through the repository contract, applies aggregate
    operations and saves the result. Every method returns a Result.
    """

    def __init__(self, budget_repository: ProjectBudgetRepository, config: Optional[FinanceConfig] = None):
        self.budgets = budget_repository
        self.config = config or get_config()

    async def _load_budget(self, budget_id: UUID) -> ProjectBudget:
        budget = await self.budgets.find_by_id(budget_id)
        if budget is None:
            raise BudgetNotFoundError(budget_id)
        return budget

    @staticmethod
    def _build_line(data: BudgetLineInput, currency: str) -> BudgetLine:
        code = CostCode.create(data.cost_code).unwrap()
        return BudgetLine.create(
            cost_code=code.value,
            category=data.category,
            description=data.description,
            planned_amount=Money(data.planned_amount, currency),
            committed_amount=Money(data.committed_amount, currency),
            actual_amount=Money(data.actual_amount, currency),
            line_id=data.line_id,
        ).unwrap()

    # =========================================================================
    # Budget Versions
    # =========================================================================

    @repository_boundary("create budget version")
    async def create_budget_version(self, data) -> Result[ProjectBudget]:
        """Create the next budget version for a project (1 when none exists)."""
        validated = validate_input(CreateBudgetVersionInput, data)
        if validated.is_failure:
            return validated
        data = validated.value
        currency = data.currency.upper()

        latest = await self.budgets.find_latest_by_project(data.project_id)
        version = latest.version + 1 if latest else 1

        lines = [self._build_line(line, currency) for line in data.lines]
        baseline = Money(data.baseline_total, currency) if data.baseline_total is not None else None

        budget = ProjectBudget.create(
            project_id=data.project_id,
            version=version,
            currency=currency,
            lines=lines,
            status=data.status,
            baseline_total=baseline,
        ).unwrap()

        await self.budgets.save(budget)
        logger.info(f"Created budget v{version} for project {data.project_id} with {len(lines)} lines")
        return Result.ok(budget)

    @repository_boundary("approve baseline")
    async def approve_baseline(self, budget_id: UUID, total: Optional[Money] = None) -> Result[ProjectBudget]:
        """Baseline the budget at ``total`` (defaults to the current planned total)."""
        budget = await self._load_budget(budget_id)
        budget.approve_baseline(total or budget.planned_total).unwrap()
        await self.budgets.save(budget)
        return Result.ok(budget)

    @repository_boundary("record budget line totals")
    async def record_budget_line_totals(
        self,
        budget_id: UUID,
        line_id: UUID,
        planned_amount: Optional[Decimal] = None,
        committed_amount: Optional[Decimal] = None,
        actual_amount: Optional[Decimal] = None,
    ) -> Result[ProjectBudget]:
        budget = await self._load_budget(budget_id)
        line = budget.find_line(line_id)
        if line is None:
            raise BudgetLineNotFoundError(line_id)

        def as_money(amount: Optional[Decimal]) -> Optional[Money]:
            return Money.create(amount, budget.currency).unwrap() if amount is not None else None

        updated = line.with_amounts(
            planned_amount=as_money(planned_amount),
            committed_amount=as_money(committed_amount),
            actual_amount=as_money(actual_amount),
        ).unwrap()
        budget.replace_line(updated).unwrap()
        await self.budgets.save(budget)
        return Result.ok(budget)

    # =========================================================================
    # Reports
    # =========================================================================

    @repository_boundary("generate job cost report")
    async def generate_job_cost_report(self, budget_id: UUID) -> Result[JobCostReport]:
        budget = await self._load_budget(budget_id)
        lines = [
            JobCostLineReport(
                line_id=line.line_id,
                cost_code=line.cost_code,
                description=line.description,
                category=line.category,
                planned=line.planned_amount,
                committed=line.committed_amount,
                actual=line.actual_amount,
                variance=line.variance(),
                variance_percent=line.variance_percent(),
            )
            for line in budget.lines
        ]
        return Result.ok(JobCostReport(
            project_id=budget.project_id,
            budget_id=budget.id,
            version=budget.version,
            currency=budget.currency,
            planned_total=budget.planned_total,
            committed_total=budget.committed_total,
            actual_total=budget.actual_total,
            variance_total=budget.variance_total,
            baseline_total=budget.baseline_total,
            lines=lines,
        ))

    def calculate_retention(self, amount: Money, retention_percent=None) -> Result[RetentionSummary]:
        """Split ``amount`` into retention withheld and amount released."""
        if retention_percent is None:
            retention_percent = self.config.default_retainage_percent
        parsed = parse_percent(retention_percent, "retention_percent")
        if parsed.is_failure:
            return parsed
        retention_percent = parsed.value

        if amount.is_negative:
            return Result.fail(ValidationError("amount", "amount cannot be negative"))

        withheld = Money(amount.amount * retention_percent / 100, amount.currency).rounded()
        return Result.ok(RetentionSummary(
            amount=amount,
            withheld=withheld,
            release=amount - withheld,
            retention_percent=retention_percent,
        ))

    @repository_boundary("prepare progress invoice")
    async def prepare_progress_invoice(
        self,
        budget_id: UUID,
        percent_complete,
        previously_billed_amount,
        retention_percent=None,
    ) -> Result[ProgressInvoiceSummary]:
        """
        Summarize the amount billable for the budget at ``percent_complete``.

        Current billable never goes below zero; retention is only withheld
        when ``retention_percent`` is given.
        """
        percent_complete = parse_percent(percent_complete, "percent_complete").unwrap()
        previously_billed_amount = parse_decimal(previously_billed_amount, "previously_billed_amount").unwrap()
        if previously_billed_amount < 0:
            return Result.fail(ValidationError("previously_billed_amount", "cannot be negative"))

        budget = await self._load_budget(budget_id)
        currency = budget.currency
        planned = budget.planned_total
        earned = Money(planned.amount * percent_complete / 100, currency).rounded()
        previously_billed = Money(previously_billed_amount, currency)
        billable = max(earned - previously_billed, Money.zero(currency))

        withheld = Money.zero(currency)
        amount_due = billable
        if retention_percent is not None:
            retention = self.calculate_retention(billable, retention_percent).unwrap()
            withheld = retention.withheld
            amount_due = retention.release

        return Result.ok(ProgressInvoiceSummary(
            budget_id=budget.id,
            percent_complete=percent_complete,
            planned_value=planned,
            earned_value=earned,
            previously_billed=previously_billed,
            current_billable=billable,
            retention_withheld=withheld,
            amount_due=amount_due,
        ))
