"""
Job Costing Service - cost recording, variance analysis and profitability.

Provides:
1. Recording, approving and posting job costs to budget lines
2. Multi-dimension cost analysis and threshold variance alerts
3. Job profitability with monthly trend (pandas rollups in cents)
4. Shared cost allocation across projects (largest remainder, exact cents)
5. Earned value management metrics
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

import pandas as pd
from pydantic import BaseModel, Field

from costcontrol.config import FinanceConfig, get_config
from costcontrol.domain.entities import CostCategory, CostCode, JobCostRecord, ProjectBudget
from costcontrol.domain.exceptions import (
    BudgetLineNotFoundError,
    BudgetNotFoundError,
    CurrencyMismatchError,
    DuplicateOperationError,
    InvalidStateTransitionError,
    JobCostRecordNotFoundError,
    ValidationError,
)
from costcontrol.domain.result import Result
from costcontrol.domain.values import Money, allocate_largest_remainder, parse_percent, sum_money
from costcontrol.infrastructure.repositories import JobCostRecordRepository, ProjectBudgetRepository

from .service_support import repository_boundary, validate_input
from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

ALLOCATED_TAG = "allocated"


# =============================================================================
# Pydantic Models
# =============================================================================

class RecordJobCostInput(BaseModel):
    """Schema for recording a job cost."""
    project_id: UUID
    budget_id: UUID
    cost_code: str = Field(..., min_length=1, max_length=20)
    category: CostCategory
    description: str = Field(..., min_length=3, max_length=500)
    transaction_date: date
    currency: str = Field(..., pattern=r"^[A-Za-z]{3}$")
    planned_amount: Decimal = Field(..., ge=0)
    committed_amount: Decimal = Field(Decimal("0"), ge=0)
    actual_amount: Decimal = Field(Decimal("0"), ge=0)
    phase: Optional[str] = None
    task: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    invoice_id: Optional[str] = None
    purchase_order_id: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    created_by: Optional[str] = None


class CostAnalysisParams(BaseModel):
    """Filters for cost analysis; every supplied filter must match."""
    project_id: UUID
    phase: Optional[str] = None
    task: Optional[str] = None
    category: Optional[CostCategory] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class AllocationTarget(BaseModel):
    project_id: UUID
    budget_id: UUID
    allocation_percent: Decimal = Field(..., gt=0, le=100)


class CostAllocationInput(BaseModel):
    """Schema for splitting one shared cost across projects."""
    cost_code: str = Field(..., min_length=1, max_length=20)
    category: CostCategory
    description: str = Field(..., min_length=3, max_length=500)
    transaction_date: date
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(..., pattern=r"^[A-Za-z]{3}$")
    targets: List[AllocationTarget] = Field(..., min_length=1)
    created_by: Optional[str] = None


# =============================================================================
# Result Types
# =============================================================================

@dataclass
class CostAnalysis:
    project_id: UUID
    record_count: int
    planned: Money
    committed: Money
    actual: Money
    variance: Money
    variance_percent: float
    by_category: Dict[str, Money] = field(default_factory=dict)


@dataclass
class VarianceItem:
    record_id: UUID
    cost_code: str
    description: str
    planned: Money
    actual: Money
    variance: Money
    variance_percent: float
    exceeds_threshold: bool


@dataclass
class MonthlyProfit:
    month: date
    revenue: Money
    cost: Money
    profit: Money


@dataclass
class JobProfitability:
    project_id: UUID
    revenue: Money
    total_cost: Money
    gross_profit: Money
    gross_margin_percent: float
    roi_percent: float
    cost_by_category: Dict[str, Money] = field(default_factory=dict)
    profit_trend: List[MonthlyProfit] = field(default_factory=list)


@dataclass
class JobMargin:
    project_id: UUID
    revenue: Money
    cost: Money
    profit: Money
    margin_percent: float


@dataclass
class EVMMetrics:
    """Earned value metrics; indices are 0.0 when their denominator is zero."""
    project_id: UUID
    planned_value: Money
    earned_value: Money
    actual_cost: Money
    schedule_variance: Money
    cost_variance: Money
    schedule_performance_index: float
    cost_performance_index: float
    budget_at_completion: Money
    estimate_at_completion: Money
    estimate_to_complete: Money
    variance_at_completion: Money
    to_complete_performance_index: float


def _ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    return numerator / denominator if denominator != 0 else Decimal("0")


class JobCostingService:
    """Application service for job cost records."""

    def __init__(
        self,
        job_cost_repository: JobCostRecordRepository,
        budget_repository: ProjectBudgetRepository,
        config: Optional[FinanceConfig] = None,
    ):
        self.job_costs = job_cost_repository
        self.budgets = budget_repository
        self.config = config or get_config()

    async def _load_record(self, record_id: UUID) -> JobCostRecord:
        record = await self.job_costs.find_by_id(record_id)
        if record is None:
            raise JobCostRecordNotFoundError(record_id)
        return record

    async def _load_latest_budget(self, project_id: UUID) -> ProjectBudget:
        budget = await self.budgets.find_latest_by_project(project_id)
        if budget is None:
            raise BudgetNotFoundError(project_id, f"No budget found for project '{project_id}'")
        return budget

    # =========================================================================
    # Recording & Approval
    # =========================================================================

    @repository_boundary("record job cost")
    async def record_job_cost(self, data) -> Result[JobCostRecord]:
        validated = validate_input(RecordJobCostInput, data)
        if validated.is_failure:
            return validated
        data = validated.value
        currency = data.currency.upper()
        code = CostCode.create(data.cost_code).unwrap()

        record = JobCostRecord.create(
            project_id=data.project_id,
            budget_id=data.budget_id,
            cost_code=code.value,
            category=data.category,
            description=data.description,
            transaction_date=data.transaction_date,
            planned_amount=Money(data.planned_amount, currency),
            committed_amount=Money(data.committed_amount, currency),
            actual_amount=Money(data.actual_amount, currency),
            phase=data.phase,
            task=data.task,
            resource_type=data.resource_type,
            resource_id=data.resource_id,
            invoice_id=data.invoice_id,
            purchase_order_id=data.purchase_order_id,
            tags=data.tags,
            created_by=data.created_by,
        ).unwrap()
        await self.job_costs.save(record)
        return Result.ok(record)

    @repository_boundary("approve job cost")
    async def approve_job_cost(self, record_id: UUID, approved_by: str) -> Result[JobCostRecord]:
        record = await self._load_record(record_id)
        record.approve(approved_by).unwrap()
        await self.job_costs.save(record)
        return Result.ok(record)

    @repository_boundary("post job cost to budget")
    async def post_job_cost_to_budget(self, record_id: UUID) -> Result[ProjectBudget]:
        """
        Add an approved record's actual and committed amounts to the budget
        line with the same cost code.

        Both aggregates are saved through a UnitOfWork; if the second save
        fails the first is compensated.
        """
        record = await self._load_record(record_id)
        posted_tag = self.config.posted_tag
        if not record.approved:
            raise InvalidStateTransitionError(
                "Only approved job costs can be posted to a budget", "unapproved", "posted"
            )
        if record.has_tag(posted_tag):
            raise DuplicateOperationError(f"Job cost record {record.id} is already posted")

        budget = await self.budgets.find_by_id(record.budget_id)
        if budget is None:
            raise BudgetNotFoundError(record.budget_id)
        line = next((candidate for candidate in budget.lines if candidate.cost_code == record.cost_code), None)
        if line is None:
            raise BudgetLineNotFoundError(
                record.cost_code, f"No budget line for cost code '{record.cost_code}'"
            )

        budget_before = UnitOfWork.snapshot(budget)
        record_before = UnitOfWork.snapshot(record)

        updated = line.with_amounts(
            actual_amount=line.actual_amount + record.actual_amount,
            committed_amount=line.committed_amount + record.committed_amount,
        ).unwrap()
        budget.replace_line(updated).unwrap()
        record.add_tag(posted_tag)

        uow = UnitOfWork()
        uow.register(self.budgets, budget, original=budget_before)
        uow.register(self.job_costs, record, original=record_before)
        committed = await uow.commit()
        if committed.is_failure:
            return committed

        logger.info(f"Posted job cost {record.id} ({record.actual_amount}) to budget line {line.line_id}")
        return Result.ok(budget)

    # =========================================================================
    # Analysis
    # =========================================================================

    @repository_boundary("analyze costs")
    async def analyze_costs(self, params) -> Result[CostAnalysis]:
        validated = validate_input(CostAnalysisParams, params)
        if validated.is_failure:
            return validated
        params = validated.value

        records = await self.job_costs.find_by_project(params.project_id)
        filters = [
            (params.phase, lambda r: r.phase == params.phase),
            (params.task, lambda r: r.task == params.task),
            (params.category, lambda r: r.category == params.category),
            (params.start_date, lambda r: r.transaction_date >= params.start_date),
            (params.end_date, lambda r: r.transaction_date <= params.end_date),
        ]
        for value, predicate in filters:
            if value is not None:
                records = [r for r in records if predicate(r)]

        currency = records[0].currency if records else (await self._load_latest_budget(params.project_id)).currency
        planned = sum_money((r.planned_amount for r in records), currency)
        committed = sum_money((r.committed_amount for r in records), currency)
        actual = sum_money((r.actual_amount for r in records), currency)
        variance = planned - actual

        by_category: Dict[str, Money] = {}
        for r in records:
            key = r.category.value
            by_category[key] = by_category.get(key, Money.zero(currency)) + r.actual_amount

        return Result.ok(CostAnalysis(
            project_id=params.project_id,
            record_count=len(records),
            planned=planned,
            committed=committed,
            actual=actual,
            variance=variance,
            variance_percent=variance.percent_of(planned),
            by_category=by_category,
        ))

    @repository_boundary("calculate variance")
    async def calculate_variance(self, project_id: UUID, threshold_percent: Optional[float] = None) -> Result[List[VarianceItem]]:
        """Per-record variance, largest absolute variance percent first."""
        if threshold_percent is None:
            threshold_percent = self.config.variance_threshold_percent

        records = await self.job_costs.find_by_project(project_id)
        items = [
            VarianceItem(
                record_id=r.id,
                cost_code=r.cost_code,
                description=r.description,
                planned=r.planned_amount,
                actual=r.actual_amount,
                variance=r.variance(),
                variance_percent=r.variance_percent(),
                exceeds_threshold=abs(r.variance_percent()) > threshold_percent,
            )
            for r in records
        ]
        items.sort(key=lambda item: abs(item.variance_percent), reverse=True)

        alerts = sum(1 for item in items if item.exceeds_threshold)
        if alerts:
            logger.warning(f"Project {project_id}: {alerts} cost record(s) beyond {threshold_percent}% variance")
        return Result.ok(items)

    @repository_boundary("get over budget items")
    async def get_over_budget_items(self, project_id: UUID) -> Result[List[JobCostRecord]]:
        return Result.ok(await self.job_costs.find_over_budget(project_id))

    # =========================================================================
    # Profitability
    # =========================================================================

    @staticmethod
    def _cost_frame(records: List[JobCostRecord]) -> pd.DataFrame:
        rows = [
            {
                "month": r.transaction_date.replace(day=1),
                "category": r.category.value,
                "actual_cents": r.actual_amount.to_cents(),
            }
            for r in records
        ]
        return pd.DataFrame(rows, columns=["month", "category", "actual_cents"])

    @repository_boundary("calculate job profit")
    async def calculate_job_profit(self, project_id: UUID, revenue: Optional[Money] = None) -> Result[JobProfitability]:
        """
        Profitability of a project.

        Revenue defaults to the planned total of the latest budget version and
        is spread evenly over the months that carry cost.
        """
        if revenue is None:
            revenue = (await self._load_latest_budget(project_id)).planned_total
        currency = revenue.currency

        records = await self.job_costs.find_by_project(project_id)
        foreign = next((r for r in records if r.currency != currency), None)
        if foreign is not None:
            raise CurrencyMismatchError(currency, foreign.currency, f"job cost {foreign.id}")

        df = self._cost_frame(records)
        total_cost = Money.from_cents(int(df["actual_cents"].sum()), currency)
        by_category = {
            category: Money.from_cents(int(cents), currency)
            for category, cents in df.groupby("category")["actual_cents"].sum().items()
        }

        monthly = df.groupby("month")["actual_cents"].sum().sort_index()
        monthly_revenue = allocate_largest_remainder(revenue.to_cents(), [1] * len(monthly))
        trend = [
            MonthlyProfit(
                month=month,
                revenue=Money.from_cents(rev_cents, currency),
                cost=Money.from_cents(int(cost_cents), currency),
                profit=Money.from_cents(rev_cents - int(cost_cents), currency),
            )
            for (month, cost_cents), rev_cents in zip(monthly.items(), monthly_revenue)
        ]

        gross_profit = revenue - total_cost
        return Result.ok(JobProfitability(
            project_id=project_id,
            revenue=revenue,
            total_cost=total_cost,
            gross_profit=gross_profit,
            gross_margin_percent=gross_profit.percent_of(revenue),
            roi_percent=gross_profit.percent_of(total_cost),
            cost_by_category=by_category,
            profit_trend=trend,
        ))

    async def get_job_margins(self, project_ids: List[UUID]) -> Result[List[JobMargin]]:
        """Margins for several projects, highest margin first; fails on the first failure."""
        margins = []
        for project_id in project_ids:
            profit = await self.calculate_job_profit(project_id)
            if profit.is_failure:
                return profit
            p = profit.value
            margins.append(JobMargin(
                project_id=project_id,
                revenue=p.revenue,
                cost=p.total_cost,
                profit=p.gross_profit,
                margin_percent=p.gross_margin_percent,
            ))
        margins.sort(key=lambda m: m.margin_percent, reverse=True)
        return Result.ok(margins)

    # =========================================================================
    # Allocation
    # =========================================================================

    @repository_boundary("allocate costs")
    async def allocate_costs(self, data) -> Result[List[JobCostRecord]]:
        """
        Split one shared cost across projects.

        Percentages must total 100 within the configured tolerance. One
        record per target is created and all are saved together.
        """
        validated = validate_input(CostAllocationInput, data)
        if validated.is_failure:
            return validated
        data = validated.value

        total_percent = sum(t.allocation_percent for t in data.targets)
        tolerance = Decimal(str(self.config.allocation_tolerance_percent))
        if abs(total_percent - 100) > tolerance:
            return Result.fail(ValidationError(
                "targets", f"Allocation percentages must sum to 100%, got {total_percent}%"
            ))

        currency = data.currency.upper()
        code = CostCode.create(data.cost_code).unwrap()
        total = Money(data.amount, currency)
        shares = allocate_largest_remainder(total.to_cents(), [t.allocation_percent for t in data.targets])

        uow = UnitOfWork()
        records = []
        for target, cents in zip(data.targets, shares):
            amount = Money.from_cents(cents, currency)
            record = JobCostRecord.create(
                project_id=target.project_id,
                budget_id=target.budget_id,
                cost_code=code.value,
                category=data.category,
                description=f"{data.description} ({target.allocation_percent}% allocation)",
                transaction_date=data.transaction_date,
                planned_amount=amount,
                actual_amount=amount,
                tags=[ALLOCATED_TAG],
                created_by=data.created_by,
            ).unwrap()
            uow.register(self.job_costs, record)
            records.append(record)

        committed = await uow.commit()
        if committed.is_failure:
            return committed
        logger.info(f"Allocated {total} across {len(records)} project(s)")
        return Result.ok(records)

    # =========================================================================
    # Earned Value
    # =========================================================================

    @repository_boundary("calculate EVM metrics")
    async def calculate_evm_metrics(
        self,
        project_id: UUID,
        percent_complete,
        planned_percent_complete=None,
    ) -> Result[EVMMetrics]:
        """
        Earned value metrics against the latest budget.

        Args:
            percent_complete: Physical percent complete (drives EV)
            planned_percent_complete: Scheduled percent complete (drives PV);
                defaults to percent_complete
        """
        percent_complete = parse_percent(percent_complete, "percent_complete").unwrap()
        planned_percent = (
            parse_percent(planned_percent_complete, "planned_percent_complete").unwrap()
            if planned_percent_complete is not None else percent_complete
        )

        budget = await self._load_latest_budget(project_id)
        currency = budget.currency
        bac = budget.planned_total
        records = await self.job_costs.find_by_project(project_id)
        ac = sum_money((r.actual_amount for r in records if r.budget_id == budget.id), currency)

        pv = Money(bac.amount * planned_percent / 100, currency).rounded()
        ev = Money(bac.amount * percent_complete / 100, currency).rounded()
        spi = _ratio(ev.amount, pv.amount)
        cpi = _ratio(ev.amount, ac.amount)
        eac = Money(_ratio(bac.amount, cpi), currency).rounded()
        tcpi = _ratio(bac.amount - ev.amount, bac.amount - ac.amount)

        return Result.ok(EVMMetrics(
            project_id=project_id,
            planned_value=pv,
            earned_value=ev,
            actual_cost=ac,
            schedule_variance=ev - pv,
            cost_variance=ev - ac,
            schedule_performance_index=float(spi),
            cost_performance_index=float(cpi),
            budget_at_completion=bac,
            estimate_at_completion=eac,
            estimate_to_complete=eac - ac,
            variance_at_completion=bac - eac,
            to_complete_performance_index=float(tcpi),
        ))
