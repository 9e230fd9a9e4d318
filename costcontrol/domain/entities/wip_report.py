"""
WIP Report Value Objects - percentage-of-completion revenue recognition.

Provides:
- WIPReport: per-project work-in-progress snapshot
- WIPReport.compute: cost-to-cost derivation of every report field
- WIPSummary: portfolio rollup across many reports, with a health score

Both are immutable once created; every money field of one snapshot
shares a single currency.
"""
import logging
import math
from dataclasses import dataclass, fields
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Tuple

from ..exceptions import CurrencyMismatchError, ValidationError
from ..result import Result
from ..values import Money, first_currency_mismatch, sum_money

logger = logging.getLogger(__name__)


def _is_finite_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return False
    return math.isfinite(value)


def _is_count(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def _money_fields(instance) -> Tuple[Money, ...]:
    return tuple(
        getattr(instance, f.name) for f in fields(instance)
        if isinstance(getattr(instance, f.name), Money)
    )


def _build(cls, props: dict):
    """Construct ``cls`` and check that every money field shares one currency."""
    try:
        instance = cls(**props)
    except TypeError as e:
        return Result.fail(ValidationError(cls.__name__, str(e)))

    amounts = _money_fields(instance)
    declared = [f.name for f in fields(cls) if f.type in (Money, "Money")]
    if len(amounts) != len(declared):
        return Result.fail(ValidationError(cls.__name__, "every money field is required"))
    mismatch = first_currency_mismatch(amounts, amounts[0].currency)
    if mismatch is not None:
        return Result.fail(CurrencyMismatchError(amounts[0].currency, mismatch.currency, cls.__name__))
    return Result.ok(instance)


def _snapshot_dict(instance) -> dict:
    data = {}
    for f in fields(instance):
        value = getattr(instance, f.name)
        if isinstance(value, Money):
            data[f.name] = value.to_dict()
        elif isinstance(value, date):
            data[f.name] = value.isoformat()
        elif isinstance(value, float):
            data[f.name] = round(value, 2)
        else:
            data[f.name] = value
    return data


@dataclass(frozen=True)
class WIPReport:
    """
    Work-in-progress snapshot for one project.

    Attributes:
        percent_complete: Cost-to-cost completion (0-100)
        earned_revenue: Revised contract x percent complete
        over_under_billings: Billed to date - earned revenue
            (positive = billed ahead of work)
    """

    project_id: str
    project_name: str
    report_date: date
    original_contract_amount: Money
    approved_change_orders: Money
    revised_contract_amount: Money
    costs_to_date: Money
    estimated_cost_to_complete: Money
    estimated_total_cost: Money
    percent_complete: float
    earned_revenue: Money
    billed_to_date: Money
    cost_of_earned_revenue: Money
    estimated_gross_profit: Money
    estimated_gross_profit_percent: float
    gross_profit_recognized: Money
    over_under_billings: Money

    @classmethod
    def create(cls, **props) -> Result["WIPReport"]:
        percent = props.get("percent_complete")
        if not _is_finite_number(percent):
            return Result.fail(ValidationError("percent_complete", "percent complete must be a finite number"))
        if percent < 0 or percent > 100:
            return Result.fail(ValidationError("percent_complete", "percent complete must be between 0 and 100"))
        props["project_id"] = str(props.get("project_id") or "")
        if not props["project_id"]:
            return Result.fail(ValidationError("project_id", "project id is required"))
        return _build(cls, props)

    @classmethod
    def compute(
        cls,
        project_id,
        project_name: str,
        report_date: date,
        original_contract_amount: Money,
        approved_change_orders: Money,
        costs_to_date: Money,
        estimated_cost_to_complete: Money,
        billed_to_date: Money,
    ) -> Result["WIPReport"]:
        """
        Derive a report using the cost-to-cost method.

        percent complete = costs to date / estimated total cost. A projected
        loss is recognized in full as soon as it is known.
        """
        currency = original_contract_amount.currency
        inputs = (approved_change_orders, costs_to_date, estimated_cost_to_complete, billed_to_date)
        mismatch = first_currency_mismatch(inputs, currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(currency, mismatch.currency, "WIP inputs"))
        if costs_to_date.is_negative or estimated_cost_to_complete.is_negative:
            return Result.fail(ValidationError("costs_to_date", "costs cannot be negative"))

        revised = original_contract_amount + approved_change_orders
        estimated_total = costs_to_date + estimated_cost_to_complete
        ratio = Decimal("0") if estimated_total.is_zero else costs_to_date.amount / estimated_total.amount

        earned = Money(revised.amount * ratio, currency).rounded()
        gross_profit = revised - estimated_total
        recognized = gross_profit if gross_profit.is_negative else earned - costs_to_date

        return cls.create(
            project_id=project_id,
            project_name=project_name,
            report_date=report_date,
            original_contract_amount=original_contract_amount,
            approved_change_orders=approved_change_orders,
            revised_contract_amount=revised,
            costs_to_date=costs_to_date,
            estimated_cost_to_complete=estimated_cost_to_complete,
            estimated_total_cost=estimated_total,
            percent_complete=float(ratio * 100),
            earned_revenue=earned,
            billed_to_date=billed_to_date,
            cost_of_earned_revenue=costs_to_date,
            estimated_gross_profit=gross_profit,
            estimated_gross_profit_percent=gross_profit.percent_of(revised),
            gross_profit_recognized=recognized,
            over_under_billings=billed_to_date - earned,
        )

    @property
    def currency(self) -> str:
        return self.revised_contract_amount.currency

    @property
    def is_over_billed(self) -> bool:
        return self.over_under_billings.is_positive

    @property
    def is_under_billed(self) -> bool:
        return self.over_under_billings.is_negative

    @property
    def is_on_budget(self) -> bool:
        return self.costs_to_date <= self.estimated_total_cost

    @property
    def is_over_budget(self) -> bool:
        return self.costs_to_date > self.estimated_total_cost

    @property
    def cost_variance(self) -> Money:
        try:
            return self.estimated_total_cost - self.costs_to_date
        except CurrencyMismatchError:
            logger.warning(f"WIP report {self.project_id}: cost variance fell back to estimated total cost")
            return self.estimated_total_cost

    @property
    def revenue_remaining(self) -> Money:
        try:
            return self.revised_contract_amount - self.earned_revenue
        except CurrencyMismatchError:
            logger.warning(f"WIP report {self.project_id}: revenue remaining fell back to revised contract")
            return self.revised_contract_amount

    @property
    def is_profitable(self) -> bool:
        return self.estimated_gross_profit.is_positive

    @property
    def is_in_loss(self) -> bool:
        return self.estimated_gross_profit.is_negative

    def to_dict(self) -> dict:
        return _snapshot_dict(self)


@dataclass(frozen=True)
class WIPSummary:
    """Portfolio-level rollup of WIP reports."""

    report_date: date
    total_projects: int
    total_contract_amount: Money
    total_approved_change_orders: Money
    total_revised_contract_amount: Money
    total_costs_to_date: Money
    total_estimated_cost_to_complete: Money
    total_estimated_total_cost: Money
    total_earned_revenue: Money
    total_billed_to_date: Money
    total_cost_of_earned_revenue: Money
    total_estimated_gross_profit: Money
    total_gross_profit_recognized: Money
    total_over_under_billings: Money
    average_gross_profit_percent: float
    projects_over_billed: int
    projects_under_billed: int
    projects_over_budget: int
    projects_on_budget: int
    profitable_projects: int
    unprofitable_projects: int

    @classmethod
    def create(cls, **props) -> Result["WIPSummary"]:
        total = props.get("total_projects")
        if not _is_count(total):
            return Result.fail(ValidationError("total_projects", "total projects must be a non-negative integer"))
        for name in (
            "projects_over_billed",
            "projects_under_billed",
            "projects_over_budget",
            "projects_on_budget",
            "profitable_projects",
            "unprofitable_projects",
        ):
            count = props.get(name, 0)
            if not _is_count(count) or count > total:
                return Result.fail(ValidationError(name, f"must be between 0 and {total}"))
        if not _is_finite_number(props.get("average_gross_profit_percent")):
            return Result.fail(ValidationError("average_gross_profit_percent", "must be a finite number"))
        return _build(cls, props)

    @classmethod
    def from_reports(
        cls,
        reports: Iterable[WIPReport],
        report_date: date,
        currency: Optional[str] = None,
    ) -> Result["WIPSummary"]:
        """Aggregate reports; ``currency`` is required when ``reports`` is empty."""
        reports = list(reports)
        if not reports and not currency:
            return Result.fail(ValidationError("currency", "currency is required for an empty portfolio"))
        currency = currency or reports[0].currency
        mismatch = next((r for r in reports if r.currency != currency), None)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(currency, mismatch.currency, f"report {mismatch.project_id}"))

        def total(attr: str) -> Money:
            return sum_money((getattr(r, attr) for r in reports), currency)

        average = (
            sum(r.estimated_gross_profit_percent for r in reports) / len(reports) if reports else 0.0
        )
        return cls.create(
            report_date=report_date,
            total_projects=len(reports),
            total_contract_amount=total("original_contract_amount"),
            total_approved_change_orders=total("approved_change_orders"),
            total_revised_contract_amount=total("revised_contract_amount"),
            total_costs_to_date=total("costs_to_date"),
            total_estimated_cost_to_complete=total("estimated_cost_to_complete"),
            total_estimated_total_cost=total("estimated_total_cost"),
            total_earned_revenue=total("earned_revenue"),
            total_billed_to_date=total("billed_to_date"),
            total_cost_of_earned_revenue=total("cost_of_earned_revenue"),
            total_estimated_gross_profit=total("estimated_gross_profit"),
            total_gross_profit_recognized=total("gross_profit_recognized"),
            total_over_under_billings=total("over_under_billings"),
            average_gross_profit_percent=average,
            projects_over_billed=sum(1 for r in reports if r.is_over_billed),
            projects_under_billed=sum(1 for r in reports if r.is_under_billed),
            projects_over_budget=sum(1 for r in reports if r.is_over_budget),
            projects_on_budget=sum(1 for r in reports if r.is_on_budget),
            profitable_projects=sum(1 for r in reports if r.is_profitable),
            unprofitable_projects=sum(1 for r in reports if r.is_in_loss),
        )

    @property
    def currency(self) -> str:
        return self.total_revised_contract_amount.currency

    @property
    def overall_percent_complete(self) -> float:
        return self.total_earned_revenue.percent_of(self.total_revised_contract_amount)

    @property
    def portfolio_health_score(self) -> int:
        """0-100 blend: half profitability ratio, half on-budget ratio."""
        if self.total_projects == 0:
            return 0
        score = (
            Decimal(self.profitable_projects) / self.total_projects * 50
            + Decimal(self.projects_on_budget) / self.total_projects * 50
        )
        return int(score.quantize(Decimal("1"), rounding=ROUND_HALF_UP))

    def to_dict(self) -> dict:
        data = _snapshot_dict(self)
        data["overall_percent_complete"] = round(self.overall_percent_complete, 2)
        data["portfolio_health_score"] = self.portfolio_health_score
        return data
