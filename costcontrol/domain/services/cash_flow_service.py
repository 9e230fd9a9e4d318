"""
Cash Flow Service - thirteen-week projections and liquidity analysis.

Provides:
1. Projection generation with configured scenario multipliers
2. Side-by-side best / expected / worst case modelling
3. Week updates that roll ending balances forward
4. Liquidity risk assessment and working capital
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from costcontrol.config import FinanceConfig, get_config
from costcontrol.domain.entities import (
    WEEKS_IN_PROJECTION,
    CashFlowProjection,
    CashFlowScenario,
    CashFlowWeek,
)
from costcontrol.domain.entities.budget_line import parse_enum
from costcontrol.domain.exceptions import (
    CurrencyMismatchError,
    ProjectionNotFoundError,
    ValidationError,
    WeekNotFoundError,
)
from costcontrol.domain.result import Result
from costcontrol.domain.values import Money, allocate_largest_remainder
from costcontrol.infrastructure.repositories import CashFlowProjectionRepository

from .service_support import repository_boundary, validate_input

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7
WEEKS_PER_MONTH = Decimal("4.33")

_FLOWS = ("inflows_ar", "inflows_other", "outflows_ap", "outflows_payroll", "outflows_other")


# =============================================================================
# Pydantic Models
# =============================================================================

class ProjectionInput(BaseModel):
    """
    Schema for generating a projection.

    Flow amounts are totals for the whole 13-week horizon; they are spread
    evenly across the weeks after the scenario multipliers are applied.
    """
    name: str = Field(..., min_length=1, max_length=200)
    scenario: CashFlowScenario = CashFlowScenario.EXPECTED
    currency: str = Field(..., pattern=r"^[A-Za-z]{3}$")
    start_date: date
    opening_balance: Decimal
    total_inflows_ar: Decimal = Field(Decimal("0"), ge=0)
    total_inflows_other: Decimal = Field(Decimal("0"), ge=0)
    total_outflows_ap: Decimal = Field(Decimal("0"), ge=0)
    total_outflows_payroll: Decimal = Field(Decimal("0"), ge=0)
    total_outflows_other: Decimal = Field(Decimal("0"), ge=0)
    project_id: Optional[UUID] = None
    description: Optional[str] = None
    created_by: str = Field(..., min_length=1)
    assumptions: List[str] = Field(default_factory=list)


class WeekUpdateInput(BaseModel):
    """Replacement flows for one week, in the projection currency."""
    inflows_ar: Decimal = Field(..., ge=0)
    inflows_other: Decimal = Field(Decimal("0"), ge=0)
    outflows_ap: Decimal = Field(Decimal("0"), ge=0)
    outflows_payroll: Decimal = Field(Decimal("0"), ge=0)
    outflows_other: Decimal = Field(Decimal("0"), ge=0)


# =============================================================================
# Result Types
# =============================================================================

class LiquidityRiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ScenarioComparison:
    projections: Dict[CashFlowScenario, CashFlowProjection]
    final_balances: Dict[CashFlowScenario, Money]
    lowest_balances: Dict[CashFlowScenario, Money]
    negative_weeks: Dict[CashFlowScenario, int]


@dataclass
class LiquidityRisk:
    projection_id: UUID
    risk_level: LiquidityRiskLevel
    runway_months: Optional[float]
    average_weekly_outflow: Money
    lowest_balance: Money
    lowest_balance_week: Optional[int]
    negative_balance_weeks: int
    low_balance_weeks: int
    warnings: List[str] = field(default_factory=list)


@dataclass
class WorkingCapital:
    current_assets: Money
    current_liabilities: Money
    working_capital: Money
    current_ratio: Optional[float]


class CashFlowService:
    """Application service for cash flow projections."""

    def __init__(self, projection_repository: CashFlowProjectionRepository, config: Optional[FinanceConfig] = None):
        self.projections = projection_repository
        self.config = config or get_config()

    async def _load_projection(self, projection_id: UUID) -> CashFlowProjection:
        projection = await self.projections.find_by_id(projection_id)
        if projection is None:
            raise ProjectionNotFoundError(projection_id)
        return projection

    # =========================================================================
    # Generation
    # =========================================================================

    def _build_weeks(self, data: ProjectionInput, scenario: CashFlowScenario) -> List[CashFlowWeek]:
        currency = data.currency.upper()
        multipliers = self.config.get_scenario_multipliers(scenario.value)

        weekly: Dict[str, List[int]] = {}
        for flow in _FLOWS:
            factor = Decimal(str(multipliers["inflows" if flow.startswith("inflows") else "outflows"]))
            total = Money(getattr(data, f"total_{flow}") * factor, currency)
            weekly[flow] = allocate_largest_remainder(total.to_cents(), [Decimal("1")] * WEEKS_IN_PROJECTION)

        weeks = []
        balance = Money(data.opening_balance, currency)
        for index in range(WEEKS_IN_PROJECTION):
            week_start = data.start_date + timedelta(days=index * DAYS_PER_WEEK)
            week = CashFlowWeek.build(
                week_number=index + 1,
                week_start_date=week_start,
                week_end_date=week_start + timedelta(days=DAYS_PER_WEEK - 1),
                beginning_balance=balance,
                **{flow: Money.from_cents(weekly[flow][index], currency) for flow in _FLOWS},
            ).unwrap()
            weeks.append(week)
            balance = week.ending_balance
        return weeks

    async def _generate(self, data: ProjectionInput, scenario: CashFlowScenario) -> CashFlowProjection:
        weeks = self._build_weeks(data, scenario)
        projection = CashFlowProjection.create(
            name=data.name,
            scenario=scenario,
            currency=data.currency,
            start_date=data.start_date,
            end_date=weeks[-1].week_end_date,
            opening_balance=Money(data.opening_balance, data.currency.upper()),
            weeks=weeks,
            created_by=data.created_by,
            project_id=data.project_id,
            description=data.description,
            assumptions=data.assumptions,
        ).unwrap()
        await self.projections.save(projection)
        logger.info(
            f"Generated {scenario.value} projection '{projection.name}' "
            f"({projection.weeks_with_negative_balance} negative week(s))"
        )
        return projection

    @repository_boundary("generate 13-week projection")
    async def generate_13_week_projection(self, data) -> Result[CashFlowProjection]:
        validated = validate_input(ProjectionInput, data)
        if validated.is_failure:
            return validated
        return Result.ok(await self._generate(validated.value, validated.value.scenario))

    @repository_boundary("model scenarios")
    async def model_scenarios(self, data) -> Result[ScenarioComparison]:
        """Generate and save one projection per scenario from the same inputs."""
        validated = validate_input(ProjectionInput, data)
        if validated.is_failure:
            return validated

        projections = {}
        for scenario in CashFlowScenario:
            projections[scenario] = await self._generate(validated.value, scenario)

        return Result.ok(ScenarioComparison(
            projections=projections,
            final_balances={s: p.final_balance for s, p in projections.items()},
            lowest_balances={s: p.lowest_balance for s, p in projections.items()},
            negative_weeks={s: p.weeks_with_negative_balance for s, p in projections.items()},
        ))

    @repository_boundary("update week")
    async def update_week(self, projection_id: UUID, week_number: int, data) -> Result[CashFlowProjection]:
        """
        Replace one week's flows, then roll ending balances forward through
        every later week.
        """
        validated = validate_input(WeekUpdateInput, data)
        if validated.is_failure:
            return validated
        data = validated.value

        projection = await self._load_projection(projection_id)
        current = projection.find_week(week_number)
        if current is None:
            return Result.fail(WeekNotFoundError(week_number))

        currency = projection.currency
        beginning = current.ending_balance - current.net_cash_flow
        updated = CashFlowWeek.build(
            week_number=week_number,
            week_start_date=current.week_start_date,
            week_end_date=current.week_end_date,
            beginning_balance=beginning,
            **{flow: Money(getattr(data, flow), currency) for flow in _FLOWS},
        ).unwrap()
        projection.update_week_data(week_number, updated).unwrap()

        balance = updated.ending_balance
        for week in sorted(projection.weeks, key=lambda w: w.week_number):
            if week.week_number <= week_number:
                continue
            rolled = CashFlowWeek.build(
                week_number=week.week_number,
                week_start_date=week.week_start_date,
                week_end_date=week.week_end_date,
                beginning_balance=balance,
                **{flow: getattr(week, flow) for flow in _FLOWS},
            ).unwrap()
            projection.update_week_data(week.week_number, rolled).unwrap()
            balance = rolled.ending_balance

        await self.projections.save(projection)
        return Result.ok(projection)

    # =========================================================================
    # Queries
    # =========================================================================

    @repository_boundary("get latest projection")
    async def get_latest_projection(self, project_id: Optional[UUID] = None) -> Result[Optional[CashFlowProjection]]:
        return Result.ok(await self.projections.find_latest(project_id))

    @repository_boundary("get projections by scenario")
    async def get_projections_by_scenario(self, project_id: Optional[UUID], scenario) -> Result[List[CashFlowProjection]]:
        scenario = parse_enum(CashFlowScenario, scenario, "scenario").unwrap()
        return Result.ok(await self.projections.find_by_scenario(project_id, scenario))

    @repository_boundary("find projections with negative cash flow")
    async def find_projections_with_negative_cash_flow(
        self, project_id: Optional[UUID] = None
    ) -> Result[List[CashFlowProjection]]:
        return Result.ok(await self.projections.find_with_negative_cash_flow(project_id))

    # =========================================================================
    # Analysis
    # =========================================================================

    @repository_boundary("analyze liquidity risk")
    async def analyze_liquidity_risk(self, projection_id: UUID) -> Result[LiquidityRisk]:
        """
        Classify a projection's liquidity risk.

        critical: any week ends below zero
        high: more low-balance weeks than allowed
        medium: runway shorter than the minimum
        low: otherwise
        """
        projection = await self._load_projection(projection_id)
        thresholds = self.config.liquidity
        currency = projection.currency

        average_outflow = Money(
            projection.total_outflows.amount / WEEKS_IN_PROJECTION, currency
        ).rounded()
        runway_months = None
        if average_outflow.is_positive:
            monthly_burn = average_outflow.amount * WEEKS_PER_MONTH
            runway_months = float(projection.final_balance.amount / monthly_burn)

        low_ratio = Decimal(str(thresholds["low_balance_ratio"]))
        low_mark = projection.opening_balance.amount * low_ratio
        low_weeks = sum(1 for w in projection.weeks if w.ending_balance.amount < low_mark)
        negative_weeks = projection.weeks_with_negative_balance
        lowest_week = projection.lowest_balance_week

        warnings = []
        if negative_weeks:
            risk = LiquidityRiskLevel.CRITICAL
            warnings.append(f"{negative_weeks} week(s) projected with a negative balance")
        elif low_weeks > thresholds["max_low_balance_weeks"]:
            risk = LiquidityRiskLevel.HIGH
            warnings.append(f"{low_weeks} week(s) below {float(low_ratio) * 100:.0f}% of opening balance")
        elif runway_months is not None and runway_months < thresholds["min_runway_months"]:
            risk = LiquidityRiskLevel.MEDIUM
        else:
            risk = LiquidityRiskLevel.LOW

        if runway_months is not None and runway_months < thresholds["runway_warning_months"]:
            warnings.append(f"Cash runway is {runway_months:.1f} months")

        if risk != LiquidityRiskLevel.LOW:
            logger.warning(f"Projection {projection.id}: liquidity risk {risk.value}")

        return Result.ok(LiquidityRisk(
            projection_id=projection.id,
            risk_level=risk,
            runway_months=runway_months,
            average_weekly_outflow=average_outflow,
            lowest_balance=projection.lowest_balance,
            lowest_balance_week=lowest_week.week_number if lowest_week else None,
            negative_balance_weeks=negative_weeks,
            low_balance_weeks=low_weeks,
            warnings=warnings,
        ))

    def calculate_working_capital(self, current_assets: Money, current_liabilities: Money) -> Result[WorkingCapital]:
        if current_assets.currency != current_liabilities.currency:
            return Result.fail(CurrencyMismatchError(
                current_assets.currency, current_liabilities.currency, "current_liabilities"
            ))
        if current_assets.is_negative or current_liabilities.is_negative:
            return Result.fail(ValidationError("current_assets", "balances cannot be negative"))

        ratio = None
        if not current_liabilities.is_zero:
            ratio = float(current_assets.amount / current_liabilities.amount)
        return Result.ok(WorkingCapital(
            current_assets=current_assets,
            current_liabilities=current_liabilities,
            working_capital=current_assets - current_liabilities,
            current_ratio=ratio,
        ))
