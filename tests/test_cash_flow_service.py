"""
Tests for CashFlowService.
"""
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import usd
from costcontrol.domain.entities import CashFlowScenario
from costcontrol.domain.services import CashFlowService, LiquidityRiskLevel
from costcontrol.domain.values import Money


@pytest.fixture
def service(projection_repo, config):
    return CashFlowService(projection_repo, config)


def projection_input(**overrides):
    data = {
        "name": "Q2 forecast",
        "currency": "USD",
        "start_date": date(2024, 4, 1),
        "opening_balance": Decimal("50000"),
        "total_inflows_ar": Decimal("130000"),
        "total_outflows_payroll": Decimal("65000"),
        "created_by": "cfo@example.com",
    }
    data.update(overrides)
    return data


class TestGeneration:
    """Tests for projection generation."""

    @pytest.mark.asyncio
    async def test_generate_expected(self, service, projection_repo):
        projection = (await service.generate_13_week_projection(projection_input())).unwrap()
        assert len(projection.weeks) == 13
        assert projection.end_date == date(2024, 4, 1) + timedelta(days=90)
        assert projection.weeks[0].inflows_ar == usd(10000)
        assert projection.weeks[0].ending_balance == usd(55000)
        assert projection.final_balance == usd(115000)
        assert await projection_repo.find_by_id(projection.id) is not None

    @pytest.mark.asyncio
    async def test_uneven_totals_are_exact(self, service):
        projection = (await service.generate_13_week_projection(
            projection_input(total_inflows_ar=Decimal("1000.00"), total_outflows_payroll=Decimal("0"))
        )).unwrap()
        assert projection.total_inflows == usd(1000)
        assert {w.inflows_ar for w in projection.weeks} == {usd("76.92"), usd("76.93")}

    @pytest.mark.asyncio
    async def test_scenario_multipliers(self, service):
        projection = (await service.generate_13_week_projection(projection_input(scenario="best-case"))).unwrap()
        assert projection.scenario == CashFlowScenario.BEST_CASE
        assert projection.total_inflows == usd(156000)
        assert projection.total_outflows == usd(58500)

    @pytest.mark.asyncio
    async def test_invalid_input(self, service):
        result = await service.generate_13_week_projection(projection_input(currency="dollars"))
        assert result.code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_model_scenarios(self, service, projection_repo):
        comparison = (await service.model_scenarios(projection_input())).unwrap()
        assert comparison.final_balances[CashFlowScenario.BEST_CASE] == usd(147500)
        assert comparison.final_balances[CashFlowScenario.EXPECTED] == usd(115000)
        assert comparison.final_balances[CashFlowScenario.WORST_CASE] == usd(82500)
        assert len(projection_repo) == 3

        best = (await service.get_projections_by_scenario(None, "best-case")).unwrap()
        assert [p.id for p in best] == [comparison.projections[CashFlowScenario.BEST_CASE].id]


class TestUpdateWeek:
    """Tests for week updates."""

    @pytest.mark.asyncio
    async def test_update_rolls_balances_forward(self, service, projection_repo):
        projection = (await service.generate_13_week_projection(projection_input())).unwrap()
        updated = (await service.update_week(
            projection.id, 3, {"inflows_ar": Decimal("0"), "outflows_payroll": Decimal("5000")}
        )).unwrap()

        assert updated.find_week(3).net_cash_flow == usd(-5000)
        assert updated.find_week(3).ending_balance == usd(55000)
        assert updated.find_week(2).ending_balance == usd(60000)
        assert updated.final_balance == usd(105000)
        assert (await projection_repo.find_by_id(projection.id)).final_balance == usd(105000)

    @pytest.mark.asyncio
    async def test_unknown_week(self, service):
        projection = (await service.generate_13_week_projection(projection_input())).unwrap()
        result = await service.update_week(projection.id, 14, {"inflows_ar": Decimal("1")})
        assert result.code == "WEEK_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_projection(self, service):
        result = await service.update_week(uuid4(), 1, {"inflows_ar": Decimal("1")})
        assert result.code == "PROJECTION_NOT_FOUND"


class TestQueries:

    @pytest.mark.asyncio
    async def test_latest_and_negative(self, service, project_id):
        await service.generate_13_week_projection(projection_input(project_id=project_id))
        negative = (await service.generate_13_week_projection(projection_input(
            project_id=project_id,
            start_date=date(2024, 7, 1),
            total_inflows_ar=Decimal("0"),
        ))).unwrap()

        assert (await service.get_latest_projection(project_id)).unwrap().id == negative.id
        found = (await service.find_projections_with_negative_cash_flow(project_id)).unwrap()
        assert [p.id for p in found] == [negative.id]
        assert (await service.get_latest_projection()).unwrap() is None


class TestLiquidity:
    """Tests for liquidity risk and working capital."""

    async def _risk(self, service, **overrides):
        projection = (await service.generate_13_week_projection(projection_input(**overrides))).unwrap()
        return (await service.analyze_liquidity_risk(projection.id)).unwrap()

    @pytest.mark.asyncio
    async def test_low_risk(self, service):
        risk = await self._risk(service, total_outflows_payroll=Decimal("13000"))
        assert risk.risk_level == LiquidityRiskLevel.LOW
        assert risk.warnings == []

    @pytest.mark.asyncio
    async def test_medium_risk_short_runway(self, service):
        risk = await self._risk(service)
        assert risk.risk_level == LiquidityRiskLevel.MEDIUM
        assert risk.average_weekly_outflow == usd(5000)
        assert risk.runway_months == pytest.approx(115000 / (5000 * 4.33))

    @pytest.mark.asyncio
    async def test_high_risk_low_balance_weeks(self, service):
        risk = await self._risk(
            service,
            opening_balance=Decimal("10000"),
            total_inflows_ar=Decimal("0"),
            total_outflows_payroll=Decimal("9880"),
        )
        assert risk.risk_level == LiquidityRiskLevel.HIGH
        assert risk.low_balance_weeks == 4
        assert risk.negative_balance_weeks == 0
        assert any("runway" in w for w in risk.warnings)

    @pytest.mark.asyncio
    async def test_critical_risk_negative_weeks(self, service):
        risk = await self._risk(
            service,
            opening_balance=Decimal("10000"),
            total_inflows_ar=Decimal("0"),
            total_outflows_payroll=Decimal("26000"),
        )
        assert risk.risk_level == LiquidityRiskLevel.CRITICAL
        assert risk.negative_balance_weeks == 8
        assert risk.lowest_balance_week == 13

    @pytest.mark.asyncio
    async def test_missing_projection(self, service):
        assert (await service.analyze_liquidity_risk(uuid4())).code == "PROJECTION_NOT_FOUND"

    def test_working_capital(self, service):
        capital = service.calculate_working_capital(usd(500000), usd(200000)).unwrap()
        assert capital.working_capital == usd(300000)
        assert capital.current_ratio == pytest.approx(2.5)
        assert service.calculate_working_capital(usd(1), usd(0)).unwrap().current_ratio is None
        assert service.calculate_working_capital(usd(1), Money(1, "EUR")).is_failure
