"""
Tests for BudgetService.
"""
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import usd
from costcontrol.domain.entities import BudgetStatus
from costcontrol.domain.services import BudgetService
from costcontrol.domain.values import Money


@pytest.fixture
def service(budget_repo, config):
    return BudgetService(budget_repo, config)


def version_input(project_id, planned=("1000", "500")):
    codes = ["CONC-0310", "ELEC-0100"]
    return {
        "project_id": project_id,
        "currency": "usd",
        "lines": [
            {"cost_code": code, "category": "materials", "description": f"{code} scope", "planned_amount": amount}
            for code, amount in zip(codes, planned)
        ],
    }


class TestBudgetVersions:
    """Tests for creating and baselining budget versions."""

    @pytest.mark.asyncio
    async def test_first_version(self, service, budget_repo, project_id):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        assert budget.version == 1
        assert budget.currency == "USD"
        assert budget.planned_total == usd(1500)
        assert await budget_repo.find_by_id(budget.id) is not None

    @pytest.mark.asyncio
    async def test_next_version(self, service, project_id):
        await service.create_budget_version(version_input(project_id))
        second = (await service.create_budget_version(version_input(project_id, ("1100", "500")))).unwrap()
        assert second.version == 2

    @pytest.mark.asyncio
    async def test_invalid_cost_code(self, service, project_id):
        data = version_input(project_id)
        data["lines"][0]["cost_code"] = "concrete"
        result = await service.create_budget_version(data)
        assert result.is_failure
        assert result.code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_input_shape_validated(self, service, project_id):
        data = version_input(project_id)
        data["lines"] = []
        result = await service.create_budget_version(data)
        assert result.is_failure
        assert "lines" in result.message

    @pytest.mark.asyncio
    async def test_approve_baseline_defaults_to_planned_total(self, service, budget_repo, project_id):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        (await service.approve_baseline(budget.id)).unwrap()
        stored = await budget_repo.find_by_id(budget.id)
        assert stored.status == BudgetStatus.BASELINE
        assert stored.baseline_total == usd(1500)

    @pytest.mark.asyncio
    async def test_missing_budget(self, service):
        result = await service.approve_baseline(uuid4())
        assert result.code == "BUDGET_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_record_line_totals(self, service, budget_repo, project_id):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        line = budget.lines[0]
        (await service.record_budget_line_totals(budget.id, line.line_id, actual_amount=Decimal("1200"))).unwrap()
        stored = await budget_repo.find_by_id(budget.id)
        assert stored.find_line(line.line_id).is_over_budget

    @pytest.mark.asyncio
    async def test_record_unknown_line(self, service, project_id):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        result = await service.record_budget_line_totals(budget.id, uuid4(), actual_amount=Decimal("1"))
        assert result.code == "BUDGET_LINE_NOT_FOUND"


class TestBudgetReports:
    """Tests for job cost reports, retention and progress invoices."""

    @pytest.mark.asyncio
    async def test_job_cost_report(self, service, project_id):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        await service.record_budget_line_totals(budget.id, budget.lines[0].line_id, actual_amount=Decimal("1200"))
        report = (await service.generate_job_cost_report(budget.id)).unwrap()
        assert report.actual_total == usd(1200)
        assert report.variance_total == usd(300)
        assert report.lines[0].variance == usd(-200)
        assert report.lines[0].variance_percent == pytest.approx(-20.0)

    def test_calculate_retention(self, service):
        retention = service.calculate_retention(usd("1234.56")).unwrap()
        assert retention.withheld == usd("123.46")
        assert retention.release == usd("1111.10")
        assert retention.retention_percent == Decimal("10.0")

    def test_retention_bounds(self, service):
        assert service.calculate_retention(usd(100), 120).is_failure
        assert service.calculate_retention(usd(-1)).is_failure

    def test_retention_rejects_non_numeric_percent(self, service):
        result = service.calculate_retention(usd(100), "ten")
        assert result.code == "VALIDATION_ERROR"
        assert "retention_percent" in result.message

    @pytest.mark.asyncio
    async def test_prepare_progress_invoice(self, service, project_id):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        invoice = (await service.prepare_progress_invoice(budget.id, 40, 200, retention_percent=10)).unwrap()
        assert invoice.earned_value == usd(600)
        assert invoice.current_billable == usd(400)
        assert invoice.retention_withheld == usd(40)
        assert invoice.amount_due == usd(360)

    @pytest.mark.asyncio
    async def test_invoice_never_negative(self, service, project_id):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        invoice = (await service.prepare_progress_invoice(budget.id, 10, 1000)).unwrap()
        assert invoice.current_billable == Money.zero("USD")
        assert invoice.retention_withheld.is_zero

    @pytest.mark.asyncio
    @pytest.mark.parametrize("percent_complete,previously_billed", [("forty", 0), (40, "lots"), (float("nan"), 0)])
    async def test_invoice_rejects_non_numeric_input(self, service, project_id, percent_complete, previously_billed):
        budget = (await service.create_budget_version(version_input(project_id))).unwrap()
        result = await service.prepare_progress_invoice(budget.id, percent_complete, previously_billed)
        assert result.code == "VALIDATION_ERROR"
