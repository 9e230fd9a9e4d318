"""
Tests for WIPService.
"""
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import make_billing, make_line_item, make_record, usd
from costcontrol.domain.services import WIPService
from costcontrol.domain.values import Money

REPORT_DATE = date(2024, 6, 30)


@pytest.fixture
def service(job_cost_repo, billing_repo):
    return WIPService(job_cost_repo, billing_repo)


async def seed(job_cost_repo, billing_repo, project_id):
    budget_id = uuid4()
    await job_cost_repo.save(make_record(project_id, budget_id, 0, 30000, transaction_date=date(2024, 4, 1)))
    await job_cost_repo.save(make_record(project_id, budget_id, 0, 10000, transaction_date=date(2024, 5, 1)))
    await job_cost_repo.save(make_record(project_id, budget_id, 0, 5000, transaction_date=date(2024, 7, 15)))

    contract_id = uuid4()
    paid = make_billing(project_id, contract_id, 1, [make_line_item(100000, 0, 20000)], date(2024, 4, 30))
    paid.submit("pm@example.com").unwrap()
    paid.approve("owner@example.com").unwrap()
    paid.mark_as_paid("CHK-1001").unwrap()
    submitted = make_billing(project_id, contract_id, 2, [make_line_item(100000, 20000, 25000)], date(2024, 5, 31))
    submitted.submit("pm@example.com").unwrap()
    draft = make_billing(project_id, contract_id, 3, [make_line_item(100000, 45000, 10000)], date(2024, 6, 30))
    for billing in (paid, submitted, draft):
        await billing_repo.save(billing)


class TestPrepareProjectWIP:
    """Tests for building a project WIP report from stored data."""

    @pytest.mark.asyncio
    async def test_costs_and_billings(self, service, job_cost_repo, billing_repo, project_id):
        await seed(job_cost_repo, billing_repo, project_id)
        report = (await service.prepare_project_wip(
            project_id, "Tower", REPORT_DATE, usd(100000), usd(40000)
        )).unwrap()

        assert report.costs_to_date == usd(40000)
        assert report.billed_to_date == usd(45000)
        assert report.earned_revenue == usd(50000)
        assert report.over_under_billings == usd(-5000)
        assert report.project_id == str(project_id)

    @pytest.mark.asyncio
    async def test_billed_to_date_sums_latest_application_per_contract(self, service, billing_repo, project_id):
        contract_a, contract_b = uuid4(), uuid4()
        older = make_billing(project_id, contract_a, 3, [make_line_item(100000, 0, 5000)], date(2024, 1, 31))
        newer = make_billing(project_id, contract_b, 1, [make_line_item(100000, 0, 30000)], date(2024, 5, 31))
        after_report = make_billing(project_id, contract_b, 2, [make_line_item(100000, 30000, 9000)], date(2024, 7, 31))
        for billing in (older, newer, after_report):
            billing.submit("pm@example.com").unwrap()
            await billing_repo.save(billing)

        report = (await service.prepare_project_wip(
            project_id, "Tower", REPORT_DATE, usd(100000), usd(40000)
        )).unwrap()

        assert report.billed_to_date == usd(35000)

    @pytest.mark.asyncio
    async def test_no_billings(self, service, project_id):
        report = (await service.prepare_project_wip(
            project_id, "Empty", REPORT_DATE, usd(100), usd(100)
        )).unwrap()
        assert report.billed_to_date.is_zero
        assert report.percent_complete == 0.0

    @pytest.mark.asyncio
    async def test_currency_mismatch(self, service, job_cost_repo, billing_repo, project_id):
        await seed(job_cost_repo, billing_repo, project_id)
        result = await service.prepare_project_wip(
            project_id, "Tower", REPORT_DATE, Money(100000, "CAD"), Money(40000, "CAD")
        )
        assert result.code == "CURRENCY_MISMATCH"


class TestPortfolio:
    """Tests for portfolio summaries and the schedule frame."""

    @pytest.mark.asyncio
    async def test_summary_and_frame(self, service, job_cost_repo, billing_repo, project_id):
        await seed(job_cost_repo, billing_repo, project_id)
        tower = (await service.prepare_project_wip(
            project_id, "Tower", REPORT_DATE, usd(100000), usd(40000)
        )).unwrap()
        empty = (await service.prepare_project_wip(uuid4(), "Empty", REPORT_DATE, usd(100), usd(100))).unwrap()

        summary = service.summarize_portfolio([tower, empty], REPORT_DATE).unwrap()
        assert summary.total_projects == 2
        assert summary.total_costs_to_date == usd(40000)

        frame = service.wip_schedule_frame([tower, empty])
        assert list(frame["project_name"]) == ["Tower", "Empty"]
        assert frame.loc[0, "earned_revenue"] == Decimal("50000")
        assert frame.loc[0, "percent_complete"] == 50.0

    def test_empty_frame(self, service):
        frame = service.wip_schedule_frame([])
        assert frame.empty
        assert "over_under_billings" in frame.columns
        assert service.summarize_portfolio([], REPORT_DATE, "USD").unwrap().portfolio_health_score == 0
