"""
Tests for the in-memory repository implementations.
"""
from datetime import date
from uuid import uuid4

import pytest

from conftest import make_billing, make_budget, make_projection, make_record, make_weeks
from costcontrol.domain.entities import BillingStatus, CashFlowScenario, CostCodeHierarchy
from costcontrol.infrastructure.repositories import InMemoryCostCodeHierarchyRepository


class TestInMemoryRepository:
    """Tests for copy-on-save / copy-on-load behaviour."""

    @pytest.mark.asyncio
    async def test_unsaved_mutation_not_visible(self, budget_repo):
        budget = make_budget()
        await budget_repo.save(budget)
        loaded = await budget_repo.find_by_id(budget.id)
        loaded.update_status("closed").unwrap()
        again = await budget_repo.find_by_id(budget.id)
        assert again.status.value == "draft"

    @pytest.mark.asyncio
    async def test_delete(self, budget_repo):
        budget = make_budget()
        await budget_repo.save(budget)
        assert await budget_repo.delete(budget.id) is True
        assert await budget_repo.delete(budget.id) is False
        assert await budget_repo.find_all() == []


class TestBudgetRepository:

    @pytest.mark.asyncio
    async def test_latest_version(self, budget_repo, project_id):
        for version in (2, 1, 3):
            await budget_repo.save(make_budget(project_id, version=version))
        await budget_repo.save(make_budget(version=9))

        latest = await budget_repo.find_latest_by_project(project_id)
        assert latest.version == 3
        assert [b.version for b in await budget_repo.list_by_project(project_id)] == [1, 2, 3]
        assert await budget_repo.find_latest_by_project(uuid4()) is None


class TestCostCodeRepository:
    """Tests for hierarchy lookups and soft delete."""

    @pytest.fixture
    def repo(self):
        return InMemoryCostCodeHierarchyRepository()

    async def _seed(self, repo):
        nodes = [
            CostCodeHierarchy.create("03", "Concrete", 1).unwrap(),
            CostCodeHierarchy.create("03.10", "Forming", 2, parent_code="03", sort_order=2).unwrap(),
            CostCodeHierarchy.create("03.20", "Reinforcing", 2, parent_code="03", sort_order=1).unwrap(),
        ]
        for node in nodes:
            await repo.save(node)
        return nodes

    @pytest.mark.asyncio
    async def test_children_sorted(self, repo):
        await self._seed(repo)
        children = await repo.find_children("03")
        assert [c.code for c in children] == ["03.20", "03.10"]

    @pytest.mark.asyncio
    async def test_parent_and_level(self, repo):
        await self._seed(repo)
        assert (await repo.find_parent("03.10")).code == "03"
        assert await repo.find_parent("03") is None
        assert len(await repo.find_by_level(2)) == 2

    @pytest.mark.asyncio
    async def test_search(self, repo):
        await self._seed(repo)
        assert [n.code for n in await repo.search("rein")] == ["03.20"]

    @pytest.mark.asyncio
    async def test_delete_is_soft(self, repo):
        division, _, _ = await self._seed(repo)
        assert await repo.delete(division.id)
        assert (await repo.find_by_id(division.id)).is_active is False
        assert "03" not in [n.code for n in await repo.find_all_active()]


class TestJobCostRepository:

    @pytest.mark.asyncio
    async def test_finders(self, job_cost_repo, project_id):
        budget_id = uuid4()
        over = make_record(project_id, budget_id, planned=100, actual=150, phase="Slab")
        under = make_record(project_id, budget_id, planned=100, actual=50, transaction_date=date(2024, 5, 1))
        under.approve("super@example.com").unwrap()
        for record in (over, under, make_record(uuid4(), uuid4())):
            await job_cost_repo.save(record)

        assert len(await job_cost_repo.find_by_project(project_id)) == 2
        assert len(await job_cost_repo.find_by_budget(budget_id)) == 2
        assert [r.id for r in await job_cost_repo.find_over_budget(project_id)] == [over.id]
        assert [r.id for r in await job_cost_repo.find_unapproved(project_id)] == [over.id]
        assert [r.id for r in await job_cost_repo.find_by_phase(project_id, "Slab")] == [over.id]
        in_may = await job_cost_repo.find_by_date_range(project_id, date(2024, 5, 1), date(2024, 5, 31))
        assert [r.id for r in in_may] == [under.id]


class TestBillingRepository:

    @pytest.mark.asyncio
    async def test_status_finders(self, billing_repo, project_id):
        contract_id = uuid4()
        draft = make_billing(project_id, contract_id, application_number=1)
        submitted = make_billing(project_id, contract_id, application_number=2, period_end_date=date(2024, 4, 30))
        submitted.submit("pm@example.com").unwrap()
        for billing in (draft, submitted):
            await billing_repo.save(billing)

        assert [b.id for b in await billing_repo.find_pending_approval(project_id)] == [submitted.id]
        assert await billing_repo.find_pending_payment(project_id) == []
        assert [b.id for b in await billing_repo.find_by_status(BillingStatus.DRAFT)] == [draft.id]
        assert (await billing_repo.find_latest(project_id)).application_number == 2
        assert (await billing_repo.find_by_application_number(contract_id, 1)).id == draft.id
        assert len(await billing_repo.find_by_contract(contract_id)) == 2

    @pytest.mark.asyncio
    async def test_latest_ordered_by_period_end_across_contracts(self, billing_repo, project_id):
        older = make_billing(project_id, uuid4(), application_number=3, period_end_date=date(2024, 1, 31))
        newer = make_billing(project_id, uuid4(), application_number=1, period_end_date=date(2024, 5, 31))
        for billing in (older, newer):
            await billing_repo.save(billing)

        assert (await billing_repo.find_latest(project_id)).id == newer.id


class TestProjectionRepository:

    @pytest.mark.asyncio
    async def test_finders(self, projection_repo, project_id):
        company = make_projection().unwrap()
        negative = make_projection(
            start=date(2024, 4, 1),
            weeks=make_weeks(date(2024, 4, 1), overrides={3: -10}),
            project_id=project_id,
            scenario="worst-case",
        ).unwrap()
        for projection in (company, negative):
            await projection_repo.save(projection)

        assert [p.id for p in await projection_repo.find_company_wide()] == [company.id]
        assert [p.id for p in await projection_repo.find_with_negative_cash_flow()] == [negative.id]
        worst = await projection_repo.find_by_scenario(project_id, CashFlowScenario.WORST_CASE)
        assert [p.id for p in worst] == [negative.id]
        assert (await projection_repo.find_latest(project_id)).id == negative.id
        overlapping = await projection_repo.find_by_date_range(date(2024, 2, 1), date(2024, 2, 2))
        assert [p.id for p in overlapping] == [company.id]
