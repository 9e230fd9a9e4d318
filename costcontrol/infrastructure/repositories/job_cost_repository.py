"""
Job Cost Record Repository.
"""
from abc import abstractmethod
from datetime import date
from typing import List
from uuid import UUID

from costcontrol.domain.entities import CostCategory, JobCostRecord

from .base_repository import BaseRepository, InMemoryRepository


class JobCostRecordRepository(BaseRepository[JobCostRecord]):

    @abstractmethod
    async def find_by_project(self, project_id: UUID) -> List[JobCostRecord]:
        pass

    @abstractmethod
    async def find_by_budget(self, budget_id: UUID) -> List[JobCostRecord]:
        pass

    @abstractmethod
    async def find_by_phase(self, project_id: UUID, phase: str) -> List[JobCostRecord]:
        pass

    @abstractmethod
    async def find_by_category(self, project_id: UUID, category: CostCategory) -> List[JobCostRecord]:
        pass

    @abstractmethod
    async def find_by_date_range(self, project_id: UUID, start: date, end: date) -> List[JobCostRecord]:
        """Records whose transaction date falls within [start, end]."""

    @abstractmethod
    async def find_over_budget(self, project_id: UUID) -> List[JobCostRecord]:
        pass

    @abstractmethod
    async def find_unapproved(self, project_id: UUID) -> List[JobCostRecord]:
        pass


class InMemoryJobCostRecordRepository(InMemoryRepository[JobCostRecord], JobCostRecordRepository):

    def _for_project(self, project_id: UUID, predicate=lambda r: True) -> List[JobCostRecord]:
        return self._select(
            lambda r: r.project_id == project_id and predicate(r),
            sort_key=lambda r: r.transaction_date,
        )

    async def find_by_project(self, project_id: UUID) -> List[JobCostRecord]:
        return self._for_project(project_id)

    async def find_by_budget(self, budget_id: UUID) -> List[JobCostRecord]:
        return self._select(lambda r: r.budget_id == budget_id, sort_key=lambda r: r.transaction_date)

    async def find_by_phase(self, project_id: UUID, phase: str) -> List[JobCostRecord]:
        return self._for_project(project_id, lambda r: r.phase == phase)

    async def find_by_category(self, project_id: UUID, category: CostCategory) -> List[JobCostRecord]:
        return self._for_project(project_id, lambda r: r.category == category)

    async def find_by_date_range(self, project_id: UUID, start: date, end: date) -> List[JobCostRecord]:
        return self._for_project(project_id, lambda r: start <= r.transaction_date <= end)

    async def find_over_budget(self, project_id: UUID) -> List[JobCostRecord]:
        return self._for_project(project_id, lambda r: r.is_over_budget)

    async def find_unapproved(self, project_id: UUID) -> List[JobCostRecord]:
        return self._for_project(project_id, lambda r: not r.approved)
