"""
Cash Flow Projection Repository.
"""
from abc import abstractmethod
from datetime import date
from typing import List, Optional
from uuid import UUID

from costcontrol.domain.entities import CashFlowProjection, CashFlowScenario

from .base_repository import BaseRepository, InMemoryRepository


class CashFlowProjectionRepository(BaseRepository[CashFlowProjection]):

    @abstractmethod
    async def find_by_project(self, project_id: UUID) -> List[CashFlowProjection]:
        pass

    @abstractmethod
    async def find_by_scenario(self, project_id: Optional[UUID], scenario: CashFlowScenario) -> List[CashFlowProjection]:
        """Projections for a project (None = company-wide) and scenario, newest first."""

    @abstractmethod
    async def find_latest(self, project_id: Optional[UUID] = None) -> Optional[CashFlowProjection]:
        pass

    @abstractmethod
    async def find_by_date_range(self, start: date, end: date) -> List[CashFlowProjection]:
        """Projections whose horizon overlaps [start, end]."""

    @abstractmethod
    async def find_with_negative_cash_flow(self, project_id: Optional[UUID] = None) -> List[CashFlowProjection]:
        """Projections with at least one week ending below zero."""

    @abstractmethod
    async def find_company_wide(self) -> List[CashFlowProjection]:
        pass


class InMemoryCashFlowProjectionRepository(InMemoryRepository[CashFlowProjection], CashFlowProjectionRepository):

    def _newest_first(self, predicate) -> List[CashFlowProjection]:
        return self._select(predicate, sort_key=lambda p: (p.start_date, p.created_at), reverse=True)

    async def find_by_project(self, project_id: UUID) -> List[CashFlowProjection]:
        return self._newest_first(lambda p: p.project_id == project_id)

    async def find_by_scenario(self, project_id: Optional[UUID], scenario: CashFlowScenario) -> List[CashFlowProjection]:
        return self._newest_first(lambda p: p.project_id == project_id and p.scenario == scenario)

    async def find_latest(self, project_id: Optional[UUID] = None) -> Optional[CashFlowProjection]:
        projections = self._newest_first(lambda p: p.project_id == project_id)
        return projections[0] if projections else None

    async def find_by_date_range(self, start: date, end: date) -> List[CashFlowProjection]:
        return self._newest_first(lambda p: p.start_date <= end and p.end_date >= start)

    async def find_with_negative_cash_flow(self, project_id: Optional[UUID] = None) -> List[CashFlowProjection]:
        return self._newest_first(
            lambda p: (project_id is None or p.project_id == project_id) and p.weeks_with_negative_balance > 0
        )

    async def find_company_wide(self) -> List[CashFlowProjection]:
        return self._newest_first(lambda p: p.is_company_wide)
