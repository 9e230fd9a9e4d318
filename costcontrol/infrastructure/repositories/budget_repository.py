"""
Project Budget Repository - budget versions per project.
"""
from abc import abstractmethod
from typing import List, Optional
from uuid import UUID

from costcontrol.domain.entities import ProjectBudget

from .base_repository import BaseRepository, InMemoryRepository


class ProjectBudgetRepository(BaseRepository[ProjectBudget]):

    @abstractmethod
    async def find_latest_by_project(self, project_id: UUID) -> Optional[ProjectBudget]:
        """Highest version for the project, or None."""

    @abstractmethod
    async def list_by_project(self, project_id: UUID) -> List[ProjectBudget]:
        """All versions for the project, oldest first."""


class InMemoryProjectBudgetRepository(InMemoryRepository[ProjectBudget], ProjectBudgetRepository):

    async def find_latest_by_project(self, project_id: UUID) -> Optional[ProjectBudget]:
        budgets = await self.list_by_project(project_id)
        return budgets[-1] if budgets else None

    async def list_by_project(self, project_id: UUID) -> List[ProjectBudget]:
        return self._select(lambda b: b.project_id == project_id, sort_key=lambda b: b.version)
