"""
Cost Code Hierarchy Repository.

delete() is a soft delete: the node is deactivated and kept.
"""
from abc import abstractmethod
from typing import List, Optional
from uuid import UUID

from costcontrol.domain.entities import CostCodeHierarchy

from .base_repository import BaseRepository, InMemoryRepository


class CostCodeHierarchyRepository(BaseRepository[CostCodeHierarchy]):

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[CostCodeHierarchy]:
        pass

    @abstractmethod
    async def find_by_level(self, level: int) -> List[CostCodeHierarchy]:
        pass

    @abstractmethod
    async def find_children(self, parent_code: str) -> List[CostCodeHierarchy]:
        pass

    @abstractmethod
    async def find_parent(self, code: str) -> Optional[CostCodeHierarchy]:
        pass

    @abstractmethod
    async def find_all_active(self) -> List[CostCodeHierarchy]:
        pass

    @abstractmethod
    async def search(self, term: str) -> List[CostCodeHierarchy]:
        """Case-insensitive match on code, name or description."""


class InMemoryCostCodeHierarchyRepository(InMemoryRepository[CostCodeHierarchy], CostCodeHierarchyRepository):

    @staticmethod
    def _order(node: CostCodeHierarchy):
        return (node.sort_order, node.code)

    async def find_by_code(self, code: str) -> Optional[CostCodeHierarchy]:
        matches = self._select(lambda n: n.code == code)
        return matches[0] if matches else None

    async def find_by_level(self, level: int) -> List[CostCodeHierarchy]:
        return self._select(lambda n: n.level == level, sort_key=self._order)

    async def find_children(self, parent_code: str) -> List[CostCodeHierarchy]:
        return self._select(lambda n: n.parent_code == parent_code, sort_key=self._order)

    async def find_parent(self, code: str) -> Optional[CostCodeHierarchy]:
        node = await self.find_by_code(code)
        if node is None or node.parent_code is None:
            return None
        return await self.find_by_code(node.parent_code)

    async def find_all_active(self) -> List[CostCodeHierarchy]:
        return self._select(lambda n: n.is_active, sort_key=lambda n: n.code)

    async def search(self, term: str) -> List[CostCodeHierarchy]:
        term = term.lower()

        def matches(node: CostCodeHierarchy) -> bool:
            haystack = " ".join(filter(None, [node.code, node.name, node.description]))
            return term in haystack.lower()

        return self._select(matches, sort_key=lambda n: n.code)

    async def delete(self, entity_id: UUID) -> bool:
        node = self._items.get(entity_id)
        if node is None:
            return False
        node.deactivate()
        return True
