"""
Base Repository - asynchronous repository contract for aggregates.

Repositories accept and return plain aggregate instances (or None / lists)
and raise ordinary exceptions on failure; they never return Result values.
Application services catch those exceptions at the repository boundary.
"""
import copy
from abc import ABC, abstractmethod
from typing import Callable, Dict, Generic, List, Optional, TypeVar
from uuid import UUID

T = TypeVar('T')


class BaseRepository(ABC, Generic[T]):
    """
    Abstract base repository providing common persistence operations.

    Type Parameters:
        T: The aggregate type this repository manages
    """

    @abstractmethod
    async def save(self, entity: T) -> T:
        """Insert or replace the aggregate, keyed by its id."""

    @abstractmethod
    async def find_by_id(self, entity_id: UUID) -> Optional[T]:
        """
        Retrieve an aggregate by its identifier.

        Returns:
            The aggregate if found, None otherwise
        """

    @abstractmethod
    async def find_all(self) -> List[T]:
        """Retrieve every aggregate."""

    @abstractmethod
    async def delete(self, entity_id: UUID) -> bool:
        """
        Delete an aggregate by id.

        Returns:
            True if deleted, False if not found
        """


class InMemoryRepository(BaseRepository[T]):
    """
    Dictionary-backed repository.

    Aggregates are deep-copied on save and on load, so unsaved mutations of
    a loaded instance are never visible to later loads.
    """

    def __init__(self):
        self._items: Dict[UUID, T] = {}

    async def save(self, entity: T) -> T:
        self._items[entity.id] = copy.deepcopy(entity)
        return entity

    async def find_by_id(self, entity_id: UUID) -> Optional[T]:
        entity = self._items.get(entity_id)
        return copy.deepcopy(entity) if entity is not None else None

    async def find_all(self) -> List[T]:
        return [copy.deepcopy(e) for e in self._items.values()]

    async def delete(self, entity_id: UUID) -> bool:
        return self._items.pop(entity_id, None) is not None

    def _select(
        self,
        predicate: Callable[[T], bool],
        sort_key: Optional[Callable[[T], object]] = None,
        reverse: bool = False,
    ) -> List[T]:
        matches = [e for e in self._items.values() if predicate(e)]
        if sort_key is not None:
            matches.sort(key=sort_key, reverse=reverse)
        return [copy.deepcopy(e) for e in matches]

    def __len__(self) -> int:
        return len(self._items)
