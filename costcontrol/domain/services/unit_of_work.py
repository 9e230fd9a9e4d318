"""
Unit of Work - coordinated saves across several aggregates.

Saves run in registration order. When one fails, every aggregate already
saved is compensated in reverse order: its pre-mutation snapshot is saved
back, or, for an aggregate that did not exist before, it is deleted.
This is a best-effort saga, not a distributed transaction.
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from costcontrol.domain.exceptions import UnitOfWorkError
from costcontrol.domain.result import Result
from costcontrol.infrastructure.repositories import BaseRepository

logger = logging.getLogger(__name__)


@dataclass
class _PendingSave:
    repository: BaseRepository
    entity: Any
    original: Optional[Any]


class UnitOfWork:
    """
    Collects aggregate saves and commits them together.

    Usage:
        uow = UnitOfWork()
        uow.register(budget_repo, budget, original=budget_snapshot)
        uow.register(job_cost_repo, record, original=record_snapshot)
        result = await uow.commit()
    """

    def __init__(self):
        self._pending: List[_PendingSave] = []
        self._committed = False

    @staticmethod
    def snapshot(entity: Any) -> Any:
        """Deep copy taken before mutating a loaded aggregate."""
        return copy.deepcopy(entity)

    def register(self, repository: BaseRepository, entity: Any, original: Optional[Any] = None) -> None:
        """
        Queue ``entity`` for saving.

        Args:
            repository: Repository the entity belongs to
            entity: Mutated or newly created aggregate
            original: Snapshot before mutation; None for a new aggregate
        """
        if self._committed:
            raise UnitOfWorkError("Unit of work has already been committed")
        self._pending.append(_PendingSave(repository, entity, original))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def commit(self) -> Result[int]:
        """Save every registered aggregate; returns the number saved."""
        self._committed = True
        saved: List[_PendingSave] = []

        for item in self._pending:
            try:
                await item.repository.save(item.entity)
            except Exception as e:
                logger.error(f"Unit of work failed saving {type(item.entity).__name__} {item.entity.id}: {e}")
                failures = await self._compensate(saved)
                message = f"Commit failed after {len(saved)} of {len(self._pending)} saves: {e}"
                if failures:
                    message += f"; compensation failed for {', '.join(failures)}"
                return Result.fail(UnitOfWorkError(message, saved=len(saved), compensation_failures=failures))
            saved.append(item)

        logger.debug(f"Unit of work committed {len(saved)} aggregate(s)")
        return Result.ok(len(saved))

    async def _compensate(self, saved: List[_PendingSave]) -> List[str]:
        failures = []
        for item in reversed(saved):
            entity_ref = f"{type(item.entity).__name__} {item.entity.id}"
            try:
                if item.original is None:
                    await item.repository.delete(item.entity.id)
                else:
                    await item.repository.save(item.original)
                logger.info(f"Compensated {entity_ref}")
            except Exception:
                logger.exception(f"Compensation failed for {entity_ref}")
                failures.append(entity_ref)
        return failures
