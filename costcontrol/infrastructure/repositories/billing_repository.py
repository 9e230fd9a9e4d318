"""
Progress Billing Repository.
"""
from abc import abstractmethod
from datetime import date
from typing import List, Optional
from uuid import UUID

from costcontrol.domain.entities import BillingStatus, ProgressBilling

from .base_repository import BaseRepository, InMemoryRepository


class ProgressBillingRepository(BaseRepository[ProgressBilling]):

    @abstractmethod
    async def find_by_project(self, project_id: UUID) -> List[ProgressBilling]:
        pass

    @abstractmethod
    async def find_by_contract(self, contract_id: UUID) -> List[ProgressBilling]:
        pass

    @abstractmethod
    async def find_by_application_number(self, contract_id: UUID, application_number: int) -> Optional[ProgressBilling]:
        pass

    @abstractmethod
    async def find_by_status(self, status: BillingStatus, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        pass

    @abstractmethod
    async def find_pending_approval(self, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        """Billings in submitted status."""

    @abstractmethod
    async def find_pending_payment(self, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        """Billings in approved status."""

    @abstractmethod
    async def find_with_unreceived_lien_waivers(self, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        pass

    @abstractmethod
    async def find_by_date_range(self, project_id: UUID, start: date, end: date) -> List[ProgressBilling]:
        """Billings whose period end date falls within [start, end]."""

    @abstractmethod
    async def find_latest(self, project_id: UUID) -> Optional[ProgressBilling]:
        """Most recent billing for the project by period end date, then application number."""


class InMemoryProgressBillingRepository(InMemoryRepository[ProgressBilling], ProgressBillingRepository):

    @staticmethod
    def _order(billing: ProgressBilling):
        return (billing.period_end_date, billing.application_number)

    def _where(self, predicate, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        return self._select(
            lambda b: (project_id is None or b.project_id == project_id) and predicate(b),
            sort_key=self._order,
        )

    async def find_by_project(self, project_id: UUID) -> List[ProgressBilling]:
        return self._where(lambda b: True, project_id)

    async def find_by_contract(self, contract_id: UUID) -> List[ProgressBilling]:
        return self._where(lambda b: b.contract_id == contract_id)

    async def find_by_application_number(self, contract_id: UUID, application_number: int) -> Optional[ProgressBilling]:
        matches = self._where(
            lambda b: b.contract_id == contract_id and b.application_number == application_number
        )
        return matches[0] if matches else None

    async def find_by_status(self, status: BillingStatus, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        return self._where(lambda b: b.status == status, project_id)

    async def find_pending_approval(self, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        return await self.find_by_status(BillingStatus.SUBMITTED, project_id)

    async def find_pending_payment(self, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        return await self.find_by_status(BillingStatus.APPROVED, project_id)

    async def find_with_unreceived_lien_waivers(self, project_id: Optional[UUID] = None) -> List[ProgressBilling]:
        return self._where(lambda b: b.has_unreceived_lien_waivers, project_id)

    async def find_by_date_range(self, project_id: UUID, start: date, end: date) -> List[ProgressBilling]:
        return self._where(lambda b: start <= b.period_end_date <= end, project_id)

    async def find_latest(self, project_id: UUID) -> Optional[ProgressBilling]:
        billings = self._select(
            lambda b: b.project_id == project_id,
            sort_key=self._order,
        )
        return billings[-1] if billings else None
