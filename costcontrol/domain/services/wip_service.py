"""
WIP Service - work-in-progress schedules from job costs and billings.

Costs to date come from the project's job cost records; billed to date
is the sum, across contracts, of each contract's latest payment
application that has left draft.
"""
import logging
from datetime import date
from typing import Iterable, List, Optional
from uuid import UUID

import pandas as pd

from costcontrol.domain.entities import BillingStatus, ProgressBilling, WIPReport, WIPSummary
from costcontrol.domain.exceptions import CurrencyMismatchError
from costcontrol.domain.result import Result
from costcontrol.domain.values import Money, sum_money
from costcontrol.infrastructure.repositories import JobCostRecordRepository, ProgressBillingRepository

from .service_support import repository_boundary

logger = logging.getLogger(__name__)

BILLED_STATUSES = (BillingStatus.SUBMITTED, BillingStatus.APPROVED, BillingStatus.PAID)

WIP_SCHEDULE_COLUMNS = [
    "project_id",
    "project_name",
    "revised_contract_amount",
    "estimated_total_cost",
    "costs_to_date",
    "percent_complete",
    "earned_revenue",
    "billed_to_date",
    "over_under_billings",
    "estimated_gross_profit",
    "gross_profit_recognized",
]


def _billed_amount(billing: ProgressBilling) -> Money:
    """Gross amount billed: work completed and stored, before retainage."""
    if not billing.total_completed_and_stored.is_zero:
        return billing.total_completed_and_stored
    return billing.total_earned + billing.retainage


def _recency(billing: ProgressBilling):
    return (billing.period_end_date, billing.application_number)


class WIPService:
    """Builds WIP reports and portfolio schedules."""

    def __init__(self, job_cost_repository: JobCostRecordRepository, billing_repository: ProgressBillingRepository):
        self.job_costs = job_cost_repository
        self.billings = billing_repository

    async def _billed_to_date(self, project_id: UUID, report_date: date, currency: str) -> Money:
        """Sum of each contract's latest billed application on or before ``report_date``."""
        latest_by_contract = {}
        for billing in await self.billings.find_by_project(project_id):
            if billing.status not in BILLED_STATUSES or billing.period_end_date > report_date:
                continue
            current = latest_by_contract.get(billing.contract_id)
            if current is None or _recency(billing) > _recency(current):
                latest_by_contract[billing.contract_id] = billing

        foreign = next((b for b in latest_by_contract.values() if b.currency != currency), None)
        if foreign is not None:
            raise CurrencyMismatchError(currency, foreign.currency, f"billing {foreign.id}")
        return sum_money((_billed_amount(b) for b in latest_by_contract.values()), currency)

    @repository_boundary("prepare project WIP")
    async def prepare_project_wip(
        self,
        project_id: UUID,
        project_name: str,
        report_date: date,
        original_contract_amount: Money,
        estimated_cost_to_complete: Money,
        approved_change_orders: Optional[Money] = None,
    ) -> Result[WIPReport]:
        """
        Build a cost-to-cost WIP report for one project as of ``report_date``.

        Only job costs dated on or before the report date count toward
        costs to date.
        """
        currency = original_contract_amount.currency
        records = [
            r for r in await self.job_costs.find_by_project(project_id)
            if r.transaction_date <= report_date
        ]
        foreign = next((r for r in records if r.currency != currency), None)
        if foreign is not None:
            raise CurrencyMismatchError(currency, foreign.currency, f"job cost {foreign.id}")

        costs_to_date = sum_money((r.actual_amount for r in records), currency)
        billed_to_date = await self._billed_to_date(project_id, report_date, currency)

        report = WIPReport.compute(
            project_id=project_id,
            project_name=project_name,
            report_date=report_date,
            original_contract_amount=original_contract_amount,
            approved_change_orders=approved_change_orders or Money.zero(currency),
            costs_to_date=costs_to_date,
            estimated_cost_to_complete=estimated_cost_to_complete,
            billed_to_date=billed_to_date,
        ).unwrap()

        if report.is_in_loss:
            logger.warning(f"Project {project_id} is projecting a loss of {report.estimated_gross_profit}")
        return Result.ok(report)

    def summarize_portfolio(
        self,
        reports: Iterable[WIPReport],
        report_date: date,
        currency: Optional[str] = None,
    ) -> Result[WIPSummary]:
        return WIPSummary.from_reports(reports, report_date, currency)

    @staticmethod
    def wip_schedule_frame(reports: List[WIPReport]) -> pd.DataFrame:
        """One row per project; money columns are Decimal amounts in the report currency."""
        rows = []
        for report in reports:
            row = {}
            for column in WIP_SCHEDULE_COLUMNS:
                value = getattr(report, column)
                row[column] = value.amount if isinstance(value, Money) else value
            row["percent_complete"] = round(report.percent_complete, 2)
            rows.append(row)
        return pd.DataFrame(rows, columns=WIP_SCHEDULE_COLUMNS)
