"""
Progress Billing Service - AIA payment applications and their workflow.

Provides:
1. Draft billing creation, G703 line items and lien waivers
2. Workflow: submit, approve, reject, mark paid, release retainage
3. AIA G702 summary and G703 continuation sheet views
4. Retainage calculation with a configurable release schedule
5. Percentage-of-completion billing from a WIP report
6. Lien waiver tracking and pending-work queries
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from costcontrol.config import FinanceConfig, get_config
from costcontrol.domain.entities import (
    BillingLineItem,
    BillingStatus,
    CostCode,
    LienWaiver,
    LienWaiverType,
    ProgressBilling,
    RetainageReleaseType,
    WIPReport,
)
from costcontrol.domain.exceptions import BillingNotFoundError, DuplicateOperationError, ValidationError
from costcontrol.domain.result import Result
from costcontrol.domain.values import Money, allocate_largest_remainder, parse_percent, sum_money
from costcontrol.infrastructure.repositories import ProgressBillingRepository

from .service_support import repository_boundary, validate_input

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models
# =============================================================================

class CreateBillingInput(BaseModel):
    """Schema for a new draft payment application."""
    project_id: UUID
    contract_id: UUID
    application_number: Optional[int] = Field(None, ge=1, description="Next number for the contract when omitted")
    period_end_date: date
    currency: str = Field(..., pattern=r"^[A-Za-z]{3}$")
    original_contract_sum: Decimal = Field(..., ge=0)
    change_orders_approved: Decimal = Decimal("0")
    less_amounts_previously_certified: Decimal = Field(Decimal("0"), ge=0)
    retainage_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    created_by: str = Field(..., min_length=1)


class BillingLineItemInput(BaseModel):
    """Schema for one G703 continuation sheet row."""
    cost_code: str = Field(..., min_length=1, max_length=20)
    description: str = Field(..., min_length=1, max_length=500)
    scheduled_value: Decimal = Field(..., ge=0)
    work_completed_previously: Decimal = Field(Decimal("0"), ge=0)
    work_completed_this_period: Decimal = Field(Decimal("0"), ge=0)
    materials_stored_previously: Decimal = Field(Decimal("0"), ge=0)
    materials_stored_this_period: Decimal = Field(Decimal("0"), ge=0)
    retainage_percent: Optional[Decimal] = Field(None, ge=0, le=100)


# =============================================================================
# Result Types
# =============================================================================

@dataclass
class WorkflowEvent:
    status: BillingStatus
    at: datetime
    user: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class PaymentApplicationWorkflow:
    billing_id: UUID
    current_status: BillingStatus
    submitter: Optional[str]
    approver: Optional[str]
    rejection_reason: Optional[str]
    payment_reference: Optional[str]
    history: List[WorkflowEvent] = field(default_factory=list)


@dataclass
class G702Summary:
    billing_id: UUID
    application_number: int
    period_end_date: date
    original_contract_sum: Money
    net_change_by_change_orders: Money
    contract_sum_to_date: Money
    total_completed_and_stored_to_date: Money
    retainage: Money
    total_earned_less_retainage: Money
    less_previous_certificates: Money
    current_payment_due: Money
    balance_to_finish_including_retainage: Money
    percent_complete: float


@dataclass
class G703Line:
    line_number: int
    cost_code: str
    description: str
    scheduled_value: Money
    work_completed_previously: Money
    work_completed_this_period: Money
    materials_stored: Money
    total_completed_and_stored: Money
    percent_complete: float
    balance_to_finish: Money
    retainage_percent: Decimal
    retainage_amount: Money


@dataclass
class G703Sheet:
    billing_id: UUID
    application_number: int
    period_end_date: date
    lines: List[G703Line]
    totals: Dict[str, Money]


@dataclass
class RetainageMilestone:
    milestone: str
    release_percent: Decimal
    amount: Money


@dataclass
class RetainageCalculation:
    retainage_percent: Decimal
    gross_amount: Money
    retainage_amount: Money
    net_amount: Money
    cumulative_retainage: Money
    release_schedule: List[RetainageMilestone]


@dataclass
class PercentageOfCompletionBilling:
    project_id: str
    billing_amount: Money
    revenue_recognized: Money
    cost_of_revenue_recognized: Money
    gross_profit: Money
    over_under_billing: Money
    wip_report: WIPReport


@dataclass
class LienWaiverStatus:
    waiver_id: UUID
    waiver_type: LienWaiverType
    amount: Money
    is_received: bool
    received_date: Optional[datetime]


@dataclass
class LienWaiverTracking:
    billing_id: UUID
    total_lien_waivers: int
    received_lien_waivers: int
    pending_lien_waivers: int
    percent_received: float
    received_amount: Money
    pending_amount: Money
    waivers: List[LienWaiverStatus] = field(default_factory=list)


class ProgressBillingService:
    """Application service for progress billings."""

    def __init__(self, billing_repository: ProgressBillingRepository, config: Optional[FinanceConfig] = None):
        self.billings = billing_repository
        self.config = config or get_config()

    async def _load_billing(self, billing_id: UUID) -> ProgressBilling:
        billing = await self.billings.find_by_id(billing_id)
        if billing is None:
            raise BillingNotFoundError(billing_id)
        return billing

    @staticmethod
    def _workflow(billing: ProgressBilling) -> PaymentApplicationWorkflow:
        events = [WorkflowEvent(BillingStatus.DRAFT, billing.created_at, billing.created_by)]
        if billing.submitted_at:
            events.append(WorkflowEvent(BillingStatus.SUBMITTED, billing.submitted_at, billing.submitted_by))
        if billing.approved_at:
            events.append(WorkflowEvent(BillingStatus.APPROVED, billing.approved_at, billing.approved_by))
        if billing.rejected_at:
            events.append(WorkflowEvent(
                BillingStatus.REJECTED, billing.rejected_at, billing.rejected_by, billing.rejection_reason
            ))
        if billing.paid_at:
            events.append(WorkflowEvent(BillingStatus.PAID, billing.paid_at, notes=billing.payment_reference))
        events.sort(key=lambda e: e.at)

        return PaymentApplicationWorkflow(
            billing_id=billing.id,
            current_status=billing.status,
            submitter=billing.submitted_by,
            approver=billing.approved_by,
            rejection_reason=billing.rejection_reason,
            payment_reference=billing.payment_reference,
            history=events,
        )

    # =========================================================================
    # Drafting
    # =========================================================================

    @repository_boundary("create billing")
    async def create_billing(self, data) -> Result[ProgressBilling]:
        validated = validate_input(CreateBillingInput, data)
        if validated.is_failure:
            return validated
        data = validated.value
        currency = data.currency.upper()

        application_number = data.application_number
        if application_number is None:
            previous = await self.billings.find_by_contract(data.contract_id)
            application_number = max((b.application_number for b in previous), default=0) + 1
        elif await self.billings.find_by_application_number(data.contract_id, application_number):
            return Result.fail(DuplicateOperationError(
                f"Application #{application_number} already exists for contract {data.contract_id}"
            ))

        retainage_percent = data.retainage_percent
        if retainage_percent is None:
            retainage_percent = Decimal(str(self.config.default_retainage_percent))

        billing = ProgressBilling.create(
            project_id=data.project_id,
            contract_id=data.contract_id,
            application_number=application_number,
            period_end_date=data.period_end_date,
            original_contract_sum=Money(data.original_contract_sum, currency),
            current_payment_due=Money.zero(currency),
            created_by=data.created_by,
            change_orders_approved=Money(data.change_orders_approved, currency),
            less_amounts_previously_certified=Money(data.less_amounts_previously_certified, currency),
            retainage_percent=retainage_percent,
        ).unwrap()
        await self.billings.save(billing)
        logger.info(f"Created draft billing #{application_number} for contract {data.contract_id}")
        return Result.ok(billing)

    @repository_boundary("add billing line item")
    async def add_line_item(self, billing_id: UUID, data) -> Result[ProgressBilling]:
        """Add a G703 row and roll the G702 totals forward."""
        validated = validate_input(BillingLineItemInput, data)
        if validated.is_failure:
            return validated
        data = validated.value

        billing = await self._load_billing(billing_id)
        currency = billing.currency
        code = CostCode.create(data.cost_code).unwrap()
        retainage_percent = data.retainage_percent
        if retainage_percent is None:
            retainage_percent = billing.retainage_percent

        item = BillingLineItem.compute(
            cost_code=code.value,
            description=data.description,
            scheduled_value=Money(data.scheduled_value, currency),
            work_completed_previously=Money(data.work_completed_previously, currency),
            work_completed_this_period=Money(data.work_completed_this_period, currency),
            materials_stored_previously=Money(data.materials_stored_previously, currency),
            materials_stored_this_period=Money(data.materials_stored_this_period, currency),
            retainage_percent=retainage_percent,
        ).unwrap()
        billing.add_line_item(item).unwrap()
        billing.recalculate_totals().unwrap()
        await self.billings.save(billing)
        return Result.ok(billing)

    @repository_boundary("remove billing line item")
    async def remove_line_item(self, billing_id: UUID, item_id: UUID) -> Result[ProgressBilling]:
        billing = await self._load_billing(billing_id)
        billing.remove_line_item(item_id).unwrap()
        billing.recalculate_totals().unwrap()
        await self.billings.save(billing)
        return Result.ok(billing)

    @repository_boundary("add lien waiver")
    async def add_lien_waiver(
        self,
        billing_id: UUID,
        waiver_type,
        amount: Money,
        through_date: date,
        notes: Optional[str] = None,
    ) -> Result[LienWaiver]:
        billing = await self._load_billing(billing_id)
        waiver = LienWaiver.create(waiver_type, amount, through_date, notes=notes).unwrap()
        billing.add_lien_waiver(waiver).unwrap()
        await self.billings.save(billing)
        return Result.ok(waiver)

    @repository_boundary("mark lien waiver received")
    async def mark_lien_waiver_received(
        self,
        billing_id: UUID,
        waiver_id: UUID,
        document_url: Optional[str] = None,
    ) -> Result[ProgressBilling]:
        billing = await self._load_billing(billing_id)
        billing.mark_lien_waiver_received(waiver_id, document_url).unwrap()
        await self.billings.save(billing)
        return Result.ok(billing)

    # =========================================================================
    # Workflow
    # =========================================================================

    @repository_boundary("submit billing")
    async def submit_for_approval(self, billing_id: UUID, submitted_by: str) -> Result[PaymentApplicationWorkflow]:
        billing = await self._load_billing(billing_id)
        billing.submit(submitted_by).unwrap()
        await self.billings.save(billing)
        return Result.ok(self._workflow(billing))

    @repository_boundary("approve billing")
    async def approve_billing(self, billing_id: UUID, approved_by: str) -> Result[PaymentApplicationWorkflow]:
        billing = await self._load_billing(billing_id)
        billing.approve(approved_by).unwrap()
        await self.billings.save(billing)
        return Result.ok(self._workflow(billing))

    @repository_boundary("reject billing")
    async def reject_billing(self, billing_id: UUID, rejected_by: str, reason: str) -> Result[PaymentApplicationWorkflow]:
        billing = await self._load_billing(billing_id)
        billing.reject(rejected_by, reason).unwrap()
        await self.billings.save(billing)
        return Result.ok(self._workflow(billing))

    @repository_boundary("mark billing paid")
    async def mark_as_paid(self, billing_id: UUID, payment_reference: str) -> Result[PaymentApplicationWorkflow]:
        billing = await self._load_billing(billing_id)
        billing.mark_as_paid(payment_reference).unwrap()
        await self.billings.save(billing)
        return Result.ok(self._workflow(billing))

    @repository_boundary("release retainage")
    async def release_retainage(
        self,
        billing_id: UUID,
        amount: Money,
        release_type=RetainageReleaseType.PARTIAL,
    ) -> Result[ProgressBilling]:
        billing = await self._load_billing(billing_id)
        billing.release_retainage(amount, release_type).unwrap()
        await self.billings.save(billing)
        return Result.ok(billing)

    # =========================================================================
    # AIA Documents
    # =========================================================================

    @repository_boundary("generate AIA G702")
    async def generate_aia_g702(self, billing_id: UUID) -> Result[G702Summary]:
        billing = await self._load_billing(billing_id)
        return Result.ok(G702Summary(
            billing_id=billing.id,
            application_number=billing.application_number,
            period_end_date=billing.period_end_date,
            original_contract_sum=billing.original_contract_sum,
            net_change_by_change_orders=billing.change_orders_approved,
            contract_sum_to_date=billing.contract_sum_to_date,
            total_completed_and_stored_to_date=billing.total_completed_and_stored,
            retainage=billing.retainage,
            total_earned_less_retainage=billing.total_earned,
            less_previous_certificates=billing.less_amounts_previously_certified,
            current_payment_due=billing.current_payment_due,
            balance_to_finish_including_retainage=billing.balance_to_finish,
            percent_complete=billing.percent_complete,
        ))

    @repository_boundary("generate AIA G703")
    async def generate_aia_g703(self, billing_id: UUID) -> Result[G703Sheet]:
        billing = await self._load_billing(billing_id)
        currency = billing.currency
        lines = [
            G703Line(
                line_number=number,
                cost_code=item.cost_code,
                description=item.description,
                scheduled_value=item.scheduled_value,
                work_completed_previously=item.work_completed_previously,
                work_completed_this_period=item.work_completed_this_period,
                materials_stored=item.materials_stored_previously + item.materials_stored_this_period,
                total_completed_and_stored=item.total_completed_and_stored,
                percent_complete=item.percent_complete,
                balance_to_finish=item.balance_to_finish,
                retainage_percent=item.retainage_percent,
                retainage_amount=item.retainage_amount,
            )
            for number, item in enumerate(billing.line_items, start=1)
        ]

        def total(attr: str) -> Money:
            return sum_money((getattr(line, attr) for line in lines), currency)

        totals = {
            name: total(name)
            for name in (
                "scheduled_value",
                "work_completed_previously",
                "work_completed_this_period",
                "materials_stored",
                "total_completed_and_stored",
                "balance_to_finish",
                "retainage_amount",
            )
        }
        return Result.ok(G703Sheet(
            billing_id=billing.id,
            application_number=billing.application_number,
            period_end_date=billing.period_end_date,
            lines=lines,
            totals=totals,
        ))

    def calculate_retainage(
        self,
        gross_amount: Money,
        retainage_percent=None,
        cumulative_retainage: Optional[Money] = None,
    ) -> Result[RetainageCalculation]:
        """
        Retainage on ``gross_amount`` and the release schedule for the
        cumulative retainage held after this billing.
        """
        if retainage_percent is None:
            retainage_percent = self.config.default_retainage_percent
        parsed = parse_percent(retainage_percent, "retainage_percent")
        if parsed.is_failure:
            return parsed
        retainage_percent = parsed.value
        currency = gross_amount.currency
        cumulative_retainage = cumulative_retainage or Money.zero(currency)

        if gross_amount.is_negative:
            return Result.fail(ValidationError("gross_amount", "gross amount cannot be negative"))
        if cumulative_retainage.currency != currency:
            return Result.fail(ValidationError("cumulative_retainage", "currency must match gross amount"))

        retainage = Money(gross_amount.amount * retainage_percent / 100, currency).rounded()
        held = cumulative_retainage + retainage

        schedule = self.config.retainage_release_schedule
        weights = [Decimal(str(m["percent"])) for m in schedule]
        shares = allocate_largest_remainder(held.to_cents(), weights)
        milestones = [
            RetainageMilestone(m["milestone"], weight, Money.from_cents(cents, currency))
            for m, weight, cents in zip(schedule, weights, shares)
        ]

        return Result.ok(RetainageCalculation(
            retainage_percent=retainage_percent,
            gross_amount=gross_amount,
            retainage_amount=retainage,
            net_amount=gross_amount - retainage,
            cumulative_retainage=held,
            release_schedule=milestones,
        ))

    def calculate_percentage_of_completion_billing(self, wip_report: WIPReport) -> Result[PercentageOfCompletionBilling]:
        currency = wip_report.currency
        percent = Decimal(str(wip_report.percent_complete))
        billing_amount = Money(wip_report.revised_contract_amount.amount * percent / 100, currency).rounded()
        return Result.ok(PercentageOfCompletionBilling(
            project_id=wip_report.project_id,
            billing_amount=billing_amount,
            revenue_recognized=wip_report.earned_revenue,
            cost_of_revenue_recognized=wip_report.cost_of_earned_revenue,
            gross_profit=wip_report.earned_revenue - wip_report.cost_of_earned_revenue,
            over_under_billing=wip_report.over_under_billings,
            wip_report=wip_report,
        ))

    # =========================================================================
    # Lien Waivers & Queries
    # =========================================================================

    @repository_boundary("track lien waivers")
    async def track_lien_waivers(self, billing_id: UUID) -> Result[LienWaiverTracking]:
        billing = await self._load_billing(billing_id)
        waivers = [
            LienWaiverStatus(w.id, w.waiver_type, w.amount, w.is_received, w.received_date)
            for w in billing.lien_waivers
        ]
        received = sum(1 for w in waivers if w.is_received)
        total = len(waivers)
        return Result.ok(LienWaiverTracking(
            billing_id=billing.id,
            total_lien_waivers=total,
            received_lien_waivers=received,
            pending_lien_waivers=total - received,
            percent_received=received / total * 100 if total else 0.0,
            received_amount=billing.received_lien_waiver_amount,
            pending_amount=billing.pending_lien_waiver_amount,
            waivers=waivers,
        ))

    @repository_boundary("get pending approvals")
    async def get_pending_approvals(self, project_id: Optional[UUID] = None) -> Result[List[ProgressBilling]]:
        return Result.ok(await self.billings.find_pending_approval(project_id))

    @repository_boundary("get pending payments")
    async def get_pending_payments(self, project_id: Optional[UUID] = None) -> Result[List[ProgressBilling]]:
        return Result.ok(await self.billings.find_pending_payment(project_id))

    @repository_boundary("get billings with unreceived lien waivers")
    async def get_billings_with_unreceived_lien_waivers(self, project_id: Optional[UUID] = None) -> Result[List[ProgressBilling]]:
        return Result.ok(await self.billings.find_with_unreceived_lien_waivers(project_id))

    @repository_boundary("get latest billing")
    async def get_latest_billing(self, project_id: UUID) -> Result[Optional[ProgressBilling]]:
        return Result.ok(await self.billings.find_latest(project_id))
