"""
Progress Billing Aggregate - one AIA G702/G703 style payment application.

Implements:
- G703 continuation sheet line items (BillingLineItem.compute)
- G702 totals recalculated from line items while in draft
- Lien waiver tracking
- Retainage release (replace semantics: the last release wins)
- Workflow: draft -> submitted -> approved | rejected, approved -> paid

Invalid transitions return a failed Result and leave the billing untouched.
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple
from uuid import UUID, uuid4

from ..exceptions import (
    BillingLineItemNotFoundError,
    CurrencyMismatchError,
    DocumentNotFoundError,
    DuplicateOperationError,
    ImmutableAggregateError,
    InvalidStateTransitionError,
    LienWaiverNotFoundError,
    RetainageExceededError,
    ValidationError,
)
from ..result import Result
from ..values import Money, first_currency_mismatch, parse_percent, sum_money
from .budget_line import parse_enum

logger = logging.getLogger(__name__)

MIN_REJECTION_REASON_LENGTH = 10
MIN_PAYMENT_REFERENCE_LENGTH = 3
DEFAULT_RETAINAGE_PERCENT = Decimal("10")


class BillingStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    VOID = "void"


TERMINAL_STATUSES = frozenset({BillingStatus.PAID, BillingStatus.REJECTED, BillingStatus.VOID})


class LienWaiverType(str, Enum):
    CONDITIONAL = "conditional"
    UNCONDITIONAL = "unconditional"
    PARTIAL = "partial"
    FINAL = "final"


class RetainageReleaseType(str, Enum):
    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _percent_of(part: Decimal, whole: Decimal) -> float:
    if whole == 0:
        return 0.0
    return float(part / whole * 100)


# =============================================================================
# Continuation Sheet (G703)
# =============================================================================

@dataclass(frozen=True)
class BillingLineItem:
    """
    One schedule-of-values row on the continuation sheet.

    Attributes:
        cost_code: Cost code the row bills against
        description: Work description
        scheduled_value: Contract value of the row (column C)
        work_completed_previously: From previous applications (column D)
        work_completed_this_period: This period (column E)
        materials_stored_previously / materials_stored_this_period: Stored materials (column F)
        total_completed_and_stored: D + E + F (column G)
        percent_complete: G / C as a percentage
        retainage_percent: Retainage rate applied to G
        retainage_amount: Retainage withheld on G
        balance_to_finish: C - G (column H)
    """

    cost_code: str
    description: str
    scheduled_value: Money
    work_completed_previously: Money
    work_completed_this_period: Money
    materials_stored_previously: Money
    materials_stored_this_period: Money
    total_completed_and_stored: Money
    percent_complete: float
    retainage_percent: Decimal
    retainage_amount: Money
    balance_to_finish: Money
    id: UUID = field(default_factory=uuid4)

    @property
    def currency(self) -> str:
        return self.scheduled_value.currency

    def amounts(self) -> Tuple[Money, ...]:
        return (
            self.scheduled_value,
            self.work_completed_previously,
            self.work_completed_this_period,
            self.materials_stored_previously,
            self.materials_stored_this_period,
            self.total_completed_and_stored,
            self.retainage_amount,
            self.balance_to_finish,
        )

    @classmethod
    def compute(
        cls,
        cost_code: str,
        description: str,
        scheduled_value: Money,
        work_completed_previously: Money,
        work_completed_this_period: Money,
        materials_stored_previously: Optional[Money] = None,
        materials_stored_this_period: Optional[Money] = None,
        retainage_percent: Decimal = DEFAULT_RETAINAGE_PERCENT,
        id: Optional[UUID] = None,
    ) -> Result["BillingLineItem"]:
        """Derive columns G, H, percent complete and retainage from C-F."""
        currency = scheduled_value.currency
        materials_stored_previously = materials_stored_previously or Money.zero(currency)
        materials_stored_this_period = materials_stored_this_period or Money.zero(currency)

        inputs = (
            work_completed_previously,
            work_completed_this_period,
            materials_stored_previously,
            materials_stored_this_period,
        )
        mismatch = first_currency_mismatch(inputs, currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(currency, mismatch.currency, "line item"))

        parsed = parse_percent(retainage_percent, "retainage_percent")
        if parsed.is_failure:
            return parsed
        retainage_percent = parsed.value
        total = sum_money(inputs, currency)
        retainage = Money(total.amount * retainage_percent / 100, currency).rounded()

        return cls.create(
            cost_code=cost_code,
            description=description,
            scheduled_value=scheduled_value,
            work_completed_previously=work_completed_previously,
            work_completed_this_period=work_completed_this_period,
            materials_stored_previously=materials_stored_previously,
            materials_stored_this_period=materials_stored_this_period,
            total_completed_and_stored=total,
            percent_complete=_percent_of(total.amount, scheduled_value.amount),
            retainage_percent=retainage_percent,
            retainage_amount=retainage,
            balance_to_finish=scheduled_value - total,
            id=id,
        )

    @classmethod
    def create(cls, **props) -> Result["BillingLineItem"]:
        description = (props.get("description") or "").strip()
        if not description:
            return Result.fail(ValidationError("description", "line item description is required"))
        if props.get("scheduled_value") is None:
            return Result.fail(ValidationError("scheduled_value", "scheduled value is required"))

        retainage_result = parse_percent(props.get("retainage_percent", DEFAULT_RETAINAGE_PERCENT), "retainage_percent")
        if retainage_result.is_failure:
            return retainage_result
        retainage_percent = retainage_result.value

        props["id"] = props.get("id") or uuid4()
        props["description"] = description
        props["retainage_percent"] = retainage_percent
        try:
            item = cls(**props)
        except TypeError as e:
            return Result.fail(ValidationError("line_item", str(e)))

        mismatch = first_currency_mismatch(item.amounts(), item.currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(item.currency, mismatch.currency, "line item"))
        return Result.ok(item)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "cost_code": self.cost_code,
            "description": self.description,
            "scheduled_value": self.scheduled_value.to_dict(),
            "work_completed_previously": self.work_completed_previously.to_dict(),
            "work_completed_this_period": self.work_completed_this_period.to_dict(),
            "materials_stored_previously": self.materials_stored_previously.to_dict(),
            "materials_stored_this_period": self.materials_stored_this_period.to_dict(),
            "total_completed_and_stored": self.total_completed_and_stored.to_dict(),
            "percent_complete": round(self.percent_complete, 2),
            "retainage_percent": str(self.retainage_percent),
            "retainage_amount": self.retainage_amount.to_dict(),
            "balance_to_finish": self.balance_to_finish.to_dict(),
        }


@dataclass(frozen=True)
class LienWaiver:
    """Lien waiver expected from (or received for) a payment application."""

    waiver_type: LienWaiverType
    amount: Money
    through_date: date
    is_received: bool = False
    received_date: Optional[datetime] = None
    document_url: Optional[str] = None
    notes: Optional[str] = None
    id: UUID = field(default_factory=uuid4)

    @classmethod
    def create(
        cls,
        waiver_type,
        amount: Money,
        through_date: date,
        notes: Optional[str] = None,
        id: Optional[UUID] = None,
    ) -> Result["LienWaiver"]:
        type_result = parse_enum(LienWaiverType, waiver_type, "waiver_type")
        if type_result.is_failure:
            return type_result
        if amount is None or through_date is None:
            return Result.fail(ValidationError("amount", "lien waiver amount and through date are required"))
        if amount.is_negative:
            return Result.fail(ValidationError("amount", "lien waiver amount cannot be negative"))
        return Result.ok(cls(
            waiver_type=type_result.value,
            amount=amount,
            through_date=through_date,
            notes=notes,
            id=id or uuid4(),
        ))

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "type": self.waiver_type.value,
            "amount": self.amount.to_dict(),
            "through_date": self.through_date.isoformat(),
            "is_received": self.is_received,
            "received_date": self.received_date.isoformat() if self.received_date else None,
            "document_url": self.document_url,
        }


# =============================================================================
# Payment Application (G702)
# =============================================================================

_SECONDARY_AMOUNTS = (
    "change_orders_approved",
    "contract_sum_to_date",
    "total_completed_and_stored",
    "retainage",
    "total_earned",
    "less_amounts_previously_certified",
    "balance_to_finish",
    "retainage_released",
)


@dataclass(eq=False)
class ProgressBilling:
    """
    Payment application for one contract and billing period.

    Every money field shares the currency of original_contract_sum.
    """

    project_id: UUID
    contract_id: UUID
    application_number: int
    period_end_date: date
    original_contract_sum: Money
    change_orders_approved: Money
    contract_sum_to_date: Money
    total_completed_and_stored: Money
    retainage: Money
    total_earned: Money
    less_amounts_previously_certified: Money
    current_payment_due: Money
    balance_to_finish: Money
    retainage_released: Money
    created_by: str
    status: BillingStatus = BillingStatus.DRAFT
    retainage_percent: Decimal = DEFAULT_RETAINAGE_PERCENT
    retainage_release_type: RetainageReleaseType = RetainageReleaseType.NONE
    line_items: Tuple[BillingLineItem, ...] = ()
    lien_waivers: Tuple[LienWaiver, ...] = ()
    document_urls: Tuple[str, ...] = ()
    notes: str = ""
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    paid_at: Optional[datetime] = None
    payment_reference: Optional[str] = None
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(
        cls,
        project_id: UUID,
        contract_id: UUID,
        application_number: int,
        period_end_date: date,
        original_contract_sum: Money,
        current_payment_due: Money,
        created_by: str,
        status=BillingStatus.DRAFT,
        line_items=(),
        lien_waivers=(),
        **props,
    ) -> Result["ProgressBilling"]:
        """
        Validate and build a payment application.

        Money fields not supplied in ``props`` default to zero in the
        currency of ``original_contract_sum``; contract_sum_to_date
        defaults to original sum plus approved change orders.
        """
        required = {
            "project_id": project_id,
            "contract_id": contract_id,
            "application_number": application_number,
            "period_end_date": period_end_date,
            "original_contract_sum": original_contract_sum,
            "current_payment_due": current_payment_due,
            "created_by": created_by,
        }
        for name, value in required.items():
            if value is None:
                return Result.fail(ValidationError(name, f"{name} is required"))

        if not isinstance(application_number, int) or application_number < 1:
            return Result.fail(ValidationError("application_number", "application number must be at least 1"))

        status_result = parse_enum(BillingStatus, status, "status")
        if status_result.is_failure:
            return status_result

        currency = original_contract_sum.currency
        derive_contract_sum = props.get("contract_sum_to_date") is None
        for name in _SECONDARY_AMOUNTS:
            if props.get(name) is None:
                props[name] = Money.zero(currency)

        amounts = [current_payment_due] + [props[name] for name in _SECONDARY_AMOUNTS]
        mismatch = first_currency_mismatch(amounts, currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(currency, mismatch.currency, "billing amounts"))
        if derive_contract_sum:
            props["contract_sum_to_date"] = original_contract_sum + props["change_orders_approved"]

        line_items = tuple(line_items)
        for item in line_items:
            if first_currency_mismatch(item.amounts(), currency) is not None:
                return Result.fail(CurrencyMismatchError(currency, item.currency, "line item"))
        lien_waivers = tuple(lien_waivers)
        for waiver in lien_waivers:
            if waiver.amount.currency != currency:
                return Result.fail(CurrencyMismatchError(currency, waiver.amount.currency, "lien waiver"))

        retainage_result = parse_percent(props.get("retainage_percent", DEFAULT_RETAINAGE_PERCENT), "retainage_percent")
        if retainage_result.is_failure:
            return retainage_result
        props["retainage_percent"] = retainage_result.value
        release_result = parse_enum(
            RetainageReleaseType, props.get("retainage_release_type", RetainageReleaseType.NONE),
            "retainage_release_type",
        )
        if release_result.is_failure:
            return release_result
        props["retainage_release_type"] = release_result.value
        props["id"] = props.get("id") or uuid4()
        props["document_urls"] = tuple(props.get("document_urls") or ())

        try:
            billing = cls(
                project_id=project_id,
                contract_id=contract_id,
                application_number=application_number,
                period_end_date=period_end_date,
                original_contract_sum=original_contract_sum,
                current_payment_due=current_payment_due,
                created_by=created_by,
                status=status_result.value,
                line_items=line_items,
                lien_waivers=lien_waivers,
                **props,
            )
        except TypeError as e:
            return Result.fail(ValidationError("billing", str(e)))
        return Result.ok(billing)

    def touch(self) -> None:
        self.updated_at = _utcnow()

    @property
    def currency(self) -> str:
        return self.original_contract_sum.currency

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    # =========================================================================
    # Workflow
    # =========================================================================

    def _transition_error(self, message: str, attempted: BillingStatus) -> Result:
        logger.debug(f"Billing {self.id}: rejected transition {self.status.value} -> {attempted.value}")
        return Result.fail(InvalidStateTransitionError(message, self.status.value, attempted.value))

    def submit(self, submitted_by: str) -> Result[None]:
        if self.status != BillingStatus.DRAFT:
            return self._transition_error("Only draft billings can be submitted", BillingStatus.SUBMITTED)
        if not self.line_items:
            return Result.fail(ValidationError("line_items", "Cannot submit billing with no line items"))

        self.status = BillingStatus.SUBMITTED
        self.submitted_by = submitted_by
        self.submitted_at = _utcnow()
        self.touch()
        logger.info(f"Billing {self.id} application #{self.application_number} submitted by {submitted_by}")
        return Result.ok()

    def approve(self, approved_by: str) -> Result[None]:
        if self.status != BillingStatus.SUBMITTED:
            return self._transition_error("Only submitted billings can be approved", BillingStatus.APPROVED)

        self.status = BillingStatus.APPROVED
        self.approved_by = approved_by
        self.approved_at = _utcnow()
        self.touch()
        logger.info(f"Billing {self.id} approved by {approved_by}")
        return Result.ok()

    def reject(self, rejected_by: str, reason: str) -> Result[None]:
        if self.status != BillingStatus.SUBMITTED:
            return self._transition_error("Only submitted billings can be rejected", BillingStatus.REJECTED)
        if not reason or len(reason.strip()) < MIN_REJECTION_REASON_LENGTH:
            return Result.fail(ValidationError(
                "reason", f"Rejection reason must be at least {MIN_REJECTION_REASON_LENGTH} characters"
            ))

        self.status = BillingStatus.REJECTED
        self.rejected_by = rejected_by
        self.rejected_at = _utcnow()
        self.rejection_reason = reason
        self.touch()
        logger.info(f"Billing {self.id} rejected by {rejected_by}")
        return Result.ok()

    def mark_as_paid(self, payment_reference: str) -> Result[None]:
        if self.status != BillingStatus.APPROVED:
            return self._transition_error("Only approved billings can be marked as paid", BillingStatus.PAID)
        if not payment_reference or len(payment_reference.strip()) < MIN_PAYMENT_REFERENCE_LENGTH:
            return Result.fail(ValidationError("payment_reference", "Payment reference is required"))

        self.status = BillingStatus.PAID
        self.paid_at = _utcnow()
        self.payment_reference = payment_reference
        self.touch()
        logger.info(f"Billing {self.id} paid, reference {payment_reference}")
        return Result.ok()

    # =========================================================================
    # Line Items & Documents (draft only)
    # =========================================================================

    def _require_draft(self, operation: str) -> Optional[Result]:
        if self.status != BillingStatus.DRAFT:
            return Result.fail(ImmutableAggregateError("billing", self.status.value, operation))
        return None

    def add_line_item(self, item: BillingLineItem) -> Result[None]:
        blocked = self._require_draft("add line item")
        if blocked is not None:
            return blocked
        mismatch = first_currency_mismatch(item.amounts(), self.currency)
        if mismatch is not None:
            return Result.fail(CurrencyMismatchError(self.currency, mismatch.currency, "line item"))
        if any(existing.id == item.id for existing in self.line_items):
            return Result.fail(DuplicateOperationError(f"Line item {item.id} already exists"))

        self.line_items = self.line_items + (item,)
        self.touch()
        return Result.ok()

    def remove_line_item(self, item_id: UUID) -> Result[None]:
        blocked = self._require_draft("remove line item")
        if blocked is not None:
            return blocked
        if not any(item.id == item_id for item in self.line_items):
            return Result.fail(BillingLineItemNotFoundError(item_id))

        self.line_items = tuple(item for item in self.line_items if item.id != item_id)
        self.touch()
        return Result.ok()

    def recalculate_totals(self) -> Result[None]:
        """
        Roll G703 line items up into the G702 summary amounts.

        total earned = completed and stored - retainage;
        current payment due = total earned - previously certified;
        balance to finish (including retainage) = contract sum to date - total earned.
        """
        blocked = self._require_draft("recalculate totals")
        if blocked is not None:
            return blocked

        completed = sum_money((i.total_completed_and_stored for i in self.line_items), self.currency)
        retainage = sum_money((i.retainage_amount for i in self.line_items), self.currency)
        earned = completed - retainage

        self.total_completed_and_stored = completed
        self.retainage = retainage
        self.total_earned = earned
        self.current_payment_due = earned - self.less_amounts_previously_certified
        self.balance_to_finish = self.contract_sum_to_date - earned
        self.touch()
        return Result.ok()

    def add_document(self, url: str) -> Result[None]:
        blocked = self._require_draft("add document")
        if blocked is not None:
            return blocked
        if not url or not url.strip():
            return Result.fail(ValidationError("url", "Document URL is required"))

        self.document_urls = self.document_urls + (url.strip(),)
        self.touch()
        return Result.ok()

    def remove_document(self, url: str) -> Result[None]:
        blocked = self._require_draft("remove document")
        if blocked is not None:
            return blocked
        if url not in self.document_urls:
            return Result.fail(DocumentNotFoundError(url))

        self.document_urls = tuple(u for u in self.document_urls if u != url)
        self.touch()
        return Result.ok()

    def add_note(self, note: str) -> Result[None]:
        if not note or not note.strip():
            return Result.fail(ValidationError("note", "Note cannot be empty"))
        self.notes = f"{self.notes}\n[{_utcnow().isoformat()}] {note.strip()}"
        self.touch()
        return Result.ok()

    # =========================================================================
    # Lien Waivers (any status)
    # =========================================================================

    def add_lien_waiver(self, waiver: LienWaiver) -> Result[None]:
        if waiver.amount.currency != self.current_payment_due.currency:
            return Result.fail(CurrencyMismatchError(
                self.current_payment_due.currency, waiver.amount.currency, "lien waiver"
            ))
        self.lien_waivers = self.lien_waivers + (waiver,)
        self.touch()
        return Result.ok()

    def mark_lien_waiver_received(self, waiver_id: UUID, document_url: Optional[str] = None) -> Result[None]:
        if not any(w.id == waiver_id for w in self.lien_waivers):
            return Result.fail(LienWaiverNotFoundError(waiver_id))

        received_at = _utcnow()
        self.lien_waivers = tuple(
            replace(
                w,
                is_received=True,
                received_date=received_at,
                document_url=document_url or w.document_url,
            ) if w.id == waiver_id else w
            for w in self.lien_waivers
        )
        self.touch()
        return Result.ok()

    @property
    def has_unreceived_lien_waivers(self) -> bool:
        return any(not w.is_received for w in self.lien_waivers)

    @property
    def received_lien_waiver_amount(self) -> Money:
        return sum_money((w.amount for w in self.lien_waivers if w.is_received), self.current_payment_due.currency)

    @property
    def pending_lien_waiver_amount(self) -> Money:
        return sum_money((w.amount for w in self.lien_waivers if not w.is_received), self.current_payment_due.currency)

    # =========================================================================
    # Retainage
    # =========================================================================

    def release_retainage(self, amount: Money, release_type) -> Result[None]:
        """
        Record a retainage release.

        Replaces any earlier release; the retainage balance itself is not
        reduced (see retainage_remaining for the derived view).
        """
        type_result = parse_enum(RetainageReleaseType, release_type, "release_type")
        if type_result.is_failure:
            return type_result
        if amount.currency != self.retainage.currency:
            return Result.fail(CurrencyMismatchError(self.retainage.currency, amount.currency, "retainage release"))
        if amount.is_negative:
            return Result.fail(ValidationError("amount", "release amount cannot be negative"))
        if amount > self.retainage:
            return Result.fail(RetainageExceededError(amount, self.retainage))

        self.retainage_release_type = type_result.value
        self.retainage_released = amount
        self.touch()
        logger.info(f"Billing {self.id}: {type_result.value} retainage release of {amount}")
        return Result.ok()

    @property
    def retainage_remaining(self) -> Money:
        return self.retainage - self.retainage_released

    # =========================================================================
    # Computed
    # =========================================================================

    @property
    def percent_complete(self) -> float:
        return _percent_of(self.total_completed_and_stored.amount, self.contract_sum_to_date.amount)

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "project_id": str(self.project_id),
            "contract_id": str(self.contract_id),
            "application_number": self.application_number,
            "period_end_date": self.period_end_date.isoformat(),
            "status": self.status.value,
            "original_contract_sum": self.original_contract_sum.to_dict(),
            "change_orders_approved": self.change_orders_approved.to_dict(),
            "contract_sum_to_date": self.contract_sum_to_date.to_dict(),
            "total_completed_and_stored": self.total_completed_and_stored.to_dict(),
            "retainage": self.retainage.to_dict(),
            "total_earned": self.total_earned.to_dict(),
            "less_amounts_previously_certified": self.less_amounts_previously_certified.to_dict(),
            "current_payment_due": self.current_payment_due.to_dict(),
            "balance_to_finish": self.balance_to_finish.to_dict(),
            "retainage_released": self.retainage_released.to_dict(),
            "retainage_release_type": self.retainage_release_type.value,
            "percent_complete": round(self.percent_complete, 2),
            "line_items": [item.to_dict() for item in self.line_items],
            "lien_waivers": [w.to_dict() for w in self.lien_waivers],
            "document_urls": list(self.document_urls),
        }
