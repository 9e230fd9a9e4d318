"""
Tests for the JobCostRecord aggregate.
"""
from datetime import date
from uuid import uuid4

import pytest

from conftest import make_record, usd
from costcontrol.domain.entities import JobCostRecord
from costcontrol.domain.exceptions import DuplicateOperationError
from costcontrol.domain.values import Money


@pytest.fixture
def record():
    return make_record(uuid4(), uuid4(), planned=1000, actual=1200)


class TestJobCostRecordCreate:
    """Tests for record validation."""

    def test_short_description_rejected(self):
        result = JobCostRecord.create(
            uuid4(), uuid4(), "CONC-0310", "labor", "ab", date(2024, 1, 2), usd(100)
        )
        assert result.is_failure
        assert "description" in result.message

    def test_unknown_optional_field_rejected(self):
        result = JobCostRecord.create(
            uuid4(), uuid4(), "CONC-0310", "labor", "Crew hours", date(2024, 1, 2), usd(100), colour="red"
        )
        assert result.is_failure

    def test_currency_follows_planned_amount(self):
        result = JobCostRecord.create(
            uuid4(), uuid4(), "CONC-0310", "labor", "Crew hours", date(2024, 1, 2), usd(100),
            actual_amount=Money(5, "EUR"),
        )
        assert result.code == "CURRENCY_MISMATCH"

    def test_optional_references_and_tags(self):
        record = make_record(uuid4(), uuid4(), phase="Foundations", invoice_id="INV-9", tags=["a", "a", "b"])
        assert record.phase == "Foundations"
        assert record.invoice_id == "INV-9"
        assert record.tags == ("a", "b")
        assert not record.approved


class TestJobCostRecordBehaviour:
    """Tests for approval, amounts, tags and variance."""

    def test_over_budget_variance(self, record):
        assert record.is_over_budget
        assert record.variance() == usd(-200)
        assert record.variance_percent() == pytest.approx(-20.0)

    def test_approve_once(self, record):
        assert record.approve("super@example.com").is_success
        assert record.approved
        assert record.approved_at is not None
        approved_at, approved_by = record.approved_at, record.approved_by

        again = record.approve("other@example.com")
        assert isinstance(again.error, DuplicateOperationError)
        assert again.message == "Job cost record is already approved"
        assert record.approved_at == approved_at
        assert record.approved_by == approved_by == "super@example.com"

    def test_approve_requires_approver(self, record):
        assert record.approve("  ").is_failure
        assert not record.approved

    def test_update_amounts(self, record):
        assert record.update_actual_amount(usd(900)).is_success
        assert not record.is_over_budget
        assert record.update_committed_amount(Money(1, "CAD")).is_failure
        assert record.committed_amount.is_zero

    def test_notes_and_tags(self, record):
        record.add_note("first")
        record.add_note("second")
        assert record.notes == "first\nsecond"
        assert record.add_note("").is_failure

        record.add_tag("urgent")
        record.add_tag("urgent")
        assert record.tags == ("urgent",)
        record.remove_tag("urgent")
        assert not record.has_tag("urgent")

    def test_zero_planned_variance_percent(self):
        record = make_record(uuid4(), uuid4(), planned=0, actual=10)
        assert record.variance_percent() == 0.0
