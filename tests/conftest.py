"""
Shared fixtures for the financial control tests.
"""
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from costcontrol.config import get_config
from costcontrol.domain.entities import (
    BillingLineItem,
    BudgetLine,
    CashFlowProjection,
    CashFlowWeek,
    JobCostRecord,
    ProgressBilling,
    ProjectBudget,
)
from costcontrol.domain.values import Money
from costcontrol.infrastructure.repositories import (
    InMemoryCashFlowProjectionRepository,
    InMemoryJobCostRecordRepository,
    InMemoryProgressBillingRepository,
    InMemoryProjectBudgetRepository,
)


def usd(amount) -> Money:
    return Money(Decimal(str(amount)), "USD")


def make_line(cost_code="CONC-0310", planned=1000, actual=0, committed=0, category="materials"):
    return BudgetLine.create(
        cost_code=cost_code,
        category=category,
        description=f"{cost_code} work",
        planned_amount=usd(planned),
        committed_amount=usd(committed),
        actual_amount=usd(actual),
    ).unwrap()


def make_budget(project_id=None, version=1, lines=None):
    return ProjectBudget.create(
        project_id=project_id or uuid4(),
        version=version,
        currency="USD",
        lines=lines or [make_line()],
    ).unwrap()


def make_record(project_id, budget_id, planned=1000, actual=0, cost_code="CONC-0310",
                transaction_date=date(2024, 3, 15), category="materials", **optional):
    return JobCostRecord.create(
        project_id=project_id,
        budget_id=budget_id,
        cost_code=cost_code,
        category=category,
        description="Concrete pour",
        transaction_date=transaction_date,
        planned_amount=usd(planned),
        actual_amount=usd(actual),
        **optional,
    ).unwrap()


def make_line_item(scheduled=10000, previous=2000, this_period=3000, retainage_percent=10):
    return BillingLineItem.compute(
        cost_code="CONC-0310",
        description="Foundations",
        scheduled_value=usd(scheduled),
        work_completed_previously=usd(previous),
        work_completed_this_period=usd(this_period),
        retainage_percent=Decimal(str(retainage_percent)),
    ).unwrap()


def make_billing(project_id=None, contract_id=None, application_number=1, line_items=None,
                 period_end_date=date(2024, 3, 31)):
    billing = ProgressBilling.create(
        project_id=project_id or uuid4(),
        contract_id=contract_id or uuid4(),
        application_number=application_number,
        period_end_date=period_end_date,
        original_contract_sum=usd(100000),
        current_payment_due=usd(0),
        created_by="pm@example.com",
    ).unwrap()
    for item in line_items if line_items is not None else [make_line_item()]:
        billing.add_line_item(item).unwrap()
    billing.recalculate_totals().unwrap()
    return billing


def make_weeks(start=date(2024, 1, 1), opening=10000, net=100, overrides=None):
    """Thirteen consecutive weeks; ``overrides`` maps week number -> ending balance."""
    overrides = overrides or {}
    weeks = []
    balance = usd(opening)
    for number in range(1, 14):
        week_start = start + timedelta(days=(number - 1) * 7)
        week = CashFlowWeek.build(
            week_number=number,
            week_start_date=week_start,
            week_end_date=week_start + timedelta(days=6),
            beginning_balance=balance,
            inflows_ar=usd(net),
            inflows_other=usd(0),
            outflows_ap=usd(0),
            outflows_payroll=usd(0),
            outflows_other=usd(0),
        ).unwrap()
        balance = week.ending_balance
        if number in overrides:
            week = replace(week, ending_balance=usd(overrides[number]))
        weeks.append(week)
    return weeks


def make_projection(start=date(2024, 1, 1), span_days=90, weeks=None, **kwargs):
    return CashFlowProjection.create(
        name=kwargs.pop("name", "Q1 forecast"),
        scenario=kwargs.pop("scenario", "expected"),
        currency="USD",
        start_date=start,
        end_date=start + timedelta(days=span_days),
        opening_balance=usd(10000),
        weeks=weeks if weeks is not None else make_weeks(start),
        created_by="cfo@example.com",
        **kwargs,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def config():
    return get_config()


@pytest.fixture
def budget_repo():
    return InMemoryProjectBudgetRepository()


@pytest.fixture
def job_cost_repo():
    return InMemoryJobCostRecordRepository()


@pytest.fixture
def billing_repo():
    return InMemoryProgressBillingRepository()


@pytest.fixture
def projection_repo():
    return InMemoryCashFlowProjectionRepository()


@pytest.fixture
def project_id():
    return uuid4()
