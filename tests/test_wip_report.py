"""
Tests for WIP reports and the portfolio summary.
"""
from datetime import date

import pytest

from conftest import usd
from costcontrol.domain.entities import WIPReport, WIPSummary
from costcontrol.domain.values import Money

REPORT_DATE = date(2024, 6, 30)


def compute(contract=1000000, change_orders=0, costs=400000, to_complete=400000, billed=450000, name="Tower"):
    return WIPReport.compute(
        project_id=name.lower(),
        project_name=name,
        report_date=REPORT_DATE,
        original_contract_amount=usd(contract),
        approved_change_orders=usd(change_orders),
        costs_to_date=usd(costs),
        estimated_cost_to_complete=usd(to_complete),
        billed_to_date=usd(billed),
    )


class TestWIPReport:
    """Tests for cost-to-cost report derivation."""

    def test_compute(self):
        report = compute().unwrap()
        assert report.percent_complete == pytest.approx(50.0)
        assert report.estimated_total_cost == usd(800000)
        assert report.earned_revenue == usd(500000)
        assert report.estimated_gross_profit == usd(200000)
        assert report.estimated_gross_profit_percent == pytest.approx(20.0)
        assert report.gross_profit_recognized == usd(100000)
        assert report.over_under_billings == usd(-50000)
        assert report.is_under_billed
        assert report.is_profitable

    def test_change_orders_revise_contract(self):
        report = compute(change_orders=200000).unwrap()
        assert report.revised_contract_amount == usd(1200000)
        assert report.earned_revenue == usd(600000)

    def test_projected_loss_recognized_in_full(self):
        report = compute(contract=700000).unwrap()
        assert report.is_in_loss
        assert report.estimated_gross_profit == usd(-100000)
        assert report.gross_profit_recognized == usd(-100000)

    def test_zero_estimated_cost(self):
        report = compute(costs=0, to_complete=0, billed=0).unwrap()
        assert report.percent_complete == 0.0
        assert report.earned_revenue.is_zero

    def test_currency_mismatch(self):
        result = WIPReport.compute(
            "p", "P", REPORT_DATE, usd(1), usd(0), usd(0), usd(0), Money(0, "EUR")
        )
        assert result.code == "CURRENCY_MISMATCH"

    def test_percent_complete_bounds(self):
        report = compute().unwrap()
        props = {name: getattr(report, name) for name in report.__dataclass_fields__}
        props["percent_complete"] = 120.0
        assert WIPReport.create(**props).is_failure

    @pytest.mark.parametrize("percent", [float("nan"), float("inf"), -0.5, "fifty", None])
    def test_percent_complete_must_be_finite_and_in_range(self, percent):
        report = compute().unwrap()
        props = {name: getattr(report, name) for name in report.__dataclass_fields__}
        props["percent_complete"] = percent
        result = WIPReport.create(**props)
        assert result.code == "VALIDATION_ERROR"

    @pytest.mark.parametrize("percent", [0, 100.0])
    def test_percent_complete_limits_accepted(self, percent):
        report = compute().unwrap()
        props = {name: getattr(report, name) for name in report.__dataclass_fields__}
        props["percent_complete"] = percent
        assert WIPReport.create(**props).is_success

    def test_cost_variance_and_revenue_remaining(self):
        report = compute().unwrap()
        assert report.cost_variance == usd(400000)
        assert report.revenue_remaining == usd(500000)
        assert report.to_dict()["percent_complete"] == 50.0


class TestWIPSummary:
    """Tests for portfolio rollups."""

    def test_from_reports(self):
        reports = [compute().unwrap(), compute(contract=700000, billed=400000, name="Garage").unwrap()]
        summary = WIPSummary.from_reports(reports, REPORT_DATE).unwrap()
        assert summary.total_projects == 2
        assert summary.total_revised_contract_amount == usd(1700000)
        assert summary.profitable_projects == 1
        assert summary.unprofitable_projects == 1
        assert summary.projects_under_billed == 1
        assert summary.projects_over_billed == 1
        assert summary.portfolio_health_score == 75

    def test_empty_portfolio(self):
        summary = WIPSummary.from_reports([], REPORT_DATE, currency="USD").unwrap()
        assert summary.total_projects == 0
        assert summary.portfolio_health_score == 0
        assert summary.overall_percent_complete == 0.0

    def test_empty_portfolio_requires_currency(self):
        assert WIPSummary.from_reports([], REPORT_DATE).is_failure

    def test_mixed_currencies(self):
        euro = WIPReport.compute(
            "e", "Euro", REPORT_DATE, Money(1, "EUR"), Money(0, "EUR"),
            Money(0, "EUR"), Money(0, "EUR"), Money(0, "EUR"),
        ).unwrap()
        assert WIPSummary.from_reports([compute().unwrap(), euro], REPORT_DATE).is_failure

    @pytest.mark.parametrize("field_name,value", [
        ("profitable_projects", float("nan")),
        ("projects_on_budget", True),
        ("projects_over_billed", 1.5),
        ("average_gross_profit_percent", float("nan")),
    ])
    def test_counts_and_average_are_validated(self, field_name, value):
        summary = WIPSummary.from_reports([compute().unwrap()], REPORT_DATE).unwrap()
        props = {name: getattr(summary, name) for name in summary.__dataclass_fields__}
        props[field_name] = value
        result = WIPSummary.create(**props)
        assert result.code == "VALIDATION_ERROR"
        assert field_name in result.message
