"""
Domain Entities - aggregates and value objects of the financial control core.
"""

from .cost_code import CostCode, CostCodeHierarchy
from .budget_line import BudgetLine, BudgetStatus, CostCategory
from .project_budget import ProjectBudget
from .job_cost_record import JobCostRecord
from .progress_billing import (
    BillingLineItem,
    BillingStatus,
    LienWaiver,
    LienWaiverType,
    ProgressBilling,
    RetainageReleaseType,
)
from .cash_flow_projection import WEEKS_IN_PROJECTION, CashFlowProjection, CashFlowScenario, CashFlowWeek
from .wip_report import WIPReport, WIPSummary

__all__ = [
    'CostCode', 'CostCodeHierarchy',
    'BudgetLine', 'BudgetStatus', 'CostCategory',
    'ProjectBudget',
    'JobCostRecord',
    'ProgressBilling', 'BillingLineItem', 'BillingStatus',
    'LienWaiver', 'LienWaiverType', 'RetainageReleaseType',
    'CashFlowProjection', 'CashFlowScenario', 'CashFlowWeek', 'WEEKS_IN_PROJECTION',
    'WIPReport', 'WIPSummary',
]
