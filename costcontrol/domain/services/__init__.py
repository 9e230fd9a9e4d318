"""
Application Services - orchestrate aggregates and repositories.
"""

from .unit_of_work import UnitOfWork
from .budget_service import BudgetService
from .job_costing_service import JobCostingService
from .progress_billing_service import ProgressBillingService
from .cash_flow_service import CashFlowService, LiquidityRiskLevel
from .wip_service import WIPService

__all__ = [
    'UnitOfWork',
    'BudgetService',
    'JobCostingService',
    'ProgressBillingService',
    'CashFlowService', 'LiquidityRiskLevel',
    'WIPService',
]
