"""
Repository contracts and in-memory implementations.
"""
from .base_repository import BaseRepository, InMemoryRepository
from .budget_repository import ProjectBudgetRepository, InMemoryProjectBudgetRepository
from .cost_code_repository import CostCodeHierarchyRepository, InMemoryCostCodeHierarchyRepository
from .job_cost_repository import JobCostRecordRepository, InMemoryJobCostRecordRepository
from .billing_repository import ProgressBillingRepository, InMemoryProgressBillingRepository
from .cash_flow_repository import CashFlowProjectionRepository, InMemoryCashFlowProjectionRepository

__all__ = [
    'BaseRepository', 'InMemoryRepository',
    'ProjectBudgetRepository', 'InMemoryProjectBudgetRepository',
    'CostCodeHierarchyRepository', 'InMemoryCostCodeHierarchyRepository',
    'JobCostRecordRepository', 'InMemoryJobCostRecordRepository',
    'ProgressBillingRepository', 'InMemoryProgressBillingRepository',
    'CashFlowProjectionRepository', 'InMemoryCashFlowProjectionRepository',
]
