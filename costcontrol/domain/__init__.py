"""
Domain Layer - financial control entities, values and services.

This module contains:
- values: Money value object and cent-exact allocation
- result: Result outcome returned by every fallible operation
- exceptions: DomainError hierarchy carried inside failed results
- entities/: Budgets, job costs, progress billings, cash flow projections, WIP
- services/: Application services coordinating repositories and aggregates
"""

from .exceptions import DomainError, ValidationError
from .result import Result
from .values import Money

__all__ = [
    'DomainError', 'ValidationError',
    'Result',
    'Money',
]
