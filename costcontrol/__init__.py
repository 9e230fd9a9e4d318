"""
Construction project financial control.

Budgets, job costing, AIA progress billing, thirteen-week cash flow
projections and percentage-of-completion WIP reporting.
"""

__version__ = "1.0.0"
