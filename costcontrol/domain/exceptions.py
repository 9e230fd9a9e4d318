"""
Domain Exceptions for Construction Financial Control.

Custom exceptions enforcing business rules:
- Field validation (patterns, ranges, lengths)
- Single-currency aggregates
- Billing workflow state transitions
- Entity lookup by identifier
- Multi-aggregate unit-of-work commits

Aggregates do not raise these for expected business failures; they carry
them inside a failed Result. Result.unwrap() re-raises the carried error.
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "DOMAIN_ERROR"):
        self.message = message
        self.code = code
        super().__init__(self.message)


# =============================================================================
# Validation Exceptions
# =============================================================================

class ValidationError(DomainError):
    """Raised for malformed input shape, out-of-range values or pattern mismatches."""

    def __init__(self, field: str, message: str):
        full_message = f"Validation failed for '{field}': {message}"
        super().__init__(full_message, code="VALIDATION_ERROR")
        self.field = field
        self.reason = message


# =============================================================================
# Invariant Exceptions
# =============================================================================

class InvariantViolationError(DomainError):
    """Raised when an aggregate invariant would be broken."""

    def __init__(self, invariant_name: str, expected, actual):
        message = (
            f"Invariant '{invariant_name}' violated: "
            f"expected {expected}, got {actual}"
        )
        super().__init__(message, code="INVARIANT_VIOLATION")
        self.invariant_name = invariant_name
        self.expected = expected
        self.actual = actual


class CurrencyMismatchError(DomainError):
    """Raised when money amounts in one aggregate use different currencies."""

    def __init__(self, expected: str, actual: str, context: str = "amount"):
        message = f"Currency mismatch for {context}: expected {expected}, got {actual}"
        super().__init__(message, code="CURRENCY_MISMATCH")
        self.expected = expected
        self.actual = actual
        self.context = context


class InvalidStateTransitionError(DomainError):
    """Raised when a workflow transition is attempted from the wrong status."""

    def __init__(self, message: str, current_status: str, attempted: str):
        super().__init__(message, code="INVALID_STATE_TRANSITION")
        self.current_status = current_status
        self.attempted = attempted


class DuplicateOperationError(DomainError):
    """Raised when a one-way operation is repeated (e.g. double approval)."""

    def __init__(self, message: str):
        super().__init__(message, code="DUPLICATE_OPERATION")


class RetainageExceededError(DomainError):
    """Raised when a retainage release exceeds the retainage held."""

    def __init__(self, requested, available):
        message = (
            f"Cannot release {requested} of retainage; "
            f"only {available} is held"
        )
        super().__init__(message, code="RETAINAGE_EXCEEDED")
        self.requested = requested
        self.available = available


class ImmutableAggregateError(DomainError):
    """Raised when mutating an aggregate in a closed or terminal state."""

    def __init__(self, entity_type: str, status: str, operation: str):
        message = f"Cannot {operation} on {entity_type} with status '{status}'"
        super().__init__(message, code="IMMUTABLE_AGGREGATE")
        self.entity_type = entity_type
        self.status = status
        self.operation = operation


# =============================================================================
# Not Found Exceptions
# =============================================================================

class NotFoundError(DomainError):
    """Raised when an aggregate or child entity cannot be found by id."""

    entity_type = "Entity"
    error_code = "NOT_FOUND"

    def __init__(self, entity_id, message: str = None):
        message = message or f"{self.entity_type} with id '{entity_id}' not found"
        super().__init__(message, code=self.error_code)
        self.entity_id = entity_id


class BudgetNotFoundError(NotFoundError):
    entity_type = "Project budget"
    error_code = "BUDGET_NOT_FOUND"


class BudgetLineNotFoundError(NotFoundError):
    entity_type = "Budget line"
    error_code = "BUDGET_LINE_NOT_FOUND"


class JobCostRecordNotFoundError(NotFoundError):
    entity_type = "Job cost record"
    error_code = "JOB_COST_RECORD_NOT_FOUND"


class BillingNotFoundError(NotFoundError):
    entity_type = "Progress billing"
    error_code = "BILLING_NOT_FOUND"


class BillingLineItemNotFoundError(NotFoundError):
    entity_type = "Line item"
    error_code = "LINE_ITEM_NOT_FOUND"

    def __init__(self, entity_id):
        super().__init__(entity_id, "Line item not found")


class LienWaiverNotFoundError(NotFoundError):
    entity_type = "Lien waiver"
    error_code = "LIEN_WAIVER_NOT_FOUND"


class DocumentNotFoundError(NotFoundError):
    entity_type = "Document"
    error_code = "DOCUMENT_NOT_FOUND"


class ProjectionNotFoundError(NotFoundError):
    entity_type = "Cash flow projection"
    error_code = "PROJECTION_NOT_FOUND"


class WeekNotFoundError(NotFoundError):
    entity_type = "Week"
    error_code = "WEEK_NOT_FOUND"

    def __init__(self, week_number: int):
        super().__init__(week_number, f"Week {week_number} not found")


# =============================================================================
# Persistence Coordination Exceptions
# =============================================================================

class RepositoryError(DomainError):
    """Wraps an exception raised by a repository collaborator."""

    def __init__(self, operation: str, cause: Exception):
        message = f"Repository failure during {operation}: {cause}"
        super().__init__(message, code="REPOSITORY_ERROR")
        self.operation = operation
        self.cause = cause


class UnitOfWorkError(DomainError):
    """Raised when a multi-aggregate commit fails and is compensated."""

    def __init__(self, message: str, saved: int = 0, compensation_failures: list = None):
        super().__init__(message, code="UNIT_OF_WORK_FAILED")
        self.saved = saved
        self.compensation_failures = compensation_failures or []
