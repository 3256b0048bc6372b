"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers catch payroll failures by type and read structured attributes, never
by parsing message strings:

    try:
        service.pay_payslip(payslip_id, details)
    except GuardError as e:
        api_response(code=e.code, status=e.current_state)

Every exception class carries a class-level ``code`` (machine-readable,
API-safe) and stores its context as attributes so that it survives logging
and serialization.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollError (base)
    |
    +-- ValidationError              row-level, malformed employee input
    +-- ConfigurationError           missing component/category/policy
    +-- GuardError                   illegal lifecycle transition
    +-- ReconciliationWarning        allocation percentages != 100 (non-fatal)
    |
    +-- NotFoundError
    |   +-- CycleNotFoundError
    |   +-- PayslipNotFoundError
    |
    +-- DuplicateCycleError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
VALIDATION_ERROR            | Employee row is malformed (no basic salary)
CONFIGURATION_ERROR         | Unknown attendance status / leave type, bad policy
GUARD_ERROR                 | Transition not allowed from the current state
RECONCILIATION_WARNING      | Declared allocation percentages do not sum to 100
CYCLE_NOT_FOUND             | Cycle ID doesn't exist
PAYSLIP_NOT_FOUND           | Payslip ID doesn't exist
DUPLICATE_CYCLE             | A cycle already covers the month/year/frequency
OPTIMISTIC_LOCK_CONFLICT    | Concurrent modification detected

Row-level errors (ValidationError, ConfigurationError raised while computing
one employee) are caught by the cycle processor and reported as processing
issues; they never abort a batch.
"""

from __future__ import annotations


class PayrollError(Exception):
    """
    Base exception for all payroll errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_ERROR"


class ValidationError(PayrollError):
    """Malformed employee or payment input."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, employee_id: str | None = None):
        self.employee_id = employee_id
        super().__init__(message)


class ConfigurationError(PayrollError):
    """A referenced component, category or policy is missing or invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, message: str, employee_id: str | None = None):
        self.employee_id = employee_id
        super().__init__(message)


class GuardError(PayrollError):
    """Illegal lifecycle transition. The target is left unchanged."""

    code: str = "GUARD_ERROR"

    def __init__(
        self,
        current_state: str,
        requested: str,
        reason: str,
        entity_id: str | None = None,
    ):
        self.current_state = current_state
        self.requested = requested
        self.reason = reason
        self.entity_id = entity_id
        super().__init__(
            f"Cannot {requested} from state '{current_state}': {reason}"
        )


class ReconciliationWarning(PayrollError):
    """
    Declared allocation percentages do not sum to 100.

    Non-fatal: the allocator renormalizes and reports this as a warning.
    """

    code: str = "RECONCILIATION_WARNING"

    def __init__(self, message: str, declared_total: str | None = None):
        self.declared_total = declared_total
        super().__init__(message)


# Lookup exceptions


class NotFoundError(PayrollError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class CycleNotFoundError(NotFoundError):
    """Payroll cycle with given ID was not found."""

    code: str = "CYCLE_NOT_FOUND"

    def __init__(self, cycle_id: str):
        self.cycle_id = cycle_id
        super().__init__(f"Payroll cycle not found: {cycle_id}")


class PayslipNotFoundError(NotFoundError):
    """Payslip with given ID was not found."""

    code: str = "PAYSLIP_NOT_FOUND"

    def __init__(self, payslip_id: str):
        self.payslip_id = payslip_id
        super().__init__(f"Payslip not found: {payslip_id}")


class DuplicateCycleError(PayrollError):
    """A cycle already exists for the month, year and frequency."""

    code: str = "DUPLICATE_CYCLE"

    def __init__(self, month: int, year: int, frequency: str, existing_id: str):
        self.month = month
        self.year = year
        self.frequency = frequency
        self.existing_id = existing_id
        super().__init__(
            f"Payroll cycle for {month:02d}/{year} ({frequency}) "
            f"already exists: {existing_id}"
        )


# Concurrency-related exceptions


class ConcurrencyError(PayrollError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
