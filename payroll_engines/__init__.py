"""
Module: payroll_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    calculation engines.  This is the canonical import surface for
    payroll_modules.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payroll_kernel (and sibling engine modules).
    MUST NOT import payroll_modules.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Period dates are passed in as explicit parameters.
    - Decimal-only arithmetic: floats are forbidden.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Every engine invocation is traced via the ``@traced_engine`` decorator
    (see ``payroll_engines.tracer``), emitting PAYROLL_ENGINE_TRACE log
    records with engine name, version, input fingerprint and duration.

Usage:
    from payroll_engines.salary import SalaryResolver
    from payroll_engines.attendance import AttendanceProrator
    from payroll_engines.allocation import CostAllocator
"""

from payroll_engines.allocation import (
    AllocationShare,
    CostAllocationResult,
    CostAllocator,
    CostLine,
)
from payroll_engines.attendance import (
    AttendanceDay,
    AttendancePolicy,
    AttendanceProrator,
    AttendanceRecord,
    AttendanceResult,
    AttendanceStatus,
    CalendarDaysPolicy,
    CustomStatus,
    DayCountPolicy,
    WorkingDaysPolicy,
    parse_status,
)
from payroll_engines.salary import (
    AdjustmentLine,
    AdjustmentType,
    LineKind,
    PayslipLine,
    SalaryComponent,
    SalaryResolution,
    SalaryResolver,
    StatutoryRule,
    TaxSlab,
    compute_progressive_tax,
)
from payroll_engines.tracer import compute_input_fingerprint, traced_engine

__all__ = [
    # Salary
    "SalaryResolver",
    "SalaryResolution",
    "SalaryComponent",
    "AdjustmentLine",
    "AdjustmentType",
    "LineKind",
    "PayslipLine",
    "TaxSlab",
    "StatutoryRule",
    "compute_progressive_tax",
    # Attendance
    "AttendanceProrator",
    "AttendancePolicy",
    "AttendanceRecord",
    "AttendanceResult",
    "AttendanceDay",
    "AttendanceStatus",
    "CustomStatus",
    "DayCountPolicy",
    "CalendarDaysPolicy",
    "WorkingDaysPolicy",
    "parse_status",
    # Allocation
    "CostAllocator",
    "AllocationShare",
    "CostLine",
    "CostAllocationResult",
    # Tracing
    "traced_engine",
    "compute_input_fingerprint",
]
