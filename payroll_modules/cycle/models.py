"""
Payroll Cycle Domain Models (``payroll_modules.cycle.models``).

Responsibility
--------------
Frozen dataclass value objects representing the nouns of a payroll cycle:
employees and their salary structures, bonuses, payroll adjustments,
one-time salary adjustments, cycles, payslips, payments and the issues
collected while processing a batch.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Consumed by
``CycleProcessor`` and ``PayrollCycleService`` and returned to callers.
Salary components, allocation shares and attendance records are the
engine types, reused as-is.

Invariants enforced
-------------------
* All models are ``frozen=True`` (immutable after construction).
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Bonus and adjustment categories are a tagged variant: a standard enum
  member or a ``CustomCategory`` label.

Audit relevance
---------------
* A payslip carries its itemised lines, its attendance trace and the
  proration factor it was computed with.
* Payment fields (paid_at, paid_amount, payment_reference) record how each
  payslip was settled.
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from payroll_engines.allocation import AllocationShare
from payroll_engines.attendance import AttendanceDay
from payroll_engines.salary import AdjustmentType, PayslipLine, SalaryComponent
from payroll_kernel.db.types import ZERO
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.cycle.models")

ONE = Decimal("1")


class EmploymentStatus(Enum):
    """Employment states."""
    ACTIVE = "Active"
    RESIGNED = "Resigned"
    TERMINATED = "Terminated"
    ON_LEAVE = "OnLeave"


class PayFrequency(Enum):
    """Pay frequencies."""
    MONTHLY = "Monthly"
    SEMI_MONTHLY = "Semi-Monthly"
    BI_WEEKLY = "Bi-Weekly"
    WEEKLY = "Weekly"


class CycleStatus(Enum):
    """Payroll cycle lifecycle states."""
    DRAFT = "Draft"
    REVIEW = "Review"
    APPROVED = "Approved"
    PAID = "Paid"
    LOCKED = "Locked"
    CANCELLED = "Cancelled"


class BonusStatus(Enum):
    """Bonus approval states."""
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    PAID = "Paid"


class AdjustmentStatus(Enum):
    """Payroll adjustment states."""
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    CANCELLED = "Cancelled"


class BonusCategory(Enum):
    """Standard bonus categories."""
    PERFORMANCE = "Performance"
    ANNUAL = "Annual"
    FESTIVAL = "Festival"
    RETENTION = "Retention"
    SIGNING = "Signing"
    PROJECT_COMPLETION = "ProjectCompletion"


class AdjustmentCategory(Enum):
    """Standard payroll adjustment categories."""
    ALLOWANCE = "Allowance"
    OVERTIME = "Overtime"
    REIMBURSEMENT = "Reimbursement"
    ARREARS = "Arrears"
    LOAN_REPAYMENT = "LoanRepayment"
    ADVANCE_RECOVERY = "AdvanceRecovery"
    PENALTY = "Penalty"


@dataclass(frozen=True)
class CustomCategory:
    """A tenant-defined category label outside the standard set."""
    label: str

    @property
    def value(self) -> str:
        return self.label


Category = BonusCategory | AdjustmentCategory | CustomCategory


def parse_category(
    raw: str | Category | None,
    standard: type[BonusCategory] | type[AdjustmentCategory],
) -> Category | None:
    """Map a stored label to a standard category or a custom one."""
    if raw is None or isinstance(raw, (BonusCategory, AdjustmentCategory, CustomCategory)):
        return raw
    for member in standard:
        if member.value.lower() == raw.strip().lower():
            return member
    return CustomCategory(raw.strip())


def month_key(month: int, year: int) -> str:
    """``YYYY-MM`` key matched against ``payroll_month`` filters."""
    return f"{year:04d}-{month:02d}"


def derive_period(
    month: int,
    year: int,
    frequency: PayFrequency,
    half: int = 1,
) -> tuple[date, date]:
    """Start and end dates of a cycle when none are given explicitly.

    Every frequency starts on the first of the month.  Monthly runs to the
    last day; Weekly and Bi-Weekly span 7 and 14 days; Semi-Monthly covers
    the 1st-15th (``half=1``) or the 16th-last day (``half=2``).
    """
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    last_day = calendar.monthrange(year, month)[1]
    first = date(year, month, 1)
    match frequency:
        case PayFrequency.MONTHLY:
            return first, date(year, month, last_day)
        case PayFrequency.WEEKLY:
            return first, first + timedelta(days=6)
        case PayFrequency.BI_WEEKLY:
            return first, first + timedelta(days=13)
        case PayFrequency.SEMI_MONTHLY:
            if half == 2:
                return date(year, month, 16), date(year, month, last_day)
            return first, date(year, month, 15)
    raise ValueError(f"Unsupported pay frequency: {frequency}")


def _applies_in_period(
    effective_date: date,
    payroll_month: str | None,
    is_recurring: bool,
    period_start: date,
    period_end: date,
    period_month: str,
) -> bool:
    if payroll_month:
        return payroll_month == period_month
    if is_recurring:
        return effective_date <= period_end
    return period_start <= effective_date <= period_end


@dataclass(frozen=True)
class SalaryAdjustment:
    """A one-time earning or deduction that applies to one cycle only."""
    id: str
    employee_id: str
    name: str
    amount: Decimal
    type: AdjustmentType
    date_added: date
    consumed_by_cycle_id: UUID | None = None

    def is_available_for(self, cycle_id: UUID, period_end: date) -> bool:
        """Unconsumed (or consumed by this cycle) and added by period end."""
        if self.consumed_by_cycle_id not in (None, cycle_id):
            return False
        return self.date_added <= period_end


@dataclass(frozen=True)
class Employee:
    """An employee snapshot as resolved from the HR store."""
    id: str
    name: str
    basic_salary: Decimal | None
    allowances: tuple[SalaryComponent, ...] = ()
    deductions: tuple[SalaryComponent, ...] = ()
    allocations: tuple[AllocationShare, ...] = ()
    status: EmploymentStatus = EmploymentStatus.ACTIVE
    joining_date: date | None = None
    termination_date: date | None = None
    salary_adjustments: tuple[SalaryAdjustment, ...] = ()

    def is_eligible(self, period_start: date, period_end: date) -> bool:
        """Active, joined by period end and not gone before period start."""
        if self.status != EmploymentStatus.ACTIVE:
            return False
        if self.joining_date is not None and self.joining_date > period_end:
            return False
        if self.termination_date is not None and self.termination_date < period_start:
            return False
        return True

    def proration_factor(self, period_start: date, period_end: date) -> Decimal:
        """Share of the period's calendar days the employee was employed."""
        start = period_start
        end = period_end
        if self.joining_date is not None and self.joining_date > start:
            start = self.joining_date
        if self.termination_date is not None and self.termination_date < end:
            end = self.termination_date
        if end < start:
            return ZERO
        total_days = (period_end - period_start).days + 1
        employed_days = (end - start).days + 1
        if employed_days >= total_days:
            return ONE
        return Decimal(employed_days) / Decimal(total_days)


@dataclass(frozen=True)
class BonusRecord:
    """A bonus. Always an earning."""
    id: str
    employee_id: str
    amount: Decimal
    category: Category | None
    status: BonusStatus
    effective_date: date
    payroll_month: str | None = None
    is_recurring: bool = False
    description: str = ""

    def applies_to(self, period_start: date, period_end: date, period_month: str) -> bool:
        if self.status != BonusStatus.APPROVED:
            return False
        return _applies_in_period(
            self.effective_date, self.payroll_month, self.is_recurring,
            period_start, period_end, period_month,
        )


@dataclass(frozen=True)
class PayrollAdjustment:
    """A scoped or recurring earning or deduction.  A missing amount prices as zero."""
    id: str
    employee_id: str
    amount: Decimal | None
    type: AdjustmentType
    category: Category | None
    status: AdjustmentStatus
    effective_date: date
    payroll_month: str | None = None
    is_recurring: bool = False
    description: str = ""

    def applies_to(self, period_start: date, period_end: date, period_month: str) -> bool:
        if self.status != AdjustmentStatus.ACTIVE:
            return False
        return _applies_in_period(
            self.effective_date, self.payroll_month, self.is_recurring,
            period_start, period_end, period_month,
        )


@dataclass(frozen=True)
class CycleConfig:
    """Parameters for creating a payroll cycle."""
    month: int
    year: int
    frequency: PayFrequency = PayFrequency.MONTHLY
    start_date: date | None = None
    end_date: date | None = None
    pay_date: date | None = None
    half: int = 1
    description: str = ""

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1-12, got {self.month}")
        if self.half not in (1, 2):
            raise ValueError(f"half must be 1 or 2, got {self.half}")
        if (self.start_date is None) != (self.end_date is None):
            raise ValueError("start_date and end_date must be given together")
        if self.start_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date cannot precede start_date")

    def period(self) -> tuple[date, date]:
        if self.start_date is not None and self.end_date is not None:
            return self.start_date, self.end_date
        return derive_period(self.month, self.year, self.frequency, self.half)


@dataclass(frozen=True)
class PayrollCycle:
    """A payroll run scoped to one pay period."""
    id: UUID
    month: int
    year: int
    frequency: PayFrequency
    start_date: date
    end_date: date
    pay_date: date | None = None
    status: CycleStatus = CycleStatus.DRAFT
    payslip_ids: tuple[UUID, ...] = ()
    total_employees: int = 0
    total_gross_salary: Decimal = ZERO
    total_deductions: Decimal = ZERO
    total_net_salary: Decimal = ZERO
    costs_by_entity: Mapping[str, Decimal] = field(default_factory=dict)
    version: int = 1
    description: str = ""
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    locked_at: datetime | None = None
    cancelled_at: datetime | None = None

    @property
    def month_key(self) -> str:
        return month_key(self.month, self.year)


@dataclass(frozen=True)
class CostAllocation:
    """Share of a payslip's pay charged to one project or building."""
    entity_id: str
    net_amount: Decimal


@dataclass(frozen=True)
class Payslip:
    """The computed pay record for one employee within one cycle."""
    id: UUID
    employee_id: str
    cycle_id: UUID
    basic_salary: Decimal
    total_allowances: Decimal
    earning_adjustments: Decimal
    deduction_adjustments: Decimal
    gross_salary: Decimal
    standard_gross: Decimal
    total_deductions: Decimal
    total_tax: Decimal
    total_statutory: Decimal
    net_salary: Decimal
    employee_name: str = ""
    cost_allocations: tuple[CostAllocation, ...] = ()
    lines: tuple[PayslipLine, ...] = ()
    attendance: tuple[AttendanceDay, ...] = ()
    proration_factor: Decimal = ONE
    is_paid: bool = False
    paid_at: datetime | None = None
    paid_amount: Decimal | None = None
    payment_reference: str | None = None
    version: int = 1

    @property
    def all_deductions(self) -> Decimal:
        """Everything withheld: deductions, tax and statutory."""
        return self.total_deductions + self.total_tax + self.total_statutory


@dataclass(frozen=True)
class PaymentDetails:
    """How a payslip is settled.

    ``amount`` defaults to the payslip's net pay and ``entity_id`` to the
    entity carrying the largest allocation.
    """
    account_id: str | None = None
    amount: Decimal | None = None
    reference: str | None = None
    entity_id: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class ProcessingIssue:
    """An error or warning collected while processing a batch."""
    employee_id: str | None
    code: str
    message: str


@dataclass(frozen=True)
class ProcessingSummary:
    """Counts and amounts of one processing run."""
    new_payslips_generated: int
    existing_payslips_skipped: int
    total_payslips: int
    new_amount_added: Decimal
    previous_amount: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class ProcessingResult:
    """Outcome of ``process_cycle``: the refreshed cycle and new payslips."""
    cycle: PayrollCycle
    payslips: tuple[Payslip, ...]
    errors: tuple[ProcessingIssue, ...]
    warnings: tuple[ProcessingIssue, ...]
    summary: ProcessingSummary
    consumed_adjustment_ids: tuple[str, ...] = ()

    @property
    def processing_summary(self) -> dict:
        s = self.summary
        return {
            "new_payslips_generated": s.new_payslips_generated,
            "existing_payslips_skipped": s.existing_payslips_skipped,
            "total_payslips": s.total_payslips,
            "new_amount_added": s.new_amount_added,
            "previous_amount": s.previous_amount,
            "total_amount": s.total_amount,
        }
