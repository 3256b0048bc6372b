"""
Payroll Cycle Module (``payroll_modules.cycle``).

Responsibility
--------------
Periodic payroll runs: create a cycle for a pay period, generate one
payslip per eligible employee, move the cycle through review, approval and
payment, and keep the cycle aggregates and per-entity costs consistent
with its payslips.

Architecture position
---------------------
**Modules layer** -- frozen models, a declarative workflow, a config
schema, a pure processor and lifecycle, and a service facade that loads
inputs through ``PayrollDataSource`` and persists through the ORM.

Invariants enforced
-------------------
* Processing is idempotent: at most one payslip per employee per cycle.
* Cycle totals always equal the sums over the cycle's payslips.
* Payslips are paid only while the cycle is Approved or Paid.
* Transaction boundary owned by ``PayrollCycleService``.

Failure modes
-------------
* Row-level ``ValidationError`` / ``ConfigurationError`` are collected in
  the processing result; the batch continues.
* ``GuardError`` on lifecycle violations, with nothing written.
"""

from payroll_modules.cycle.config import PayrollConfig
from payroll_modules.cycle.lifecycle import CycleLifecycle
from payroll_modules.cycle.models import (
    AdjustmentCategory,
    AdjustmentStatus,
    BonusCategory,
    BonusRecord,
    BonusStatus,
    CostAllocation,
    CustomCategory,
    CycleConfig,
    CycleStatus,
    Employee,
    EmploymentStatus,
    PayFrequency,
    PaymentDetails,
    PayrollAdjustment,
    PayrollCycle,
    Payslip,
    ProcessingIssue,
    ProcessingResult,
    ProcessingSummary,
    SalaryAdjustment,
)
from payroll_modules.cycle.processor import CycleProcessor
from payroll_modules.cycle.service import PayrollCycleService
from payroll_modules.cycle.sources import PayrollDataSource, RosterSnapshot
from payroll_modules.cycle.workflows import PAYROLL_CYCLE_WORKFLOW

__all__ = [
    "AdjustmentCategory",
    "AdjustmentStatus",
    "BonusCategory",
    "BonusRecord",
    "BonusStatus",
    "CostAllocation",
    "CustomCategory",
    "CycleConfig",
    "CycleStatus",
    "Employee",
    "EmploymentStatus",
    "PayFrequency",
    "PaymentDetails",
    "PayrollAdjustment",
    "PayrollCycle",
    "Payslip",
    "ProcessingIssue",
    "ProcessingResult",
    "ProcessingSummary",
    "SalaryAdjustment",
    "CycleLifecycle",
    "CycleProcessor",
    "PayrollCycleService",
    "PayrollDataSource",
    "RosterSnapshot",
    "PAYROLL_CYCLE_WORKFLOW",
    "PayrollConfig",
]
