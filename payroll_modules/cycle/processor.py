"""
Payroll Cycle Processor (``payroll_modules.cycle.processor``).

Responsibility
--------------
Run one processing pass of a cycle over an already-resolved roster: pick the
eligible employees that have no payslip yet, price each one through the
attendance, salary and cost allocation engines, and refresh the cycle
aggregates over old and new payslips together.

Architecture position
---------------------
**Modules layer** -- pure orchestration.  No session, no clock reads beyond
the lifecycle's, no I/O.  ``PayrollCycleService`` loads the inputs and
persists the result.

Invariants enforced
-------------------
* Idempotent: an employee with an existing payslip is never re-priced, so a
  second run over an unchanged roster produces nothing new and leaves the
  totals unchanged.
* Cycle totals are recomputed from every payslip, never accumulated.
* Status moves Draft -> Review only when a run yields a payslip; a
  reprocess never moves it back.

Failure modes
-------------
* ``GuardError`` when the cycle is Paid, Locked or Cancelled.
* Any ``PayrollError`` raised while pricing one employee is captured as a
  ``ProcessingIssue`` and the batch continues.  Any other exception from a
  malformed record is captured the same way as a ``VALIDATION_ERROR``.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace
from decimal import Decimal
from uuid import UUID, uuid4

from payroll_engines.allocation import CostAllocator
from payroll_engines.attendance import AttendanceProrator, AttendanceRecord
from payroll_engines.salary import AdjustmentLine, AdjustmentType, SalaryResolver
from payroll_kernel.db.types import ZERO, round_money, sum_money
from payroll_kernel.exceptions import PayrollError, ValidationError
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules.cycle.config import PayrollConfig
from payroll_modules.cycle.lifecycle import CycleLifecycle
from payroll_modules.cycle.models import (
    BonusRecord,
    CostAllocation,
    Employee,
    PayrollAdjustment,
    PayrollCycle,
    Payslip,
    ProcessingIssue,
    ProcessingResult,
    ProcessingSummary,
)

logger = get_logger("modules.cycle.processor")

SALARY_WARNING = "SALARY_WARNING"
ATTENDANCE_WARNING = "ATTENDANCE_WARNING"
ROSTER_WARNING = "ROSTER_WARNING"


def _group_by_employee(items: Iterable) -> dict[str, list]:
    grouped: dict[str, list] = defaultdict(list)
    for item in items:
        grouped[item.employee_id].append(item)
    return grouped


def _label(record: BonusRecord | PayrollAdjustment, fallback: str) -> str:
    if record.description:
        return record.description
    if record.category is not None:
        return record.category.value
    return fallback


class CycleProcessor:
    """
    Produce payslips for the employees of a cycle that do not have one yet.

    Contract:
        ``process_cycle`` returns a new ``ProcessingResult``; the input
        cycle and payslips are not modified.
    """

    def __init__(
        self,
        config: PayrollConfig | None = None,
        lifecycle: CycleLifecycle | None = None,
        id_factory: Callable[[], UUID] = uuid4,
    ):
        self._config = config or PayrollConfig.with_defaults()
        self._lifecycle = lifecycle or CycleLifecycle()
        self._id_factory = id_factory
        self._resolver = SalaryResolver()
        self._prorator = AttendanceProrator(
            policy=self._config.attendance_policy(),
            day_count=self._config.day_count(),
        )
        self._allocator = CostAllocator()

    def process_cycle(
        self,
        cycle: PayrollCycle,
        employees: Sequence[Employee],
        bonuses: Sequence[BonusRecord] = (),
        adjustments: Sequence[PayrollAdjustment] = (),
        attendance: Sequence[AttendanceRecord] = (),
        existing_payslips: Sequence[Payslip] = (),
    ) -> ProcessingResult:
        self._lifecycle.ensure_processable(cycle)

        with LogContext.bind(cycle_id=str(cycle.id)):
            logger.info("cycle_processing_started", extra={
                "cycle_id": str(cycle.id),
                "status": cycle.status.value,
                "roster_size": len(employees),
                "existing_payslips": len(existing_payslips),
            })

            covered = {p.employee_id for p in existing_payslips}
            bonuses_by_employee = _group_by_employee(bonuses)
            adjustments_by_employee = _group_by_employee(adjustments)
            attendance_by_employee = _group_by_employee(attendance)

            errors: list[ProcessingIssue] = []
            warnings: list[ProcessingIssue] = []
            new_payslips: list[Payslip] = []
            consumed: list[str] = []
            seen: set[str] = set()

            for employee in employees:
                if employee.id in seen:
                    warnings.append(ProcessingIssue(
                        employee.id, ROSTER_WARNING,
                        "Employee listed more than once; first entry used",
                    ))
                    continue
                seen.add(employee.id)

                if employee.id in covered:
                    continue
                if not employee.is_eligible(cycle.start_date, cycle.end_date):
                    continue

                with LogContext.bind(employee_id=employee.id):
                    try:
                        payslip, row_warnings, used = self._price_employee(
                            cycle,
                            employee,
                            bonuses_by_employee.get(employee.id, ()),
                            adjustments_by_employee.get(employee.id, ()),
                            attendance_by_employee.get(employee.id, ()),
                        )
                    except PayrollError as exc:
                        errors.append(ProcessingIssue(employee.id, exc.code, str(exc)))
                        logger.warning("payslip_generation_failed", extra={
                            "employee_id": employee.id,
                            "error_code": exc.code,
                            "error": str(exc),
                        })
                        continue
                    except Exception as exc:
                        issue = ValidationError(
                            f"Malformed payroll record: {type(exc).__name__}: {exc}",
                            employee_id=employee.id,
                        )
                        errors.append(ProcessingIssue(employee.id, issue.code, str(issue)))
                        logger.exception("payslip_generation_crashed", extra={
                            "employee_id": employee.id,
                            "error_code": issue.code,
                        })
                        continue

                new_payslips.append(payslip)
                warnings.extend(row_warnings)
                consumed.extend(used)

            updated = self._refresh_totals(cycle, [*existing_payslips, *new_payslips])
            updated = self._lifecycle.after_processing(updated, len(new_payslips))

            previous_amount = sum_money(p.net_salary for p in existing_payslips)
            new_amount = sum_money(p.net_salary for p in new_payslips)
            summary = ProcessingSummary(
                new_payslips_generated=len(new_payslips),
                existing_payslips_skipped=len(existing_payslips),
                total_payslips=len(existing_payslips) + len(new_payslips),
                new_amount_added=new_amount,
                previous_amount=previous_amount,
                total_amount=updated.total_net_salary,
            )

            logger.info("cycle_processing_completed", extra={
                "cycle_id": str(cycle.id),
                "status": updated.status.value,
                "new_payslips": summary.new_payslips_generated,
                "skipped": summary.existing_payslips_skipped,
                "errors": len(errors),
                "warnings": len(warnings),
                "total_net_salary": str(updated.total_net_salary),
            })

        return ProcessingResult(
            cycle=updated,
            payslips=tuple(new_payslips),
            errors=tuple(errors),
            warnings=tuple(warnings),
            summary=summary,
            consumed_adjustment_ids=tuple(consumed),
        )

    # -------------------------------------------------------------------------
    # Per-employee pricing
    # -------------------------------------------------------------------------

    def _price_employee(
        self,
        cycle: PayrollCycle,
        employee: Employee,
        bonuses: Sequence[BonusRecord],
        adjustments: Sequence[PayrollAdjustment],
        attendance: Sequence[AttendanceRecord],
    ) -> tuple[Payslip, list[ProcessingIssue], list[str]]:
        if employee.basic_salary is None:
            raise ValidationError(
                f"Employee {employee.id} has no basic salary",
                employee_id=employee.id,
            )

        start, end = cycle.start_date, cycle.end_date
        period_month = cycle.month_key
        factor = Decimal("1")
        if self._config.prorate_partial_periods:
            factor = employee.proration_factor(start, end)

        lines: list[AdjustmentLine] = []
        for bonus in bonuses:
            if bonus.applies_to(start, end, period_month):
                lines.append(AdjustmentLine(
                    name=_label(bonus, "Bonus"),
                    amount=bonus.amount,
                    type=AdjustmentType.EARNING,
                    source="bonus",
                    source_id=bonus.id,
                ))
        for adjustment in adjustments:
            if adjustment.applies_to(start, end, period_month):
                lines.append(AdjustmentLine(
                    name=_label(adjustment, "Adjustment"),
                    amount=adjustment.amount,
                    type=adjustment.type,
                    source="payroll_adjustment",
                    source_id=adjustment.id,
                ))
        used: list[str] = []
        for one_time in employee.salary_adjustments:
            if one_time.is_available_for(cycle.id, end):
                lines.append(AdjustmentLine(
                    name=one_time.name,
                    amount=one_time.amount,
                    type=one_time.type,
                    source="salary_adjustment",
                    source_id=one_time.id,
                ))
                used.append(one_time.id)

        presence = self._prorator.prorate(
            employee.id, employee.basic_salary, attendance, start, end,
        )
        attendance_line = presence.as_adjustment()
        if attendance_line is not None:
            lines.append(attendance_line)

        resolution = self._resolver.resolve(
            employee_id=employee.id,
            basic_salary=employee.basic_salary,
            allowances=employee.allowances,
            deductions=employee.deductions,
            adjustments=lines,
            proration_factor=factor,
            tax_slabs=self._config.tax_slabs,
            statutory_rules=self._config.statutory_rules,
        )

        basis = (
            resolution.gross_salary
            if self._config.allocation_basis == "gross"
            else resolution.net_salary
        )
        allocation = self._allocator.allocate(basis, employee.allocations, start, end)

        row_warnings = [
            ProcessingIssue(employee.id, SALARY_WARNING, message)
            for message in resolution.warnings
        ]
        row_warnings.extend(
            ProcessingIssue(employee.id, ATTENDANCE_WARNING, message)
            for message in presence.warnings
        )
        row_warnings.extend(
            ProcessingIssue(employee.id, warning.code, str(warning))
            for warning in allocation.warnings
        )

        payslip = Payslip(
            id=self._id_factory(),
            employee_id=employee.id,
            cycle_id=cycle.id,
            employee_name=employee.name,
            basic_salary=resolution.basic_salary,
            total_allowances=resolution.total_allowances,
            earning_adjustments=resolution.earning_adjustments,
            deduction_adjustments=resolution.deduction_adjustments,
            gross_salary=resolution.gross_salary,
            standard_gross=resolution.standard_gross,
            total_deductions=resolution.total_deductions,
            total_tax=resolution.total_tax,
            total_statutory=resolution.total_statutory,
            net_salary=resolution.net_salary,
            cost_allocations=tuple(
                CostAllocation(entity_id=line.entity_id, net_amount=line.amount)
                for line in allocation.lines
            ),
            lines=resolution.lines,
            attendance=presence.days,
            proration_factor=factor,
        )

        logger.debug("payslip_generated", extra={
            "employee_id": employee.id,
            "payslip_id": str(payslip.id),
            "gross_salary": str(payslip.gross_salary),
            "net_salary": str(payslip.net_salary),
            "adjustment_lines": len(lines),
        })
        return payslip, row_warnings, used

    # -------------------------------------------------------------------------
    # Aggregates
    # -------------------------------------------------------------------------

    @staticmethod
    def _refresh_totals(cycle: PayrollCycle, payslips: Sequence[Payslip]) -> PayrollCycle:
        costs: dict[str, Decimal] = {}
        for payslip in payslips:
            for share in payslip.cost_allocations:
                costs[share.entity_id] = costs.get(share.entity_id, ZERO) + share.net_amount

        return replace(
            cycle,
            payslip_ids=tuple(p.id for p in payslips),
            total_employees=len(payslips),
            total_gross_salary=sum_money(p.gross_salary for p in payslips),
            total_deductions=sum_money(p.all_deductions for p in payslips),
            total_net_salary=sum_money(p.net_salary for p in payslips),
            costs_by_entity={k: round_money(v) for k, v in costs.items()},
        )
