"""PayrollDataSource -- read side of the HR store consumed by payroll.

The processor never queries employees, bonuses or attendance itself; the
service asks a ``PayrollDataSource`` for an already-resolved roster and
hands the snapshot to ``CycleProcessor``.  ``RosterSnapshot`` is the
in-memory implementation used by tests, batch imports and demos.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import replace
from datetime import date
from typing import Protocol, runtime_checkable
from uuid import UUID

from payroll_engines.attendance import AttendanceRecord
from payroll_kernel.logging_config import get_logger
from payroll_modules.cycle.models import (
    AdjustmentStatus,
    BonusRecord,
    BonusStatus,
    Employee,
    EmploymentStatus,
    PayrollAdjustment,
)

logger = get_logger("modules.cycle.sources")


@runtime_checkable
class PayrollDataSource(Protocol):
    """Protocol for the employee, bonus, adjustment and attendance feeds.

    ``month`` is a ``YYYY-MM`` key.  Implementations may return records
    without a payroll month as well; the processor scopes every record to
    the cycle period itself.
    """

    def get_active_employees(self, tenant_id: str) -> Sequence[Employee]:
        ...

    def get_bonuses(
        self,
        tenant_id: str,
        status: BonusStatus = BonusStatus.APPROVED,
        month: str | None = None,
    ) -> Sequence[BonusRecord]:
        ...

    def get_adjustments(
        self,
        tenant_id: str,
        status: AdjustmentStatus = AdjustmentStatus.ACTIVE,
        month: str | None = None,
    ) -> Sequence[PayrollAdjustment]:
        ...

    def get_attendance(
        self,
        tenant_id: str,
        start: date,
        end: date,
    ) -> Sequence[AttendanceRecord]:
        ...

    def mark_adjustments_consumed(
        self,
        adjustment_ids: Iterable[str],
        cycle_id: UUID,
    ) -> None:
        """Record that one-time salary adjustments were applied by a cycle."""
        ...


class RosterSnapshot:
    """In-memory ``PayrollDataSource`` over an already-resolved roster.

    Holds a single tenant's data; the ``tenant_id`` arguments are checked
    against it so a misrouted call returns nothing.
    """

    def __init__(
        self,
        employees: Iterable[Employee] = (),
        bonuses: Iterable[BonusRecord] = (),
        adjustments: Iterable[PayrollAdjustment] = (),
        attendance: Iterable[AttendanceRecord] = (),
        tenant_id: str = "default",
    ):
        self.tenant_id = tenant_id
        self._employees: dict[str, Employee] = {e.id: e for e in employees}
        self._bonuses = list(bonuses)
        self._adjustments = list(adjustments)
        self._attendance = list(attendance)

    def add_employee(self, employee: Employee) -> None:
        self._employees[employee.id] = employee

    def add_bonus(self, bonus: BonusRecord) -> None:
        self._bonuses.append(bonus)

    def add_adjustment(self, adjustment: PayrollAdjustment) -> None:
        self._adjustments.append(adjustment)

    def add_attendance(self, records: Iterable[AttendanceRecord]) -> None:
        self._attendance.extend(records)

    def employee(self, employee_id: str) -> Employee | None:
        return self._employees.get(employee_id)

    # -------------------------------------------------------------------------
    # PayrollDataSource
    # -------------------------------------------------------------------------

    def get_active_employees(self, tenant_id: str) -> list[Employee]:
        if tenant_id != self.tenant_id:
            return []
        return [
            e for e in self._employees.values()
            if e.status == EmploymentStatus.ACTIVE
        ]

    def get_bonuses(
        self,
        tenant_id: str,
        status: BonusStatus = BonusStatus.APPROVED,
        month: str | None = None,
    ) -> list[BonusRecord]:
        if tenant_id != self.tenant_id:
            return []
        return [
            b for b in self._bonuses
            if b.status == status
            and (month is None or b.payroll_month in (None, month))
        ]

    def get_adjustments(
        self,
        tenant_id: str,
        status: AdjustmentStatus = AdjustmentStatus.ACTIVE,
        month: str | None = None,
    ) -> list[PayrollAdjustment]:
        if tenant_id != self.tenant_id:
            return []
        return [
            a for a in self._adjustments
            if a.status == status
            and (month is None or a.payroll_month in (None, month))
        ]

    def get_attendance(
        self,
        tenant_id: str,
        start: date,
        end: date,
    ) -> list[AttendanceRecord]:
        if tenant_id != self.tenant_id:
            return []
        return [r for r in self._attendance if start <= r.date <= end]

    def mark_adjustments_consumed(
        self,
        adjustment_ids: Iterable[str],
        cycle_id: UUID,
    ) -> None:
        ids = set(adjustment_ids)
        if not ids:
            return
        marked = 0
        for employee_id, employee in list(self._employees.items()):
            if not any(a.id in ids for a in employee.salary_adjustments):
                continue
            updated = tuple(
                replace(a, consumed_by_cycle_id=cycle_id) if a.id in ids else a
                for a in employee.salary_adjustments
            )
            marked += sum(1 for a in employee.salary_adjustments if a.id in ids)
            self._employees[employee_id] = replace(employee, salary_adjustments=updated)

        logger.info("salary_adjustments_consumed", extra={
            "cycle_id": str(cycle_id),
            "requested": len(ids),
            "marked": marked,
        })
