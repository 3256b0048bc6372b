"""
Module: payroll_engines.attendance
Responsibility:
    Convert an employee's attendance records for a pay period into a
    traceable per-day multiplier and a single attendance deduction.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Only records dated inside [period_start, period_end] count.
    - deduction = round2(basic / denominator * sum(1 - multiplier)), and the
      per-day amounts always add up to it.
    - The denominator comes from a pluggable DayCountPolicy.
    - One record per date: a later record for the same date replaces the
      earlier one and a warning is emitted.

Failure modes:
    - ConfigurationError (row-level) for a custom status with no configured
      multiplier, or a leave type that is neither paid nor unpaid while
      ``strict_leave_types`` is on.

Audit relevance:
    Every counted record yields an ``AttendanceDay`` carrying its status,
    multiplier and share of the deduction.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from decimal import Decimal
from enum import Enum
from typing import Protocol

from payroll_engines.allocation import CENT, split_cents
from payroll_engines.salary import AdjustmentLine, AdjustmentType
from payroll_engines.tracer import traced_engine
from payroll_kernel.db.types import ZERO, round_money
from payroll_kernel.exceptions import ConfigurationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.attendance")

ONE = Decimal("1")

ATTENDANCE_DEDUCTION_NAME = "Attendance deduction"


class AttendanceStatus(str, Enum):
    """Standard attendance statuses."""

    PRESENT = "Present"
    ABSENT = "Absent"
    LEAVE = "Leave"
    HOLIDAY = "Holiday"
    HALF_DAY = "HalfDay"


@dataclass(frozen=True)
class CustomStatus:
    """A tenant-defined attendance status outside the standard set."""

    label: str

    @property
    def value(self) -> str:
        return self.label


StatusValue = AttendanceStatus | CustomStatus

_STATUS_ALIASES = {
    "present": AttendanceStatus.PRESENT,
    "absent": AttendanceStatus.ABSENT,
    "leave": AttendanceStatus.LEAVE,
    "holiday": AttendanceStatus.HOLIDAY,
    "halfday": AttendanceStatus.HALF_DAY,
    "half_day": AttendanceStatus.HALF_DAY,
    "half day": AttendanceStatus.HALF_DAY,
    "half-day": AttendanceStatus.HALF_DAY,
}


def parse_status(raw: str | StatusValue) -> StatusValue:
    """Map a stored status string to a standard status or a custom label."""
    if isinstance(raw, (AttendanceStatus, CustomStatus)):
        return raw
    standard = _STATUS_ALIASES.get(raw.strip().lower())
    if standard is not None:
        return standard
    return CustomStatus(raw.strip())


@dataclass(frozen=True)
class AttendanceRecord:
    """One employee's attendance on one date."""

    employee_id: str
    date: date
    status: StatusValue
    check_in: time | None = None
    check_out: time | None = None
    hours_worked: Decimal | None = None
    leave_type: str | None = None


# ---------------------------------------------------------------------------
# Day-count policies
# ---------------------------------------------------------------------------


class DayCountPolicy(Protocol):
    """Supplies the number of payable days a period's basic salary covers."""

    def denominator(self, period_start: date, period_end: date) -> Decimal: ...


@dataclass(frozen=True)
class CalendarDaysPolicy:
    """Every calendar day in the period is a payable day."""

    def denominator(self, period_start: date, period_end: date) -> Decimal:
        return Decimal((period_end - period_start).days + 1)


@dataclass(frozen=True)
class WorkingDaysPolicy:
    """Working days only.

    With ``working_days_per_month`` set the denominator is that constant;
    otherwise the weekdays in the period not listed in ``weekend_days``
    (``date.weekday()`` numbers) are counted.
    """

    working_days_per_month: int | None = 26
    weekend_days: frozenset[int] = frozenset({5, 6})

    def __post_init__(self) -> None:
        if self.working_days_per_month is not None and self.working_days_per_month <= 0:
            raise ValueError("working_days_per_month must be positive")

    def denominator(self, period_start: date, period_end: date) -> Decimal:
        if self.working_days_per_month is not None:
            return Decimal(self.working_days_per_month)
        count = 0
        day = period_start
        while day <= period_end:
            if day.weekday() not in self.weekend_days:
                count += 1
            day += timedelta(days=1)
        return Decimal(count)


# ---------------------------------------------------------------------------
# Policy and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AttendancePolicy:
    """Tenant rules mapping an attendance status to a pay multiplier."""

    absent_multiplier: Decimal = ZERO
    half_day_multiplier: Decimal = Decimal("0.5")
    paid_leave_types: frozenset[str] = frozenset()
    unpaid_leave_types: frozenset[str] = frozenset()
    default_leave_paid: bool = True
    strict_leave_types: bool = False
    custom_multipliers: Mapping[str, Decimal] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name, value in (
            ("absent_multiplier", self.absent_multiplier),
            ("half_day_multiplier", self.half_day_multiplier),
            *self.custom_multipliers.items(),
        ):
            if not (ZERO <= value <= ONE):
                raise ValueError(f"multiplier for '{name}' must be between 0 and 1")
        paid = {t.lower() for t in self.paid_leave_types}
        unpaid = {t.lower() for t in self.unpaid_leave_types}
        if paid & unpaid:
            raise ValueError(
                f"leave types configured as both paid and unpaid: {sorted(paid & unpaid)}"
            )

    def multiplier_for(self, record: AttendanceRecord) -> Decimal:
        match record.status:
            case AttendanceStatus.PRESENT | AttendanceStatus.HOLIDAY:
                return ONE
            case AttendanceStatus.HALF_DAY:
                return self.half_day_multiplier
            case AttendanceStatus.ABSENT:
                return self.absent_multiplier
            case AttendanceStatus.LEAVE:
                return self._leave_multiplier(record)
            case CustomStatus(label=label):
                for key, value in self.custom_multipliers.items():
                    if key.lower() == label.lower():
                        return value
                raise ConfigurationError(
                    f"No multiplier configured for attendance status '{label}'",
                    employee_id=record.employee_id,
                )
            case _:
                raise ConfigurationError(
                    f"Unknown attendance status {record.status!r}",
                    employee_id=record.employee_id,
                )

    def _leave_multiplier(self, record: AttendanceRecord) -> Decimal:
        leave_type = (record.leave_type or "").strip().lower()
        if leave_type and leave_type in {t.lower() for t in self.paid_leave_types}:
            return ONE
        if leave_type and leave_type in {t.lower() for t in self.unpaid_leave_types}:
            return ZERO
        if self.strict_leave_types:
            raise ConfigurationError(
                f"Leave type '{record.leave_type}' is not configured as paid or unpaid",
                employee_id=record.employee_id,
            )
        return ONE if self.default_leave_paid else ZERO


@dataclass(frozen=True)
class AttendanceDay:
    """The contribution of one attendance date to the deduction."""

    date: date
    status: str
    multiplier: Decimal
    lost_fraction: Decimal
    amount: Decimal


@dataclass(frozen=True)
class AttendanceResult:
    """Attendance outcome for one employee and one period."""

    employee_id: str
    denominator: Decimal
    days: tuple[AttendanceDay, ...]
    lost_days: Decimal
    deduction: Decimal
    warnings: tuple[str, ...] = ()

    def as_adjustment(self) -> AdjustmentLine | None:
        """The deduction as an adjustment line, or None when nothing is lost."""
        if self.deduction == ZERO:
            return None
        return AdjustmentLine(
            name=ATTENDANCE_DEDUCTION_NAME,
            amount=self.deduction,
            type=AdjustmentType.DEDUCTION,
            source="attendance",
        )


class AttendanceProrator:
    """
    Turn attendance records into a deduction against basic salary.

    Contract:
        Pure.  Employees with no records in range incur no deduction.
    """

    def __init__(
        self,
        policy: AttendancePolicy | None = None,
        day_count: DayCountPolicy | None = None,
    ):
        self.policy = policy or AttendancePolicy()
        self.day_count = day_count or CalendarDaysPolicy()

    @traced_engine(
        "attendance", "1.0",
        fingerprint_fields=("employee_id", "basic_salary", "period_start", "period_end"),
    )
    def prorate(
        self,
        employee_id: str,
        basic_salary: Decimal,
        records: Sequence[AttendanceRecord],
        period_start: date,
        period_end: date,
    ) -> AttendanceResult:
        denominator = self.day_count.denominator(period_start, period_end)
        warnings: list[str] = []

        by_date: dict[date, AttendanceRecord] = {}
        for record in records:
            if record.employee_id != employee_id:
                continue
            if not (period_start <= record.date <= period_end):
                continue
            if record.date in by_date:
                warnings.append(
                    f"Duplicate attendance for {record.date.isoformat()}; "
                    "last record used"
                )
                logger.warning("attendance_duplicate_date", extra={
                    "employee_id": employee_id,
                    "date": record.date.isoformat(),
                })
            by_date[record.date] = record

        if not by_date:
            return AttendanceResult(
                employee_id=employee_id,
                denominator=denominator,
                days=(),
                lost_days=ZERO,
                deduction=ZERO,
                warnings=tuple(warnings),
            )

        if denominator <= ZERO:
            raise ConfigurationError(
                f"Day-count policy produced denominator {denominator} "
                f"for {period_start} to {period_end}",
                employee_id=employee_id,
            )

        daily_rate = basic_salary / denominator
        dated = sorted(by_date)
        multipliers = [self.policy.multiplier_for(by_date[day]) for day in dated]
        fractions = [ONE - m for m in multipliers]
        lost = sum(fractions, ZERO)
        deduction = round_money(daily_rate * lost)

        # Day amounts carry the cents of the rounded total
        if lost > ZERO:
            cents = split_cents(abs(deduction), fractions, lost)
        else:
            cents = [0] * len(dated)
        sign = Decimal("-1") if deduction < ZERO else ONE

        days = [
            AttendanceDay(
                date=day,
                status=by_date[day].status.value,
                multiplier=multiplier,
                lost_fraction=fraction,
                amount=sign * day_cents * CENT,
            )
            for day, multiplier, fraction, day_cents in zip(dated, multipliers, fractions, cents)
        ]

        logger.debug("attendance_prorated", extra={
            "employee_id": employee_id,
            "records": len(days),
            "lost_days": str(lost),
            "denominator": str(denominator),
            "deduction": str(deduction),
        })

        return AttendanceResult(
            employee_id=employee_id,
            denominator=denominator,
            days=tuple(days),
            lost_days=lost,
            deduction=deduction,
            warnings=tuple(warnings),
        )
