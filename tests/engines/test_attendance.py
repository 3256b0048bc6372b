"""
Tests for the Attendance Prorator engine.

Covers:
- Calendar and working-day denominators
- Absent, half-day, leave and custom statuses
- Records outside the period or for other employees
- Duplicate dates
- Row-level configuration errors
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest

from payroll_engines.attendance import (
    AttendancePolicy,
    AttendanceProrator,
    AttendanceRecord,
    AttendanceStatus,
    CalendarDaysPolicy,
    CustomStatus,
    WorkingDaysPolicy,
    parse_status,
)
from payroll_engines.salary import AdjustmentType
from payroll_kernel.exceptions import ConfigurationError

MARCH_START = date(2025, 3, 1)
MARCH_END = date(2025, 3, 31)


def record(day, status, employee_id="EMP-001", leave_type=None):
    return AttendanceRecord(
        employee_id=employee_id,
        date=date(2025, 3, day),
        status=status,
        leave_type=leave_type,
    )


class TestDayCountPolicies:
    """Denominators supplied by the pluggable day-count policy."""

    def test_calendar_days(self):
        assert CalendarDaysPolicy().denominator(MARCH_START, MARCH_END) == Decimal("31")

    def test_fixed_working_days(self):
        policy = WorkingDaysPolicy(working_days_per_month=26)
        assert policy.denominator(MARCH_START, MARCH_END) == Decimal("26")

    def test_counted_weekdays(self):
        # March 2025 has 21 weekdays
        policy = WorkingDaysPolicy(working_days_per_month=None)
        assert policy.denominator(MARCH_START, MARCH_END) == Decimal("21")

    def test_custom_weekend(self):
        # Friday/Saturday weekend
        policy = WorkingDaysPolicy(working_days_per_month=None, weekend_days=frozenset({4, 5}))
        expected = sum(
            1 for i in range(31)
            if (MARCH_START + timedelta(days=i)).weekday() not in (4, 5)
        )
        assert policy.denominator(MARCH_START, MARCH_END) == Decimal(expected)


class TestProration:
    """Deduction = basic / denominator x lost days."""

    def setup_method(self):
        self.prorator = AttendanceProrator()

    def test_no_records_no_deduction(self):
        result = self.prorator.prorate("EMP-001", Decimal("31000"), [], MARCH_START, MARCH_END)

        assert result.deduction == Decimal("0")
        assert result.days == ()
        assert result.as_adjustment() is None

    def test_absent_and_half_day(self):
        result = self.prorator.prorate(
            "EMP-001",
            Decimal("31000"),
            [
                record(3, AttendanceStatus.PRESENT),
                record(4, AttendanceStatus.ABSENT),
                record(5, AttendanceStatus.HALF_DAY),
                record(6, AttendanceStatus.HOLIDAY),
            ],
            MARCH_START,
            MARCH_END,
        )

        assert result.lost_days == Decimal("1.5")
        assert result.deduction == Decimal("1500.00")
        assert [d.amount for d in result.days] == [
            Decimal("0.00"), Decimal("1000.00"), Decimal("500.00"), Decimal("0.00"),
        ]
        line = result.as_adjustment()
        assert line.type == AdjustmentType.DEDUCTION
        assert line.amount == Decimal("1500.00")
        assert line.source == "attendance"

    def test_working_day_denominator(self):
        prorator = AttendanceProrator(day_count=WorkingDaysPolicy(working_days_per_month=26))
        result = prorator.prorate(
            "EMP-001", Decimal("26000"), [record(4, AttendanceStatus.ABSENT)],
            MARCH_START, MARCH_END,
        )

        assert result.denominator == Decimal("26")
        assert result.deduction == Decimal("1000.00")

    def test_records_outside_period_or_for_others_ignored(self):
        records = [
            AttendanceRecord("EMP-001", date(2025, 2, 28), AttendanceStatus.ABSENT),
            AttendanceRecord("EMP-001", date(2025, 4, 1), AttendanceStatus.ABSENT),
            record(10, AttendanceStatus.ABSENT, employee_id="EMP-999"),
        ]
        result = self.prorator.prorate("EMP-001", Decimal("31000"), records, MARCH_START, MARCH_END)

        assert result.deduction == Decimal("0")

    def test_duplicate_date_last_record_wins(self):
        result = self.prorator.prorate(
            "EMP-001",
            Decimal("31000"),
            [record(4, AttendanceStatus.ABSENT), record(4, AttendanceStatus.PRESENT)],
            MARCH_START,
            MARCH_END,
        )

        assert result.deduction == Decimal("0.00")
        assert len(result.days) == 1
        assert any("Duplicate" in w for w in result.warnings)

    def test_deduction_unrounded_until_total(self):
        # 10,000 / 31 per day; three absences round once on the total
        result = self.prorator.prorate(
            "EMP-001",
            Decimal("10000"),
            [record(d, AttendanceStatus.ABSENT) for d in (3, 4, 5)],
            MARCH_START,
            MARCH_END,
        )

        assert result.deduction == Decimal("967.74")

    def test_day_amounts_add_up_to_deduction(self):
        # 100,000 / 31 = 3225.806...; rounding each day would give 9677.43
        result = self.prorator.prorate(
            "EMP-001",
            Decimal("100000"),
            [record(d, AttendanceStatus.ABSENT) for d in (3, 4, 5)],
            MARCH_START,
            MARCH_END,
        )

        assert result.deduction == Decimal("9677.42")
        assert sum(d.amount for d in result.days) == result.deduction
        assert sorted(d.amount for d in result.days) == [
            Decimal("3225.80"), Decimal("3225.81"), Decimal("3225.81"),
        ]


class TestLeaveAndCustomStatuses:
    """Leave classification and tenant-defined statuses."""

    def test_paid_and_unpaid_leave(self):
        policy = AttendancePolicy(
            paid_leave_types=frozenset({"Annual"}),
            unpaid_leave_types=frozenset({"Unpaid"}),
        )
        result = AttendanceProrator(policy).prorate(
            "EMP-001",
            Decimal("31000"),
            [
                record(3, AttendanceStatus.LEAVE, leave_type="annual"),
                record(4, AttendanceStatus.LEAVE, leave_type="UNPAID"),
            ],
            MARCH_START,
            MARCH_END,
        )

        assert result.lost_days == Decimal("1")
        assert result.deduction == Decimal("1000.00")

    def test_unclassified_leave_uses_default(self):
        policy = AttendancePolicy(default_leave_paid=False)
        result = AttendanceProrator(policy).prorate(
            "EMP-001", Decimal("31000"),
            [record(3, AttendanceStatus.LEAVE, leave_type="study")],
            MARCH_START, MARCH_END,
        )

        assert result.deduction == Decimal("1000.00")

    def test_strict_mode_rejects_unclassified_leave(self):
        policy = AttendancePolicy(strict_leave_types=True)
        with pytest.raises(ConfigurationError) as exc_info:
            AttendanceProrator(policy).prorate(
                "EMP-001", Decimal("31000"),
                [record(3, AttendanceStatus.LEAVE)],
                MARCH_START, MARCH_END,
            )
        assert exc_info.value.employee_id == "EMP-001"

    def test_custom_status_with_configured_multiplier(self):
        policy = AttendancePolicy(custom_multipliers={"Training": Decimal("0.75")})
        result = AttendanceProrator(policy).prorate(
            "EMP-001", Decimal("31000"),
            [record(3, CustomStatus("training"))],
            MARCH_START, MARCH_END,
        )

        assert result.days[0].status == "training"
        assert result.deduction == Decimal("250.00")

    def test_custom_status_without_multiplier_is_configuration_error(self):
        with pytest.raises(ConfigurationError):
            AttendanceProrator().prorate(
                "EMP-001", Decimal("31000"),
                [record(3, CustomStatus("Remote"))],
                MARCH_START, MARCH_END,
            )

    def test_policy_rejects_out_of_range_multiplier(self):
        with pytest.raises(ValueError):
            AttendancePolicy(half_day_multiplier=Decimal("1.5"))

    def test_parse_status(self):
        assert parse_status("half-day") is AttendanceStatus.HALF_DAY
        assert parse_status(" Present ") is AttendanceStatus.PRESENT
        assert parse_status("Work From Home") == CustomStatus("Work From Home")
