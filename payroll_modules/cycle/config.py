"""
Payroll Cycle Configuration Schema.

Defines the structure and sensible defaults for tenant payroll policy:
cost allocation basis, attendance rules, day-count policy, income tax
slabs and statutory contributions.  Actual values are loaded from tenant
configuration at runtime (see ``payroll_config.loader``).

A misconfigured policy is systemic, so every validation failure raises
``ConfigurationError`` when the config is built, before any batch runs.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Self

from payroll_engines.attendance import (
    AttendancePolicy,
    CalendarDaysPolicy,
    DayCountPolicy,
    WorkingDaysPolicy,
)
from payroll_engines.salary import StatutoryRule, TaxSlab
from payroll_kernel.db.types import to_decimal
from payroll_kernel.exceptions import ConfigurationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("modules.cycle.config")

VALID_ALLOCATION_BASES = {"net", "gross"}
VALID_DAY_COUNT_POLICIES = {"calendar", "working"}
WEEKDAY_NUMBERS = {
    "monday": 0,
    "tuesday": 1,
    "wednesday": 2,
    "thursday": 3,
    "friday": 4,
    "saturday": 5,
    "sunday": 6,
}


@dataclass
class PayrollConfig:
    """
    Configuration schema for the payroll cycle module.

    Defaults apply no tax, no statutory contributions, calendar-day
    attendance proration and net-pay cost allocation.  Override at
    instantiation with tenant values:

        config = PayrollConfig(
            day_count_policy="working",
            unpaid_leave_types=("unpaid",),
        )
    """

    # Cost allocation
    allocation_basis: str = "net"

    # Attendance day count
    day_count_policy: str = "calendar"
    working_days_per_month: int | None = 26
    weekend_days: tuple[str, ...] = ("saturday", "sunday")

    # Attendance multipliers
    absent_multiplier: Decimal = Decimal("0")
    half_day_multiplier: Decimal = Decimal("0.5")
    paid_leave_types: tuple[str, ...] = ()
    unpaid_leave_types: tuple[str, ...] = ()
    default_leave_paid: bool = True
    strict_leave_types: bool = False
    custom_attendance_multipliers: dict[str, Decimal] = field(default_factory=dict)

    # Proration on joining / termination within the period
    prorate_partial_periods: bool = True

    # Tax and statutory
    tax_slabs: tuple[TaxSlab, ...] = ()
    statutory_rules: tuple[StatutoryRule, ...] = ()

    # Payment
    default_payment_account_id: str | None = None

    def __post_init__(self):
        if self.allocation_basis not in VALID_ALLOCATION_BASES:
            raise ConfigurationError(
                f"allocation_basis must be one of {VALID_ALLOCATION_BASES}, "
                f"got '{self.allocation_basis}'"
            )
        if self.day_count_policy not in VALID_DAY_COUNT_POLICIES:
            raise ConfigurationError(
                f"day_count_policy must be one of {VALID_DAY_COUNT_POLICIES}, "
                f"got '{self.day_count_policy}'"
            )
        if self.working_days_per_month is not None and not (
            1 <= self.working_days_per_month <= 31
        ):
            raise ConfigurationError("working_days_per_month must be between 1 and 31")
        unknown_days = {d.lower() for d in self.weekend_days} - set(WEEKDAY_NUMBERS)
        if unknown_days:
            raise ConfigurationError(f"Unknown weekend days: {sorted(unknown_days)}")

        # Slabs must be ordered and non-overlapping
        previous = None
        for slab in self.tax_slabs:
            if previous is not None and (
                previous.max_income is None or slab.min_income < previous.max_income
            ):
                raise ConfigurationError(
                    "tax_slabs must be sorted by min_income without overlap"
                )
            previous = slab

        # Builds the engine policy once so bad multipliers fail here
        try:
            self.attendance_policy()
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc

        logger.info(
            "payroll_config_initialized",
            extra={
                "allocation_basis": self.allocation_basis,
                "day_count_policy": self.day_count_policy,
                "working_days_per_month": self.working_days_per_month,
                "strict_leave_types": self.strict_leave_types,
                "tax_slab_count": len(self.tax_slabs),
                "statutory_rule_count": len(self.statutory_rules),
            },
        )

    def attendance_policy(self) -> AttendancePolicy:
        """The engine policy mapping attendance statuses to multipliers."""
        return AttendancePolicy(
            absent_multiplier=self.absent_multiplier,
            half_day_multiplier=self.half_day_multiplier,
            paid_leave_types=frozenset(self.paid_leave_types),
            unpaid_leave_types=frozenset(self.unpaid_leave_types),
            default_leave_paid=self.default_leave_paid,
            strict_leave_types=self.strict_leave_types,
            custom_multipliers=dict(self.custom_attendance_multipliers),
        )

    def day_count(self) -> DayCountPolicy:
        """The engine day-count policy."""
        if self.day_count_policy == "working":
            return WorkingDaysPolicy(
                working_days_per_month=self.working_days_per_month,
                weekend_days=frozenset(
                    WEEKDAY_NUMBERS[d.lower()] for d in self.weekend_days
                ),
            )
        return CalendarDaysPolicy()

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with default policy."""
        logger.info("payroll_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from dictionary (e.g., loaded from YAML or database)."""
        logger.info(
            "payroll_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        data = dict(data)
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise ConfigurationError(f"Unknown payroll config keys: {sorted(unknown)}")

        try:
            for key in ("absent_multiplier", "half_day_multiplier"):
                if key in data:
                    data[key] = to_decimal(data[key], default=None)
            for key in ("paid_leave_types", "unpaid_leave_types", "weekend_days"):
                if key in data:
                    data[key] = tuple(data[key] or ())
            if "custom_attendance_multipliers" in data:
                data["custom_attendance_multipliers"] = {
                    str(k): to_decimal(v, default=None)
                    for k, v in (data["custom_attendance_multipliers"] or {}).items()
                }
            if "tax_slabs" in data:
                data["tax_slabs"] = tuple(
                    _tax_slab(s) if isinstance(s, dict) else s
                    for s in data["tax_slabs"] or ()
                )
            if "statutory_rules" in data:
                data["statutory_rules"] = tuple(
                    _statutory_rule(r) if isinstance(r, dict) else r
                    for r in data["statutory_rules"] or ()
                )
        except (ValueError, KeyError, TypeError) as exc:
            raise ConfigurationError(f"Invalid payroll config: {exc}") from exc
        return cls(**data)


def _tax_slab(raw: dict[str, Any]) -> TaxSlab:
    return TaxSlab(
        min_income=to_decimal(raw["min_income"], default=None),
        max_income=to_decimal(raw.get("max_income"), default=None)
        if raw.get("max_income") is not None else None,
        rate=to_decimal(raw.get("rate")),
        fixed_amount=to_decimal(raw.get("fixed_amount")),
    )


def _statutory_rule(raw: dict[str, Any]) -> StatutoryRule:
    limit = raw.get("max_salary_limit")
    return StatutoryRule(
        name=str(raw["name"]),
        employee_rate=to_decimal(raw["employee_rate"], default=None),
        max_salary_limit=to_decimal(limit, default=None) if limit is not None else None,
    )
