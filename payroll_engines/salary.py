"""
Module: payroll_engines.salary
Responsibility:
    Resolve one employee's pay figures for one period: basic, allowances,
    one-time earnings, gross, standard gross, recurring and one-time
    deductions, income tax, statutory contributions and net pay, each
    itemised as a ``PayslipLine``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import payroll_kernel types and sibling engine modules.

Invariants enforced:
    - Percentage deductions are computed against STANDARD gross
      (basic + recurring allowances), never against one-time earnings.
    - Every line and every total is rounded to 2 places (ROUND_HALF_UP),
      and each total is the sum of its rounded lines.
    - A negative net result is reported, never clamped.

Failure modes:
    - ValidationError when basic salary is absent or the proration factor
      lies outside [0, 1].  Callers treat this as fatal to the row only.
    - Non-fatal anomalies (negative basic, missing component amount,
      negative net) are returned in ``SalaryResolution.warnings``.

Audit relevance:
    The itemised lines let a reviewer rebuild every figure on a payslip
    from the salary structure and the adjustments that were applied.

Usage:
    from payroll_engines.salary import SalaryResolver, SalaryComponent

    resolution = SalaryResolver().resolve(
        employee_id="emp-1",
        basic_salary=Decimal("150000"),
        allowances=[SalaryComponent("House Rent", Decimal("40"), True)],
        deductions=[SalaryComponent("Provident Fund", Decimal("12"), True)],
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from payroll_engines.tracer import traced_engine
from payroll_kernel.db.types import HUNDRED, ZERO, round_money, sum_money, to_decimal
from payroll_kernel.exceptions import ValidationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.salary")

ONE = Decimal("1")

# Allowances carrying these names restate the basic salary and are skipped.
BASIC_COMPONENT_NAMES = frozenset({"basic pay", "basic salary"})


class AdjustmentType(str, Enum):
    """Direction of a one-time or scoped adjustment."""

    EARNING = "EARNING"
    DEDUCTION = "DEDUCTION"


class LineKind(str, Enum):
    """Classification of an itemised payslip line."""

    BASIC = "basic"
    ALLOWANCE = "allowance"
    EARNING = "earning"  # bonus or one-time earning
    DEDUCTION = "deduction"  # recurring structure deduction
    ADJUSTMENT = "adjustment"  # one-time deduction, incl. attendance
    TAX = "tax"
    STATUTORY = "statutory"


@dataclass(frozen=True)
class SalaryComponent:
    """A recurring allowance or deduction from the salary structure.

    ``amount`` is a fixed sum, or a percentage when ``is_percentage``.
    ``None`` means the amount is missing and is treated as zero.
    """

    name: str
    amount: Decimal | None
    is_percentage: bool = False

    @property
    def restates_basic(self) -> bool:
        return self.name.strip().lower() in BASIC_COMPONENT_NAMES


@dataclass(frozen=True)
class AdjustmentLine:
    """A scoped earning or deduction applied to this period only.

    A missing ``amount`` is treated as zero with a warning.
    """

    name: str
    amount: Decimal | None
    type: AdjustmentType
    source: str = "adjustment"
    source_id: str | None = None


@dataclass(frozen=True)
class TaxSlab:
    """One band of a progressive income tax table.

    Income above ``min_income`` (up to ``max_income``) is taxed at
    ``rate`` percent, plus ``fixed_amount`` once the band is reached.
    """

    min_income: Decimal
    max_income: Decimal | None = None
    rate: Decimal = ZERO
    fixed_amount: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.min_income < ZERO:
            raise ValueError("min_income cannot be negative")
        if self.max_income is not None and self.max_income <= self.min_income:
            raise ValueError("max_income must exceed min_income")
        if not (ZERO <= self.rate <= HUNDRED):
            raise ValueError("rate must be between 0 and 100")
        if self.fixed_amount < ZERO:
            raise ValueError("fixed_amount cannot be negative")


@dataclass(frozen=True)
class StatutoryRule:
    """An employee statutory contribution taken as a percent of standard gross."""

    name: str
    employee_rate: Decimal
    max_salary_limit: Decimal | None = None

    def __post_init__(self) -> None:
        if not (ZERO <= self.employee_rate <= HUNDRED):
            raise ValueError("employee_rate must be between 0 and 100")
        if self.max_salary_limit is not None and self.max_salary_limit <= ZERO:
            raise ValueError("max_salary_limit must be positive")


@dataclass(frozen=True)
class PayslipLine:
    """One itemised figure on a payslip."""

    kind: LineKind
    name: str
    amount: Decimal
    rate: Decimal | None = None
    source_id: str | None = None


@dataclass(frozen=True)
class SalaryResolution:
    """Resolved pay figures for one employee and one period."""

    employee_id: str
    basic_salary: Decimal
    total_allowances: Decimal
    earning_adjustments: Decimal
    gross_salary: Decimal
    standard_gross: Decimal
    recurring_deductions: Decimal
    deduction_adjustments: Decimal
    total_tax: Decimal
    total_statutory: Decimal
    net_salary: Decimal
    proration_factor: Decimal
    lines: tuple[PayslipLine, ...]
    warnings: tuple[str, ...] = ()

    @property
    def total_deductions(self) -> Decimal:
        """Recurring deductions plus one-time deduction adjustments."""
        return round_money(self.recurring_deductions + self.deduction_adjustments)

    def lines_of(self, kind: LineKind) -> tuple[PayslipLine, ...]:
        return tuple(line for line in self.lines if line.kind == kind)


def compute_progressive_tax(income: Decimal, slabs: Sequence[TaxSlab]) -> Decimal:
    """Apply every slab whose lower bound the income exceeds."""
    taxable = max(ZERO, income)
    tax = ZERO
    for slab in slabs:
        if taxable <= slab.min_income:
            continue
        upper = taxable if slab.max_income is None else min(taxable, slab.max_income)
        tax += (upper - slab.min_income) * slab.rate / HUNDRED
        tax += slab.fixed_amount
    return round_money(tax)


class SalaryResolver:
    """
    Compute gross and net pay for one employee.

    Contract:
        Pure function of its arguments.  No clock, no I/O.
    Guarantees:
        - ``gross = basic + allowances + earning adjustments``
        - ``standard_gross = basic + allowances``
        - ``net = gross - recurring deductions - deduction adjustments
          - tax - statutory``
        - With a proration factor below 1, basic and each allowance are
          scaled; percentage allowances are taken on the full basic first.
    """

    @traced_engine(
        "salary", "1.0",
        fingerprint_fields=("employee_id", "basic_salary", "proration_factor"),
    )
    def resolve(
        self,
        employee_id: str,
        basic_salary: Decimal | None,
        allowances: Sequence[SalaryComponent] = (),
        deductions: Sequence[SalaryComponent] = (),
        adjustments: Sequence[AdjustmentLine] = (),
        proration_factor: Decimal = ONE,
        tax_slabs: Sequence[TaxSlab] = (),
        statutory_rules: Sequence[StatutoryRule] = (),
    ) -> SalaryResolution:
        if basic_salary is None:
            raise ValidationError(
                f"Employee {employee_id} has no basic salary",
                employee_id=employee_id,
            )
        if not (ZERO <= proration_factor <= ONE):
            raise ValidationError(
                f"Proration factor {proration_factor} outside [0, 1]",
                employee_id=employee_id,
            )

        warnings: list[str] = []
        lines: list[PayslipLine] = []

        if basic_salary < ZERO:
            warnings.append(f"Negative basic salary {basic_salary}")
            logger.warning("salary_negative_basic", extra={
                "employee_id": employee_id,
                "basic_salary": str(basic_salary),
            })

        basic = round_money(basic_salary * proration_factor)
        lines.append(PayslipLine(LineKind.BASIC, "Basic Salary", basic))

        # Allowances: percentages taken on the full basic, then prorated
        for component in allowances:
            if component.restates_basic:
                continue
            raw = self._component_amount(component, employee_id, warnings)
            full = raw
            if component.is_percentage:
                full = basic_salary * raw / HUNDRED
            amount = round_money(round_money(full) * proration_factor)
            lines.append(PayslipLine(
                LineKind.ALLOWANCE, component.name, amount,
                rate=raw if component.is_percentage else None,
            ))
        total_allowances = sum_money(
            line.amount for line in lines if line.kind == LineKind.ALLOWANCE
        )

        earnings = [a for a in adjustments if a.type == AdjustmentType.EARNING]
        earning_lines = [
            PayslipLine(
                LineKind.EARNING, adj.name,
                round_money(self._adjustment_amount(adj, employee_id, warnings)),
                source_id=adj.source_id,
            )
            for adj in earnings
        ]
        lines.extend(earning_lines)
        earning_adjustments = sum_money(line.amount for line in earning_lines)

        gross = round_money(basic + total_allowances + earning_adjustments)
        standard_gross = round_money(basic + total_allowances)

        # Recurring deductions: percentages on standard gross only
        for component in deductions:
            raw = self._component_amount(component, employee_id, warnings)
            amount = raw
            if component.is_percentage:
                amount = standard_gross * raw / HUNDRED
            lines.append(PayslipLine(
                LineKind.DEDUCTION, component.name, round_money(amount),
                rate=raw if component.is_percentage else None,
            ))
        recurring_deductions = sum_money(
            line.amount for line in lines if line.kind == LineKind.DEDUCTION
        )

        deductions_adj = [a for a in adjustments if a.type == AdjustmentType.DEDUCTION]
        adjustment_lines = [
            PayslipLine(
                LineKind.ADJUSTMENT, adj.name,
                round_money(self._adjustment_amount(adj, employee_id, warnings)),
                source_id=adj.source_id,
            )
            for adj in deductions_adj
        ]
        lines.extend(adjustment_lines)
        deduction_adjustments = sum_money(line.amount for line in adjustment_lines)

        total_tax = ZERO
        if tax_slabs:
            total_tax = compute_progressive_tax(gross, tax_slabs)
            if total_tax:
                lines.append(PayslipLine(LineKind.TAX, "Income Tax", total_tax))

        for rule in statutory_rules:
            base = standard_gross
            if rule.max_salary_limit is not None:
                base = min(base, rule.max_salary_limit)
            amount = round_money(max(ZERO, base) * rule.employee_rate / HUNDRED)
            lines.append(PayslipLine(
                LineKind.STATUTORY, rule.name, amount, rate=rule.employee_rate,
            ))
        total_statutory = sum_money(
            line.amount for line in lines if line.kind == LineKind.STATUTORY
        )

        net = round_money(
            gross
            - recurring_deductions
            - deduction_adjustments
            - total_tax
            - total_statutory
        )
        if net < ZERO:
            warnings.append(f"Net salary is negative: {net}")
            logger.warning("salary_negative_net", extra={
                "employee_id": employee_id,
                "net_salary": str(net),
            })

        logger.debug("salary_resolved", extra={
            "employee_id": employee_id,
            "gross_salary": str(gross),
            "standard_gross": str(standard_gross),
            "net_salary": str(net),
            "line_count": len(lines),
        })

        return SalaryResolution(
            employee_id=employee_id,
            basic_salary=basic,
            total_allowances=total_allowances,
            earning_adjustments=earning_adjustments,
            gross_salary=gross,
            standard_gross=standard_gross,
            recurring_deductions=recurring_deductions,
            deduction_adjustments=deduction_adjustments,
            total_tax=total_tax,
            total_statutory=total_statutory,
            net_salary=net,
            proration_factor=proration_factor,
            lines=tuple(lines),
            warnings=tuple(warnings),
        )

    @staticmethod
    def _component_amount(
        component: SalaryComponent,
        employee_id: str,
        warnings: list[str],
    ) -> Decimal:
        if component.amount is None:
            warnings.append(f"Component '{component.name}' has no amount; using 0")
            logger.warning("salary_component_amount_missing", extra={
                "employee_id": employee_id,
                "component": component.name,
            })
            return ZERO
        return component.amount

    @staticmethod
    def _adjustment_amount(
        adjustment: AdjustmentLine,
        employee_id: str,
        warnings: list[str],
    ) -> Decimal:
        if adjustment.amount is None:
            warnings.append(f"Adjustment '{adjustment.name}' has no amount; using 0")
            logger.warning("salary_adjustment_amount_missing", extra={
                "employee_id": employee_id,
                "adjustment": adjustment.name,
                "source_id": adjustment.source_id,
            })
            return ZERO
        return to_decimal(adjustment.amount)
