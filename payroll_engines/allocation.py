"""
Module: payroll_engines.allocation
Responsibility:
    Spread an employee's pay across the projects and buildings the employee
    is allocated to, by declared percentage, with cent-exact rounding.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - total_allocated + unallocated == source amount, and with at least one
      active share the lines sum exactly to the source amount.
    - Rounding uses the largest-remainder rule: every share first gets the
      floor of its exact cents, then the leftover cents go one each to the
      shares with the largest fractional parts (ties by declaration order).
    - Declared percentages that do not total 100 are renormalized, with a
      ReconciliationWarning instead of a failure.

Failure modes:
    - None raised for bad percentages.  Missing and negative percentages
      count as zero, and all-zero percentages split equally, each with a
      warning.

Audit relevance:
    Allocation lines feed the per-entity cost totals of a cycle.  The same
    inputs always produce the same cent assignment.

Usage:
    from payroll_engines.allocation import CostAllocator, AllocationShare

    result = CostAllocator().allocate(
        amount=Decimal("1000.00"),
        shares=[
            AllocationShare(entity_id="proj-a", percentage=Decimal("60")),
            AllocationShare(entity_id="proj-b", percentage=Decimal("30")),
        ],
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, Decimal

from payroll_engines.tracer import traced_engine
from payroll_kernel.db.types import HUNDRED, ZERO, round_money
from payroll_kernel.exceptions import ReconciliationWarning
from payroll_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

CENT = Decimal("0.01")


def split_cents(
    magnitude: Decimal,
    weights: Sequence[Decimal],
    total_weight: Decimal,
) -> list[int]:
    """Split ``magnitude`` into whole cents proportional to ``weights``.

    The parts always add up to ``magnitude``.
    """
    total_cents = int(magnitude / CENT)
    exact = [Decimal(total_cents) * w / total_weight for w in weights]
    floors = [int(e.to_integral_value(rounding=ROUND_FLOOR)) for e in exact]
    leftover = total_cents - sum(floors)

    # Largest fractional part first; earlier entry wins ties
    order = sorted(
        range(len(weights)),
        key=lambda i: (-(exact[i] - floors[i]), i),
    )
    for i in order[:leftover]:
        floors[i] += 1
    return floors


@dataclass(frozen=True)
class AllocationShare:
    """An employee's declared share of cost for one project or building.

    A missing ``percentage`` counts as zero.
    """

    entity_id: str
    percentage: Decimal | None
    start_date: date | None = None
    end_date: date | None = None

    def is_active(self, period_start: date | None, period_end: date | None) -> bool:
        """True when the share overlaps the period (open bounds always match)."""
        if period_end is not None and self.start_date is not None:
            if self.start_date > period_end:
                return False
        if period_start is not None and self.end_date is not None:
            if self.end_date < period_start:
                return False
        return True


@dataclass(frozen=True)
class CostLine:
    """Amount allocated to one entity."""

    entity_id: str
    amount: Decimal
    declared_percentage: Decimal
    effective_percentage: Decimal


@dataclass(frozen=True)
class CostAllocationResult:
    """
    Complete allocation result.

    Guarantees:
        - ``total_allocated + unallocated == source_amount``.
        - ``unallocated`` is zero whenever ``lines`` is non-empty.
    """

    source_amount: Decimal
    lines: tuple[CostLine, ...]
    total_allocated: Decimal
    unallocated: Decimal
    renormalized: bool = False
    warnings: tuple[ReconciliationWarning, ...] = ()

    @property
    def is_fully_allocated(self) -> bool:
        return self.unallocated == ZERO


class CostAllocator:
    """
    Allocate an amount across active allocation shares.

    Contract:
        Pure and deterministic.  Negative amounts are allocated by
        magnitude and each line carries the source sign.
    """

    @traced_engine("cost_allocation", "1.0", fingerprint_fields=("amount", "shares"))
    def allocate(
        self,
        amount: Decimal,
        shares: Sequence[AllocationShare],
        period_start: date | None = None,
        period_end: date | None = None,
    ) -> CostAllocationResult:
        amount = round_money(amount)
        active = [s for s in shares if s.is_active(period_start, period_end)]

        if not active:
            logger.debug("allocation_no_active_shares", extra={
                "amount": str(amount),
                "declared_shares": len(shares),
            })
            return CostAllocationResult(
                source_amount=amount,
                lines=(),
                total_allocated=ZERO,
                unallocated=amount,
            )

        warnings: list[ReconciliationWarning] = []

        declared: list[Decimal] = []
        weights: list[Decimal] = []
        for share in active:
            if share.percentage is None:
                warnings.append(ReconciliationWarning(
                    f"Allocation share {share.entity_id} has no percentage; treated as 0",
                    declared_total=None,
                ))
                percentage = ZERO
            else:
                percentage = share.percentage
            declared.append(percentage)
            if percentage < ZERO:
                warnings.append(ReconciliationWarning(
                    f"Negative allocation percentage {percentage} "
                    f"for {share.entity_id} treated as 0",
                    declared_total=str(percentage),
                ))
                weights.append(ZERO)
            else:
                weights.append(percentage)

        total_weight = sum(weights, ZERO)
        renormalized = False
        if total_weight == ZERO:
            warnings.append(ReconciliationWarning(
                "All allocation percentages are zero; splitting equally",
                declared_total="0",
            ))
            weights = [Decimal("1")] * len(active)
            total_weight = Decimal(len(active))
            renormalized = True
        elif total_weight != HUNDRED:
            warnings.append(ReconciliationWarning(
                f"Allocation percentages total {total_weight}, not 100; "
                "renormalized proportionally",
                declared_total=str(total_weight),
            ))
            renormalized = True

        cents = split_cents(abs(amount), weights, total_weight)
        sign = Decimal("-1") if amount < ZERO else Decimal("1")

        lines = tuple(
            CostLine(
                entity_id=share.entity_id,
                amount=sign * share_cents * CENT,
                declared_percentage=percentage,
                effective_percentage=round_money(weight * HUNDRED / total_weight, 4),
            )
            for share, percentage, weight, share_cents in zip(active, declared, weights, cents)
        )

        total_allocated = sum((line.amount for line in lines), ZERO)
        unallocated = amount - total_allocated

        assert total_allocated + unallocated == amount and unallocated == ZERO, (
            f"Allocation conservation violated: "
            f"{total_allocated} + {unallocated} != {amount}"
        )

        if warnings:
            logger.warning("allocation_renormalized", extra={
                "amount": str(amount),
                "declared_total": str(sum(declared, ZERO)),
                "warning_count": len(warnings),
            })
        logger.debug("allocation_completed", extra={
            "amount": str(amount),
            "line_count": len(lines),
            "renormalized": renormalized,
        })

        return CostAllocationResult(
            source_amount=amount,
            lines=lines,
            total_allocated=total_allocated,
            unallocated=unallocated,
            renormalized=renormalized,
            warnings=tuple(warnings),
        )
