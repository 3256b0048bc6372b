"""
Payroll Cycle Lifecycle (``payroll_modules.cycle.lifecycle``).

Responsibility
--------------
Evaluate ``PAYROLL_CYCLE_WORKFLOW`` against a cycle and its payslips:
explicit status changes, the automatic Draft -> Review and Approved -> Paid
transitions, and the guards on processing and paying.

Architecture position
---------------------
**Modules layer** -- pure.  Works on frozen dataclasses and returns new
instances; persistence is the service's job.  Time comes from an injected
``Clock``.

Invariants enforced
-------------------
* Every status change follows a declared transition whose guards all hold.
* Approval needs a payslip for every eligible employee, and cycle totals
  that agree with those payslips.
* A rejected request raises ``GuardError`` and returns nothing, so the
  caller has nothing to persist.
* Locked and Cancelled are terminal.
* Payslips are paid only while the cycle is Approved or Paid, and at most
  once.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from decimal import Decimal
from uuid import UUID

from payroll_kernel.db.types import ZERO, round_money, sum_money, to_decimal
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.exceptions import GuardError, ValidationError
from payroll_kernel.logging_config import get_logger
from payroll_modules.cycle.models import (
    CycleStatus,
    PaymentDetails,
    PayrollCycle,
    Payslip,
)
from payroll_modules.cycle.workflows import (
    ALL_PAYSLIPS_PAID,
    CLOSED_TO_PROCESSING,
    COUNTS_MATCH,
    HAS_EMPLOYEES,
    HAS_PAYSLIPS,
    NO_MISSING_PAYSLIPS,
    NO_PAYSLIPS_PAID,
    PAYABLE_STATES,
    PAYROLL_CYCLE_WORKFLOW,
    TOTALS_MATCH,
)

logger = get_logger("modules.cycle.lifecycle")

# Largest rounding gap tolerated between the cycle total and its payslips
TOTALS_TOLERANCE = Decimal("0.01")


class CycleLifecycle:
    """
    State machine for payroll cycles.

    Contract:
        Methods either return an updated copy or raise ``GuardError``.
    """

    def __init__(
        self,
        workflow: Workflow = PAYROLL_CYCLE_WORKFLOW,
        clock: Clock | None = None,
    ):
        self._workflow = workflow
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def allowed_targets(
        self,
        cycle: PayrollCycle,
        payslips: Sequence[Payslip] = (),
        missing_employee_ids: Sequence[str] = (),
    ) -> tuple[CycleStatus, ...]:
        """Statuses reachable from the cycle's current status right now."""
        return tuple(
            CycleStatus(t.to_state)
            for t in self._workflow.transitions_from(cycle.status.value)
            if all(
                self._guard_holds(g, cycle, payslips, missing_employee_ids)
                for g in t.guards
            )
        )

    def is_terminal(self, cycle: PayrollCycle) -> bool:
        return cycle.status.value in self._workflow.terminal_states

    # -------------------------------------------------------------------------
    # Explicit transitions
    # -------------------------------------------------------------------------

    def transition(
        self,
        cycle: PayrollCycle,
        target: CycleStatus,
        payslips: Sequence[Payslip] = (),
        actor_id: UUID | None = None,
        missing_employee_ids: Sequence[str] = (),
    ) -> PayrollCycle:
        """Move ``cycle`` to ``target`` or raise ``GuardError``.

        ``missing_employee_ids`` lists eligible employees without a payslip;
        approval is refused while it is non-empty.
        """
        transition = self._check(cycle, target, payslips, missing_employee_ids)
        updated = self._apply(cycle, target, actor_id)
        logger.info("cycle_status_changed", extra={
            "cycle_id": str(cycle.id),
            "from_status": cycle.status.value,
            "to_status": target.value,
            "action": transition.action,
            "actor_id": str(actor_id) if actor_id else None,
        })
        return updated

    # -------------------------------------------------------------------------
    # Automatic transitions
    # -------------------------------------------------------------------------

    def after_processing(self, cycle: PayrollCycle, new_payslip_count: int) -> PayrollCycle:
        """Draft -> Review once a run has produced at least one payslip."""
        if cycle.status == CycleStatus.DRAFT and new_payslip_count > 0:
            logger.info("cycle_auto_review", extra={
                "cycle_id": str(cycle.id),
                "new_payslips": new_payslip_count,
            })
            return self._apply(cycle, CycleStatus.REVIEW, None)
        return cycle

    def after_payment(self, cycle: PayrollCycle, payslips: Sequence[Payslip]) -> PayrollCycle:
        """Approved -> Paid once every payslip is paid."""
        if cycle.status == CycleStatus.APPROVED and self._guard_holds(
            ALL_PAYSLIPS_PAID, cycle, payslips, ()
        ):
            logger.info("cycle_auto_paid", extra={
                "cycle_id": str(cycle.id),
                "payslip_count": len(payslips),
            })
            return self._apply(cycle, CycleStatus.PAID, None)
        return cycle

    # -------------------------------------------------------------------------
    # Operation guards
    # -------------------------------------------------------------------------

    def ensure_processable(self, cycle: PayrollCycle) -> None:
        if cycle.status.value in CLOSED_TO_PROCESSING:
            raise GuardError(
                cycle.status.value,
                "process",
                "cycle no longer accepts processing",
                entity_id=str(cycle.id),
            )

    def ensure_payable(self, cycle: PayrollCycle, payslip: Payslip) -> None:
        if cycle.status.value not in PAYABLE_STATES:
            raise GuardError(
                cycle.status.value,
                "pay payslip",
                "cycle must be Approved or Paid",
                entity_id=str(payslip.id),
            )
        if payslip.is_paid:
            raise GuardError(
                cycle.status.value,
                "pay payslip",
                "payslip is already paid",
                entity_id=str(payslip.id),
            )

    def pay(
        self,
        cycle: PayrollCycle,
        payslip: Payslip,
        details: PaymentDetails,
    ) -> Payslip:
        """Return ``payslip`` marked paid, or raise without mutating."""
        self.ensure_payable(cycle, payslip)
        amount = payslip.net_salary if details.amount is None else to_decimal(details.amount)
        if amount <= ZERO:
            raise ValidationError(
                f"Payment amount must be positive, got {amount}",
                employee_id=payslip.employee_id,
            )
        return replace(
            payslip,
            is_paid=True,
            paid_at=self._clock.now(),
            paid_amount=round_money(amount),
            payment_reference=details.reference,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _check(
        self,
        cycle: PayrollCycle,
        target: CycleStatus,
        payslips: Sequence[Payslip],
        missing_employee_ids: Sequence[str],
    ) -> Transition:
        current = cycle.status.value
        if target == cycle.status:
            raise GuardError(
                current, target.value, "cycle is already in this state",
                entity_id=str(cycle.id),
            )
        transition = self._workflow.find(current, target.value)
        if transition is None:
            raise GuardError(
                current, target.value, "transition not allowed",
                entity_id=str(cycle.id),
            )
        for guard in transition.guards:
            if self._guard_holds(guard, cycle, payslips, missing_employee_ids):
                continue
            reason = guard.description
            if guard == NO_MISSING_PAYSLIPS:
                reason = f"{reason} ({len(missing_employee_ids)} missing)"
            logger.warning("cycle_transition_guard_failed", extra={
                "cycle_id": str(cycle.id),
                "from_status": current,
                "to_status": target.value,
                "guard": guard.name,
                "payslip_count": len(payslips),
                "missing_payslips": len(missing_employee_ids),
            })
            raise GuardError(current, target.value, reason, entity_id=str(cycle.id))
        return transition

    @staticmethod
    def _guard_holds(
        guard: Guard,
        cycle: PayrollCycle,
        payslips: Sequence[Payslip],
        missing_employee_ids: Sequence[str],
    ) -> bool:
        if guard == HAS_PAYSLIPS:
            return len(payslips) > 0 or cycle.total_employees > 0
        if guard == HAS_EMPLOYEES:
            return cycle.total_employees > 0
        if guard == ALL_PAYSLIPS_PAID:
            return len(payslips) > 0 and all(p.is_paid for p in payslips)
        if guard == NO_PAYSLIPS_PAID:
            return not any(p.is_paid for p in payslips)
        if guard == NO_MISSING_PAYSLIPS:
            return not missing_employee_ids
        if guard == COUNTS_MATCH:
            return cycle.total_employees == len(payslips)
        if guard == TOTALS_MATCH:
            payslip_total = sum_money(p.net_salary for p in payslips)
            return abs(payslip_total - cycle.total_net_salary) <= TOTALS_TOLERANCE
        raise ValueError(f"Unknown guard: {guard.name}")

    def _apply(
        self,
        cycle: PayrollCycle,
        target: CycleStatus,
        actor_id: UUID | None,
    ) -> PayrollCycle:
        now = self._clock.now()
        match target:
            case CycleStatus.APPROVED:
                return replace(cycle, status=target, approved_at=now, approved_by=actor_id)
            case CycleStatus.PAID:
                return replace(cycle, status=target, paid_at=now)
            case CycleStatus.LOCKED:
                return replace(cycle, status=target, locked_at=now)
            case CycleStatus.CANCELLED:
                return replace(cycle, status=target, cancelled_at=now)
            case _:
                return replace(cycle, status=target)
