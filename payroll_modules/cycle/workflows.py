"""Payroll Cycle Workflow.

State machine for the payroll cycle lifecycle.  States are the
``CycleStatus`` values; ``CycleLifecycle`` evaluates the guards.
"""

from payroll_kernel.domain.workflow import Guard, Transition, Workflow
from payroll_kernel.logging_config import get_logger
from payroll_modules.cycle.models import CycleStatus

logger = get_logger("modules.cycle.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_PAYSLIPS = Guard(
    name="has_payslips",
    description="Processing produced at least one payslip",
)

HAS_EMPLOYEES = Guard(
    name="has_employees",
    description="Cycle covers at least one employee",
)

ALL_PAYSLIPS_PAID = Guard(
    name="all_payslips_paid",
    description="Every payslip in the cycle is paid",
)

NO_PAYSLIPS_PAID = Guard(
    name="no_payslips_paid",
    description="No payslip in the cycle has been paid",
)

NO_MISSING_PAYSLIPS = Guard(
    name="no_missing_payslips",
    description="Every eligible active employee has a payslip",
)

COUNTS_MATCH = Guard(
    name="counts_match",
    description="Cycle employee count equals its payslip count",
)

TOTALS_MATCH = Guard(
    name="totals_match",
    description="Cycle net total equals the sum of its payslips",
)


# -----------------------------------------------------------------------------
# Payroll Cycle Workflow
# -----------------------------------------------------------------------------

DRAFT = CycleStatus.DRAFT.value
REVIEW = CycleStatus.REVIEW.value
APPROVED = CycleStatus.APPROVED.value
PAID = CycleStatus.PAID.value
LOCKED = CycleStatus.LOCKED.value
CANCELLED = CycleStatus.CANCELLED.value

PAYROLL_CYCLE_WORKFLOW = Workflow(
    name="payroll_cycle",
    description="Payroll cycle processing, approval and disbursement lifecycle",
    initial_state=DRAFT,
    states=(DRAFT, REVIEW, APPROVED, PAID, LOCKED, CANCELLED),
    transitions=(
        Transition(
            DRAFT, REVIEW, action="submit_for_review", guards=(HAS_PAYSLIPS,), automatic=True,
        ),
        Transition(
            REVIEW, APPROVED, action="approve",
            guards=(HAS_EMPLOYEES, NO_MISSING_PAYSLIPS, COUNTS_MATCH, TOTALS_MATCH),
        ),
        Transition(
            APPROVED, PAID, action="mark_paid", guards=(ALL_PAYSLIPS_PAID,), automatic=True,
        ),
        Transition(DRAFT, CANCELLED, action="cancel", guards=(NO_PAYSLIPS_PAID,)),
        Transition(REVIEW, CANCELLED, action="cancel", guards=(NO_PAYSLIPS_PAID,)),
        Transition(APPROVED, CANCELLED, action="cancel", guards=(NO_PAYSLIPS_PAID,)),
        Transition(APPROVED, LOCKED, action="lock"),
        Transition(PAID, LOCKED, action="lock"),
    ),
    terminal_states=(LOCKED, CANCELLED),
)

# Payslips may be paid only while the cycle is in one of these states
PAYABLE_STATES = frozenset({APPROVED, PAID})

# Processing is refused once the cycle has reached one of these states
CLOSED_TO_PROCESSING = frozenset({PAID, LOCKED, CANCELLED})

logger.info(
    "payroll_cycle_workflow_registered",
    extra={
        "workflow_name": PAYROLL_CYCLE_WORKFLOW.name,
        "state_count": len(PAYROLL_CYCLE_WORKFLOW.states),
        "transition_count": len(PAYROLL_CYCLE_WORKFLOW.transitions),
        "initial_state": PAYROLL_CYCLE_WORKFLOW.initial_state,
    },
)
