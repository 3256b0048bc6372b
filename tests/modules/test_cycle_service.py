"""
Tests for PayrollCycleService against a real database session.

Validates:
- Cycle creation and duplicate detection
- Processing persists payslips and the refreshed aggregate together
- Reprocessing is idempotent and picks up new joiners
- One-time salary adjustments are marked consumed with the run, or not at all
- Lifecycle guards leave rows untouched when they reject a request
- Approval refused while payslips are missing or totals disagree
- Individual and bulk payment, including the automatic move to Paid
- Version checks on payment, and concurrent payers of one cycle
- Missing-payslip detection
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import update

from payroll_engines.salary import AdjustmentType
from payroll_kernel.exceptions import (
    CycleNotFoundError,
    DuplicateCycleError,
    GuardError,
    OptimisticLockError,
    PayslipNotFoundError,
)
from payroll_modules.cycle import (
    CycleConfig,
    CycleStatus,
    PaymentDetails,
    PayrollCycleService,
    RosterSnapshot,
)
from payroll_modules.cycle.models import PayFrequency, SalaryAdjustment
from payroll_modules.cycle.orm import PayrollCycleModel, PayslipModel

ACTOR_ID = uuid4()


@pytest.fixture
def source(standard_employee, employee_factory):
    return RosterSnapshot([
        standard_employee,
        employee_factory("EMP-002", Decimal("100000")),
    ])


@pytest.fixture
def service(session, source, deterministic_clock):
    return PayrollCycleService(session, source, clock=deterministic_clock)


@pytest.fixture
def march_cycle(service):
    return service.create_cycle(CycleConfig(month=3, year=2025), actor_id=ACTOR_ID)


@pytest.fixture
def approved_cycle(service, march_cycle):
    service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
    return service.update_cycle_status(march_cycle.id, CycleStatus.APPROVED, actor_id=ACTOR_ID)


class TestCreateCycle:
    """Creating cycles."""

    def test_creates_draft_for_month(self, service, session):
        cycle = service.create_cycle(CycleConfig(month=3, year=2025), actor_id=ACTOR_ID)

        assert cycle.status == CycleStatus.DRAFT
        assert cycle.start_date == date(2025, 3, 1)
        assert cycle.end_date == date(2025, 3, 31)
        assert cycle.total_employees == 0
        assert session.get(PayrollCycleModel, cycle.id).created_by_id == ACTOR_ID

    def test_duplicate_period_rejected(self, service, march_cycle):
        with pytest.raises(DuplicateCycleError) as exc_info:
            service.create_cycle(CycleConfig(month=3, year=2025), actor_id=ACTOR_ID)

        assert exc_info.value.code == "DUPLICATE_CYCLE"

    def test_semi_monthly_halves_coexist(self, service):
        first = service.create_cycle(
            CycleConfig(month=3, year=2025, frequency=PayFrequency.SEMI_MONTHLY, half=1),
        )
        second = service.create_cycle(
            CycleConfig(month=3, year=2025, frequency=PayFrequency.SEMI_MONTHLY, half=2),
        )

        assert first.end_date == date(2025, 3, 15)
        assert second.start_date == date(2025, 3, 16)

    def test_unknown_cycle(self, service):
        with pytest.raises(CycleNotFoundError):
            service.get_cycle(uuid4())


class TestProcessCycle:
    """Processing through the service."""

    def test_persists_payslips_and_totals(self, service, march_cycle):
        result = service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)

        assert result.cycle.status == CycleStatus.REVIEW
        assert result.cycle.total_employees == 2
        # 184,800 + 100,000
        assert result.cycle.total_net_salary == Decimal("284800.00")
        assert result.cycle.costs_by_entity == {
            "PRJ-A": Decimal("110880.00"),
            "PRJ-B": Decimal("73920.00"),
        }

        stored = service.get_payslips_by_cycle(march_cycle.id)
        assert [p.employee_id for p in stored] == ["EMP-001", "EMP-002"]
        assert stored[0].net_salary == Decimal("184800.00")
        assert service.get_cycle(march_cycle.id).payslip_ids == tuple(p.id for p in stored)

    def test_reprocess_is_idempotent(self, service, march_cycle):
        first = service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        second = service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)

        assert second.payslips == ()
        assert second.summary.new_payslips_generated == 0
        assert second.summary.existing_payslips_skipped == 2
        assert second.cycle.total_net_salary == first.cycle.total_net_salary
        assert second.cycle.status == CycleStatus.REVIEW
        assert len(service.get_payslips_by_cycle(march_cycle.id)) == 2

    def test_reprocess_picks_up_new_joiner(self, service, source, march_cycle, employee_factory):
        service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        source.add_employee(employee_factory("EMP-003", Decimal("50000")))

        result = service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)

        assert [p.employee_id for p in result.payslips] == ["EMP-003"]
        assert result.summary.previous_amount == Decimal("284800.00")
        assert result.summary.new_amount_added == Decimal("50000.00")
        assert result.cycle.total_employees == 3
        assert result.cycle.total_net_salary == Decimal("334800.00")

    def test_one_time_adjustment_marked_consumed(
        self, session, deterministic_clock, march_cycle, employee_factory,
    ):
        employee = employee_factory(
            "EMP-010",
            Decimal("100000"),
            salary_adjustments=(
                SalaryAdjustment(
                    "SA-1", "EMP-010", "Relocation", Decimal("5000"),
                    AdjustmentType.EARNING, date(2025, 3, 10),
                ),
            ),
        )
        roster = RosterSnapshot([employee])
        service = PayrollCycleService(session, roster, clock=deterministic_clock)

        result = service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)

        assert result.payslips[0].net_salary == Decimal("105000.00")
        assert result.consumed_adjustment_ids == ("SA-1",)
        marked = roster.employee("EMP-010").salary_adjustments[0]
        assert marked.consumed_by_cycle_id == march_cycle.id

    def test_failed_consumption_rolls_back_run(
        self, session, deterministic_clock, march_cycle, employee_factory,
    ):
        class UnwritableRoster(RosterSnapshot):
            def mark_adjustments_consumed(self, adjustment_ids, cycle_id):
                raise RuntimeError("roster store unavailable")

        employee = employee_factory(
            "EMP-011",
            Decimal("100000"),
            salary_adjustments=(
                SalaryAdjustment(
                    "SA-2", "EMP-011", "Relocation", Decimal("5000"),
                    AdjustmentType.EARNING, date(2025, 3, 10),
                ),
            ),
        )
        roster = UnwritableRoster([employee])
        service = PayrollCycleService(session, roster, clock=deterministic_clock)

        with pytest.raises(RuntimeError, match="unavailable"):
            service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)

        assert service.get_payslips_by_cycle(march_cycle.id) == []
        cycle = service.get_cycle(march_cycle.id)
        assert cycle.status == CycleStatus.DRAFT
        assert cycle.total_employees == 0
        assert roster.employee("EMP-011").salary_adjustments[0].consumed_by_cycle_id is None

    def test_row_error_does_not_block_batch(self, session, deterministic_clock, march_cycle, employee_factory):
        roster = RosterSnapshot([
            employee_factory("EMP-020", Decimal("80000")),
            employee_factory("EMP-021", basic_salary=None),
        ])
        service = PayrollCycleService(session, roster, clock=deterministic_clock)

        result = service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)

        assert [p.employee_id for p in result.payslips] == ["EMP-020"]
        assert [e.employee_id for e in result.errors] == ["EMP-021"]
        assert result.errors[0].code == "VALIDATION_ERROR"

    def test_cancelled_cycle_refused(self, service, march_cycle):
        service.update_cycle_status(march_cycle.id, CycleStatus.CANCELLED, actor_id=ACTOR_ID)

        with pytest.raises(GuardError):
            service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        assert service.get_payslips_by_cycle(march_cycle.id) == []

    def test_completion_logged(self, service, march_cycle, captured_logs):
        service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)

        processed = [r for r in captured_logs() if r["message"] == "payroll_cycle_processed"]
        assert processed[-1]["new_payslips_generated"] == "2"
        assert processed[-1]["status"] == "Review"


class TestStatusChanges:
    """Explicit lifecycle transitions."""

    def test_approve_records_approver(self, service, approved_cycle):
        assert approved_cycle.status == CycleStatus.APPROVED
        assert approved_cycle.approved_by == ACTOR_ID
        assert approved_cycle.approved_at is not None

    def test_approve_empty_draft_rejected(self, service, march_cycle):
        with pytest.raises(GuardError):
            service.update_cycle_status(march_cycle.id, CycleStatus.APPROVED, actor_id=ACTOR_ID)

        assert service.get_cycle(march_cycle.id).status == CycleStatus.DRAFT

    def test_approval_refused_while_employee_uncovered(
        self, service, source, march_cycle, employee_factory,
    ):
        service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        source.add_employee(employee_factory("EMP-003", Decimal("50000")))

        with pytest.raises(GuardError, match="1 missing"):
            service.update_cycle_status(march_cycle.id, CycleStatus.APPROVED, actor_id=ACTOR_ID)
        assert service.get_cycle(march_cycle.id).status == CycleStatus.REVIEW

        service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        approved = service.update_cycle_status(
            march_cycle.id, CycleStatus.APPROVED, actor_id=ACTOR_ID,
        )
        assert approved.status == CycleStatus.APPROVED

    def test_approval_refused_when_stored_total_drifts(self, service, session, march_cycle):
        service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        row = session.get(PayrollCycleModel, march_cycle.id)
        row.total_net_salary = Decimal("284801.00")
        session.commit()

        with pytest.raises(GuardError, match="net total"):
            service.update_cycle_status(march_cycle.id, CycleStatus.APPROVED, actor_id=ACTOR_ID)
        assert service.get_cycle(march_cycle.id).status == CycleStatus.REVIEW

    def test_status_accepts_value_string(self, service, march_cycle):
        cancelled = service.update_cycle_status(march_cycle.id, "Cancelled", actor_id=ACTOR_ID)

        assert cancelled.status == CycleStatus.CANCELLED
        assert cancelled.cancelled_at is not None


class TestPayments:
    """Paying payslips."""

    def test_pay_rejected_before_approval(self, service, march_cycle):
        service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        payslip = service.get_payslips_by_cycle(march_cycle.id)[0]

        with pytest.raises(GuardError):
            service.pay_payslip(payslip.id, actor_id=ACTOR_ID)

        unchanged = service.get_payslips_by_cycle(march_cycle.id)[0]
        assert unchanged.is_paid is False
        assert unchanged.version == payslip.version

    def test_pay_individually_then_cycle_paid(self, service, session, approved_cycle):
        first, second = service.get_payslips_by_cycle(approved_cycle.id)

        paid = service.pay_payslip(
            first.id, PaymentDetails(reference="TRF-001"), actor_id=ACTOR_ID,
        )
        assert paid.is_paid is True
        assert paid.paid_amount == Decimal("184800.00")
        assert paid.payment_reference == "TRF-001"
        assert paid.version == first.version + 1
        assert service.get_cycle(approved_cycle.id).status == CycleStatus.APPROVED

        row = session.get(PayslipModel, first.id)
        assert row.payment_entity_id == "PRJ-A"

        service.pay_payslip(second.id, actor_id=ACTOR_ID)
        assert service.get_cycle(approved_cycle.id).status == CycleStatus.PAID

    def test_pay_twice_rejected(self, service, approved_cycle):
        payslip = service.get_payslips_by_cycle(approved_cycle.id)[0]
        service.pay_payslip(payslip.id, actor_id=ACTOR_ID)

        with pytest.raises(GuardError):
            service.pay_payslip(payslip.id, actor_id=ACTOR_ID)

    def test_stale_version_rejected(self, service, approved_cycle):
        payslip = service.get_payslips_by_cycle(approved_cycle.id)[0]

        with pytest.raises(OptimisticLockError):
            service.pay_payslip(payslip.id, expected_version=payslip.version + 5)

        assert service.get_payslips_by_cycle(approved_cycle.id)[0].is_paid is False

    def test_unknown_payslip(self, service):
        with pytest.raises(PayslipNotFoundError):
            service.pay_payslip(uuid4())

    def test_pay_all_uses_each_net_amount(self, service, approved_cycle):
        paid = service.pay_all_payslips(
            approved_cycle.id,
            PaymentDetails(amount=Decimal("1"), account_id="BANK-01"),
            actor_id=ACTOR_ID,
        )

        assert [p.paid_amount for p in paid] == [Decimal("184800.00"), Decimal("100000.00")]
        assert service.get_cycle(approved_cycle.id).status == CycleStatus.PAID

    def test_pay_all_skips_already_paid(self, service, approved_cycle):
        first = service.get_payslips_by_cycle(approved_cycle.id)[0]
        service.pay_payslip(first.id, actor_id=ACTOR_ID)

        paid = service.pay_all_payslips(approved_cycle.id, actor_id=ACTOR_ID)

        assert [p.employee_id for p in paid] == ["EMP-002"]

    def test_every_payment_writes_the_cycle_row(self, service, approved_cycle):
        first = service.get_payslips_by_cycle(approved_cycle.id)[0]

        service.pay_payslip(first.id, actor_id=ACTOR_ID)

        cycle = service.get_cycle(approved_cycle.id)
        assert cycle.status == CycleStatus.APPROVED
        assert cycle.version == approved_cycle.version + 1

    def test_concurrent_payer_on_same_cycle_rejected(
        self, service, session, approved_cycle, monkeypatch,
    ):
        first = service.get_payslips_by_cycle(approved_cycle.id)[0]
        pay_row = service._pay_row
        cycles = PayrollCycleModel.__table__

        def pay_while_another_payer_commits(*args, **kwargs):
            pay_row(*args, **kwargs)
            session.execute(
                update(cycles)
                .where(cycles.c.id == approved_cycle.id)
                .values(version=cycles.c.version + 1)
            )

        monkeypatch.setattr(service, "_pay_row", pay_while_another_payer_commits)

        with pytest.raises(OptimisticLockError):
            service.pay_payslip(first.id, actor_id=ACTOR_ID)
        assert service.get_payslips_by_cycle(approved_cycle.id)[0].is_paid is False

    def test_cancel_after_payment_rejected(self, service, approved_cycle):
        first = service.get_payslips_by_cycle(approved_cycle.id)[0]
        service.pay_payslip(first.id, actor_id=ACTOR_ID)

        with pytest.raises(GuardError):
            service.update_cycle_status(approved_cycle.id, CycleStatus.CANCELLED)
        assert service.get_cycle(approved_cycle.id).status == CycleStatus.APPROVED


class TestMissingPayslips:
    """Detecting employees a cycle has not covered."""

    def test_reports_gaps_per_cycle(self, service, source, march_cycle, employee_factory):
        service.process_cycle(march_cycle.id, actor_id=ACTOR_ID)
        assert service.find_missing_payslips() == {}

        source.add_employee(employee_factory("EMP-003", Decimal("50000")))

        assert service.find_missing_payslips() == {march_cycle.id: ("EMP-003",)}

    def test_cancelled_cycles_ignored(self, service, march_cycle):
        service.update_cycle_status(march_cycle.id, CycleStatus.CANCELLED, actor_id=ACTOR_ID)

        assert service.find_missing_payslips() == {}
