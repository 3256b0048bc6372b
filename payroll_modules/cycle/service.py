"""
Payroll Cycle Service (``payroll_modules.cycle.service``).

Responsibility
--------------
The operations callers use to run payroll: create a cycle, process it
against the roster, move it through its lifecycle, pay payslips and
inspect the result.  Loading inputs from the ``PayrollDataSource`` and
persisting through the ORM happen here; every calculation is delegated to
``CycleProcessor`` and ``CycleLifecycle``.

Architecture position
---------------------
**Modules layer** -- thin glue around the pure core.  ``PayrollCycleService``
is the sole public entry point for cycle operations.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``commit`` on success,
  ``rollback`` on exception).
* A processing run persists its payslips and the refreshed cycle
  aggregate together or not at all.
* Cycle and payslip rows are versioned; a concurrent write surfaces as
  ``OptimisticLockError`` instead of silently overwriting.
* One-time salary adjustments are marked consumed inside the run that
  applied them; if marking fails, the run is rolled back.
* Every payment writes the cycle row, so concurrent payers of one cycle
  conflict on its version instead of both missing the move to Paid.

Failure modes
-------------
* ``CycleNotFoundError`` / ``PayslipNotFoundError`` for unknown ids.
* ``DuplicateCycleError`` when a cycle already covers the period.
* ``GuardError`` for lifecycle violations; nothing is written.
* ``OptimisticLockError`` on a stale version.
* Unexpected exception  -> session rolled back, exception re-raised.

Audit relevance
---------------
Structured log events at operation start and commit for every public
method, carrying cycle ids, payslip ids, statuses and amounts.  Rows carry
``created_by_id`` / ``updated_by_id`` of the acting user.

Usage::

    service = PayrollCycleService(session, RosterSnapshot(employees), clock=clock)
    cycle = service.create_cycle(CycleConfig(month=3, year=2025), actor_id=actor)
    result = service.process_cycle(cycle.id, actor_id=actor)
    service.update_cycle_status(cycle.id, CycleStatus.APPROVED, actor_id=actor)
    service.pay_all_payslips(cycle.id, actor_id=actor)
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.exceptions import (
    CycleNotFoundError,
    DuplicateCycleError,
    OptimisticLockError,
    PayslipNotFoundError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_modules.cycle.config import PayrollConfig
from payroll_modules.cycle.lifecycle import CycleLifecycle
from payroll_modules.cycle.models import (
    CycleConfig,
    CycleStatus,
    Employee,
    PaymentDetails,
    PayrollCycle,
    Payslip,
    ProcessingResult,
)
from payroll_modules.cycle.orm import PayrollCycleModel, PayslipModel
from payroll_modules.cycle.processor import CycleProcessor
from payroll_modules.cycle.sources import PayrollDataSource

logger = get_logger("modules.cycle.service")

# Actor recorded on rows written without an authenticated user (batch jobs).
SYSTEM_ACTOR_ID = UUID(int=0)


class PayrollCycleService:
    """
    Orchestrates payroll cycle operations.

    Contract:
        Every public method commits on success and rolls back on failure.
        Returned objects are frozen DTOs, detached from the session.
    """

    def __init__(
        self,
        session: Session,
        data_source: PayrollDataSource,
        config: PayrollConfig | None = None,
        clock: Clock | None = None,
        tenant_id: str = "default",
    ):
        self._session = session
        self._source = data_source
        self._config = config or PayrollConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._tenant_id = tenant_id
        self._lifecycle = CycleLifecycle(clock=self._clock)
        self._processor = CycleProcessor(self._config, lifecycle=self._lifecycle)

    # =========================================================================
    # Cycles
    # =========================================================================

    def create_cycle(
        self,
        config: CycleConfig,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> PayrollCycle:
        """Create a Draft cycle for the configured period."""
        try:
            start, end = config.period()
            existing = self._session.scalars(
                select(PayrollCycleModel).where(
                    PayrollCycleModel.month == config.month,
                    PayrollCycleModel.year == config.year,
                    PayrollCycleModel.frequency == config.frequency.value,
                    PayrollCycleModel.start_date == start,
                )
            ).first()
            if existing is not None:
                raise DuplicateCycleError(
                    config.month, config.year, config.frequency.value, str(existing.id),
                )

            cycle = PayrollCycle(
                id=uuid4(),
                month=config.month,
                year=config.year,
                frequency=config.frequency,
                start_date=start,
                end_date=end,
                pay_date=config.pay_date,
                description=config.description,
            )
            model = PayrollCycleModel.from_dto(cycle, created_by_id=actor_id)
            self._session.add(model)
            self._session.flush()
            created = model.to_dto()
            self._session.commit()

            logger.info("payroll_cycle_created", extra={
                "cycle_id": str(created.id),
                "month": created.month_key,
                "frequency": created.frequency.value,
                "start_date": created.start_date.isoformat(),
                "end_date": created.end_date.isoformat(),
            })
            return created

        except Exception:
            self._session.rollback()
            raise

    def get_cycle(self, cycle_id: UUID) -> PayrollCycle:
        model = self._load_cycle(cycle_id)
        return model.to_dto(tuple(p.id for p in self._payslip_rows(cycle_id)))

    def update_cycle_status(
        self,
        cycle_id: UUID,
        next_status: CycleStatus | str,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> PayrollCycle:
        """Apply an explicit lifecycle transition, or raise ``GuardError``."""
        target = CycleStatus(next_status)
        try:
            with LogContext.bind(cycle_id=str(cycle_id), actor_id=str(actor_id)):
                model = self._load_cycle(cycle_id)
                payslips = [row.to_dto() for row in self._payslip_rows(cycle_id)]
                cycle = model.to_dto(tuple(p.id for p in payslips))

                missing: tuple[str, ...] = ()
                if target == CycleStatus.APPROVED:
                    employees = self._source.get_active_employees(self._tenant_id)
                    covered = {p.employee_id for p in payslips}
                    missing = self._uncovered(cycle, employees, covered)

                updated = self._lifecycle.transition(
                    cycle, target, payslips, actor_id, missing_employee_ids=missing,
                )

                model.apply_dto(updated, updated_by_id=actor_id)
                self._session.flush()
                result = model.to_dto(cycle.payslip_ids)
                self._session.commit()
                return result

        except StaleDataError as exc:
            self._session.rollback()
            raise OptimisticLockError("PayrollCycle", str(cycle_id)) from exc
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Processing
    # =========================================================================

    def process_cycle(
        self,
        cycle_id: UUID,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> ProcessingResult:
        """
        Generate payslips for eligible employees that do not have one yet.

        Safe to call repeatedly: employees already covered are skipped and
        the cycle totals are recomputed over all payslips.
        """
        try:
            with LogContext.bind(cycle_id=str(cycle_id), actor_id=str(actor_id)):
                model = self._load_cycle(cycle_id)
                existing = [row.to_dto() for row in self._payslip_rows(cycle_id)]
                cycle = model.to_dto(tuple(p.id for p in existing))

                employees = self._source.get_active_employees(self._tenant_id)
                bonuses = self._source.get_bonuses(self._tenant_id, month=cycle.month_key)
                adjustments = self._source.get_adjustments(
                    self._tenant_id, month=cycle.month_key,
                )
                attendance = self._source.get_attendance(
                    self._tenant_id, cycle.start_date, cycle.end_date,
                )

                result = self._processor.process_cycle(
                    cycle,
                    employees,
                    bonuses=bonuses,
                    adjustments=adjustments,
                    attendance=attendance,
                    existing_payslips=existing,
                )

                rows = [
                    PayslipModel.from_dto(payslip, created_by_id=actor_id)
                    for payslip in result.payslips
                ]
                self._session.add_all(rows)
                model.apply_dto(result.cycle, updated_by_id=actor_id)
                self._session.flush()

                persisted = replace(
                    result,
                    cycle=model.to_dto(result.cycle.payslip_ids),
                    payslips=tuple(row.to_dto() for row in rows),
                )
                if result.consumed_adjustment_ids:
                    self._source.mark_adjustments_consumed(
                        result.consumed_adjustment_ids, cycle_id,
                    )
                self._session.commit()

                logger.info("payroll_cycle_processed", extra={
                    "cycle_id": str(cycle_id),
                    "status": persisted.cycle.status.value,
                    **{k: str(v) for k, v in persisted.processing_summary.items()},
                })
                return persisted

        except StaleDataError as exc:
            self._session.rollback()
            raise OptimisticLockError("PayrollCycle", str(cycle_id)) from exc
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Payments
    # =========================================================================

    def pay_payslip(
        self,
        payslip_id: UUID,
        payment_details: PaymentDetails | None = None,
        expected_version: int | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> Payslip:
        """
        Pay one payslip.  Moves the cycle to Paid when it was the last one.

        Raises:
            GuardError: Cycle not Approved/Paid, or payslip already paid.
            OptimisticLockError: ``expected_version`` does not match.
        """
        try:
            with LogContext.bind(payslip_id=str(payslip_id), actor_id=str(actor_id)):
                row = self._session.get(PayslipModel, payslip_id)
                if row is None:
                    raise PayslipNotFoundError(str(payslip_id))
                if expected_version is not None and row.version != expected_version:
                    raise OptimisticLockError("Payslip", str(payslip_id))

                cycle_model = self._load_cycle(row.cycle_id)
                cycle = cycle_model.to_dto()
                self._pay_row(cycle, row, payment_details, actor_id)
                self._settle_cycle(cycle_model, actor_id)

                self._session.flush()
                paid = row.to_dto()
                self._session.commit()
                return paid

        except StaleDataError as exc:
            self._session.rollback()
            raise OptimisticLockError("Payslip", str(payslip_id)) from exc
        except Exception:
            self._session.rollback()
            raise

    def pay_all_payslips(
        self,
        cycle_id: UUID,
        payment_details: PaymentDetails | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> list[Payslip]:
        """
        Pay every unpaid payslip of the cycle, then move it to Paid.

        Each payslip is paid its own net amount; ``payment_details.amount``
        is ignored.  All payments commit together or not at all.
        """
        try:
            with LogContext.bind(cycle_id=str(cycle_id), actor_id=str(actor_id)):
                cycle_model = self._load_cycle(cycle_id)
                cycle = cycle_model.to_dto()
                shared = replace(payment_details or PaymentDetails(), amount=None)

                paid_rows = []
                for row in self._payslip_rows(cycle_id):
                    if row.is_paid:
                        continue
                    self._pay_row(cycle, row, shared, actor_id)
                    paid_rows.append(row)
                self._settle_cycle(cycle_model, actor_id)

                self._session.flush()
                paid = [row.to_dto() for row in paid_rows]
                self._session.commit()

                logger.info("payroll_cycle_bulk_paid", extra={
                    "cycle_id": str(cycle_id),
                    "paid_count": len(paid),
                    "status": cycle_model.status,
                })
                return paid

        except StaleDataError as exc:
            self._session.rollback()
            raise OptimisticLockError("PayrollCycle", str(cycle_id)) from exc
        except Exception:
            self._session.rollback()
            raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_payslips_by_cycle(self, cycle_id: UUID) -> list[Payslip]:
        self._load_cycle(cycle_id)
        return [row.to_dto() for row in self._payslip_rows(cycle_id)]

    def find_missing_payslips(self) -> dict[UUID, tuple[str, ...]]:
        """Eligible employees without a payslip, per non-cancelled cycle.

        Cycles with nothing missing are left out.
        """
        employees = self._source.get_active_employees(self._tenant_id)
        missing: dict[UUID, tuple[str, ...]] = {}
        cycles = self._session.scalars(
            select(PayrollCycleModel).where(
                PayrollCycleModel.status != CycleStatus.CANCELLED.value
            ).order_by(PayrollCycleModel.start_date)
        ).all()
        for cycle in cycles:
            covered = {row.employee_id for row in self._payslip_rows(cycle.id)}
            absent = self._uncovered(cycle, employees, covered)
            if absent:
                missing[cycle.id] = absent

        logger.info("missing_payslips_scanned", extra={
            "cycles_scanned": len(cycles),
            "cycles_with_gaps": len(missing),
            "missing_total": sum(len(ids) for ids in missing.values()),
        })
        return missing

    # =========================================================================
    # Internals
    # =========================================================================

    def _load_cycle(self, cycle_id: UUID) -> PayrollCycleModel:
        model = self._session.get(PayrollCycleModel, cycle_id)
        if model is None:
            raise CycleNotFoundError(str(cycle_id))
        return model

    def _payslip_rows(self, cycle_id: UUID) -> list[PayslipModel]:
        return list(self._session.scalars(
            select(PayslipModel)
            .where(PayslipModel.cycle_id == cycle_id)
            .order_by(PayslipModel.employee_id)
        ).all())

    @staticmethod
    def _uncovered(
        cycle: PayrollCycle | PayrollCycleModel,
        employees: Sequence[Employee],
        covered: set[str],
    ) -> tuple[str, ...]:
        """Eligible employees of the cycle's period with no payslip."""
        return tuple(
            e.id for e in employees
            if e.id not in covered and e.is_eligible(cycle.start_date, cycle.end_date)
        )

    def _pay_row(
        self,
        cycle: PayrollCycle,
        row: PayslipModel,
        details: PaymentDetails | None,
        actor_id: UUID,
    ) -> None:
        payslip = row.to_dto()
        details = self._complete_details(payslip, details or PaymentDetails())
        paid = self._lifecycle.pay(cycle, payslip, details)
        row.record_payment(paid, details, updated_by_id=actor_id)
        logger.info("payslip_paid", extra={
            "payslip_id": str(payslip.id),
            "employee_id": payslip.employee_id,
            "cycle_id": str(cycle.id),
            "amount": str(paid.paid_amount),
            "entity_id": details.entity_id,
        })

    def _settle_cycle(self, cycle_model: PayrollCycleModel, actor_id: UUID) -> None:
        """Move the cycle to Paid when nothing is left unpaid.

        The cycle row is written either way, bumping its version.
        """
        self._session.flush()
        payslips = [row.to_dto() for row in self._payslip_rows(cycle_model.id)]
        cycle = cycle_model.to_dto(tuple(p.id for p in payslips))
        settled = self._lifecycle.after_payment(cycle, payslips)
        if settled is not cycle:
            cycle_model.apply_dto(settled, updated_by_id=actor_id)
        else:
            cycle_model.updated_by_id = actor_id
            flag_modified(cycle_model, "updated_by_id")

    def _complete_details(self, payslip: Payslip, details: PaymentDetails) -> PaymentDetails:
        """Fill the paying account and charged entity where not given."""
        account_id = details.account_id or self._config.default_payment_account_id
        entity_id = details.entity_id
        if entity_id is None and payslip.cost_allocations:
            # First of the largest shares
            largest = max(a.net_amount for a in payslip.cost_allocations)
            entity_id = next(
                a.entity_id for a in payslip.cost_allocations if a.net_amount == largest
            )
        return replace(details, account_id=account_id, entity_id=entity_id)
