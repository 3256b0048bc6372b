"""
Tests for the database layer.

Validates:
- session_scope commits on success and rolls back on error
- Cycle rows survive a round trip through to_dto / from_dto
- Stored money comes back normalized to two places
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.db import session_scope
from payroll_modules.cycle.models import CycleStatus, PayFrequency, PayrollCycle
from payroll_modules.cycle.orm import PayrollCycleModel

ACTOR_ID = uuid4()


def make_cycle(**overrides) -> PayrollCycle:
    fields = dict(
        id=uuid4(),
        month=3,
        year=2025,
        frequency=PayFrequency.MONTHLY,
        start_date=date(2025, 3, 1),
        end_date=date(2025, 3, 31),
        status=CycleStatus.REVIEW,
        total_employees=2,
        total_gross_salary=Decimal("310000.00"),
        total_deductions=Decimal("25200.00"),
        total_net_salary=Decimal("284800.00"),
        costs_by_entity={"PRJ-A": Decimal("110880.00")},
    )
    fields.update(overrides)
    return PayrollCycle(**fields)


class TestSessionScope:
    """Transactional scope."""

    def test_commits_on_success(self, engine, session):
        cycle = make_cycle()

        with session_scope() as scoped:
            scoped.add(PayrollCycleModel.from_dto(cycle, created_by_id=ACTOR_ID))

        assert session.get(PayrollCycleModel, cycle.id) is not None

    def test_rolls_back_on_error(self, engine, session):
        cycle = make_cycle()

        with pytest.raises(RuntimeError):
            with session_scope() as scoped:
                scoped.add(PayrollCycleModel.from_dto(cycle, created_by_id=ACTOR_ID))
                scoped.flush()
                raise RuntimeError("boom")

        assert session.get(PayrollCycleModel, cycle.id) is None


class TestCycleRoundTrip:
    """ORM conversion."""

    def test_round_trip(self, session):
        cycle = make_cycle()
        session.add(PayrollCycleModel.from_dto(cycle, created_by_id=ACTOR_ID))
        session.commit()
        session.expunge_all()

        restored = session.get(PayrollCycleModel, cycle.id).to_dto()

        assert restored.id == cycle.id
        assert restored.status == CycleStatus.REVIEW
        assert restored.frequency == PayFrequency.MONTHLY
        assert restored.total_net_salary == Decimal("284800.00")
        assert str(restored.total_net_salary) == "284800.00"
        assert restored.costs_by_entity == {"PRJ-A": Decimal("110880.00")}
        assert restored.version == 1

    def test_update_bumps_version(self, session):
        cycle = make_cycle()
        model = PayrollCycleModel.from_dto(cycle, created_by_id=ACTOR_ID)
        session.add(model)
        session.commit()

        model.apply_dto(make_cycle(id=cycle.id, status=CycleStatus.APPROVED), updated_by_id=ACTOR_ID)
        session.commit()

        assert model.version == 2
        assert model.updated_by_id == ACTOR_ID
