"""
Payroll Cycle ORM Persistence Models (``payroll_modules.cycle.orm``).

Responsibility:
    SQLAlchemy ORM models that persist the frozen dataclass DTOs defined in
    ``payroll_modules.cycle.models``.  Each ORM class mirrors a DTO and
    provides ``to_dto()`` / ``from_dto()`` round-trip conversion, plus
    ``apply_dto()`` to write an updated DTO back onto a loaded row.

Architecture position:
    **Modules layer** -- persistence companions to the pure DTO models.
    Inherits from ``TrackedBase`` (kernel DB base) which provides:
    id (UUID PK, auto-generated), created_at, updated_at,
    created_by_id (NOT NULL UUID), updated_by_id (nullable UUID).

Invariants enforced:
    - All monetary fields use Decimal (maps to Numeric(38,9)) -- NEVER float.
    - Enum fields stored as String(50) containing the enum .value string.
    - One payslip per employee per cycle (uq_payroll_payslip_cycle_employee).
    - One cycle per period: month, year, frequency and start date
      (uq_payroll_cycle_period).  Semi-monthly halves share a month.
    - Both tables carry a ``version`` column used as the mapper's
      ``version_id_col``; a stale UPDATE raises StaleDataError.
    - Itemised lines, allocations and attendance traces are JSON documents
      with Decimals stored as strings.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_engines.attendance import AttendanceDay
from payroll_engines.salary import LineKind, PayslipLine
from payroll_kernel.db.base import TrackedBase
from payroll_kernel.db.types import round_money


def _dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def _money(value: Decimal | None) -> Decimal:
    """Normalize a stored Numeric(38, 9) value back to cents."""
    return round_money(Decimal(value or 0))


# ---------------------------------------------------------------------------
# PayrollCycleModel
# ---------------------------------------------------------------------------


class PayrollCycleModel(TrackedBase):
    """
    ORM model for ``PayrollCycle`` -- a payroll run for one pay period.

    Guarantees:
        - ``(month, year, frequency, start_date)`` is unique.
        - ``status`` and ``frequency`` store enum .value strings.
        - ``version`` increments on every UPDATE.
    """

    __tablename__ = "payroll_cycles"

    month: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="Draft")
    description: Mapped[str] = mapped_column(String(4000), nullable=False, default="")
    total_employees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_gross_salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total_net_salary: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    costs_by_entity: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    approved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    payslips: Mapped[list["PayslipModel"]] = relationship(
        back_populates="cycle",
        order_by="PayslipModel.created_at",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint(
            "month", "year", "frequency", "start_date",
            name="uq_payroll_cycle_period",
        ),
        Index("idx_payroll_cycle_status", "status"),
    )

    def to_dto(self, payslip_ids: tuple[UUID, ...] = ()):
        from payroll_modules.cycle.models import CycleStatus, PayFrequency, PayrollCycle
        return PayrollCycle(
            id=self.id,
            month=self.month,
            year=self.year,
            frequency=PayFrequency(self.frequency),
            start_date=self.start_date,
            end_date=self.end_date,
            pay_date=self.pay_date,
            status=CycleStatus(self.status),
            payslip_ids=payslip_ids,
            total_employees=self.total_employees,
            total_gross_salary=_money(self.total_gross_salary),
            total_deductions=_money(self.total_deductions),
            total_net_salary=_money(self.total_net_salary),
            costs_by_entity={k: Decimal(v) for k, v in (self.costs_by_entity or {}).items()},
            version=self.version,
            description=self.description,
            approved_by=self.approved_by_id,
            approved_at=self.approved_at,
            paid_at=self.paid_at,
            locked_at=self.locked_at,
            cancelled_at=self.cancelled_at,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PayrollCycleModel":
        model = cls(
            id=dto.id,
            month=dto.month,
            year=dto.year,
            frequency=dto.frequency.value,
            start_date=dto.start_date,
            end_date=dto.end_date,
            pay_date=dto.pay_date,
            created_by_id=created_by_id,
        )
        model.apply_dto(dto)
        return model

    def apply_dto(self, dto, updated_by_id: UUID | None = None) -> None:
        """Copy the mutable fields of ``dto`` onto this row."""
        self.status = dto.status.value
        self.description = dto.description
        self.total_employees = dto.total_employees
        self.total_gross_salary = dto.total_gross_salary
        self.total_deductions = dto.total_deductions
        self.total_net_salary = dto.total_net_salary
        self.costs_by_entity = {k: str(v) for k, v in dto.costs_by_entity.items()}
        self.approved_by_id = dto.approved_by
        self.approved_at = dto.approved_at
        self.paid_at = dto.paid_at
        self.locked_at = dto.locked_at
        self.cancelled_at = dto.cancelled_at
        if updated_by_id is not None:
            self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return (
            f"<PayrollCycleModel {self.year}-{self.month:02d} "
            f"{self.frequency} ({self.status})>"
        )


# ---------------------------------------------------------------------------
# PayslipModel
# ---------------------------------------------------------------------------


class PayslipModel(TrackedBase):
    """
    ORM model for ``Payslip`` -- one employee's pay within one cycle.

    Guarantees:
        - ``(cycle_id, employee_id)`` is unique.
        - ``version`` increments on every UPDATE (payment).
    """

    __tablename__ = "payroll_payslips"

    cycle_id: Mapped[UUID] = mapped_column(ForeignKey("payroll_cycles.id"), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    basic_salary: Mapped[Decimal] = mapped_column(nullable=False)
    total_allowances: Mapped[Decimal] = mapped_column(nullable=False)
    earning_adjustments: Mapped[Decimal] = mapped_column(nullable=False)
    deduction_adjustments: Mapped[Decimal] = mapped_column(nullable=False)
    gross_salary: Mapped[Decimal] = mapped_column(nullable=False)
    standard_gross: Mapped[Decimal] = mapped_column(nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(nullable=False)
    total_tax: Mapped[Decimal] = mapped_column(nullable=False)
    total_statutory: Mapped[Decimal] = mapped_column(nullable=False)
    net_salary: Mapped[Decimal] = mapped_column(nullable=False)
    proration_factor: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("1"))
    cost_allocations: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    lines: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    attendance: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)
    is_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    payment_account_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_entity_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payment_description: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    cycle: Mapped[PayrollCycleModel] = relationship(back_populates="payslips")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("cycle_id", "employee_id", name="uq_payroll_payslip_cycle_employee"),
        Index("idx_payroll_payslip_cycle", "cycle_id"),
        Index("idx_payroll_payslip_paid", "cycle_id", "is_paid"),
    )

    def to_dto(self):
        from payroll_modules.cycle.models import CostAllocation, Payslip
        return Payslip(
            id=self.id,
            employee_id=self.employee_id,
            cycle_id=self.cycle_id,
            employee_name=self.employee_name,
            basic_salary=_money(self.basic_salary),
            total_allowances=_money(self.total_allowances),
            earning_adjustments=_money(self.earning_adjustments),
            deduction_adjustments=_money(self.deduction_adjustments),
            gross_salary=_money(self.gross_salary),
            standard_gross=_money(self.standard_gross),
            total_deductions=_money(self.total_deductions),
            total_tax=_money(self.total_tax),
            total_statutory=_money(self.total_statutory),
            net_salary=_money(self.net_salary),
            proration_factor=Decimal(self.proration_factor).normalize(),
            cost_allocations=tuple(
                CostAllocation(entity_id=a["entity_id"], net_amount=Decimal(a["net_amount"]))
                for a in self.cost_allocations or ()
            ),
            lines=tuple(
                PayslipLine(
                    kind=LineKind(line["kind"]),
                    name=line["name"],
                    amount=Decimal(line["amount"]),
                    rate=_dec(line.get("rate")),
                    source_id=line.get("source_id"),
                )
                for line in self.lines or ()
            ),
            attendance=tuple(
                AttendanceDay(
                    date=date.fromisoformat(day["date"]),
                    status=day["status"],
                    multiplier=Decimal(day["multiplier"]),
                    lost_fraction=Decimal(day["lost_fraction"]),
                    amount=Decimal(day["amount"]),
                )
                for day in self.attendance or ()
            ),
            is_paid=self.is_paid,
            paid_at=self.paid_at,
            paid_amount=_money(self.paid_amount) if self.paid_amount is not None else None,
            payment_reference=self.payment_reference,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto, created_by_id: UUID) -> "PayslipModel":
        return cls(
            id=dto.id,
            cycle_id=dto.cycle_id,
            employee_id=dto.employee_id,
            employee_name=dto.employee_name,
            basic_salary=dto.basic_salary,
            total_allowances=dto.total_allowances,
            earning_adjustments=dto.earning_adjustments,
            deduction_adjustments=dto.deduction_adjustments,
            gross_salary=dto.gross_salary,
            standard_gross=dto.standard_gross,
            total_deductions=dto.total_deductions,
            total_tax=dto.total_tax,
            total_statutory=dto.total_statutory,
            net_salary=dto.net_salary,
            proration_factor=dto.proration_factor,
            cost_allocations=[
                {"entity_id": a.entity_id, "net_amount": str(a.net_amount)}
                for a in dto.cost_allocations
            ],
            lines=[
                {
                    "kind": line.kind.value,
                    "name": line.name,
                    "amount": str(line.amount),
                    "rate": str(line.rate) if line.rate is not None else None,
                    "source_id": line.source_id,
                }
                for line in dto.lines
            ],
            attendance=[
                {
                    "date": day.date.isoformat(),
                    "status": day.status,
                    "multiplier": str(day.multiplier),
                    "lost_fraction": str(day.lost_fraction),
                    "amount": str(day.amount),
                }
                for day in dto.attendance
            ],
            is_paid=dto.is_paid,
            paid_at=dto.paid_at,
            paid_amount=dto.paid_amount,
            payment_reference=dto.payment_reference,
            created_by_id=created_by_id,
        )

    def record_payment(
        self,
        dto,
        details,
        updated_by_id: UUID | None = None,
    ) -> None:
        """Copy the payment fields of a paid ``dto`` onto this row."""
        self.is_paid = dto.is_paid
        self.paid_at = dto.paid_at
        self.paid_amount = dto.paid_amount
        self.payment_reference = dto.payment_reference
        self.payment_account_id = details.account_id
        self.payment_entity_id = details.entity_id
        self.payment_description = details.description
        if updated_by_id is not None:
            self.updated_by_id = updated_by_id

    def __repr__(self) -> str:
        return (
            f"<PayslipModel {self.employee_id} cycle={self.cycle_id} "
            f"net={self.net_salary} paid={self.is_paid}>"
        )
