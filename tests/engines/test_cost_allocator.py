"""
Tests for the Cost Allocator engine.

Covers:
- Exact splits and largest-remainder rounding
- Renormalization of percentages that do not total 100
- Zero, negative and inactive shares
- Negative amounts
- Reconciliation to the cent (property-based)
"""

from datetime import date
from decimal import Decimal

from hypothesis import given, settings
from hypothesis import strategies as st

from payroll_engines.allocation import AllocationShare, CostAllocator
from payroll_kernel.exceptions import ReconciliationWarning


class TestExactAllocation:
    """Shares totalling 100 percent."""

    def setup_method(self):
        self.allocator = CostAllocator()

    def test_simple_split(self):
        result = self.allocator.allocate(
            Decimal("1000.00"),
            [
                AllocationShare("PRJ-A", Decimal("70")),
                AllocationShare("PRJ-B", Decimal("30")),
            ],
        )

        assert [l.amount for l in result.lines] == [Decimal("700.00"), Decimal("300.00")]
        assert result.is_fully_allocated
        assert not result.renormalized
        assert result.warnings == ()

    def test_thirds_reconcile_to_the_cent(self):
        result = self.allocator.allocate(
            Decimal("100.00"),
            [AllocationShare(e, Decimal("33.3333")) for e in ("A", "B", "C")],
        )

        amounts = [l.amount for l in result.lines]
        assert sum(amounts) == Decimal("100.00")
        # Earlier declaration wins the tie for the leftover cent
        assert amounts == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]

    def test_single_share_takes_everything(self):
        result = self.allocator.allocate(
            Decimal("186500.00"), [AllocationShare("BLDG-1", Decimal("100"))],
        )

        assert result.lines[0].amount == Decimal("186500.00")
        assert result.lines[0].effective_percentage == Decimal("100.0000")


class TestRenormalization:
    """Relaxed percentage totals are reconciled with a warning."""

    def setup_method(self):
        self.allocator = CostAllocator()

    def test_sixty_thirty_split(self):
        result = self.allocator.allocate(
            Decimal("1000.00"),
            [
                AllocationShare("PRJ-A", Decimal("60")),
                AllocationShare("PRJ-B", Decimal("30")),
            ],
        )

        assert [l.amount for l in result.lines] == [Decimal("666.67"), Decimal("333.33")]
        assert result.total_allocated == Decimal("1000.00")
        assert result.renormalized
        assert result.lines[0].declared_percentage == Decimal("60")
        assert result.lines[0].effective_percentage == Decimal("66.6667")
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert isinstance(warning, ReconciliationWarning)
        assert warning.code == "RECONCILIATION_WARNING"
        assert warning.declared_total == "90"

    def test_all_zero_percentages_split_equally(self):
        result = self.allocator.allocate(
            Decimal("10.00"),
            [AllocationShare("A", Decimal("0")), AllocationShare("B", Decimal("0"))],
        )

        assert [l.amount for l in result.lines] == [Decimal("5.00"), Decimal("5.00")]
        assert result.renormalized

    def test_negative_percentage_counts_as_zero(self):
        result = self.allocator.allocate(
            Decimal("100.00"),
            [AllocationShare("A", Decimal("-10")), AllocationShare("B", Decimal("100"))],
        )

        assert [l.amount for l in result.lines] == [Decimal("0.00"), Decimal("100.00")]
        assert any("Negative" in str(w) for w in result.warnings)

    def test_missing_percentage_counts_as_zero(self):
        result = self.allocator.allocate(
            Decimal("100.00"),
            [AllocationShare("A", None), AllocationShare("B", Decimal("100"))],
        )

        assert [l.amount for l in result.lines] == [Decimal("0.00"), Decimal("100.00")]
        assert any("no percentage" in str(w) for w in result.warnings)


class TestEdgeCases:
    """Inactive shares, no shares and negative amounts."""

    def setup_method(self):
        self.allocator = CostAllocator()

    def test_no_shares_leaves_amount_unallocated(self):
        result = self.allocator.allocate(Decimal("500.00"), [])

        assert result.lines == ()
        assert result.unallocated == Decimal("500.00")
        assert not result.is_fully_allocated

    def test_shares_outside_period_are_ignored(self):
        shares = [
            AllocationShare("OLD", Decimal("50"), end_date=date(2025, 2, 28)),
            AllocationShare("CURRENT", Decimal("50"), start_date=date(2025, 3, 10)),
            AllocationShare("FUTURE", Decimal("50"), start_date=date(2025, 4, 1)),
        ]
        result = self.allocator.allocate(
            Decimal("900.00"), shares, date(2025, 3, 1), date(2025, 3, 31),
        )

        assert [l.entity_id for l in result.lines] == ["CURRENT"]
        assert result.lines[0].amount == Decimal("900.00")

    def test_negative_amount_keeps_sign(self):
        result = self.allocator.allocate(
            Decimal("-1000.00"),
            [AllocationShare("A", Decimal("60")), AllocationShare("B", Decimal("30"))],
        )

        assert [l.amount for l in result.lines] == [Decimal("-666.67"), Decimal("-333.33")]
        assert result.total_allocated == Decimal("-1000.00")


amounts = st.decimals(
    min_value=Decimal("-1000000"), max_value=Decimal("1000000"),
    places=2, allow_nan=False, allow_infinity=False,
)
percentages = st.decimals(
    min_value=Decimal("0"), max_value=Decimal("150"),
    places=4, allow_nan=False, allow_infinity=False,
)


class TestAllocationProperties:
    """The allocation always reconciles to the source amount."""

    @given(amount=amounts, weights=st.lists(percentages, min_size=1, max_size=8))
    @settings(max_examples=200)
    def test_lines_sum_to_amount(self, amount, weights):
        shares = [AllocationShare(f"E{i}", w) for i, w in enumerate(weights)]
        result = CostAllocator().allocate(amount, shares)

        assert sum((l.amount for l in result.lines), Decimal("0")) == amount
        assert result.unallocated == Decimal("0")
        for line in result.lines:
            assert line.amount == line.amount.quantize(Decimal("0.01"))

    @given(amount=amounts, weights=st.lists(percentages, min_size=1, max_size=8))
    @settings(max_examples=100)
    def test_deterministic(self, amount, weights):
        shares = [AllocationShare(f"E{i}", w) for i, w in enumerate(weights)]
        first = CostAllocator().allocate(amount, shares)
        second = CostAllocator().allocate(amount, shares)

        assert first.lines == second.lines
