"""
Tests for SubLedgerService.

These tests verify that:
- Allocation reserves on the source envelope in the same transaction
- Deductions move both the sub-ledger and its envelope, or neither
- available_amount == allocated_amount - disbursed_amount after every write
- Status follows availability (active ⇄ depleted) and the expiry sweep
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from aid.exceptions import ImmutableRecordError
from aid.ledger.exceptions import BudgetNotFound, InsufficientFunds, InvalidAmount, StaleReference
from aid.ledger.services import SubLedgerService
from aid.models import BudgetAllocation, PartnerSchoolBudget
from aid.state_machines import SubLedgerStatus
from aid.tests.factories import PartnerSchoolBudgetFactory
from core.exceptions import ConflictError


def _budget(budget) -> PartnerSchoolBudget:
    return PartnerSchoolBudget.objects.get(pk=budget.pk)


def _envelope(envelope) -> BudgetAllocation:
    return BudgetAllocation.all_objects.get(pk=envelope.pk)


def _assert_balanced(budget):
    budget = _budget(budget)
    assert budget.available_amount == budget.allocated_amount - budget.disbursed_amount
    assert budget.allocated_amount >= 0
    assert budget.disbursed_amount >= 0


# =============================================================================
# allocate
# =============================================================================


class TestAllocate:
    """Creating sub-ledgers."""

    def test_reserves_on_source_envelope(self, envelope, linked_budget):
        """A 50,000 allocation reserves 50,000 on the envelope."""
        assert linked_budget.allocated_amount == Decimal("50000.00")
        assert linked_budget.status == SubLedgerStatus.ACTIVE
        assert linked_budget.source_budget_id == envelope.id
        assert _envelope(envelope).allocated_budget == Decimal("50000.00")

    def test_duplicate_school_year_is_refused(self, envelope, linked_budget):
        """Only one sub-ledger per school and academic year."""
        with pytest.raises(ConflictError) as exc_info:
            SubLedgerService.allocate(
                school_id=42,
                school_name="Quezon City Science High School",
                academic_year="2025-2026",
                allocated_amount=Decimal("1000"),
                allocation_date=timezone.now(),
                source_budget_id=envelope.id,
            )

        assert exc_info.value.error_code == "DUPLICATE_BUDGET"
        assert _envelope(envelope).allocated_budget == Decimal("50000.00")

    def test_insufficient_envelope_creates_nothing(self, envelope):
        """An envelope that cannot cover the allocation leaves no sub-ledger behind."""
        with pytest.raises(InsufficientFunds) as exc_info:
            SubLedgerService.allocate(
                school_id=99,
                school_name="Davao City National High School",
                academic_year="2025-2026",
                allocated_amount=Decimal("1500000"),
                allocation_date=timezone.now(),
                source_budget_id=envelope.id,
            )

        assert exc_info.value.message == "Insufficient funds in source budget"
        assert not PartnerSchoolBudget.objects.filter(school_id=99).exists()
        assert _envelope(envelope).allocated_budget == Decimal("0.00")

    def test_unknown_source_envelope(self, db):
        with pytest.raises(BudgetNotFound):
            SubLedgerService.allocate(
                school_id=99,
                school_name="Davao City National High School",
                academic_year="2025-2026",
                allocated_amount=Decimal("1000"),
                allocation_date=timezone.now(),
                source_budget_id=424242,
            )

    def test_allocation_without_envelope(self, user):
        """Sub-ledgers may be funded without a source envelope."""
        budget = SubLedgerService.allocate(
            school_id=99,
            school_name="Davao City National High School",
            academic_year="2025-2026",
            allocated_amount="2500.50",
            allocation_date=timezone.now(),
            notes="Initial allocation",
            user=user,
        )

        assert budget.source_budget is None
        assert budget.allocated_amount == Decimal("2500.50")
        assert budget.notes == "Initial allocation"
        assert budget.allocated_by == user

    def test_sub_ledgers_cannot_be_deleted(self, standalone_budget):
        with pytest.raises(ImmutableRecordError):
            standalone_budget.delete()

        assert PartnerSchoolBudget.objects.filter(pk=standalone_budget.pk).exists()


# =============================================================================
# deduct / refund
# =============================================================================


class TestDeduct:
    """Spending from a sub-ledger."""

    def test_deduct_moves_sub_ledger_and_envelope(self, envelope, linked_budget):
        """Deducting 20,000 from a 50,000 allocation leaves 30,000 available."""
        SubLedgerService.deduct(linked_budget.id, Decimal("20000"))

        budget = _budget(linked_budget)
        assert budget.disbursed_amount == Decimal("20000.00")
        assert budget.available_amount == Decimal("30000.00")
        assert budget.status == SubLedgerStatus.ACTIVE

        envelope = _envelope(envelope)
        assert envelope.allocated_budget == Decimal("50000.00")
        assert envelope.disbursed_budget == Decimal("20000.00")
        _assert_balanced(linked_budget)

    def test_over_deduct_changes_nothing(self, envelope, linked_budget):
        """A deduction larger than availability leaves both rows untouched."""
        SubLedgerService.deduct(linked_budget.id, Decimal("45000"))

        with pytest.raises(InsufficientFunds) as exc_info:
            SubLedgerService.deduct(linked_budget.id, Decimal("6000"))

        assert exc_info.value.available == Decimal("5000.00")
        assert exc_info.value.shortfall == Decimal("1000.00")
        assert _budget(linked_budget).disbursed_amount == Decimal("45000.00")
        assert _envelope(envelope).disbursed_budget == Decimal("45000.00")

    def test_raised_allocation_cannot_overdraw_envelope(self, envelope, linked_budget):
        """The envelope caps a sub-ledger whose allocation outgrew it."""
        SubLedgerService.adjust_allocation(linked_budget.id, Decimal("1200000"))

        with pytest.raises(InsufficientFunds) as exc_info:
            SubLedgerService.deduct(linked_budget.id, Decimal("1100000"))

        assert exc_info.value.ledger == "budget_allocation"
        assert exc_info.value.available == Decimal("1000000.00")
        assert _budget(linked_budget).disbursed_amount == Decimal("0.00")
        assert _envelope(envelope).disbursed_budget == Decimal("0.00")

    def test_expired_budget_refused_when_asked(self, standalone_budget):
        standalone_budget.status = SubLedgerStatus.EXPIRED
        standalone_budget.save(update_fields=["status"])

        with pytest.raises(InsufficientFunds) as exc_info:
            SubLedgerService.deduct(standalone_budget.id, Decimal("100"), refuse_expired=True)

        assert exc_info.value.available == Decimal("0.00")
        assert _budget(standalone_budget).disbursed_amount == Decimal("0.00")

    def test_deduct_to_zero_depletes(self, standalone_budget):
        budget = SubLedgerService.deduct(standalone_budget.id, Decimal("10000"))

        assert budget.status == SubLedgerStatus.DEPLETED
        assert _budget(standalone_budget).status == SubLedgerStatus.DEPLETED

    def test_deleted_source_envelope_refuses_deduction(self, envelope, linked_budget):
        """A sub-ledger pointing at a soft-deleted envelope cannot be charged."""
        envelope.soft_delete()

        with pytest.raises(StaleReference):
            SubLedgerService.deduct(linked_budget.id, Decimal("100"))

        assert _budget(linked_budget).disbursed_amount == Decimal("0.00")

    def test_unknown_sub_ledger(self, db):
        with pytest.raises(BudgetNotFound):
            SubLedgerService.deduct(424242, Decimal("100"))


class TestRefund:
    """Returning funds to a sub-ledger."""

    def test_refund_reverses_deduct(self, envelope, linked_budget):
        SubLedgerService.deduct(linked_budget.id, Decimal("20000"))
        SubLedgerService.refund(linked_budget.id, Decimal("20000"))

        assert _budget(linked_budget).disbursed_amount == Decimal("0.00")
        assert _envelope(envelope).disbursed_budget == Decimal("0.00")
        _assert_balanced(linked_budget)

    def test_refund_reactivates_depleted_budget(self, standalone_budget):
        SubLedgerService.deduct(standalone_budget.id, Decimal("10000"))

        budget = SubLedgerService.refund(standalone_budget.id, Decimal("2500"))

        assert budget.status == SubLedgerStatus.ACTIVE
        assert budget.available_amount == Decimal("2500.00")

    def test_refund_more_than_disbursed_is_refused(self, standalone_budget):
        SubLedgerService.deduct(standalone_budget.id, Decimal("1000"))

        with pytest.raises(InvalidAmount):
            SubLedgerService.refund(standalone_budget.id, Decimal("1000.01"))

        assert _budget(standalone_budget).disbursed_amount == Decimal("1000.00")

    def test_refund_allowed_after_envelope_deleted(self, envelope, linked_budget):
        """Refunds still land when the source envelope was soft deleted."""
        SubLedgerService.deduct(linked_budget.id, Decimal("5000"))
        envelope.soft_delete()

        SubLedgerService.refund(linked_budget.id, Decimal("5000"))

        assert _budget(linked_budget).disbursed_amount == Decimal("0.00")
        assert _envelope(envelope).disbursed_budget == Decimal("0.00")


# =============================================================================
# adjust_allocation
# =============================================================================


class TestAdjustAllocation:
    """Changing a sub-ledger's allocation."""

    def test_depleted_budget_reactivates_when_increased(self, standalone_budget):
        """A depleted 10,000 sub-ledger raised to 15,000 is active with 5,000."""
        SubLedgerService.deduct(standalone_budget.id, Decimal("10000"))

        budget = SubLedgerService.adjust_allocation(
            standalone_budget.id, Decimal("15000"), notes="Mid-year top up"
        )

        assert budget.status == SubLedgerStatus.ACTIVE
        assert budget.available_amount == Decimal("5000.00")
        assert _budget(standalone_budget).notes == "Mid-year top up"

    def test_reduction_to_disbursed_depletes(self, standalone_budget):
        SubLedgerService.deduct(standalone_budget.id, Decimal("4000"))

        budget = SubLedgerService.adjust_allocation(standalone_budget.id, Decimal("4000"))

        assert budget.status == SubLedgerStatus.DEPLETED
        assert budget.available_amount == Decimal("0.00")

    def test_notes_are_appended(self, standalone_budget):
        SubLedgerService.adjust_allocation(standalone_budget.id, "11000", notes="First")
        SubLedgerService.adjust_allocation(standalone_budget.id, "12000", notes="Second")

        assert _budget(standalone_budget).notes == "First\nSecond"

    def test_source_envelope_is_not_touched(self, envelope, linked_budget):
        SubLedgerService.adjust_allocation(linked_budget.id, Decimal("80000"))

        assert _envelope(envelope).allocated_budget == Decimal("50000.00")

    def test_negative_amount_is_refused(self, standalone_budget):
        with pytest.raises(InvalidAmount):
            SubLedgerService.adjust_allocation(standalone_budget.id, "-1")


# =============================================================================
# check_budget / queries
# =============================================================================


class TestCheckBudget:
    """Budget checks for a school."""

    def test_sufficient_funds(self, linked_budget):
        check = SubLedgerService.check_budget(42, Decimal("5000"))

        assert check.has_sufficient_funds is True
        assert check.shortfall == Decimal("0.00")
        assert check.budget_id == linked_budget.id
        assert check.available == Decimal("50000.00")

    def test_shortfall_is_reported(self, linked_budget):
        check = SubLedgerService.check_budget(42, Decimal("60000"))

        assert check.has_sufficient_funds is False
        assert check.shortfall == Decimal("10000.00")
        assert check.to_dict()["shortfall"] == "10000.00"

    def test_no_active_budget(self, standalone_budget):
        SubLedgerService.deduct(standalone_budget.id, Decimal("10000"))

        with pytest.raises(BudgetNotFound):
            SubLedgerService.check_budget(7, Decimal("1"))


class TestQueries:
    """Sub-ledger lookups."""

    def test_current_budget_is_latest_active(self, db):
        now = timezone.now()
        PartnerSchoolBudgetFactory(academic_year="2024-2025", allocation_date=now - timedelta(days=400))
        current = PartnerSchoolBudgetFactory(academic_year="2025-2026", allocation_date=now)

        assert SubLedgerService.get_current_budget(42) == current

    def test_list_budgets_filters(self, linked_budget, standalone_budget):
        assert list(SubLedgerService.list_budgets(school_id=7)) == [standalone_budget]
        assert list(SubLedgerService.list_budgets(status=SubLedgerStatus.DEPLETED)) == []
        assert set(SubLedgerService.list_budgets(academic_year="2025-2026")) == {
            linked_budget,
            standalone_budget,
        }


# =============================================================================
# expire_budgets
# =============================================================================


class TestExpireBudgets:
    """The expiry sweep."""

    def test_expires_only_past_due_active_budgets(self, db):
        now = timezone.now()
        past_due = PartnerSchoolBudgetFactory(school_id=1, expiry_date=now - timedelta(days=1))
        future = PartnerSchoolBudgetFactory(school_id=2, expiry_date=now + timedelta(days=1))
        no_expiry = PartnerSchoolBudgetFactory(school_id=3)
        depleted = PartnerSchoolBudgetFactory(
            school_id=4,
            expiry_date=now - timedelta(days=1),
            disbursed_amount=Decimal("50000.00"),
            status=SubLedgerStatus.DEPLETED,
        )

        count = SubLedgerService.expire_budgets(now)

        assert count == 1
        assert _budget(past_due).status == SubLedgerStatus.EXPIRED
        assert _budget(future).status == SubLedgerStatus.ACTIVE
        assert _budget(no_expiry).status == SubLedgerStatus.ACTIVE
        assert _budget(depleted).status == SubLedgerStatus.DEPLETED

    def test_expired_budget_is_not_current(self, db):
        PartnerSchoolBudgetFactory(expiry_date=timezone.now() - timedelta(hours=1))

        SubLedgerService.expire_budgets()

        assert SubLedgerService.get_current_budget(42) is None
