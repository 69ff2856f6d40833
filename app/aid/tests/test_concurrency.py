"""
Concurrency tests for ledger mutations.

The threaded tests need real row locks. They run on the default
PostgreSQL test database and are skipped when DATABASE_URL points at
another backend. The sequential tests check the same invariants on any
database.
"""

import threading
from decimal import Decimal

import pytest
from django.db import connection

from aid.exceptions import DuplicateDisbursement
from aid.ledger.exceptions import InsufficientFunds
from aid.ledger.services import SubLedgerService
from aid.models import AidDisbursement, BudgetAllocation, PartnerSchoolBudget
from aid.services import DisbursementService
from aid.state_machines import PaymentMethod, SubLedgerStatus
from aid.tests.factories import (
    BudgetAllocationFactory,
    PartnerSchoolBudgetFactory,
    ScholarshipApplicationFactory,
)

requires_postgresql = pytest.mark.skipif(
    connection.vendor != "postgresql",
    reason="Row lock tests need PostgreSQL",
)


def _run_in_threads(target, count: int) -> list:
    """Run target(index) in count threads released together; collect outcomes."""
    barrier = threading.Barrier(count)
    outcomes = [None] * count

    def worker(index):
        try:
            barrier.wait()
            outcomes[index] = target(index)
        except Exception as e:
            outcomes[index] = e
        finally:
            connection.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    return outcomes


def _linked_budget(amount: str) -> PartnerSchoolBudget:
    envelope = BudgetAllocationFactory()
    return SubLedgerService.allocate(
        school_id=42,
        school_name="Quezon City Science High School",
        academic_year=envelope.school_year,
        allocated_amount=Decimal(amount),
        allocation_date=envelope.created_at,
        source_budget_id=envelope.id,
    )


@requires_postgresql
@pytest.mark.django_db(transaction=True)
class TestConcurrentDeductions:
    def test_deductions_never_overdraw(self):
        budget = _linked_budget("10000.00")

        outcomes = _run_in_threads(
            lambda index: SubLedgerService.deduct(budget.id, Decimal("1000.00")), 20
        )

        successes = [o for o in outcomes if isinstance(o, PartnerSchoolBudget)]
        refusals = [o for o in outcomes if isinstance(o, InsufficientFunds)]
        assert len(successes) == 10
        assert len(refusals) == 10

        budget = PartnerSchoolBudget.objects.get(pk=budget.pk)
        assert budget.disbursed_amount == Decimal("10000.00")
        assert budget.status == SubLedgerStatus.DEPLETED
        envelope = BudgetAllocation.objects.get(pk=budget.source_budget_id)
        assert envelope.disbursed_budget == Decimal("10000.00")

    def test_envelope_caps_sub_ledgers_sharing_it(self):
        """Two schools with inflated allocations cannot overdraw their envelope."""
        envelope = BudgetAllocationFactory(total_budget=Decimal("10000.00"))
        budgets = [
            SubLedgerService.allocate(
                school_id=school_id,
                school_name=f"School {school_id}",
                academic_year=envelope.school_year,
                allocated_amount=Decimal("5000.00"),
                allocation_date=envelope.created_at,
                source_budget_id=envelope.id,
            )
            for school_id in (42, 43)
        ]
        for budget in budgets:
            SubLedgerService.adjust_allocation(budget.id, Decimal("20000.00"))

        outcomes = _run_in_threads(
            lambda index: SubLedgerService.deduct(budgets[index % 2].id, Decimal("1000.00")), 20
        )

        refusals = [o for o in outcomes if isinstance(o, InsufficientFunds)]
        assert sum(isinstance(o, PartnerSchoolBudget) for o in outcomes) == 10
        assert len(refusals) == 10
        assert {r.ledger for r in refusals} == {"budget_allocation"}

        envelope = BudgetAllocation.objects.get(pk=envelope.pk)
        assert envelope.disbursed_budget == Decimal("10000.00")
        spent = sum(
            PartnerSchoolBudget.objects.get(pk=b.pk).disbursed_amount for b in budgets
        )
        assert spent == Decimal("10000.00")

    def test_one_disbursement_per_application(self):
        _linked_budget("50000.00")
        application = ScholarshipApplicationFactory()

        outcomes = _run_in_threads(
            lambda index: DisbursementService.finalize(
                application_id=application.id,
                amount=Decimal("5000.00"),
                method=PaymentMethod.BANK_TRANSFER,
                provider_name="LandBank",
                reference_number=f"LB-RACE-{index}",
            ),
            5,
        )

        assert sum(isinstance(o, AidDisbursement) for o in outcomes) == 1
        assert AidDisbursement.objects.filter(application=application).count() == 1
        assert PartnerSchoolBudget.objects.get(school_id=42).disbursed_amount == Decimal("5000.00")


class TestSequentialDeductions:
    def test_deductions_stop_at_zero(self, db):
        budget = PartnerSchoolBudgetFactory(allocated_amount=Decimal("3000.00"))

        for _ in range(3):
            SubLedgerService.deduct(budget.id, Decimal("1000.00"))
        with pytest.raises(InsufficientFunds):
            SubLedgerService.deduct(budget.id, Decimal("0.01"))

        budget = PartnerSchoolBudget.objects.get(pk=budget.pk)
        assert budget.available_amount == Decimal("0.00")
        assert budget.status == SubLedgerStatus.DEPLETED

    def test_second_finalize_is_refused(self, db):
        PartnerSchoolBudgetFactory()
        application = ScholarshipApplicationFactory()
        kwargs = {
            "application_id": application.id,
            "amount": Decimal("5000.00"),
            "method": PaymentMethod.BANK_TRANSFER,
            "provider_name": "LandBank",
        }

        DisbursementService.finalize(reference_number="LB-1", **kwargs)
        with pytest.raises(DuplicateDisbursement):
            DisbursementService.finalize(reference_number="LB-2", **kwargs)

        assert PartnerSchoolBudget.objects.get(school_id=42).disbursed_amount == Decimal("5000.00")
