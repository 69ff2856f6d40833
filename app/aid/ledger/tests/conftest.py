"""
Pytest fixtures for ledger tests.

Sections:
    - Envelope Fixtures: Budget envelopes in various states
    - Sub-Ledger Fixtures: Partner school budgets linked to envelopes
"""

from decimal import Decimal

import pytest
from django.utils import timezone

from aid.ledger.services import SubLedgerService
from aid.state_machines import BudgetType
from aid.tests.factories import BudgetAllocationFactory, PartnerSchoolBudgetFactory, UserFactory


# ==========================================================================
# User Fixtures
# ==========================================================================


@pytest.fixture
def user(db):
    return UserFactory()


# ==========================================================================
# Envelope Fixtures
# ==========================================================================


@pytest.fixture
def envelope(db):
    """Scholarship benefits envelope with PHP 1,000,000 and nothing reserved."""
    return BudgetAllocationFactory(total_budget=Decimal("1000000.00"))


@pytest.fixture
def support_envelope(db):
    """Financial support envelope for the same school year."""
    return BudgetAllocationFactory(
        budget_type=BudgetType.FINANCIAL_SUPPORT,
        total_budget=Decimal("200000.00"),
    )


# ==========================================================================
# Sub-Ledger Fixtures
# ==========================================================================


@pytest.fixture
def linked_budget(envelope):
    """
    PHP 50,000 sub-ledger for school 42 reserved from the envelope.

    Created through the service so the envelope reservation is real.
    """
    return SubLedgerService.allocate(
        school_id=42,
        school_name="Quezon City Science High School",
        academic_year="2025-2026",
        allocated_amount=Decimal("50000.00"),
        allocation_date=timezone.now(),
        source_budget_id=envelope.id,
    )


@pytest.fixture
def standalone_budget(db):
    """PHP 10,000 sub-ledger for school 7 with no source envelope."""
    return PartnerSchoolBudgetFactory(
        school_id=7,
        school_name="Cebu Normal Integrated School",
        allocated_amount=Decimal("10000.00"),
    )
