"""
Pytest fixtures for aid service tests.

Sections:
    - Users: Staff user recording operations
    - Ledgers: Envelope and sub-ledger funding the grants
    - Applications and Transactions: Grant pipeline starting points
    - Provider: Fake PayMongo adapter injected into GrantService
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from aid.adapters import CheckoutSessionResult
from aid.services import GrantService
from aid.tests.factories import (
    BudgetAllocationFactory,
    PartnerSchoolBudgetFactory,
    ScholarshipApplicationFactory,
    UserFactory,
)

# ==========================================================================
# Users
# ==========================================================================


@pytest.fixture
def user(db):
    return UserFactory(first_name="Maria", last_name="Santos")


# ==========================================================================
# Ledgers
# ==========================================================================


@pytest.fixture
def envelope(db):
    """PHP 1,000,000 scholarship benefits envelope for 2025-2026."""
    return BudgetAllocationFactory()


@pytest.fixture
def school_budget(db):
    """PHP 50,000 sub-ledger for school 42 with no source envelope."""
    return PartnerSchoolBudgetFactory()


@pytest.fixture
def small_budget(db):
    """Sub-ledger for school 7 with only PHP 3,000 available."""
    return PartnerSchoolBudgetFactory(
        school_id=7,
        school_name="Cebu Normal Integrated School",
        allocated_amount=Decimal("10000.00"),
        disbursed_amount=Decimal("7000.00"),
    )


# ==========================================================================
# Applications and Transactions
# ==========================================================================


@pytest.fixture
def approved_application(db):
    """Approved PHP 5,000 application for school 42."""
    return ScholarshipApplicationFactory()


@pytest.fixture
def proof_pdf():
    return SimpleUploadedFile("proof.pdf", b"%PDF-1.4 proof", content_type="application/pdf")


@pytest.fixture
def receipt_pdf():
    return SimpleUploadedFile("receipt.pdf", b"%PDF-1.4 receipt", content_type="application/pdf")


# ==========================================================================
# Provider
# ==========================================================================


@pytest.fixture
def checkout_session():
    return CheckoutSessionResult(
        id="cs_test_grant_0001",
        checkout_url="https://checkout.paymongo.com/cs_test_grant_0001",
        reference_number="TXN-FROMPROVIDER",
        expires_at=timezone.now() + timedelta(hours=1),
        raw_response={"data": {"id": "cs_test_grant_0001"}},
    )


@pytest.fixture
def mock_adapter(checkout_session):
    """
    Fake PayMongo adapter injected into GrantService.

    Restores the real adapter afterwards.
    """
    adapter = MagicMock()
    adapter.create_checkout_session.return_value = checkout_session
    GrantService.set_paymongo_adapter(adapter)
    yield adapter
    GrantService.set_paymongo_adapter(None)
