"""
Pytest fixtures for aid tests.

This module provides fixtures for the API, model and end-to-end tests:
authenticated clients, funded ledgers and applications in the states the
grant pipeline starts from.

Usage:
    def test_budget_list(api_client, envelope):
        response = api_client.get(reverse("aid:budget-list"))
        assert response.status_code == 200
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from rest_framework.test import APIClient

from aid.adapters import CheckoutSessionResult
from aid.services import GrantService
from aid.tests.factories import (
    BudgetAllocationFactory,
    PartnerSchoolBudgetFactory,
    ScholarshipApplicationFactory,
    UserFactory,
)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def user(db):
    """Create a staff user."""
    return UserFactory()


@pytest.fixture
def api_client(user):
    """API client authenticated as the staff user."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture
def anonymous_client():
    return APIClient()


# =============================================================================
# Ledger Fixtures
# =============================================================================


@pytest.fixture
def envelope(db):
    """PHP 1,000,000 scholarship benefits envelope for 2025-2026."""
    return BudgetAllocationFactory()


@pytest.fixture
def school_budget(db):
    """PHP 50,000 sub-ledger for school 42 with no source envelope."""
    return PartnerSchoolBudgetFactory()


@pytest.fixture
def approved_application(db):
    """Approved PHP 5,000 application for school 42."""
    return ScholarshipApplicationFactory(approved_amount=Decimal("5000.00"))


# =============================================================================
# File Fixtures
# =============================================================================


@pytest.fixture
def proof_pdf():
    """Small PDF upload accepted by the proof document validators."""
    return SimpleUploadedFile(
        "proof.pdf",
        b"%PDF-1.4 test proof document",
        content_type="application/pdf",
    )


@pytest.fixture
def receipt_pdf():
    return SimpleUploadedFile(
        "bank_receipt.pdf",
        b"%PDF-1.4 test bank receipt",
        content_type="application/pdf",
    )


# =============================================================================
# Celery and Redis Fixtures
# =============================================================================


@pytest.fixture
def mock_webhook_task():
    """Patch the webhook processing task so no broker is needed."""
    with patch("aid.tasks.process_webhook_event.delay") as mock_delay:
        yield mock_delay


@pytest.fixture
def mock_redis():
    """Mock Redis connection that always grants locks."""
    redis_instance = MagicMock()
    redis_instance.set.return_value = True
    redis_instance.eval.return_value = 1
    with patch("aid.locks.get_redis_connection", return_value=redis_instance):
        yield redis_instance


# =============================================================================
# Provider Fixtures
# =============================================================================


@pytest.fixture
def mock_adapter():
    """
    Fake PayMongo adapter injected into GrantService.

    The checkout session it returns has id cs_test_grant_0001. Restores
    the real adapter afterwards.
    """
    adapter = MagicMock()
    adapter.create_checkout_session.return_value = CheckoutSessionResult(
        id="cs_test_grant_0001",
        checkout_url="https://checkout.paymongo.com/cs_test_grant_0001",
        reference_number=None,
        expires_at=timezone.now() + timedelta(hours=1),
        raw_response={"data": {"id": "cs_test_grant_0001"}},
    )
    GrantService.set_paymongo_adapter(adapter)
    yield adapter
    GrantService.set_paymongo_adapter(None)
