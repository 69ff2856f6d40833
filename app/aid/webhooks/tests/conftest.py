"""
Pytest fixtures for webhook tests.

Provides a funded sub-ledger, an open PayMongo transaction and helpers
for posting signed webhook deliveries.
"""

import json
from unittest.mock import patch

import pytest
from django.urls import reverse

from aid.tests.factories import PartnerSchoolBudgetFactory, PaymentTransactionFactory
from aid.tests.payloads import sign_payload


@pytest.fixture
def school_budget(db):
    """PHP 50,000 sub-ledger for school 42."""
    return PartnerSchoolBudgetFactory()


@pytest.fixture
def pending_txn(school_budget):
    """Pending PHP 5,000 checkout for an application in grants_processing."""
    return PaymentTransactionFactory(provider_transaction_id="cs_test_webhook_0001")


@pytest.fixture
def mock_webhook_task():
    """Patch the webhook processing task so no broker is needed."""
    with patch("aid.tasks.process_webhook_event.delay") as mock_delay:
        yield mock_delay


@pytest.fixture
def webhook_url():
    return reverse("aid:provider-webhook", kwargs={"provider": "paymongo"})


@pytest.fixture
def post_webhook(client, webhook_url):
    """Post a payload with a valid Paymongo-Signature header."""

    def _post(payload, signature=None, url=None):
        body = json.dumps(payload).encode()
        return client.post(
            url or webhook_url,
            data=body,
            content_type="application/json",
            HTTP_PAYMONGO_SIGNATURE=sign_payload(body) if signature is None else signature,
        )

    return _post
