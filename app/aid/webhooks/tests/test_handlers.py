"""
Tests for webhook event handlers.

Tests cover:
- Handler registration
- Dispatch bookkeeping (processed, ignored, failed, retried)
- Paid events complete the transaction and disburse exactly once
- Failed, refunded and expired events close the transaction
"""

from decimal import Decimal

import pytest

from aid.models import (
    AidDisbursement,
    PartnerSchoolBudget,
    PaymentTransaction,
    ScholarshipApplication,
    WebhookEvent,
)
from aid.state_machines import (
    ApplicationStatus,
    DisbursementStatus,
    TransactionStatus,
    WebhookEventStatus,
)
from aid.tests.factories import WebhookEventFactory
from aid.tests.payloads import checkout_paid_event, checkout_session_event, payment_event
from aid.webhooks.handlers import (
    WEBHOOK_HANDLERS,
    dispatch_webhook,
    handle_checkout_expired,
    handle_payment_failed,
    handle_payment_paid,
    handle_payment_refunded,
    register_handler,
)
from core.exceptions import NotFoundError
from core.services import ServiceResult


def _store(payload) -> WebhookEvent:
    data = payload["data"]
    return WebhookEventFactory(
        event_id=data["id"],
        event_type=data["attributes"]["type"],
        payload=payload,
    )


def _event(webhook_event) -> WebhookEvent:
    return WebhookEvent.objects.get(pk=webhook_event.pk)


def _txn(txn) -> PaymentTransaction:
    return PaymentTransaction.objects.get(pk=txn.pk)


def _application_status(txn) -> str:
    return ScholarshipApplication.objects.get(pk=txn.application_id).status


# =============================================================================
# Handler Registration Tests
# =============================================================================


class TestRegisterHandler:
    def test_paymongo_event_types_are_registered(self):
        assert WEBHOOK_HANDLERS["payment.paid"] == handle_payment_paid
        assert WEBHOOK_HANDLERS["checkout_session.payment.paid"] == handle_payment_paid
        assert WEBHOOK_HANDLERS["payment.failed"] == handle_payment_failed
        assert WEBHOOK_HANDLERS["checkout_session.payment.failed"] == handle_payment_failed
        assert WEBHOOK_HANDLERS["payment.refunded"] == handle_payment_refunded
        assert WEBHOOK_HANDLERS["checkout_session.expired"] == handle_checkout_expired

    def test_register_new_handler(self):
        @register_handler("test.event.one", "test.event.two")
        def test_handler(webhook_event):
            return ServiceResult.success(None)

        assert WEBHOOK_HANDLERS["test.event.one"] == test_handler
        assert WEBHOOK_HANDLERS["test.event.two"] == test_handler

        # Cleanup
        del WEBHOOK_HANDLERS["test.event.one"]
        del WEBHOOK_HANDLERS["test.event.two"]


# =============================================================================
# Dispatch Tests
# =============================================================================


class TestDispatchWebhook:
    def test_unknown_event(self, db):
        result = dispatch_webhook("00000000-0000-0000-0000-000000000000")

        assert not result.success
        assert result.error_code == "WEBHOOK_EVENT_NOT_FOUND"

    def test_unhandled_event_type_is_marked_processed(self, db):
        webhook_event = WebhookEventFactory(event_type="source.chargeable")

        result = dispatch_webhook(webhook_event.id)

        assert result.success
        assert result.data == {"status": "ignored"}
        assert _event(webhook_event).status == WebhookEventStatus.PROCESSED

    def test_processed_event_is_skipped(self, db):
        webhook_event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        result = dispatch_webhook(webhook_event.id)

        assert result.data == {"status": "already_processed"}

    def test_missing_transaction_is_retried(self, db):
        webhook_event = _store(
            checkout_session_event(
                "checkout_session.payment.paid",
                checkout_session_id="cs_not_committed_yet",
                transaction_reference="TXN-0000000000000000",
            )
        )

        with pytest.raises(NotFoundError):
            dispatch_webhook(webhook_event.id)

        stored = _event(webhook_event)
        assert stored.status == WebhookEventStatus.FAILED
        assert stored.retry_count == 1
        assert stored.error_message.startswith("NotFoundError")
        assert stored.can_retry

    def test_business_failure_is_recorded_without_retry(self, pending_txn):
        # A refund for a transaction that never completed
        webhook_event = _store(
            payment_event(
                "payment.refunded",
                payment_id="pay_refund_0001",
                transaction_reference=pending_txn.transaction_reference,
            )
        )

        result = dispatch_webhook(webhook_event.id)

        assert not result.success
        assert result.error_code == "INVALID_TRANSITION"
        stored = _event(webhook_event)
        assert stored.status == WebhookEventStatus.FAILED
        assert stored.error_message == result.error
        assert _txn(pending_txn).transaction_status == TransactionStatus.PENDING


# =============================================================================
# Paid Handler Tests
# =============================================================================


class TestPaymentPaid:
    def test_completes_and_disburses(self, pending_txn, school_budget):
        webhook_event = _store(checkout_paid_event(pending_txn))

        result = dispatch_webhook(webhook_event.id)

        assert result.success
        assert result.data["status"] == "disbursed"
        txn = _txn(pending_txn)
        assert txn.transaction_status == TransactionStatus.COMPLETED
        assert txn.provider_reference_number == "GC-REF-0001"
        assert _application_status(txn) == ApplicationStatus.GRANTS_DISBURSED

        disbursement = AidDisbursement.objects.get(pk=result.data["disbursement_id"])
        assert disbursement.payment_transaction_id == txn.id
        assert disbursement.provider_name == "PayMongo"
        assert disbursement.partner_school_budget_id == school_budget.id
        assert PartnerSchoolBudget.objects.get(pk=school_budget.pk).disbursed_amount == Decimal(
            "5000.00"
        )
        assert _event(webhook_event).status == WebhookEventStatus.PROCESSED

    def test_redelivery_disburses_once(self, pending_txn):
        webhook_event = _store(checkout_paid_event(pending_txn))
        dispatch_webhook(webhook_event.id)

        again = dispatch_webhook(webhook_event.id)

        assert again.data == {"status": "already_processed"}
        assert AidDisbursement.objects.count() == 1

    def test_payment_and_checkout_events_disburse_once(self, pending_txn, school_budget):
        """PayMongo sends payment.paid alongside checkout_session.payment.paid."""
        checkout_event = _store(
            checkout_paid_event(pending_txn, payment_id="pay_0001", external_reference_number=None)
        )
        payment_paid = _store(
            payment_event(
                "payment.paid",
                payment_id="pay_0001",
                checkout_session_id=pending_txn.provider_transaction_id,
            )
        )

        dispatch_webhook(checkout_event.id)
        result = dispatch_webhook(payment_paid.id)

        assert result.success
        assert result.data == {"status": "already_completed"}
        assert AidDisbursement.objects.count() == 1
        assert PartnerSchoolBudget.objects.get(pk=school_budget.pk).disbursed_amount == Decimal(
            "5000.00"
        )

    def test_insufficient_funds_rolls_back_completion(self, pending_txn, school_budget):
        PartnerSchoolBudget.objects.filter(pk=school_budget.pk).update(
            disbursed_amount=Decimal("48000.00")
        )
        webhook_event = _store(checkout_paid_event(pending_txn))

        result = dispatch_webhook(webhook_event.id)

        assert not result.success
        assert result.error_code == "INSUFFICIENT_FUNDS"
        assert _txn(pending_txn).transaction_status == TransactionStatus.PENDING
        assert not AidDisbursement.objects.exists()
        assert _event(webhook_event).status == WebhookEventStatus.FAILED


# =============================================================================
# Closing Handler Tests
# =============================================================================


class TestPaymentFailed:
    def test_marks_failed_and_reverts_application(self, pending_txn):
        webhook_event = _store(
            checkout_session_event(
                "checkout_session.payment.failed",
                checkout_session_id=pending_txn.provider_transaction_id,
                transaction_reference=pending_txn.transaction_reference,
                failed_message="Insufficient wallet balance",
            )
        )

        result = dispatch_webhook(webhook_event.id)

        assert result.data == {"status": "failed"}
        txn = _txn(pending_txn)
        assert txn.transaction_status == TransactionStatus.FAILED
        assert txn.failure_reason == "Insufficient wallet balance"
        assert _application_status(txn) == ApplicationStatus.APPROVED


class TestPaymentRefunded:
    def test_refund_reverses_disbursement(self, pending_txn, school_budget):
        dispatch_webhook(_store(checkout_paid_event(pending_txn, payment_id="pay_0002")).id)
        refund_event = _store(
            payment_event(
                "payment.refunded",
                payment_id="pay_0002",
                transaction_reference=pending_txn.transaction_reference,
            )
        )

        result = dispatch_webhook(refund_event.id)

        assert result.data == {"status": "refunded"}
        assert _txn(pending_txn).transaction_status == TransactionStatus.REFUNDED
        disbursement = AidDisbursement.objects.get(payment_transaction=pending_txn)
        assert disbursement.status == DisbursementStatus.REVERSED
        assert _application_status(pending_txn) == ApplicationStatus.APPROVED
        assert PartnerSchoolBudget.objects.get(pk=school_budget.pk).disbursed_amount == Decimal(
            "0.00"
        )


class TestCheckoutExpired:
    def test_cancels_transaction(self, pending_txn):
        webhook_event = _store(
            checkout_session_event(
                "checkout_session.expired",
                checkout_session_id=pending_txn.provider_transaction_id,
            )
        )

        result = dispatch_webhook(webhook_event.id)

        assert result.data == {"status": "cancelled"}
        txn = _txn(pending_txn)
        assert txn.transaction_status == TransactionStatus.CANCELLED
        assert txn.failure_reason == "Checkout session expired"
        assert _application_status(txn) == ApplicationStatus.APPROVED
