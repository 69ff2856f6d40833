"""
Tests for TransactionService.

These tests verify that:
- Transitions follow the PaymentTransaction state table
- Completing twice with the same provider ids is a no-op
- Failing or cancelling reverts the application to approved
- Expiry cancellation re-checks state under the row lock
"""

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from aid.exceptions import InvalidStateTransitionError
from aid.ledger.services import SubLedgerService
from aid.models import AidDisbursement, PartnerSchoolBudget, PaymentTransaction, ScholarshipApplication
from aid.services import TransactionService
from aid.services.transaction_service import user_display_name
from aid.state_machines import (
    ApplicationStatus,
    DisbursementStatus,
    PaymentMethod,
    PaymentProvider,
    TransactionStatus,
)
from aid.tests.factories import AidDisbursementFactory, PaymentTransactionFactory
from core.exceptions import NotFoundError


def _txn(txn) -> PaymentTransaction:
    return PaymentTransaction.objects.get(pk=txn.pk)


def _application(application) -> ScholarshipApplication:
    return ScholarshipApplication.objects.get(pk=application.pk)


class TestOpen:
    def test_opens_pending_transaction(self, approved_application, user):
        txn = TransactionService.open(
            approved_application,
            amount=Decimal("5000.00"),
            provider=PaymentProvider.PAYMONGO,
            method=PaymentMethod.DIGITAL_WALLET,
            initiated_by=user,
        )

        assert txn.transaction_status == TransactionStatus.PENDING
        assert txn.transaction_reference.startswith("TXN-")
        assert len(txn.transaction_reference) == 20
        assert txn.application_number == approved_application.application_number
        assert txn.initiated_by_name == "Maria Santos"

    def test_references_are_unique(self, approved_application):
        first = TransactionService.open(
            approved_application, Decimal("1"), PaymentProvider.PAYMONGO, PaymentMethod.DIGITAL_WALLET
        )
        second = TransactionService.open(
            approved_application, Decimal("1"), PaymentProvider.PAYMONGO, PaymentMethod.DIGITAL_WALLET
        )

        assert first.transaction_reference != second.transaction_reference


class TestFind:
    """Correlating provider callbacks with transactions."""

    def test_by_reference(self, db):
        txn = PaymentTransactionFactory()

        assert TransactionService.find(reference=txn.transaction_reference) == txn

    def test_by_checkout_session_id(self, db):
        txn = PaymentTransactionFactory(provider_transaction_id="cs_lookup")

        assert TransactionService.find(provider_transaction_id="cs_lookup") == txn

    def test_by_provider_reference_number(self, db):
        txn = PaymentTransactionFactory(provider_reference_number="pay_lookup")

        assert TransactionService.find(provider_transaction_id="pay_lookup") == txn

    def test_by_application_prefers_open(self, db):
        txn = PaymentTransactionFactory(transaction_status=TransactionStatus.PENDING)
        PaymentTransactionFactory(
            application=txn.application,
            transaction_status=TransactionStatus.CANCELLED,
        )

        assert TransactionService.find(application_id=txn.application_id) == txn

    def test_unknown_keys(self, db):
        assert TransactionService.find(reference="TXN-0000000000000000") is None


class TestMarkCompleted:
    """Completing transactions."""

    def test_completes_pending(self, db):
        txn = PaymentTransactionFactory()

        completed, applied = TransactionService.mark_completed(
            txn.transaction_reference,
            provider_reference_number="pay_001",
            provider_response={"status": "paid"},
        )

        assert applied is True
        stored = _txn(txn)
        assert stored.transaction_status == TransactionStatus.COMPLETED
        assert stored.provider_reference_number == "pay_001"
        assert stored.provider_response == {"status": "paid"}
        assert stored.completed_at is not None

    def test_completes_processing(self, db):
        txn = PaymentTransactionFactory(transaction_status=TransactionStatus.PROCESSING)

        _, applied = TransactionService.mark_completed(txn.transaction_reference)

        assert applied is True

    def test_repeat_with_same_ids_is_a_no_op(self, db):
        txn = PaymentTransactionFactory()
        TransactionService.mark_completed(txn.transaction_reference, provider_reference_number="pay_001")
        completed_at = _txn(txn).completed_at

        again, applied = TransactionService.mark_completed(
            txn.transaction_reference,
            provider_transaction_id=txn.provider_transaction_id,
            provider_reference_number="pay_001",
        )

        assert applied is False
        assert again.completed_at == completed_at

    def test_repeat_with_different_ids_is_refused(self, db):
        txn = PaymentTransactionFactory()
        TransactionService.mark_completed(txn.transaction_reference, provider_reference_number="pay_001")

        with pytest.raises(InvalidStateTransitionError):
            TransactionService.mark_completed(
                txn.transaction_reference, provider_reference_number="pay_999"
            )

    @pytest.mark.parametrize(
        "status",
        [TransactionStatus.FAILED, TransactionStatus.CANCELLED, TransactionStatus.REFUNDED],
    )
    def test_terminal_states_cannot_complete(self, db, status):
        txn = PaymentTransactionFactory(transaction_status=status)

        with pytest.raises(InvalidStateTransitionError):
            TransactionService.mark_completed(txn.transaction_reference)

    def test_unknown_reference(self, db):
        with pytest.raises(NotFoundError):
            TransactionService.mark_completed("TXN-0000000000000000")


class TestFailAndCancel:
    """Closing open transactions."""

    def test_fail_reverts_application(self, db):
        txn = PaymentTransactionFactory()

        TransactionService.mark_failed(txn.transaction_reference, reason="Card declined")

        stored = _txn(txn)
        assert stored.transaction_status == TransactionStatus.FAILED
        assert stored.failure_reason == "Card declined"
        assert _application(txn.application).status == ApplicationStatus.APPROVED

    def test_fail_is_idempotent(self, db):
        txn = PaymentTransactionFactory()
        TransactionService.mark_failed(txn.transaction_reference, reason="Card declined")

        again = TransactionService.mark_failed(txn.transaction_reference, reason="Other")

        assert again.failure_reason == "Card declined"

    def test_cancel_reverts_application(self, db):
        txn = PaymentTransactionFactory(transaction_status=TransactionStatus.PROCESSING)

        TransactionService.cancel(txn.transaction_reference, reason="Checkout cancelled")

        assert _txn(txn).transaction_status == TransactionStatus.CANCELLED
        assert _application(txn.application).status == ApplicationStatus.APPROVED

    def test_completed_cannot_be_cancelled(self, db):
        txn = PaymentTransactionFactory(transaction_status=TransactionStatus.COMPLETED)

        with pytest.raises(InvalidStateTransitionError):
            TransactionService.cancel(txn.transaction_reference)

    def test_processing_transition(self, db):
        txn = PaymentTransactionFactory()

        TransactionService.mark_processing(txn.transaction_reference)

        assert _txn(txn).transaction_status == TransactionStatus.PROCESSING
        with pytest.raises(InvalidStateTransitionError):
            TransactionService.mark_processing(txn.transaction_reference)


class TestExpiry:
    """Cancelling expired payment links."""

    def test_expired_pending_selects_only_past_due(self, db):
        now = timezone.now()
        expired = PaymentTransactionFactory(expires_at=now - timedelta(minutes=5))
        PaymentTransactionFactory(expires_at=now + timedelta(minutes=5))
        PaymentTransactionFactory(
            expires_at=now - timedelta(minutes=5),
            transaction_status=TransactionStatus.PROCESSING,
        )

        assert list(TransactionService.expired_pending(now)) == [expired]

    def test_cancel_if_expired(self, db):
        txn = PaymentTransactionFactory(expires_at=timezone.now() - timedelta(minutes=1))

        assert TransactionService.cancel_if_expired(txn.id) is True
        stored = _txn(txn)
        assert stored.transaction_status == TransactionStatus.CANCELLED
        assert stored.failure_reason == "Payment link expired"
        assert _application(txn.application).status == ApplicationStatus.APPROVED

    def test_paid_in_the_meantime_is_skipped(self, db):
        txn = PaymentTransactionFactory(
            expires_at=timezone.now() - timedelta(minutes=1),
            transaction_status=TransactionStatus.COMPLETED,
        )

        assert TransactionService.cancel_if_expired(txn.id) is False
        assert _txn(txn).transaction_status == TransactionStatus.COMPLETED

    def test_not_yet_expired_is_skipped(self, db):
        txn = PaymentTransactionFactory()

        assert TransactionService.cancel_if_expired(txn.id) is False


class TestRefund:
    """Refunding completed transactions."""

    def test_refund_reverses_disbursement(self, school_budget):
        txn = PaymentTransactionFactory(transaction_status=TransactionStatus.COMPLETED)
        application = ScholarshipApplication.objects.get(pk=txn.application_id)
        # Move the application and the ledger the way finalize would have
        application.mark_grants_disbursed()
        application.save()
        SubLedgerService.deduct(school_budget.id, txn.transaction_amount)
        disbursement = AidDisbursementFactory(
            application=application,
            payment_transaction=txn,
            partner_school_budget=school_budget,
            amount=txn.transaction_amount,
        )

        TransactionService.refund(txn.transaction_reference, reason="Duplicate payout")

        assert _txn(txn).transaction_status == TransactionStatus.REFUNDED
        reversed_row = AidDisbursement.objects.get(pk=disbursement.pk)
        assert reversed_row.status == DisbursementStatus.REVERSED
        assert reversed_row.reversal_reason == "Duplicate payout"
        assert _application(application).status == ApplicationStatus.APPROVED
        assert PartnerSchoolBudget.objects.get(pk=school_budget.pk).disbursed_amount == Decimal("0.00")

    def test_pending_cannot_be_refunded(self, db):
        txn = PaymentTransactionFactory()

        with pytest.raises(InvalidStateTransitionError):
            TransactionService.refund(txn.transaction_reference)


class TestUserDisplayName:
    def test_full_name(self, user):
        assert user_display_name(user) == "Maria Santos"

    def test_falls_back_to_username(self, user):
        user.first_name = ""
        user.last_name = ""

        assert user_display_name(user) == user.username

    def test_no_user(self):
        assert user_display_name(None) == ""
