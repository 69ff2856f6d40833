"""
Payment transaction service.

This module provides the TransactionService class which owns every state
change of a PaymentTransaction. Transitions are the django-fsm methods on
the model; this layer adds row locking, provider id reconciliation and
the application side effects of a failed or cancelled payment.

Transition Table:
    pending -> processing
    pending|processing -> completed
    pending|processing -> failed
    pending|processing -> cancelled
    completed -> refunded
    anything else -> InvalidStateTransitionError

Usage:
    from aid.services import TransactionService

    txn, applied = TransactionService.mark_completed(
        reference,
        provider_reference_number="pay_abc123",
    )
    if applied:
        DisbursementService.finalize_transaction(txn)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db.models import Q
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from aid.exceptions import InvalidStateTransitionError
from aid.locks import lock_row
from aid.models import PaymentTransaction, ScholarshipApplication
from aid.state_machines import ApplicationStatus, TransactionStatus
from core.exceptions import NotFoundError
from core.services import BaseService

if TYPE_CHECKING:
    from datetime import datetime
    from decimal import Decimal

    from django.db.models import QuerySet


# =============================================================================
# Constants
# =============================================================================

OPEN_STATUSES = (TransactionStatus.PENDING, TransactionStatus.PROCESSING)


class TransactionService(BaseService):
    """
    Service for PaymentTransaction lifecycle changes.

    Every mutating method locks the transaction row first. Methods that
    also touch the application lock it second.
    """

    # =========================================================================
    # Lookup
    # =========================================================================

    @classmethod
    def _lock(cls, reference: str) -> PaymentTransaction:
        txn = (
            PaymentTransaction.objects.select_for_update()
            .filter(transaction_reference=reference)
            .first()
        )
        if txn is None:
            raise NotFoundError(
                f"Payment transaction {reference} not found",
                error_code="TRANSACTION_NOT_FOUND",
                details={"transaction_reference": reference},
            )
        return txn

    @classmethod
    def find(
        cls,
        reference: str | None = None,
        provider_transaction_id: str | None = None,
        application_id=None,
    ) -> PaymentTransaction | None:
        """
        Find a transaction by any correlating key.

        Keys are tried in order: our reference, the provider id (matched
        against both the checkout session id and the payment reference),
        then the application's most recent open transaction, falling back
        to its most recent transaction.
        """
        queryset = PaymentTransaction.objects.select_related("application")

        if reference:
            txn = queryset.filter(transaction_reference=reference).first()
            if txn is not None:
                return txn

        if provider_transaction_id:
            txn = (
                queryset.filter(
                    Q(provider_transaction_id=provider_transaction_id)
                    | Q(provider_reference_number=provider_transaction_id)
                )
                .order_by("-created_at")
                .first()
            )
            if txn is not None:
                return txn

        if application_id is not None:
            for_application = queryset.filter(application_id=application_id).order_by("-created_at")
            return (
                for_application.filter(transaction_status__in=OPEN_STATUSES).first()
                or for_application.first()
            )

        return None

    @classmethod
    def open_for_application(cls, application_id) -> QuerySet[PaymentTransaction]:
        return PaymentTransaction.objects.filter(
            application_id=application_id,
            transaction_status__in=OPEN_STATUSES,
        ).order_by("created_at")

    @classmethod
    def expired_pending(cls, now: datetime | None = None) -> QuerySet[PaymentTransaction]:
        """Pending transactions whose payment link has expired, oldest first."""
        now = now or timezone.now()
        return PaymentTransaction.objects.filter(
            transaction_status=TransactionStatus.PENDING,
            expires_at__isnull=False,
            expires_at__lt=now,
        ).order_by("expires_at")

    # =========================================================================
    # Transitions
    # =========================================================================

    @classmethod
    def _apply(cls, txn: PaymentTransaction, name: str, **kwargs) -> None:
        try:
            getattr(txn, name)(**kwargs)
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot {name} transaction in '{txn.transaction_status}' state",
                details={
                    "transaction_reference": txn.transaction_reference,
                    "current_state": txn.transaction_status,
                    "transition": name,
                },
            )

    @classmethod
    def open(
        cls,
        application: ScholarshipApplication,
        amount: Decimal,
        provider: str,
        method: str,
        initiated_by=None,
        expires_at: datetime | None = None,
        payment_link_url: str | None = None,
        provider_transaction_id: str | None = None,
        provider_response: dict | None = None,
        transaction_reference: str | None = None,
    ) -> PaymentTransaction:
        """Create a pending transaction with a fresh unique reference."""
        fields = {}
        if transaction_reference:
            fields["transaction_reference"] = transaction_reference

        txn = PaymentTransaction.objects.create(
            application=application,
            application_number=application.application_number,
            student_id=application.student_id,
            payment_provider=provider,
            payment_method=method,
            transaction_amount=amount,
            payment_link_url=payment_link_url,
            provider_transaction_id=provider_transaction_id,
            provider_response=provider_response,
            expires_at=expires_at,
            initiated_by=initiated_by,
            initiated_by_name=user_display_name(initiated_by),
            **fields,
        )

        cls.get_logger().info(
            "Payment transaction opened",
            extra={
                "transaction_reference": txn.transaction_reference,
                "application_id": application.id,
                "amount": str(amount),
                "provider": provider,
            },
        )
        return txn

    @classmethod
    def mark_processing(cls, reference: str) -> PaymentTransaction:
        with cls.atomic():
            txn = cls._lock(reference)
            cls._apply(txn, "start_processing")
            txn.save()
        return txn

    @classmethod
    def mark_completed(
        cls,
        reference: str,
        provider_transaction_id: str | None = None,
        provider_reference_number: str | None = None,
        provider_response: dict | None = None,
    ) -> tuple[PaymentTransaction, bool]:
        """
        Complete a transaction after the provider confirmed payment.

        Returns:
            (transaction, applied). applied is False when the transaction
            was already completed with the same provider ids, so callers
            must not finalize again.

        Raises:
            NotFoundError: Unknown reference
            InvalidStateTransitionError: Terminal non-completed state, or
                already completed with different provider ids
        """
        with cls.atomic():
            txn = cls._lock(reference)

            if txn.transaction_status == TransactionStatus.COMPLETED:
                mismatched = [
                    name
                    for name, incoming in (
                        ("provider_transaction_id", provider_transaction_id),
                        ("provider_reference_number", provider_reference_number),
                    )
                    if incoming and getattr(txn, name) and getattr(txn, name) != incoming
                ]
                if mismatched:
                    raise InvalidStateTransitionError(
                        "Transaction already completed with different provider ids",
                        details={
                            "transaction_reference": txn.transaction_reference,
                            "current_state": txn.transaction_status,
                            "mismatched": mismatched,
                        },
                    )
                cls.get_logger().info(
                    "Transaction already completed",
                    extra={"transaction_reference": txn.transaction_reference},
                )
                return txn, False

            cls._apply(txn, "complete")
            if provider_transaction_id and not txn.provider_transaction_id:
                txn.provider_transaction_id = provider_transaction_id
            if provider_reference_number:
                txn.provider_reference_number = provider_reference_number
            if provider_response is not None:
                txn.provider_response = provider_response
            txn.save()

        cls.get_logger().info(
            "Payment transaction completed",
            extra={
                "transaction_reference": txn.transaction_reference,
                "provider_reference_number": txn.provider_reference_number,
            },
        )
        return txn, True

    @classmethod
    def mark_failed(cls, reference: str, reason: str | None = None) -> PaymentTransaction:
        """
        Fail an open transaction and revert the application to approved.

        A transaction that is already failed is returned unchanged.
        """
        return cls._close(reference, "fail", TransactionStatus.FAILED, reason)

    @classmethod
    def cancel(cls, reference: str, reason: str | None = None) -> PaymentTransaction:
        """
        Cancel an open transaction and revert the application to approved.

        Used by revert-on-cancel, manual disbursement and the expiry sweep.
        A transaction that is already cancelled is returned unchanged.
        """
        return cls._close(reference, "cancel", TransactionStatus.CANCELLED, reason)

    @classmethod
    def _close(cls, reference: str, name: str, target: str, reason: str | None) -> PaymentTransaction:
        with cls.atomic():
            txn = cls._lock(reference)
            if txn.transaction_status == target:
                return txn

            cls._apply(txn, name, reason=reason)
            txn.save()
            cls.revert_application(txn.application_id)

        cls.get_logger().info(
            f"Payment transaction {target}",
            extra={
                "transaction_reference": txn.transaction_reference,
                "application_id": txn.application_id,
                "reason": reason,
            },
        )
        return txn

    @classmethod
    def cancel_if_expired(cls, transaction_id, now: datetime | None = None) -> bool:
        """
        Cancel one expired pending transaction.

        Re-checks status and expiry under the row lock so a payment that
        landed after the sweep selected the row is left alone.

        Returns:
            True if the transaction was cancelled
        """
        now = now or timezone.now()
        with cls.atomic():
            txn = lock_row(PaymentTransaction, transaction_id, error_code="TRANSACTION_NOT_FOUND")
            if txn.transaction_status != TransactionStatus.PENDING:
                return False
            if txn.expires_at is None or txn.expires_at >= now:
                return False

            cls._apply(txn, "cancel", reason="Payment link expired")
            txn.save()
            cls.revert_application(txn.application_id)

        cls.get_logger().info(
            "Expired payment transaction cancelled",
            extra={
                "transaction_reference": txn.transaction_reference,
                "application_id": txn.application_id,
            },
        )
        return True

    @classmethod
    def refund(cls, reference: str, reason: str | None = None) -> PaymentTransaction:
        """
        Move a completed transaction to refunded and reverse its disbursement.

        The ledger refund, the disbursement reversal and the application
        returning to approved all commit with the transition.
        """
        from aid.services.disbursement_service import DisbursementService

        with cls.atomic():
            txn = cls._lock(reference)
            if txn.transaction_status == TransactionStatus.REFUNDED:
                return txn

            cls._apply(txn, "refund", reason=reason)
            txn.save()

            disbursement = txn.disbursement if hasattr(txn, "disbursement") else None
            if disbursement is not None and not disbursement.is_reversed:
                DisbursementService.reverse(disbursement, reason or "Provider refund")

        cls.get_logger().info(
            "Payment transaction refunded",
            extra={
                "transaction_reference": txn.transaction_reference,
                "application_id": txn.application_id,
            },
        )
        return txn

    # =========================================================================
    # Application Side Effects
    # =========================================================================

    @classmethod
    def revert_application(cls, application_id) -> ScholarshipApplication:
        """Return an application in grants_processing to approved."""
        application = lock_row(
            ScholarshipApplication,
            application_id,
            error_code="APPLICATION_NOT_FOUND",
        )
        if application.status == ApplicationStatus.GRANTS_PROCESSING:
            application.revert_to_approved()
            application.save()
            cls.get_logger().info(
                "Application reverted to approved",
                extra={"application_id": application.id},
            )
        return application


def user_display_name(user) -> str:
    if user is None:
        return ""
    full_name = user.get_full_name() if hasattr(user, "get_full_name") else ""
    return full_name or user.get_username()
