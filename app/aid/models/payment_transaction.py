"""
PaymentTransaction model: one payment attempt for a grant.

A transaction is opened when a hosted checkout is created for an
approved application and is driven to a terminal state by provider
webhooks, the expiry sweep, or an explicit cancel.

Usage:
    from aid.models import PaymentTransaction

    txn = PaymentTransaction.objects.get(transaction_reference="TXN-1A2B3C4D5E6F7A8B")
    txn.complete()  # pending/processing -> completed
    txn.save()
"""

from __future__ import annotations

import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from aid.state_machines import PaymentMethod, PaymentProvider, TransactionStatus
from core.managers import SoftDeleteManager, SoftDeleteQuerySet
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel


def generate_transaction_reference() -> str:
    """Return a fresh reference of the form TXN-<16 upper hex chars>."""
    return f"TXN-{uuid.uuid4().hex[:16].upper()}"


class PaymentTransaction(SoftDeleteMixin, BaseModel):
    """
    A single payment attempt against a scholarship application.

    State Flow:
        PENDING -> PROCESSING -> COMPLETED -> REFUNDED
        PENDING -> COMPLETED
        PENDING/PROCESSING -> FAILED
        PENDING/PROCESSING -> CANCELLED

    Fields:
        transaction_reference: Our reference, sent to the provider as metadata
        provider_transaction_id: Provider checkout session ID
        provider_reference_number: Provider payment ID or reference
        expires_at: When the hosted payment link stops working
        provider_response: Last raw payload received from the provider

    Note:
        No disbursement is ever created for a transaction that did not
        reach COMPLETED.
    """

    # ==========================================================================
    # Application
    # ==========================================================================

    application = models.ForeignKey(
        "aid.ScholarshipApplication",
        on_delete=models.PROTECT,
        related_name="payment_transactions",
        help_text="Application this payment funds",
    )

    application_number = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Application number (denormalised)",
    )

    student_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="Student ID (denormalised)",
    )

    # ==========================================================================
    # Payment
    # ==========================================================================

    transaction_reference = models.CharField(
        max_length=100,
        unique=True,
        default=generate_transaction_reference,
        help_text="Unique reference (TXN-xxxxxxxxxxxxxxxx)",
    )

    payment_provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        help_text="Payment gateway or bank used",
    )

    payment_method = models.CharField(
        max_length=20,
        choices=PaymentMethod.choices,
        help_text="Method of payment",
    )

    transaction_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Amount being paid out",
    )

    transaction_status = FSMField(
        default=TransactionStatus.PENDING,
        choices=TransactionStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the transaction (managed by FSM)",
    )

    # ==========================================================================
    # Provider Integration
    # ==========================================================================

    payment_link_url = models.URLField(
        max_length=500,
        null=True,
        blank=True,
        help_text="Hosted checkout URL",
    )

    provider_transaction_id = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider checkout session ID (cs_xxx)",
    )

    provider_reference_number = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Provider payment ID or reference number",
    )

    provider_response = models.JSONField(
        null=True,
        blank=True,
        help_text="Last raw response or event payload from the provider",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the transaction failed or was cancelled",
    )

    # ==========================================================================
    # Timestamps & Actors
    # ==========================================================================

    initiated_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the payment was initiated",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider confirmed payment",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment link expires",
    )

    initiated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who initiated the payment",
    )

    initiated_by_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Display name of the initiating user",
    )

    objects = SoftDeleteManager()
    all_objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        db_table = "payment_transactions"
        ordering = ["-created_at"]
        verbose_name = "Payment Transaction"
        verbose_name_plural = "Payment Transactions"
        indexes = [
            models.Index(fields=["transaction_status", "expires_at"], name="payment_txn_status_expires_idx"),
            models.Index(fields=["transaction_status", "created_at"], name="payment_txn_status_created_idx"),
            models.Index(fields=["payment_provider", "transaction_status"], name="payment_txn_provider_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(transaction_amount__gt=0),
                name="payment_transaction_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"PaymentTransaction({self.transaction_reference}, "
            f"{self.transaction_status}, {self.transaction_amount})"
        )

    @property
    def is_open(self) -> bool:
        return self.transaction_status in (
            TransactionStatus.PENDING,
            TransactionStatus.PROCESSING,
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=transaction_status,
        source=TransactionStatus.PENDING,
        target=TransactionStatus.PROCESSING,
    )
    def start_processing(self):
        """Transition: PENDING -> PROCESSING."""
        pass

    @transition(
        field=transaction_status,
        source=[TransactionStatus.PENDING, TransactionStatus.PROCESSING],
        target=TransactionStatus.COMPLETED,
    )
    def complete(self):
        """Transition: PENDING/PROCESSING -> COMPLETED."""
        self.completed_at = timezone.now()

    @transition(
        field=transaction_status,
        source=[TransactionStatus.PENDING, TransactionStatus.PROCESSING],
        target=TransactionStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """Transition: PENDING/PROCESSING -> FAILED."""
        self.failure_reason = reason

    @transition(
        field=transaction_status,
        source=[TransactionStatus.PENDING, TransactionStatus.PROCESSING],
        target=TransactionStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None):
        """Transition: PENDING/PROCESSING -> CANCELLED."""
        self.failure_reason = reason

    @transition(
        field=transaction_status,
        source=TransactionStatus.COMPLETED,
        target=TransactionStatus.REFUNDED,
    )
    def refund(self, reason: str | None = None):
        """Transition: COMPLETED -> REFUNDED."""
        if reason:
            self.failure_reason = reason
