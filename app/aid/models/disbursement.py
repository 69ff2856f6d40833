"""
AidDisbursement model: the record that a grant was paid out.

Disbursements are append-only. After insert, the only changes allowed
are filling receipt_path once and stamping a reversal once.

Usage:
    from aid.services.disbursement_service import DisbursementService

    disbursement = DisbursementService.finalize(
        application_id=app.id,
        amount=app.approved_amount,
        method="bank_transfer",
        provider_name="LandBank",
        reference_number="LB-000123",
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from aid.exceptions import ImmutableRecordError
from aid.state_machines import DisbursementStatus
from core.models import BaseModel

MUTABLE_FIELDS = frozenset(
    {"receipt_path", "status", "reversed_at", "reversal_reason", "updated_at"}
)


class AidDisbursement(BaseModel):
    """
    A completed grant payout against one scholarship application.

    Fields:
        payment_transaction: Provider transaction that paid it (automatic path)
        partner_school_budget: Sub-ledger charged, when the school had one
        budget_allocation: Envelope charged, when no sub-ledger existed
        method/provider_name/reference_number: How the money was sent
        receipt_path: Stored receipt (generated or uploaded)
        status: completed or reversed

    Invariants:
        At most one COMPLETED disbursement per application
        (partial unique constraint).
    """

    # ==========================================================================
    # Application
    # ==========================================================================

    application = models.ForeignKey(
        "aid.ScholarshipApplication",
        on_delete=models.PROTECT,
        related_name="disbursements",
        help_text="Application that was funded",
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

    school_id = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        db_index=True,
        help_text="School ID (denormalised)",
    )

    # ==========================================================================
    # Funding
    # ==========================================================================

    payment_transaction = models.OneToOneField(
        "aid.PaymentTransaction",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="disbursement",
        help_text="Provider transaction that paid this grant",
    )

    partner_school_budget = models.ForeignKey(
        "aid.PartnerSchoolBudget",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="disbursements",
        help_text="Sub-ledger charged for this grant",
    )

    budget_allocation = models.ForeignKey(
        "aid.BudgetAllocation",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="disbursements",
        help_text="Envelope charged for this grant",
    )

    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Amount paid out",
    )

    # ==========================================================================
    # Payout Details
    # ==========================================================================

    method = models.CharField(
        max_length=100,
        help_text="Disbursement method (e.g., digital_wallet, bank_transfer)",
    )

    provider_name = models.CharField(
        max_length=255,
        help_text="Bank or wallet provider name",
    )

    reference_number = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Provider or bank reference number",
    )

    account_number = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Destination account number",
    )

    receipt_path = models.CharField(
        max_length=500,
        null=True,
        blank=True,
        help_text="Storage path of the receipt",
    )

    notes = models.TextField(
        null=True,
        blank=True,
        help_text="Additional notes",
    )

    disbursed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who disbursed (empty for provider-confirmed payouts)",
    )

    disbursed_by_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Display name of the disbursing user or system",
    )

    disbursed_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="When the grant was paid out",
    )

    # ==========================================================================
    # Status & Reversal
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=DisbursementStatus.choices,
        default=DisbursementStatus.COMPLETED,
        db_index=True,
        help_text="Completed or reversed",
    )

    reversed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the disbursement was reversed",
    )

    reversal_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the disbursement was reversed",
    )

    class Meta:
        db_table = "aid_disbursements"
        ordering = ["-disbursed_at"]
        verbose_name = "Aid Disbursement"
        verbose_name_plural = "Aid Disbursements"
        constraints = [
            models.UniqueConstraint(
                fields=["application"],
                condition=models.Q(status=DisbursementStatus.COMPLETED),
                name="aid_disbursement_one_completed_per_application",
            ),
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="aid_disbursement_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"AidDisbursement({self.pk}, {self.application_number}, {self.amount}, {self.status})"

    @property
    def is_reversed(self) -> bool:
        return self.status == DisbursementStatus.REVERSED

    def save(self, *args, **kwargs):
        """
        Insert, or update only the receipt and reversal columns.

        Updates must pass update_fields restricted to MUTABLE_FIELDS.
        """
        if self.pk is not None and not kwargs.get("force_insert", False):
            update_fields = kwargs.get("update_fields")
            if not update_fields or not set(update_fields) <= MUTABLE_FIELDS:
                raise ImmutableRecordError(
                    "Disbursement records can only receive a receipt or a reversal",
                    details={"disbursement_id": self.pk},
                )
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ImmutableRecordError(
            "Disbursement records cannot be deleted",
            details={"disbursement_id": self.pk},
        )

    def mark_reversed(self, reason: str | None = None) -> None:
        """Stamp the one-time reversal. Does not save."""
        if self.is_reversed:
            raise ImmutableRecordError(
                "Disbursement has already been reversed",
                details={"disbursement_id": self.pk},
            )
        self.status = DisbursementStatus.REVERSED
        self.reversed_at = timezone.now()
        self.reversal_reason = reason

    def attach_receipt(self, path: str) -> bool:
        """Fill receipt_path once. Returns False if a receipt is already set."""
        if self.receipt_path:
            return False
        self.receipt_path = path
        self.save(update_fields=["receipt_path", "updated_at"])
        return True
