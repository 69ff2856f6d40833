"""
PartnerSchoolBudgetWithdrawal model: append-only spend log.

Every withdrawal a partner school records against its sub-ledger lands
here together with the proof document path and the availability left
right after the deduction. Rows are never edited or deleted. A mistake
is corrected by a reversal row that points at the original.

Usage:
    from aid.services.withdrawal_service import WithdrawalService

    result = WithdrawalService.record(
        school_id=42,
        amount=Decimal("2500.00"),
        purpose="Learning materials",
        proof_document_path="budget_withdrawals/receipt.pdf",
        withdrawal_date=timezone.now(),
        recorded_by=user,
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from aid.exceptions import ImmutableRecordError
from aid.state_machines import WithdrawalEntryType
from core.models import BaseModel


class PartnerSchoolBudgetWithdrawal(BaseModel):
    """
    Immutable record of funds taken out of a partner school sub-ledger.

    Fields:
        partner_school_budget: Sub-ledger the amount was deducted from
        amount: Amount withdrawn (always positive, also for reversals)
        available_after: Sub-ledger availability right after this entry
        entry_type: withdrawal or reversal
        reverses: Original withdrawal a reversal row corrects

    Note:
        save() on an existing row and delete() both raise
        ImmutableRecordError.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    partner_school_budget = models.ForeignKey(
        "aid.PartnerSchoolBudget",
        on_delete=models.PROTECT,
        related_name="withdrawals",
        help_text="Sub-ledger this withdrawal was deducted from",
    )

    school_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="School ID (denormalised from the sub-ledger)",
    )

    reverses = models.OneToOneField(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="reversal",
        help_text="Withdrawal this reversal entry corrects",
    )

    # ==========================================================================
    # Entry
    # ==========================================================================

    entry_type = models.CharField(
        max_length=20,
        choices=WithdrawalEntryType.choices,
        default=WithdrawalEntryType.WITHDRAWAL,
        help_text="Withdrawal or reversal",
    )

    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Amount withdrawn or returned",
    )

    purpose = models.CharField(
        max_length=255,
        help_text="What the funds were used for",
    )

    notes = models.TextField(
        null=True,
        blank=True,
        help_text="Additional notes",
    )

    proof_document_path = models.CharField(
        max_length=500,
        help_text="Storage path of the proof of use",
    )

    withdrawal_date = models.DateTimeField(
        db_index=True,
        help_text="When the funds were withdrawn",
    )

    available_after = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Sub-ledger availability right after this entry",
    )

    recorded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who recorded the entry",
    )

    class Meta:
        db_table = "partner_school_budget_withdrawals"
        ordering = ["-withdrawal_date", "-id"]
        verbose_name = "Partner School Budget Withdrawal"
        verbose_name_plural = "Partner School Budget Withdrawals"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="withdrawal_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"PartnerSchoolBudgetWithdrawal({self.pk}, {self.entry_type}, {self.amount})"

    @property
    def is_reversal(self) -> bool:
        return self.entry_type == WithdrawalEntryType.REVERSAL

    def save(self, *args, **kwargs):
        if self.pk is not None and not kwargs.get("force_insert", False):
            raise ImmutableRecordError(
                "Withdrawal records cannot be modified",
                details={"withdrawal_id": self.pk},
            )
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ImmutableRecordError(
            "Withdrawal records cannot be deleted",
            details={"withdrawal_id": self.pk},
        )
