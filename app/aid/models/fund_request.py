"""
PartnerSchoolFundRequest model.

A partner school asks for part of its sub-ledger to be released. The
request is reviewed (approved or rejected), paid out (disbursed), and
finally closed with proof of spending (liquidated). Only the disburse
step moves money.

Usage:
    from aid.services.fund_request_service import FundRequestService

    request = FundRequestService.submit(budget_id, Decimal("5000"), "Lab equipment").data
    FundRequestService.approve(request.id, user)
    FundRequestService.disburse(request.id, user)
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from aid.state_machines import FundRequestStatus
from core.models import BaseModel


class PartnerSchoolFundRequest(BaseModel):
    """
    Request to release funds from a partner school sub-ledger.

    State Flow:
        PENDING -> APPROVED -> DISBURSED -> LIQUIDATED
        PENDING -> REJECTED

    Fields:
        partner_school_budget: Sub-ledger the funds come from
        amount: Requested amount
        status: Current FSM state
        request_document_path: Supporting document for the request
        liquidation_document_path: Proof of spending, set on liquidation
        processed_at/processed_by: Last review or payout action
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    partner_school_budget = models.ForeignKey(
        "aid.PartnerSchoolBudget",
        on_delete=models.PROTECT,
        related_name="fund_requests",
        help_text="Sub-ledger the funds are requested from",
    )

    school_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="School ID (denormalised from the sub-ledger)",
    )

    # ==========================================================================
    # Request
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        help_text="Requested amount",
    )

    purpose = models.CharField(
        max_length=255,
        help_text="What the funds will be used for",
    )

    notes = models.TextField(
        null=True,
        blank=True,
        help_text="Additional notes",
    )

    request_document_path = models.CharField(
        max_length=500,
        null=True,
        blank=True,
        help_text="Storage path of the supporting document",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=FundRequestStatus.PENDING,
        choices=FundRequestStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the request (managed by FSM)",
    )

    rejection_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Reason given when the request was rejected",
    )

    liquidation_document_path = models.CharField(
        max_length=500,
        null=True,
        blank=True,
        help_text="Storage path of the liquidation proof",
    )

    # ==========================================================================
    # Timestamps & Actors
    # ==========================================================================

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the request was last processed",
    )

    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who last processed the request",
    )

    approved_at = models.DateTimeField(null=True, blank=True)
    disbursed_at = models.DateTimeField(null=True, blank=True)
    liquidated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "partner_school_fund_requests"
        ordering = ["-created_at"]
        verbose_name = "Partner School Fund Request"
        verbose_name_plural = "Partner School Fund Requests"
        indexes = [
            models.Index(fields=["school_id", "status"], name="fund_request_school_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gt=0),
                name="fund_request_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"PartnerSchoolFundRequest({self.pk}, {self.status}, {self.amount})"

    def _stamp(self, user) -> None:
        self.processed_at = timezone.now()
        self.processed_by = user

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=FundRequestStatus.PENDING,
        target=FundRequestStatus.APPROVED,
    )
    def approve(self, user=None):
        """Transition: PENDING -> APPROVED. Moves no money."""
        self._stamp(user)
        self.approved_at = self.processed_at

    @transition(
        field=status,
        source=FundRequestStatus.PENDING,
        target=FundRequestStatus.REJECTED,
    )
    def reject(self, user=None, reason: str | None = None):
        """Transition: PENDING -> REJECTED (terminal)."""
        self._stamp(user)
        self.rejection_reason = reason

    @transition(
        field=status,
        source=FundRequestStatus.APPROVED,
        target=FundRequestStatus.DISBURSED,
    )
    def disburse(self, user=None):
        """
        Transition: APPROVED -> DISBURSED.

        The caller deducts the sub-ledger in the same transaction.
        """
        self._stamp(user)
        self.disbursed_at = self.processed_at

    @transition(
        field=status,
        source=FundRequestStatus.DISBURSED,
        target=FundRequestStatus.LIQUIDATED,
    )
    def liquidate(self, liquidation_document_path: str, user=None):
        """Transition: DISBURSED -> LIQUIDATED (terminal)."""
        self._stamp(user)
        self.liquidation_document_path = liquidation_document_path
        self.liquidated_at = self.processed_at
