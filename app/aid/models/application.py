"""
ScholarshipApplication model.

The scholarship service owns application review. This table holds the
subset of an application the aid pipeline needs to fund and stamp a
grant: identity, school, approved amount, and the grant status.

Usage:
    from aid.models import ScholarshipApplication

    application = ScholarshipApplication.objects.get(pk=application_id)
    application.start_grant_processing()  # approved -> grants_processing
    application.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from aid.state_machines import ApplicationStatus, BudgetType
from core.models import BaseModel


class ScholarshipApplication(BaseModel):
    """
    Scholarship application as seen by the grant pipeline.

    Grant Flow:
        APPROVED -> GRANTS_PROCESSING -> GRANTS_DISBURSED
        GRANTS_PROCESSING -> APPROVED (checkout failed, cancelled or expired)
        APPROVED/PENDING_DISBURSEMENT -> GRANTS_DISBURSED (manual disbursement)
        GRANTS_DISBURSED -> APPROVED (disbursement reversed after refund)

    Note:
        Review statuses (submitted, under_review, rejected) are written by
        the scholarship service and never transitioned here.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    application_number = models.CharField(
        max_length=50,
        unique=True,
        help_text="Human-facing application number",
    )

    student_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="Student ID from the scholarship service",
    )

    student_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Student display name (cached)",
    )

    # ==========================================================================
    # School & Budget
    # ==========================================================================

    school_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="School ID from the scholarship service",
    )

    school_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="School display name (cached)",
    )

    budget_type = models.CharField(
        max_length=30,
        choices=BudgetType.choices,
        default=BudgetType.SCHOLARSHIP_BENEFITS,
        help_text="Envelope category used when no school sub-ledger exists",
    )

    school_year = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="School year of the grant (e.g., '2025-2026')",
    )

    approved_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Grant amount approved by the review committee",
    )

    wallet_account_number = models.CharField(
        max_length=100,
        null=True,
        blank=True,
        help_text="Student's digital wallet account number",
    )

    # ==========================================================================
    # Status
    # ==========================================================================

    status = FSMField(
        default=ApplicationStatus.SUBMITTED,
        choices=ApplicationStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current application status (grant transitions managed by FSM)",
    )

    disbursed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the grant was disbursed",
    )

    class Meta:
        db_table = "scholarship_applications"
        ordering = ["-created_at"]
        verbose_name = "Scholarship Application"
        verbose_name_plural = "Scholarship Applications"
        indexes = [
            models.Index(fields=["school_id", "status"], name="sch_app_school_status_idx"),
        ]

    def __str__(self) -> str:
        return f"ScholarshipApplication({self.application_number}, {self.status})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=ApplicationStatus.APPROVED,
        target=ApplicationStatus.GRANTS_PROCESSING,
    )
    def start_grant_processing(self):
        """A hosted checkout has been opened for this grant."""
        pass

    @transition(
        field=status,
        source=ApplicationStatus.GRANTS_PROCESSING,
        target=ApplicationStatus.APPROVED,
    )
    def revert_to_approved(self):
        """The open checkout failed, expired or was cancelled."""
        pass

    @transition(
        field=status,
        source=[
            ApplicationStatus.APPROVED,
            ApplicationStatus.PENDING_DISBURSEMENT,
            ApplicationStatus.GRANTS_PROCESSING,
        ],
        target=ApplicationStatus.GRANTS_DISBURSED,
    )
    def mark_grants_disbursed(self):
        """
        Record that the grant was paid out.

        Transition: APPROVED/PENDING_DISBURSEMENT/GRANTS_PROCESSING -> GRANTS_DISBURSED
        """
        self.disbursed_at = timezone.now()

    @transition(
        field=status,
        source=ApplicationStatus.GRANTS_DISBURSED,
        target=ApplicationStatus.APPROVED,
    )
    def reverse_disbursement(self):
        """The disbursement was reversed after a provider refund."""
        self.disbursed_at = None
