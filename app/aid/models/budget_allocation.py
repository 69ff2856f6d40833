"""
BudgetAllocation model: the top-level budget envelope.

One envelope exists per (budget_type, school_year). Partner school
sub-ledgers reserve against allocated_budget; grants funded directly
from the envelope settle against disbursed_budget.

Usage:
    from aid.models import BudgetAllocation

    envelope = BudgetAllocation.objects.get(
        budget_type=BudgetType.SCHOLARSHIP_BENEFITS,
        school_year="2025-2026",
    )
    envelope.available_budget   # total - allocated
    envelope.remaining_budget   # total - disbursed
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import models

from aid.state_machines import BudgetType
from core.managers import SoftDeleteManager, SoftDeleteQuerySet
from core.model_mixins import SoftDeleteMixin
from core.models import BaseModel

ZERO = Decimal("0.00")


class BudgetAllocation(SoftDeleteMixin, BaseModel):
    """
    Budget envelope for one budget type and school year.

    Fields:
        budget_type: financial_support or scholarship_benefits
        school_year: e.g. "2025-2026"
        total_budget: Funds made available for the year
        allocated_budget: Portion reserved by partner school sub-ledgers
        disbursed_budget: Portion paid out directly from the envelope
        is_active: Whether new grants may draw on this envelope

    Invariants:
        total_budget, allocated_budget, disbursed_budget are all >= 0
        allocated_budget <= total_budget (enforced by BudgetLedgerService)

    Note:
        Envelopes are soft deleted only. A sub-ledger whose source envelope
        has been soft deleted refuses further deductions.
    """

    # ==========================================================================
    # Identity
    # ==========================================================================

    budget_type = models.CharField(
        max_length=30,
        choices=BudgetType.choices,
        help_text="Budget category",
    )

    school_year = models.CharField(
        max_length=20,
        db_index=True,
        help_text="School year this envelope funds (e.g., '2025-2026')",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    total_budget = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        default=ZERO,
        help_text="Total funds available for the school year",
    )

    allocated_budget = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        default=ZERO,
        help_text="Funds reserved by partner school sub-ledgers",
    )

    disbursed_budget = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        default=ZERO,
        help_text="Funds paid out directly from this envelope",
    )

    # ==========================================================================
    # Metadata
    # ==========================================================================

    description = models.TextField(
        null=True,
        blank=True,
        help_text="Free-form description of the budget",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether grants may draw on this envelope",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who created the envelope",
    )

    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who last changed the envelope",
    )

    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who soft deleted the envelope",
    )

    objects = SoftDeleteManager()
    all_objects = SoftDeleteQuerySet.as_manager()

    class Meta:
        db_table = "budget_allocations"
        ordering = ["-school_year", "budget_type"]
        verbose_name = "Budget Allocation"
        verbose_name_plural = "Budget Allocations"
        constraints = [
            models.UniqueConstraint(
                fields=["budget_type", "school_year"],
                condition=models.Q(is_deleted=False),
                name="budget_allocation_unique_type_year",
            ),
            models.CheckConstraint(
                condition=models.Q(total_budget__gte=0)
                & models.Q(allocated_budget__gte=0)
                & models.Q(disbursed_budget__gte=0),
                name="budget_allocation_amounts_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(disbursed_budget__lte=models.F("total_budget")),
                name="budget_allocation_disbursed_within_total",
            ),
        ]

    def __str__(self) -> str:
        return f"BudgetAllocation({self.budget_type}, {self.school_year}, {self.total_budget})"

    # ==========================================================================
    # Derived Amounts
    # ==========================================================================

    @property
    def remaining_budget(self) -> Decimal:
        """Funds not yet paid out (never negative)."""
        return max(ZERO, self.total_budget - self.disbursed_budget)

    @property
    def available_budget(self) -> Decimal:
        """Funds not yet reserved by sub-ledgers (never negative)."""
        return max(ZERO, self.total_budget - self.allocated_budget)

    @property
    def utilization_rate(self) -> Decimal:
        """Disbursed share of the total, as a percentage with two decimals."""
        if not self.total_budget:
            return ZERO
        rate = self.disbursed_budget / self.total_budget * 100
        return rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
