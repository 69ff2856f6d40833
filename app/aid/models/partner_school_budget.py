"""
PartnerSchoolBudget model: a partner school's sub-ledger.

A sub-ledger holds the funds allocated to one school for one academic
year. Withdrawals, fund request disbursements and grants funded through
the school all deduct from it. Rows are never deleted; they expire or
deplete instead.

Usage:
    from aid.models import PartnerSchoolBudget

    budget = PartnerSchoolBudget.objects.get_current_budget(school_id=42)
    if budget and budget.has_funds(Decimal("5000")):
        ...
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings
from django.db import models

from aid.exceptions import ImmutableRecordError
from aid.state_machines import SubLedgerStatus
from core.models import BaseModel

ZERO = Decimal("0.00")


class PartnerSchoolBudgetQuerySet(models.QuerySet):
    """Chainable lookups for sub-ledgers."""

    def active(self) -> PartnerSchoolBudgetQuerySet:
        return self.filter(status=SubLedgerStatus.ACTIVE)

    def for_school(self, school_id) -> PartnerSchoolBudgetQuerySet:
        return self.filter(school_id=school_id)

    def for_year(self, academic_year: str) -> PartnerSchoolBudgetQuerySet:
        return self.filter(academic_year=academic_year)

    def get_current_budget(self, school_id) -> PartnerSchoolBudget | None:
        """Latest active sub-ledger for the school, by allocation date."""
        return (
            self.active()
            .for_school(school_id)
            .order_by("-allocation_date", "-id")
            .first()
        )


class PartnerSchoolBudget(BaseModel):
    """
    Funds allocated to one partner school for one academic year.

    Fields:
        source_budget: Envelope the allocation was reserved from (optional)
        allocated_amount: Funds allocated to the school
        disbursed_amount: Funds already spent
        status: active, expired or depleted
        notes: Running log of allocation notes, newline separated

    Invariants:
        available_amount == allocated_amount - disbursed_amount
        status is DEPLETED whenever available_amount <= 0
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    source_budget = models.ForeignKey(
        "aid.BudgetAllocation",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="partner_school_budgets",
        help_text="Envelope this allocation was reserved from",
    )

    # ==========================================================================
    # School
    # ==========================================================================

    school_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="School ID from the scholarship service",
    )

    school_name = models.CharField(
        max_length=255,
        help_text="School display name (cached)",
    )

    academic_year = models.CharField(
        max_length=20,
        db_index=True,
        help_text="Academic year (e.g., '2025-2026')",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    allocated_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        default=ZERO,
        help_text="Funds allocated to the school",
    )

    disbursed_amount = models.DecimalField(
        max_digits=15,
        decimal_places=2,
        default=ZERO,
        help_text="Funds spent from this allocation",
    )

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=SubLedgerStatus.choices,
        default=SubLedgerStatus.ACTIVE,
        db_index=True,
        help_text="Active, expired or depleted",
    )

    allocation_date = models.DateTimeField(
        help_text="When the allocation was made",
    )

    expiry_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When unspent funds expire",
    )

    notes = models.TextField(
        null=True,
        blank=True,
        help_text="Allocation notes, one entry per line",
    )

    allocated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who made the allocation",
    )

    objects = PartnerSchoolBudgetQuerySet.as_manager()

    class Meta:
        db_table = "partner_school_budgets"
        ordering = ["-allocation_date"]
        verbose_name = "Partner School Budget"
        verbose_name_plural = "Partner School Budgets"
        constraints = [
            models.UniqueConstraint(
                fields=["school_id", "academic_year"],
                name="partner_school_budget_unique_school_year",
            ),
            models.CheckConstraint(
                condition=models.Q(allocated_amount__gte=0) & models.Q(disbursed_amount__gte=0),
                name="partner_school_budget_amounts_non_negative",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"PartnerSchoolBudget({self.school_id}, {self.academic_year}, "
            f"{self.available_amount}/{self.allocated_amount})"
        )

    # ==========================================================================
    # Derived Amounts
    # ==========================================================================

    @property
    def available_amount(self) -> Decimal:
        return self.allocated_amount - self.disbursed_amount

    @property
    def utilization_rate(self) -> Decimal:
        """Disbursed share of the allocation, as a percentage."""
        if not self.allocated_amount:
            return ZERO
        rate = self.disbursed_amount / self.allocated_amount * 100
        return rate.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def has_funds(self, amount: Decimal) -> bool:
        return self.available_amount >= Decimal(amount)

    def recompute_status(self) -> None:
        """
        Derive status from availability.

        Does not save. An expired sub-ledger stays expired while it still
        has funds; only the expiry sweep sets EXPIRED.
        """
        if self.available_amount <= 0:
            self.status = SubLedgerStatus.DEPLETED
        elif self.status == SubLedgerStatus.DEPLETED:
            self.status = SubLedgerStatus.ACTIVE

    def append_note(self, note: str | None) -> None:
        if not note:
            return
        self.notes = f"{self.notes}\n{note}" if self.notes else note

    def delete(self, using=None, keep_parents=False):
        raise ImmutableRecordError(
            "Partner school budgets cannot be deleted",
            details={"partner_school_budget_id": self.pk},
        )
