"""
Abstract base model shared by the aid ledger tables.

Every aid model (budget envelopes, sub-ledgers, withdrawals, fund requests,
payment transactions, disbursements and webhook events) inherits BaseModel
so that audit timestamps are recorded the same way everywhere.

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin

    class BudgetAllocation(SoftDeleteMixin, BaseModel):
        total_budget = models.DecimalField(max_digits=15, decimal_places=2)

Note:
    List mixins before BaseModel so their Meta and managers take effect.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract model with creation and modification timestamps.

    Fields:
        created_at: Set once when the row is inserted
        updated_at: Refreshed on every save()

    Ledger code that writes with queryset.update() must set updated_at
    explicitly since auto_now only fires on save().
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
