"""
Model mixins providing reusable functionality for Django models.

This module contains abstract mixin classes that can be combined with
BaseModel to add specific functionality. These are generic infrastructure
classes with no domain-specific logic.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    SoftDeleteMixin: Soft delete support (is_deleted, deleted_at)

Usage:
    from core.models import BaseModel
    from core.model_mixins import SoftDeleteMixin

    class BudgetAllocation(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = SoftDeleteQuerySet.as_manager()

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
    - SoftDeleteMixin requires SoftDeleteManager (see core.managers)
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Fields:
        id: UUIDField as primary key (auto-generated)

    Usage:
        class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
            event_id = models.CharField(max_length=255)

    Note:
        Used for records whose ids are exposed to third parties or
        generated before insert. Ledger rows keep integer ids so that
        lock ordering by id stays cheap.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class SoftDeleteMixin(models.Model):
    """
    Soft delete support for models.

    Instead of permanently deleting records, marks them as deleted.
    Deleted records can be restored and are preserved for auditing.

    Fields:
        is_deleted: Boolean flag indicating soft delete status
        deleted_at: Timestamp when the record was soft deleted

    Usage:
        envelope.soft_delete()
        envelope.restore()

        BudgetAllocation.objects.all()      # excludes deleted
        BudgetAllocation.all_objects.all()  # includes deleted

    Note:
        delete() is routed to soft_delete(), so financial records are
        never removed by accident. Use hard_delete() explicitly.
    """

    is_deleted = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether this record has been soft deleted",
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Timestamp when this record was soft deleted",
    )

    class Meta:
        abstract = True

    def soft_delete(self) -> None:
        """
        Mark this record as deleted.

        Sets is_deleted=True and deleted_at to current time. Calling it
        on an already deleted record is a no-op.
        """
        if self.is_deleted:
            return
        if hasattr(self, "on_soft_delete"):
            self.on_soft_delete()
        self.is_deleted = True
        self.deleted_at = timezone.now()
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])

    def restore(self) -> None:
        """
        Restore a soft-deleted record.

        Sets is_deleted=False and deleted_at to None.
        """
        if not self.is_deleted:
            return
        if hasattr(self, "on_restore"):
            self.on_restore()
        self.is_deleted = False
        self.deleted_at = None
        self.save(update_fields=["is_deleted", "deleted_at", "updated_at"])

    def delete(self, using=None, keep_parents=False):
        """Soft delete instead of removing the row."""
        self.soft_delete()
        return 0, {}

    def hard_delete(self):
        """
        Permanently delete this record.

        Warning:
            This cannot be undone. Consider soft_delete() instead.
        """
        return super().delete()
