"""
Managers for soft-deletable aid records.

Budget envelopes and payment transactions are never removed from the
database; deleting one only flags it. Pair the filtering manager with an
unfiltered one so ledger code and the admin can still reach flagged rows:

    class BudgetAllocation(SoftDeleteMixin, BaseModel):
        objects = SoftDeleteManager()
        all_objects = SoftDeleteQuerySet.as_manager()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    """
    QuerySet whose delete() flags rows instead of removing them.

    Instance hooks on_soft_delete() and on_restore() run before the bulk
    update, so a hook that raises aborts the whole operation.
    """

    def delete(self) -> tuple[int, dict[str, int]]:
        live = self.filter(is_deleted=False)
        for instance in live:
            if hasattr(instance, "on_soft_delete"):
                instance.on_soft_delete()

        now = timezone.now()
        count = live.update(is_deleted=True, deleted_at=now, updated_at=now)
        return count, {self.model._meta.label: count}

    def hard_delete(self) -> tuple[int, dict[str, int]]:
        """Remove the rows for real."""
        return super().delete()

    def restore(self) -> int:
        flagged = self.filter(is_deleted=True)
        for instance in flagged:
            if hasattr(instance, "on_restore"):
                instance.on_restore()

        return flagged.update(is_deleted=False, deleted_at=None, updated_at=timezone.now())

    def deleted(self) -> SoftDeleteQuerySet:
        return self.filter(is_deleted=True)

    def active(self) -> SoftDeleteQuerySet:
        return self.filter(is_deleted=False)


class SoftDeleteManager(models.Manager.from_queryset(SoftDeleteQuerySet)):
    """
    Default manager hiding soft-deleted rows.

    The filter applies to every query built from it, select_for_update()
    included, so a locked envelope is always a live one.
    """

    def get_queryset(self) -> SoftDeleteQuerySet:
        return super().get_queryset().filter(is_deleted=False)

    def with_deleted(self) -> SoftDeleteQuerySet:
        return SoftDeleteQuerySet(self.model, using=self._db)

    def deleted(self) -> SoftDeleteQuerySet:
        return self.with_deleted().filter(is_deleted=True)
