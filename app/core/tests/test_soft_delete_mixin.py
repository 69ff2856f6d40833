"""
Tests for SoftDeleteMixin.

These tests verify that:
- soft_delete() marks the row deleted and is idempotent
- restore() brings it back and is idempotent
- delete() is routed to soft_delete(); hard_delete() removes the row
"""

from unittest.mock import patch

import pytest

from aid.models import BudgetAllocation
from aid.tests.factories import BudgetAllocationFactory


@pytest.fixture
def envelope(db):
    return BudgetAllocationFactory()


def _stored(envelope) -> BudgetAllocation:
    return BudgetAllocation.all_objects.get(pk=envelope.pk)


class TestSoftDelete:
    def test_sets_flag_and_timestamp(self, envelope):
        envelope.soft_delete()

        stored = _stored(envelope)
        assert stored.is_deleted is True
        assert stored.deleted_at is not None

    def test_is_idempotent(self, envelope):
        envelope.soft_delete()
        deleted_at = _stored(envelope).deleted_at

        envelope.soft_delete()

        assert _stored(envelope).deleted_at == deleted_at

    def test_calls_hook_once(self, envelope):
        with patch.object(BudgetAllocation, "on_soft_delete", create=True) as hook:
            envelope.soft_delete()
            envelope.soft_delete()

        hook.assert_called_once()

    def test_delete_is_soft(self, envelope):
        assert envelope.delete() == (0, {})

        assert _stored(envelope).is_deleted is True


class TestRestore:
    def test_clears_flag_and_timestamp(self, envelope):
        envelope.soft_delete()

        envelope.restore()

        stored = _stored(envelope)
        assert stored.is_deleted is False
        assert stored.deleted_at is None
        assert BudgetAllocation.objects.filter(pk=envelope.pk).exists()

    def test_not_deleted_is_a_no_op(self, envelope):
        with patch.object(BudgetAllocation, "on_restore", create=True) as hook:
            envelope.restore()

        hook.assert_not_called()


class TestHardDelete:
    def test_removes_row(self, envelope):
        envelope.hard_delete()

        assert not BudgetAllocation.all_objects.filter(pk=envelope.pk).exists()

    def test_works_on_soft_deleted_row(self, envelope):
        envelope.soft_delete()

        envelope.hard_delete()

        assert not BudgetAllocation.all_objects.filter(pk=envelope.pk).exists()
