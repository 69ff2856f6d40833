"""
Tests for the aid concurrency utilities.

Tests the DistributedLock class used to keep periodic sweeps from
overlapping across workers, and lock_row used by every ledger mutation.
"""

import pytest
from django.db import transaction

from aid.exceptions import LockAcquisitionError
from aid.locks import DistributedLock, lock_row
from aid.models import PartnerSchoolBudget, PaymentTransaction
from aid.tests.factories import PaymentTransactionFactory
from core.exceptions import NotFoundError


class TestDistributedLock:
    """Tests for DistributedLock class."""

    def test_acquire_success(self, mock_redis):
        lock = DistributedLock("test:key", ttl=30, blocking=False)

        assert lock.acquire() is True
        assert lock.is_held is True
        call_args = mock_redis.set.call_args
        assert call_args.args[0] == "lock:test:key"
        assert call_args.kwargs["nx"] is True
        assert call_args.kwargs["px"] == 30000

    def test_tokens_are_unique(self, mock_redis):
        lock1 = DistributedLock("test:key1", blocking=False)
        lock2 = DistributedLock("test:key2", blocking=False)

        lock1.acquire()
        lock2.acquire()

        assert lock1._token != lock2._token

    def test_non_blocking_raises_when_held(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("test:key", blocking=False)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert "already held" in exc_info.value.message
        assert exc_info.value.details["key"] == "lock:test:key"
        assert lock.is_held is False

    def test_blocking_waits_and_acquires(self, mock_redis):
        mock_redis.set.side_effect = [False, False, True]

        lock = DistributedLock("test:key", blocking=True, timeout=1.0)

        assert lock.acquire() is True
        assert mock_redis.set.call_count == 3

    def test_blocking_timeout(self, mock_redis):
        mock_redis.set.return_value = False
        lock = DistributedLock("test:key", blocking=True, timeout=0.1)

        with pytest.raises(LockAcquisitionError) as exc_info:
            lock.acquire()

        assert exc_info.value.details["timeout"] == 0.1

    def test_release(self, mock_redis):
        lock = DistributedLock("test:key", blocking=False)
        lock.acquire()

        assert lock.release() is True
        assert lock.is_held is False
        mock_redis.eval.assert_called_once()

    def test_release_when_token_no_longer_matches(self, mock_redis):
        mock_redis.eval.return_value = 0
        lock = DistributedLock("test:key", blocking=False)
        lock.acquire()

        assert lock.release() is False

    def test_release_without_acquire(self, mock_redis):
        assert DistributedLock("test:key").release() is False
        mock_redis.eval.assert_not_called()

    def test_extend_resets_ttl(self, mock_redis):
        lock = DistributedLock("test:key", ttl=300, blocking=False)
        lock.acquire()

        assert lock.extend() is True
        assert mock_redis.eval.call_args.args[-1] == 300000

    def test_extend_without_lock(self, mock_redis):
        assert DistributedLock("test:key").extend() is False

    def test_context_manager_releases_on_exception(self, mock_redis):
        with pytest.raises(ValueError):
            with DistributedLock("test:key", blocking=False):
                raise ValueError("boom")

        mock_redis.eval.assert_called_once()


class TestLockRow:
    def test_returns_locked_row(self, db):
        txn = PaymentTransactionFactory()

        with transaction.atomic():
            locked = lock_row(PaymentTransaction, txn.pk)

        assert locked == txn

    def test_missing_row(self, db):
        with transaction.atomic():
            with pytest.raises(NotFoundError) as exc_info:
                lock_row(PartnerSchoolBudget, 424242)

        assert exc_info.value.error_code == "PARTNERSCHOOLBUDGET_NOT_FOUND"

    def test_custom_error_code(self, db):
        with transaction.atomic():
            with pytest.raises(NotFoundError) as exc_info:
                lock_row(PartnerSchoolBudget, 424242, error_code="BUDGET_NOT_FOUND")

        assert exc_info.value.error_code == "BUDGET_NOT_FOUND"
