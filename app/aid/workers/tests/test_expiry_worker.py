"""
Tests for the expiry worker tasks.

Tests cover:
- expire_stale_transactions queues only expired pending transactions
- The scan is skipped while another worker holds the lock
- cancel_expired_transaction re-checks state before cancelling
- expire_partner_school_budgets expires lapsed sub-ledgers
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from aid.models import PartnerSchoolBudget, PaymentTransaction, ScholarshipApplication
from aid.state_machines import ApplicationStatus, SubLedgerStatus, TransactionStatus
from aid.tests.factories import PartnerSchoolBudgetFactory, PaymentTransactionFactory
from aid.workers import (
    cancel_expired_transaction,
    expire_partner_school_budgets,
    expire_stale_transactions,
)


@pytest.fixture
def mock_redis(mocker):
    """Mock Redis connection that always grants locks."""
    redis_instance = mocker.MagicMock()
    redis_instance.set.return_value = True
    redis_instance.eval.return_value = 1
    mocker.patch("aid.locks.get_redis_connection", return_value=redis_instance)
    return redis_instance


@pytest.fixture
def mock_cancel_task(mocker):
    return mocker.patch("aid.workers.expiry_worker.cancel_expired_transaction.delay")


def _expired(**kwargs):
    return PaymentTransactionFactory(expires_at=timezone.now() - timedelta(minutes=10), **kwargs)


class TestExpireStaleTransactions:
    def test_queues_expired_pending_transactions(self, db, mock_redis, mock_cancel_task):
        first = _expired()
        second = _expired()
        PaymentTransactionFactory()
        _expired(transaction_status=TransactionStatus.COMPLETED)

        result = expire_stale_transactions()

        assert result == {"queued_count": 2, "skipped": False}
        queued = {call.args[0] for call in mock_cancel_task.call_args_list}
        assert queued == {first.id, second.id}

    def test_lock_is_released(self, db, mock_redis, mock_cancel_task):
        expire_stale_transactions()

        mock_redis.set.assert_called_once()
        assert mock_redis.set.call_args.args[0] == "lock:aid:expire_transactions"
        # extend is skipped with nothing queued, so the only eval is the release
        assert mock_redis.eval.call_count == 1

    def test_skipped_while_another_scan_runs(self, db, mock_redis, mock_cancel_task):
        mock_redis.set.return_value = False
        _expired()

        result = expire_stale_transactions()

        assert result == {"queued_count": 0, "skipped": True}
        mock_cancel_task.assert_not_called()

    def test_queue_errors_do_not_stop_the_scan(self, db, mock_redis, mock_cancel_task):
        _expired()
        _expired()
        mock_cancel_task.side_effect = [ConnectionError("broker down"), None]

        result = expire_stale_transactions()

        assert result["queued_count"] == 1


class TestCancelExpiredTransaction:
    def test_cancels_and_reverts_application(self, db):
        txn = _expired()

        result = cancel_expired_transaction(txn.id)

        assert result == {"status": "cancelled", "transaction_id": txn.id}
        assert (
            PaymentTransaction.objects.get(pk=txn.pk).transaction_status
            == TransactionStatus.CANCELLED
        )
        assert (
            ScholarshipApplication.objects.get(pk=txn.application_id).status
            == ApplicationStatus.APPROVED
        )

    def test_paid_before_cancel_is_skipped(self, db):
        txn = _expired(transaction_status=TransactionStatus.COMPLETED)

        assert cancel_expired_transaction(txn.id)["status"] == "skipped"

    def test_unknown_transaction(self, db):
        assert cancel_expired_transaction(424242) == {
            "status": "not_found",
            "transaction_id": 424242,
        }


class TestExpirePartnerSchoolBudgets:
    def test_expires_lapsed_budgets(self, db):
        lapsed = PartnerSchoolBudgetFactory(expiry_date=timezone.now() - timedelta(days=1))
        current = PartnerSchoolBudgetFactory(
            school_id=7, expiry_date=timezone.now() + timedelta(days=30)
        )

        result = expire_partner_school_budgets()

        assert result == {"expired_count": 1}
        assert PartnerSchoolBudget.objects.get(pk=lapsed.pk).status == SubLedgerStatus.EXPIRED
        assert PartnerSchoolBudget.objects.get(pk=current.pk).status == SubLedgerStatus.ACTIVE

    def test_budget_expires_once_the_date_passes(self, db):
        with freeze_time("2025-06-01 12:00:00"):
            budget = PartnerSchoolBudgetFactory(expiry_date=timezone.now() + timedelta(days=1))
            assert expire_partner_school_budgets() == {"expired_count": 0}

        with freeze_time("2025-06-03 12:00:00"):
            assert expire_partner_school_budgets() == {"expired_count": 1}

        assert PartnerSchoolBudget.objects.get(pk=budget.pk).status == SubLedgerStatus.EXPIRED
