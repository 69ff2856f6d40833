"""
Expiry worker for stale payment links and lapsed sub-ledgers.

This module provides Celery tasks that close out pending payment
transactions whose hosted payment link has expired, and expire partner
school sub-ledgers past their expiry date.

Tasks:
- expire_stale_transactions: Periodic task that scans for and queues expired transactions
- cancel_expired_transaction: Task that cancels a single expired transaction
- expire_partner_school_budgets: Periodic task that expires lapsed sub-ledgers

Usage:
    # Typically called via celery-beat schedule
    from aid.workers import expire_stale_transactions

    # Or manually trigger processing
    expire_stale_transactions.delay()

    # Cancel a specific transaction
    cancel_expired_transaction.delay(transaction.id)
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.db import DatabaseError
from django.utils import timezone

from aid.exceptions import LockAcquisitionError
from aid.ledger.services import SubLedgerService
from aid.locks import DistributedLock
from aid.services import TransactionService
from core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum transactions to queue per scan (prevents memory issues)
BATCH_SIZE = 100

# Lock key serialising the scan across workers
EXPIRY_SCAN_LOCK_KEY = "aid:expire_transactions"

# Lock TTL for the scan (seconds)
EXPIRY_SCAN_LOCK_TTL = 300


# =============================================================================
# Periodic Task: Scan for Expired Transactions
# =============================================================================


@shared_task(bind=True)
def expire_stale_transactions(self) -> dict:
    """
    Scan for pending transactions with an expired payment link and queue
    a cancel task for each.

    The task:
    1. Takes the scan lock (non-blocking, a concurrent scan is skipped)
    2. Queries pending transactions where expires_at < now, oldest first
    3. Queues a cancel_expired_transaction task for each, in batches

    Returns:
        Dict with:
        - queued_count: Number of transactions queued for cancellation
        - skipped: True when another worker holds the scan lock

    Note:
        This task is idempotent. cancel_expired_transaction re-checks
        status and expiry under a row lock before cancelling.
    """
    logger.info("Starting expired transaction scan")

    now = timezone.now()
    queued_count = 0

    try:
        with DistributedLock(
            EXPIRY_SCAN_LOCK_KEY, ttl=EXPIRY_SCAN_LOCK_TTL, blocking=False
        ) as lock:
            ids = list(TransactionService.expired_pending(now).values_list("id", flat=True))

            for start in range(0, len(ids), BATCH_SIZE):
                for transaction_id in ids[start : start + BATCH_SIZE]:
                    try:
                        cancel_expired_transaction.delay(transaction_id)
                        queued_count += 1
                    except Exception as e:
                        logger.error(
                            f"Failed to queue expired transaction: {e}",
                            extra={"transaction_id": transaction_id, "error": str(e)},
                        )
                lock.extend()

    except LockAcquisitionError:
        logger.info("Expired transaction scan already running, skipping")
        return {"queued_count": 0, "skipped": True}

    logger.info(
        f"Expired transaction scan complete: queued {queued_count} transactions",
        extra={"queued_count": queued_count},
    )

    return {"queued_count": queued_count, "skipped": False}


# =============================================================================
# Individual Cancel Task
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(LockAcquisitionError, DatabaseError),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 3},
    acks_late=True,
)
def cancel_expired_transaction(self, transaction_id: int) -> dict:
    """
    Cancel one expired pending transaction and revert its application.

    Args:
        transaction_id: Primary key of the PaymentTransaction

    Returns:
        Dict with:
        - status: One of "cancelled", "skipped", "not_found"
        - transaction_id: The transaction processed
    """
    try:
        cancelled = TransactionService.cancel_if_expired(transaction_id)
    except NotFoundError:
        logger.warning(
            "PaymentTransaction not found",
            extra={"transaction_id": transaction_id},
        )
        return {"status": "not_found", "transaction_id": transaction_id}

    if not cancelled:
        logger.info(
            "Transaction no longer pending or not expired, skipping",
            extra={"transaction_id": transaction_id},
        )
        return {"status": "skipped", "transaction_id": transaction_id}

    return {"status": "cancelled", "transaction_id": transaction_id}


# =============================================================================
# Periodic Task: Expire Sub-Ledgers
# =============================================================================


@shared_task(bind=True)
def expire_partner_school_budgets(self) -> dict:
    """
    Mark active partner school budgets past their expiry date as expired.

    Returns:
        Dict with:
        - expired_count: Number of sub-ledgers expired
    """
    expired_count = SubLedgerService.expire_budgets()

    logger.info(
        f"Partner school budget expiry complete: expired {expired_count}",
        extra={"expired_count": expired_count},
    )

    return {"expired_count": expired_count}
