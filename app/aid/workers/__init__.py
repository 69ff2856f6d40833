"""
Workers for background aid processing.

This module contains Celery tasks for periodic aid operations:
- ExpiryWorker: Cancels expired payment transactions and expires lapsed
  partner school budgets

Usage:
    from aid.workers import (
        cancel_expired_transaction,
        expire_partner_school_budgets,
        expire_stale_transactions,
    )

    # Trigger manual processing
    expire_stale_transactions.delay()
    cancel_expired_transaction.delay(transaction_id)
"""

from aid.workers.expiry_worker import (
    cancel_expired_transaction,
    expire_partner_school_budgets,
    expire_stale_transactions,
)

__all__ = [
    # Expiry Worker
    "cancel_expired_transaction",
    "expire_partner_school_budgets",
    "expire_stale_transactions",
]
