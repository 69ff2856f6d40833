"""
Celery tasks for aid processing.

This module provides async tasks for:
- Processing provider webhook events
- Retrying failed webhook events
- Generating disbursement receipts
- Expiring stale payment transactions and lapsed sub-ledgers

Usage:
    from aid.tasks import process_webhook_event

    # Queue a webhook for async processing
    process_webhook_event.delay(webhook_event_id)

    # Render the receipt for a disbursement
    from aid.tasks import generate_disbursement_receipt
    generate_disbursement_receipt.delay(disbursement.id)
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.conf import settings

from aid.models import AidDisbursement, WebhookEvent
from aid.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = getattr(settings, "AID_WEBHOOK_MAX_RETRIES", 5)
MAX_RECEIPT_RETRIES = 3


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a provider webhook event asynchronously.

    dispatch_webhook locks the event, skips processed events, runs the
    handler and records the outcome on the event row.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status

    Raises:
        Exception: Transient failures are re-raised to trigger Celery retry
    """
    # Import here to avoid circular imports
    from aid.webhooks.handlers import dispatch_webhook

    # Convert string ID to UUID if needed
    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    logger.info(
        "Processing webhook event",
        extra={"webhook_event_id": str(webhook_event_id)},
    )

    result = dispatch_webhook(webhook_event_id)

    if not result.success:
        return {
            "status": "handler_failed",
            "webhook_event_id": str(webhook_event_id),
            "error": result.error,
            "error_code": result.error_code,
        }

    return {
        "status": (result.data or {}).get("status", "processed"),
        "webhook_event_id": str(webhook_event_id),
    }


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks that haven't exceeded max retries and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:100]

    queued_count = 0
    for webhook in failed_webhooks:
        try:
            process_webhook_event.delay(str(webhook.id))
            queued_count += 1
            logger.info(
                "Queued failed webhook for retry",
                extra={
                    "webhook_event_id": str(webhook.id),
                    "event_id": webhook.event_id,
                    "retry_count": webhook.retry_count,
                },
            )
        except Exception as e:
            logger.error(
                f"Failed to queue webhook for retry: {e}",
                extra={"webhook_event_id": str(webhook.id)},
            )

    logger.info(
        f"Queued {queued_count} failed webhooks for retry",
        extra={"queued_count": queued_count},
    )

    return {"queued_count": queued_count}


# =============================================================================
# Receipt Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(OSError,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_RECEIPT_RETRIES},
    acks_late=True,
)
def generate_disbursement_receipt(self, disbursement_id: int) -> dict:
    """
    Render and store the receipt for a disbursement.

    Storage errors (OSError) are retried with backoff. A disbursement
    that already has a receipt is left as is.

    Returns:
        Dict with status ("generated" or "not_found") and receipt_path
    """
    from aid.services import ReceiptService

    try:
        disbursement = AidDisbursement.objects.select_related(
            "application", "payment_transaction"
        ).get(pk=disbursement_id)
    except AidDisbursement.DoesNotExist:
        logger.warning(
            "AidDisbursement not found for receipt",
            extra={"disbursement_id": disbursement_id},
        )
        return {"status": "not_found", "disbursement_id": disbursement_id}

    path = ReceiptService.generate(disbursement)
    return {"status": "generated", "disbursement_id": disbursement_id, "receipt_path": path}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in aid.workers but re-exported here for
# convenience and to ensure Celery autodiscover finds them.

from aid.workers import (  # noqa: E402, F401
    cancel_expired_transaction,
    expire_partner_school_budgets,
    expire_stale_transactions,
)
