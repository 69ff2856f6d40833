"""
Webhook event handlers for payment provider events.

This module provides a handler registry and implementations for
processing provider webhook events against payment transactions.

The handler registry allows:
- Clean separation between event routing and handling
- Several provider event names mapped to one handler
- Centralized status tracking and error handling in dispatch_webhook

Usage:
    from aid.webhooks.handlers import dispatch_webhook, register_handler

    # Register a custom handler
    @register_handler("payment.custom")
    def handle_custom(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    # Process a stored event (normally from the Celery task)
    result = dispatch_webhook(webhook_event.id)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.db import DatabaseError, transaction
from django.db.models import F

from aid.adapters import PayMongoAdapter, ProviderEvent
from aid.exceptions import (
    LockAcquisitionError,
    ProviderTimeoutError,
    ProviderUnavailableError,
)
from aid.models import PaymentTransaction, WebhookEvent
from aid.services import DisbursementService, TransactionService
from aid.state_machines import WebhookEventStatus
from core.exceptions import BaseApplicationError, NotFoundError
from core.services import ServiceResult

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Errors worth retrying: the transaction may not be committed yet, a lock
# was busy, or a dependency was briefly unavailable.
TRANSIENT_ERRORS = (
    NotFoundError,
    LockAcquisitionError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    DatabaseError,
)

# Adapters able to parse stored payloads, by provider name
EVENT_PARSERS = {
    "paymongo": PayMongoAdapter,
}


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(*event_types: str) -> Callable:
    """
    Decorator to register a webhook event handler for one or more event types.

    Usage:
        @register_handler("payment.paid", "checkout_session.payment.paid")
        def handle_payment_paid(webhook_event: WebhookEvent) -> ServiceResult:
            ...
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        for event_type in event_types:
            WEBHOOK_HANDLERS[event_type] = func
            logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event_id) -> ServiceResult:
    """
    Process a stored webhook event exactly once.

    Locks the event row, skips already processed events, marks the event
    processing, runs its handler and marks it processed or failed. The
    handler runs in a savepoint so a failed handler leaves no partial
    ledger changes.

    Returns:
        ServiceResult from the handler, or success for skipped and
        unhandled events

    Raises:
        TRANSIENT_ERRORS: Re-raised after recording the failure so the
            Celery task retries
    """
    try:
        with transaction.atomic():
            webhook_event = (
                WebhookEvent.objects.select_for_update().filter(pk=webhook_event_id).first()
            )
            if webhook_event is None:
                logger.error(
                    "WebhookEvent not found",
                    extra={"webhook_event_id": str(webhook_event_id)},
                )
                return ServiceResult.failure(
                    "Webhook event not found",
                    error_code="WEBHOOK_EVENT_NOT_FOUND",
                )

            if webhook_event.is_processed:
                logger.info(
                    "WebhookEvent already processed, skipping",
                    extra={"webhook_event_id": str(webhook_event.id)},
                )
                return ServiceResult.success({"status": "already_processed"})

            handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)
            webhook_event.mark_processing()

            if handler is None:
                logger.info(
                    f"No handler registered for event type: {webhook_event.event_type}",
                    extra={"event_id": webhook_event.event_id},
                )
                webhook_event.mark_processed()
                webhook_event.save()
                return ServiceResult.success({"status": "ignored"})

            logger.info(
                f"Dispatching {webhook_event.event_type} to handler",
                extra={
                    "event_id": webhook_event.event_id,
                    "retry_count": webhook_event.retry_count,
                },
            )

            try:
                with transaction.atomic():
                    result = handler(webhook_event)
            except BaseApplicationError as e:
                if isinstance(e, TRANSIENT_ERRORS):
                    raise
                result = ServiceResult.from_exception(e)

            if result.success:
                webhook_event.mark_processed()
            else:
                webhook_event.mark_failed(result.error or "Handler returned failure")
                logger.warning(
                    f"Webhook handler failed: {result.error}",
                    extra={
                        "event_id": webhook_event.event_id,
                        "error_code": result.error_code,
                    },
                )
            webhook_event.save()
            return result

    except Exception as e:
        _record_failure(webhook_event_id, e)
        raise


def _record_failure(webhook_event_id, error: Exception) -> None:
    """Persist a failed attempt after the processing transaction rolled back."""
    error_message = f"{type(error).__name__}: {error}"
    logger.exception(
        "Webhook processing failed with exception",
        extra={"webhook_event_id": str(webhook_event_id), "error": error_message},
    )
    WebhookEvent.objects.filter(pk=webhook_event_id).exclude(
        status=WebhookEventStatus.PROCESSED
    ).update(
        status=WebhookEventStatus.FAILED,
        error_message=error_message,
        retry_count=F("retry_count") + 1,
    )


def _parse(webhook_event: WebhookEvent) -> ProviderEvent:
    return EVENT_PARSERS[webhook_event.provider].parse_event(webhook_event.payload)


def _find_transaction(provider_event: ProviderEvent) -> PaymentTransaction:
    """
    Resolve the transaction an event refers to.

    Raises:
        NotFoundError: No match yet (retryable, the opening transaction
            may not be committed)
    """
    txn = TransactionService.find(
        reference=provider_event.transaction_reference,
        provider_transaction_id=provider_event.checkout_session_id or provider_event.payment_id,
    )
    if txn is None:
        raise NotFoundError(
            "Payment transaction not found for webhook event",
            error_code="TRANSACTION_NOT_FOUND",
            details={
                "event_id": provider_event.event_id,
                "transaction_reference": provider_event.transaction_reference,
                "checkout_session_id": provider_event.checkout_session_id,
            },
        )
    return txn


# =============================================================================
# Payment Handlers
# =============================================================================


@register_handler("payment.paid", "checkout_session.payment.paid")
def handle_payment_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Complete the transaction and disburse the grant.

    PayMongo sends both payment.paid and checkout_session.payment.paid
    for one payment; the second finds the transaction already completed
    and does nothing.
    """
    provider_event = _parse(webhook_event)
    txn = _find_transaction(provider_event)

    txn, applied = TransactionService.mark_completed(
        txn.transaction_reference,
        provider_transaction_id=provider_event.checkout_session_id,
        provider_reference_number=provider_event.provider_reference_number,
        provider_response=webhook_event.payload,
    )
    if not applied:
        return ServiceResult.success({"status": "already_completed"})

    disbursement = DisbursementService.finalize_transaction(txn)
    logger.info(
        "Grant disbursed from webhook",
        extra={
            "event_id": webhook_event.event_id,
            "transaction_reference": txn.transaction_reference,
            "disbursement_id": disbursement.id,
        },
    )
    return ServiceResult.success({"status": "disbursed", "disbursement_id": disbursement.id})


@register_handler("payment.failed", "checkout_session.payment.failed")
def handle_payment_failed(webhook_event: WebhookEvent) -> ServiceResult:
    provider_event = _parse(webhook_event)
    txn = _find_transaction(provider_event)
    TransactionService.mark_failed(
        txn.transaction_reference,
        reason=provider_event.failure_reason or "Payment failed",
    )
    return ServiceResult.success({"status": "failed"})


@register_handler("payment.refunded", "payment.refund.updated")
def handle_payment_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """Refund the transaction; the disbursement is reversed with it."""
    provider_event = _parse(webhook_event)
    txn = _find_transaction(provider_event)
    TransactionService.refund(txn.transaction_reference, reason="Refunded by provider")
    return ServiceResult.success({"status": "refunded"})


@register_handler("checkout_session.expired", "link.expired")
def handle_checkout_expired(webhook_event: WebhookEvent) -> ServiceResult:
    provider_event = _parse(webhook_event)
    txn = _find_transaction(provider_event)
    TransactionService.cancel(txn.transaction_reference, reason="Checkout session expired")
    return ServiceResult.success({"status": "cancelled"})
