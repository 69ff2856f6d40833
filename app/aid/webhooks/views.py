"""
Webhook endpoint views for payment providers.

This module provides the HTTP endpoint for receiving provider webhooks.
The view:
1. Verifies the webhook signature
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Async processing keeps webhook responses fast while the ledger work
runs in a Celery worker.

Usage:
    # In urls.py
    from aid.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    ]
"""

from __future__ import annotations

import json
import logging

from django.db import DatabaseError
from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from aid.adapters import PayMongoAdapter
from aid.exceptions import WebhookSignatureError
from aid.models import WebhookEvent
from aid.state_machines import WebhookEventStatus
from core.exceptions import ValidationError

logger = logging.getLogger(__name__)


# Adapters that can verify and parse inbound webhooks, by URL provider name
WEBHOOK_PROVIDERS = {
    "paymongo": PayMongoAdapter,
}


@csrf_exempt
@require_POST
def provider_webhook(request: HttpRequest, provider: str) -> HttpResponse:
    """
    Receive and queue payment provider webhook events.

    Security:
    - Signature verification prevents spoofed webhooks
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - (provider, event_id) is unique on WebhookEvent
    - Duplicate deliveries are detected and return 200 without reprocessing

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new, in flight or duplicate)
        - 400: Invalid signature or payload
        - 404: Unknown provider
        - 500: Event could not be stored or queued (provider retries)

    Example Paymongo-Signature header:
        t=1614556800,te=xxx,li=
    """
    adapter = WEBHOOK_PROVIDERS.get(provider)
    if adapter is None:
        logger.warning("Webhook received for unknown provider", extra={"provider": provider})
        return HttpResponse("Unknown provider", status=404)

    payload = request.body

    # Step 1: Verify signature
    try:
        adapter.verify_webhook_signature(payload, request.headers.get(adapter.SIGNATURE_HEADER))
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"provider": provider, "error": e.message},
        )
        return HttpResponse("Invalid signature", status=400)

    try:
        event_data = json.loads(payload)
        provider_event = adapter.parse_event(event_data)
    except (ValueError, ValidationError) as e:
        logger.warning(
            "Webhook payload could not be parsed",
            extra={"provider": provider, "error": str(e)},
        )
        return HttpResponse("Invalid payload", status=400)

    logger.info(
        f"Received {provider} webhook: {provider_event.event_type}",
        extra={
            "provider": provider,
            "event_id": provider_event.event_id,
            "event_type": provider_event.event_type,
        },
    )

    # Step 2: Create/get WebhookEvent (idempotent)
    try:
        webhook_event, created = WebhookEvent.objects.get_or_create(
            provider=provider,
            event_id=provider_event.event_id,
            defaults={
                "event_type": provider_event.event_type,
                "payload": event_data,
                "status": WebhookEventStatus.PENDING,
            },
        )
    except DatabaseError:
        logger.exception(
            "Failed to store webhook event",
            extra={"provider": provider, "event_id": provider_event.event_id},
        )
        return HttpResponse("Storage error", status=500)

    # Step 3: Duplicates of processed or in-flight events are acknowledged
    if not created:
        if webhook_event.status == WebhookEventStatus.PROCESSED:
            logger.info(
                "Webhook already processed, returning success",
                extra={"provider": provider, "event_id": provider_event.event_id},
            )
            return HttpResponse("Already processed", status=200)

        if webhook_event.status == WebhookEventStatus.PROCESSING:
            logger.info(
                "Webhook already processing, returning success",
                extra={"provider": provider, "event_id": provider_event.event_id},
            )
            return HttpResponse("Processing", status=200)

        logger.info(
            f"Webhook already exists with status: {webhook_event.status}",
            extra={"provider": provider, "event_id": provider_event.event_id},
        )

    # Step 4: Queue for async processing
    try:
        from aid.tasks import process_webhook_event

        process_webhook_event.delay(webhook_event.id)
    except Exception as e:
        # Not acknowledged, so the provider delivers the event again
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"provider": provider, "event_id": provider_event.event_id},
            exc_info=True,
        )
        return HttpResponse("Queue error", status=500)

    logger.info(
        "Webhook queued for processing",
        extra={
            "provider": provider,
            "event_id": provider_event.event_id,
            "webhook_event_id": str(webhook_event.id),
        },
    )

    # Step 5: Return success immediately
    return HttpResponse("Accepted", status=200)
