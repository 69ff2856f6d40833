"""
WebhookEvent model for payment provider webhook tracking.

Stores every webhook event received from a payment provider for
idempotent processing and audit trails. The unique (provider, event_id)
constraint ensures duplicate deliveries are detected.

Usage:
    from aid.models import WebhookEvent

    event, created = WebhookEvent.objects.get_or_create(
        provider="paymongo",
        event_id="evt_1234567890",
        defaults={
            "event_type": "checkout_session.payment.paid",
            "payload": payload,
        },
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.utils import timezone

from aid.state_machines import WebhookEventStatus
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify provider signature
        2. get_or_create WebhookEvent on (provider, event_id)
        3. If exists and PROCESSED -> return 200 (duplicate)
        4. If exists and PROCESSING -> return 200 (in progress)
        5. Queue the processing task
        6. Task sets PROCESSING, runs the handler, then PROCESSED or FAILED
    """

    # ==========================================================================
    # Event Identification
    # ==========================================================================

    provider = models.CharField(
        max_length=30,
        help_text="Provider that sent the event (e.g., 'paymongo')",
    )

    event_id = models.CharField(
        max_length=255,
        help_text="Provider event ID",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Provider event type (e.g., 'checkout_session.payment.paid')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload (JSON)",
    )

    # ==========================================================================
    # Processing Status
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When event was successfully processed",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        db_table = "aid_webhook_events"
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "event_id"],
                name="aid_webhook_event_unique_provider_event",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "created_at"], name="aid_webhook_status_created_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider}:{self.event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_processing(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSING

    @property
    def can_retry(self) -> bool:
        max_retries = getattr(settings, "AID_WEBHOOK_MAX_RETRIES", 5)
        return self.status == WebhookEventStatus.FAILED and self.retry_count < max_retries

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """
        Mark event as being processed.

        Note: Does not save - caller must save after calling.
        """
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """Note: Does not save - caller must save after calling."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
