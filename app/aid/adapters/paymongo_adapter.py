"""
PayMongo API adapter for grant payouts.

This module provides the PayMongoAdapter class which encapsulates all
PayMongo API interactions. All provider calls should go through this
adapter to ensure consistent error handling, timeouts and observability.

Features:
- Hosted checkout session creation over httpx
- Circuit breaker around outbound calls
- Automatic error translation to domain exceptions
- Webhook signature verification and event normalisation
- Mock mode for local development (no network I/O)

Configuration (via settings):
- PAYMONGO_SECRET_KEY: API secret key (basic auth username)
- PAYMONGO_WEBHOOK_SECRET: Webhook signing secret
- PAYMONGO_MODE: "test" or "live" (selects the signature to compare)
- PAYMONGO_API_BASE_URL: API base URL (default: https://api.paymongo.com)
- PAYMONGO_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- PAYMONGO_WEBHOOK_TOLERANCE_SECONDS: Max webhook timestamp age (default: 300)
- PAYMENT_MOCK_ENABLED: Return fake sessions instead of calling the API

Usage:
    from aid.adapters import PayMongoAdapter, CheckoutSessionParams

    session = PayMongoAdapter.create_checkout_session(
        CheckoutSessionParams(
            transaction_reference="TXN-1A2B3C4D5E6F7A8B",
            amount=Decimal("5000.00"),
            description="Scholarship Grant - Application #APP-2025-0001",
            metadata={"application_id": "17"},
        )
    )
    print(session.checkout_url)
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from decimal import Decimal
from typing import Any

import httpx
from django.conf import settings
from django.utils import timezone

from aid.exceptions import (
    ProviderInvalidRequestError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    WebhookSignatureError,
)
from core.circuit_breaker import CircuitBreaker
from core.exceptions import ValidationError

# =============================================================================
# Constants
# =============================================================================

CURRENCY = "PHP"

CHECKOUT_SESSIONS_PATH = "/v1/checkout_sessions"

# Payment methods offered on the hosted checkout page
DEFAULT_PAYMENT_METHOD_TYPES = ("gcash", "paymaya", "grab_pay", "card")

paymongo_circuit = CircuitBreaker(
    name="paymongo-api",
    failure_threshold=5,
    recovery_timeout=60,
    excluded_exceptions=(ProviderInvalidRequestError,),
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CheckoutSessionParams:
    """
    Parameters for creating a PayMongo checkout session.

    Attributes:
        transaction_reference: Our reference, sent as reference_number and metadata
        amount: Amount in pesos (converted to centavos for the API)
        description: Shown on the checkout page
        line_item_name: Single line item label (defaults to description)
        metadata: Extra key-value pairs echoed back in webhooks
        success_url/cancel_url: Redirects after checkout (default from settings)
        payment_method_types: Methods offered on the checkout page
    """

    transaction_reference: str
    amount: Decimal
    description: str
    line_item_name: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    success_url: str | None = None
    cancel_url: str | None = None
    payment_method_types: tuple[str, ...] = DEFAULT_PAYMENT_METHOD_TYPES

    def __post_init__(self) -> None:
        if self.amount is None or Decimal(self.amount) <= 0:
            raise ValueError("amount must be positive")
        if not self.transaction_reference:
            raise ValueError("transaction_reference is required")

    @property
    def amount_centavos(self) -> int:
        return int((Decimal(self.amount) * 100).quantize(Decimal("1")))


@dataclass
class CheckoutSessionResult:
    """
    Result of creating a checkout session.

    Attributes:
        id: Checkout session ID (cs_xxx)
        checkout_url: Hosted page the payer is sent to
        reference_number: Reference echoed by the provider
        expires_at: When the session stops accepting payment, if known
        raw_response: Full provider response (for debugging)
    """

    id: str
    checkout_url: str
    reference_number: str | None = None
    expires_at: datetime | None = None
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class ProviderEvent:
    """
    Provider webhook event normalised to the fields the pipeline uses.

    Attributes:
        event_id: Provider event ID (evt_xxx)
        event_type: e.g. "checkout_session.payment.paid"
        checkout_session_id: Session the payment belongs to (cs_xxx)
        transaction_reference: Our TXN- reference from metadata or reference_number
        provider_reference_number: Payment reference reported by the provider
        payment_id: Provider payment ID (pay_xxx)
        failure_reason: Provider failure message for failed payments
        raw: The original payload
    """

    event_id: str
    event_type: str
    checkout_session_id: str | None = None
    transaction_reference: str | None = None
    provider_reference_number: str | None = None
    payment_id: str | None = None
    failure_reason: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Adapter
# =============================================================================


class PayMongoAdapter:
    """
    Adapter for PayMongo API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.
    """

    # Request header carrying the webhook signature
    SIGNATURE_HEADER = "Paymongo-Signature"

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def is_mock_enabled() -> bool:
        return bool(getattr(settings, "PAYMENT_MOCK_ENABLED", False))

    @staticmethod
    def _client() -> httpx.Client:
        return httpx.Client(
            base_url=getattr(settings, "PAYMONGO_API_BASE_URL", "https://api.paymongo.com"),
            auth=(settings.PAYMONGO_SECRET_KEY or "", ""),
            timeout=getattr(settings, "PAYMONGO_API_TIMEOUT_SECONDS", 10),
            headers={"Accept": "application/json"},
        )

    # =========================================================================
    # Checkout Sessions
    # =========================================================================

    @classmethod
    def create_checkout_session(cls, params: CheckoutSessionParams) -> CheckoutSessionResult:
        """
        Create a hosted checkout session.

        Raises:
            ProviderTimeoutError: Request timed out
            ProviderUnavailableError: Connection failure or 5xx
            ProviderInvalidRequestError: 4xx response
            CircuitOpenError: Too many recent failures
        """
        logger = cls.get_logger()
        log_context = {
            "operation": "create_checkout_session",
            "transaction_reference": params.transaction_reference,
            "amount": str(params.amount),
        }

        if cls.is_mock_enabled():
            result = cls._mock_checkout_session(params)
            logger.info(
                "Mock checkout session created",
                extra={**log_context, "checkout_session_id": result.id},
            )
            return result

        body = {
            "data": {
                "attributes": {
                    "description": params.description,
                    "reference_number": params.transaction_reference,
                    "line_items": [
                        {
                            "name": params.line_item_name or params.description,
                            "quantity": 1,
                            "amount": params.amount_centavos,
                            "currency": CURRENCY,
                        }
                    ],
                    "payment_method_types": list(params.payment_method_types),
                    "success_url": params.success_url or settings.PAYMONGO_SUCCESS_URL,
                    "cancel_url": params.cancel_url or settings.PAYMONGO_CANCEL_URL,
                    "metadata": {
                        **params.metadata,
                        "transaction_reference": params.transaction_reference,
                    },
                }
            }
        }

        start_time = time.time()
        logger.info("Starting PayMongo operation", extra=log_context)

        with paymongo_circuit.call():
            with cls._client() as client:
                response = cls._send(client, "POST", CHECKOUT_SESSIONS_PATH, body, log_context)

        data = response.get("data") or {}
        attributes = data.get("attributes") or {}
        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "PayMongo operation completed",
            extra={
                **log_context,
                "checkout_session_id": data.get("id"),
                "duration_ms": duration_ms,
            },
        )

        return CheckoutSessionResult(
            id=data.get("id", ""),
            checkout_url=attributes.get("checkout_url", ""),
            reference_number=attributes.get("reference_number"),
            expires_at=_parse_timestamp(attributes.get("expires_at")),
            raw_response=response,
        )

    @classmethod
    def _send(
        cls,
        client: httpx.Client,
        method: str,
        path: str,
        body: dict[str, Any],
        log_context: dict[str, Any],
    ) -> dict[str, Any]:
        """Send a request and translate transport and HTTP errors."""
        logger = cls.get_logger()

        try:
            response = client.request(method, path, json=body)
        except httpx.TimeoutException:
            logger.warning("PayMongo request timed out", extra=log_context)
            raise ProviderTimeoutError(
                "PayMongo request timed out. Please retry.",
                details={"operation": log_context.get("operation")},
            )
        except httpx.RequestError as e:
            logger.error("Connection error to PayMongo", extra=log_context, exc_info=True)
            raise ProviderUnavailableError(
                "Could not connect to PayMongo. Please retry.",
                details={"operation": log_context.get("operation"), "error": str(e)},
            )

        if response.status_code >= 500:
            logger.error(
                "PayMongo server error",
                extra={**log_context, "status_code": response.status_code},
            )
            raise ProviderUnavailableError(
                "PayMongo service error. Please retry.",
                details={"status_code": response.status_code},
            )

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error(
                "Invalid request to PayMongo",
                extra={**log_context, "status_code": response.status_code, "detail": detail},
            )
            raise ProviderInvalidRequestError(
                f"Failed to create payment link: {detail}",
                details={"status_code": response.status_code},
            )

        try:
            return response.json()
        except ValueError:
            raise ProviderUnavailableError(
                "PayMongo returned an unreadable response",
                details={"status_code": response.status_code},
            )

    @classmethod
    def _mock_checkout_session(cls, params: CheckoutSessionParams) -> CheckoutSessionResult:
        """Deterministic fake session derived from the transaction reference."""
        digest = hashlib.sha256(params.transaction_reference.encode()).hexdigest()[:24]
        session_id = f"cs_mock_{digest}"
        expiry_minutes = getattr(settings, "PAYMENT_LINK_EXPIRY_MINUTES", 60)
        success_url = params.success_url or settings.PAYMONGO_SUCCESS_URL
        separator = "&" if "?" in success_url else "?"
        return CheckoutSessionResult(
            id=session_id,
            checkout_url=f"{success_url}{separator}mock_session={session_id}",
            reference_number=f"MOCK-{params.transaction_reference}",
            expires_at=timezone.now() + timedelta(minutes=expiry_minutes),
            raw_response={"data": {"id": session_id, "mock": True}},
        )

    # =========================================================================
    # Webhooks
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        header: str | None,
        now: float | None = None,
    ) -> None:
        """
        Verify a Paymongo-Signature header against the raw body.

        Header format: t=<unix ts>,te=<test signature>,li=<live signature>

        Raises:
            WebhookSignatureError: Missing or malformed header, stale
                timestamp, or signature mismatch
        """
        if not header:
            raise WebhookSignatureError("Missing webhook signature")

        parts = {}
        for item in header.split(","):
            key, sep, value = item.strip().partition("=")
            if sep:
                parts[key] = value

        timestamp = parts.get("t")
        if not timestamp or not timestamp.isdigit():
            raise WebhookSignatureError("Malformed webhook signature header")

        tolerance = getattr(settings, "PAYMONGO_WEBHOOK_TOLERANCE_SECONDS", 300)
        now = time.time() if now is None else now
        if abs(now - int(timestamp)) > tolerance:
            raise WebhookSignatureError(
                "Webhook timestamp outside tolerance",
                details={"timestamp": timestamp, "tolerance": tolerance},
            )

        live = getattr(settings, "PAYMONGO_MODE", "test") == "live"
        provided = parts.get("li") if live else parts.get("te")
        if not provided:
            raise WebhookSignatureError("Missing webhook signature")

        secret = (settings.PAYMONGO_WEBHOOK_SECRET or "").encode()
        signed = f"{timestamp}.".encode() + payload
        expected = hmac.new(secret, signed, hashlib.sha256).hexdigest()

        if not hmac.compare_digest(expected, provided):
            cls.get_logger().warning("PayMongo webhook signature mismatch")
            raise WebhookSignatureError("Invalid webhook signature")

    @classmethod
    def parse_event(cls, payload: dict[str, Any]) -> ProviderEvent:
        """
        Normalise a PayMongo event payload.

        Handles both checkout_session.* events (session resource with a
        payments list) and payment.* events (payment resource).

        Raises:
            ValidationError: The payload has no event id or type
        """
        if not isinstance(payload, dict):
            raise ValidationError("Webhook payload must be an object", error_code="INVALID_PAYLOAD")

        event = payload.get("data") or {}
        attributes = event.get("attributes") or {}
        event_id = event.get("id")
        event_type = attributes.get("type") or payload.get("type")
        if not event_id or not event_type:
            raise ValidationError(
                "Webhook payload is missing the event id or type",
                error_code="INVALID_PAYLOAD",
            )

        resource = attributes.get("data") or {}
        resource_id = resource.get("id")
        resource_attributes = resource.get("attributes") or {}

        if resource.get("type") == "checkout_session" or str(resource_id or "").startswith("cs_"):
            checkout_session_id = resource_id
            payments = resource_attributes.get("payments") or []
            payment = payments[0] if payments else {}
            payment_id = payment.get("id")
            payment_attributes = payment.get("attributes") or {}
        else:
            payment_id = resource_id
            payment_attributes = resource_attributes
            checkout_session_id = resource_attributes.get("checkout_session_id")

        metadata = resource_attributes.get("metadata") or payment_attributes.get("metadata") or {}
        transaction_reference = metadata.get("transaction_reference") or resource_attributes.get(
            "reference_number"
        )

        return ProviderEvent(
            event_id=event_id,
            event_type=event_type,
            checkout_session_id=checkout_session_id,
            transaction_reference=transaction_reference,
            provider_reference_number=payment_attributes.get("external_reference_number")
            or payment_id,
            payment_id=payment_id,
            failure_reason=payment_attributes.get("failed_message")
            or payment_attributes.get("failed_code"),
            raw=payload,
        )


# =============================================================================
# Helpers
# =============================================================================


def _parse_timestamp(value) -> datetime | None:
    """PayMongo timestamps are unix seconds."""
    if value in (None, ""):
        return None
    try:
        return datetime.fromtimestamp(int(value), tz=dt_timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def _error_detail(response: httpx.Response) -> str:
    try:
        errors = response.json().get("errors") or []
    except ValueError:
        return "Unknown error"
    if errors and isinstance(errors[0], dict):
        return errors[0].get("detail") or "Unknown error"
    return "Unknown error"
