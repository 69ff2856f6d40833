"""
Aid-specific exceptions for the grant and disbursement pipeline.

Ledger arithmetic errors live in aid.ledger.exceptions. This module
covers workflow, provider and concurrency failures.

Exception Hierarchy:
    AidError (base for the aid domain)
    ├── DuplicateDisbursement - A completed disbursement already exists
    ├── FundingSourceNotFound - No sub-ledger or envelope can fund a grant
    └── ImmutableRecordError - Attempted change to an append-only row

    ProviderError (inherits ExternalServiceError)
    ├── ProviderTimeoutError - Provider did not answer in time (transient)
    ├── ProviderUnavailableError - Connect errors and 5xx (transient)
    └── ProviderInvalidRequestError - 4xx from the provider (permanent)

    WebhookSignatureError - Missing or invalid webhook signature
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Usage:
    from aid.exceptions import InvalidStateTransitionError

    try:
        fund_request.approve(user=user)
    except TransitionNotAllowed:
        raise InvalidStateTransitionError(
            f"Cannot approve fund request in '{fund_request.status}' state",
            details={"current_state": fund_request.status, "transition": "approve"},
        )
"""

from __future__ import annotations

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
)


# =============================================================================
# Aid Domain Errors
# =============================================================================


class AidError(BaseApplicationError):
    """Base exception for aid pipeline failures."""

    default_error_code: str = "AID_ERROR"


class DuplicateDisbursement(AidError, ConflictError):
    """
    Raised when an application already has a completed disbursement.

    Mapped to HTTP 409. The partial unique constraint on
    aid_disbursements backs this check at the database level.
    """

    default_error_code: str = "DUPLICATE_DISBURSEMENT"


class FundingSourceNotFound(AidError, NotFoundError):
    """
    Raised when neither a partner school sub-ledger nor a matching
    budget envelope exists to fund a disbursement.
    """

    default_error_code: str = "NO_FUNDING_SOURCE"


class ImmutableRecordError(AidError):
    """Raised when code tries to update or delete an append-only row."""

    default_error_code: str = "IMMUTABLE_RECORD"


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderError(ExternalServiceError):
    """
    Base for payment provider failures.

    Attributes:
        is_retryable: Whether the same request may succeed later
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False


class ProviderTimeoutError(ProviderError):
    """Provider did not respond within the configured timeout."""

    default_error_code: str = "PROVIDER_TIMEOUT"
    is_retryable = True


class ProviderUnavailableError(ProviderError):
    """Connection failure or 5xx response from the provider."""

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable = True


class ProviderInvalidRequestError(ProviderError):
    """
    Provider rejected the request (4xx).

    Retrying the same payload will fail again, so this does not
    count against the circuit breaker.
    """

    default_error_code: str = "PROVIDER_INVALID_REQUEST"


class WebhookSignatureError(BaseApplicationError):
    """Webhook signature header missing, malformed, stale or wrong."""

    default_error_code: str = "INVALID_SIGNATURE"


# =============================================================================
# Concurrency Errors
# =============================================================================


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired.

    Example:
        raise LockAcquisitionError(
            "Could not acquire lock for aid:expire_transactions within 10s",
            details={"key": "lock:aid:expire_transactions", "timeout": 10}
        )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state machine transition is not allowed.

    This exception wraps django-fsm's TransitionNotAllowed to provide
    our standard error format with additional context.

    Attributes:
        details: Contains current_state, target_state, and transition name

    Note:
        This exception inherits from ConflictError (HTTP 409) because
        the current state conflicts with the requested operation.
    """

    default_error_code: str = "INVALID_TRANSITION"


__all__ = [
    "AidError",
    "DuplicateDisbursement",
    "FundingSourceNotFound",
    "ImmutableRecordError",
    "ProviderError",
    "ProviderTimeoutError",
    "ProviderUnavailableError",
    "ProviderInvalidRequestError",
    "WebhookSignatureError",
    "LockAcquisitionError",
    "InvalidStateTransitionError",
]
