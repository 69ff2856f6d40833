"""
Payment provider adapters for the aid app.

Exports:
    PayMongoAdapter: Hosted checkout sessions and webhook verification
    CheckoutSessionParams: Input for create_checkout_session
    CheckoutSessionResult: Created session (id, checkout_url, expiry)
    ProviderEvent: Normalised webhook event
"""

from aid.adapters.paymongo_adapter import (
    CheckoutSessionParams,
    CheckoutSessionResult,
    PayMongoAdapter,
    ProviderEvent,
    paymongo_circuit,
)

__all__ = [
    "CheckoutSessionParams",
    "CheckoutSessionResult",
    "PayMongoAdapter",
    "ProviderEvent",
    "paymongo_circuit",
]
