"""
Webhook handling for payment provider events.

This module provides views and handlers for processing provider webhooks.
Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks.

Usage:
    # In urls.py
    from aid.webhooks.views import provider_webhook

    urlpatterns = [
        path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    ]
"""

from aid.webhooks.handlers import dispatch_webhook, register_handler
from aid.webhooks.views import provider_webhook

__all__ = [
    "dispatch_webhook",
    "provider_webhook",
    "register_handler",
]
