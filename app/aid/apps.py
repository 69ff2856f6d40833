"""
Aid app configuration.

This app provides the scholarship aid fund pipeline:
- Budget envelopes and partner school sub-ledgers
- Withdrawals and fund requests against sub-ledgers
- Grant checkout, payment transactions and disbursements
- Provider webhook handling and background sweeps
"""

from django.apps import AppConfig


class AidConfig(AppConfig):
    """Configuration for the aid application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "aid"
    verbose_name = "School Aid"
