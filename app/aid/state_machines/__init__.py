"""
State machine enums for aid models.

This module defines the status enums used by aid models with django-fsm.
"""

from aid.state_machines.states import (
    ApplicationStatus,
    BudgetType,
    DisbursementStatus,
    FundRequestStatus,
    PaymentMethod,
    PaymentProvider,
    SubLedgerStatus,
    TransactionStatus,
    WebhookEventStatus,
    WithdrawalEntryType,
)

__all__ = [
    "ApplicationStatus",
    "BudgetType",
    "DisbursementStatus",
    "FundRequestStatus",
    "PaymentMethod",
    "PaymentProvider",
    "SubLedgerStatus",
    "TransactionStatus",
    "WebhookEventStatus",
    "WithdrawalEntryType",
]
