"""
Aid domain models.

This module contains all aid-related models:
- ScholarshipApplication: Application fields the grant pipeline reads and stamps
- BudgetAllocation: Budget envelope per budget type and school year
- PartnerSchoolBudget: Partner school sub-ledger
- PartnerSchoolBudgetWithdrawal: Append-only spend log for sub-ledgers
- PartnerSchoolFundRequest: Fund request workflow
- PaymentTransaction: One provider payment attempt for a grant
- AidDisbursement: Record of a paid-out grant
- WebhookEvent: Provider webhook event tracking for idempotent processing
"""

from aid.models.application import ScholarshipApplication
from aid.models.budget_allocation import BudgetAllocation
from aid.models.disbursement import AidDisbursement
from aid.models.fund_request import PartnerSchoolFundRequest
from aid.models.partner_school_budget import PartnerSchoolBudget
from aid.models.payment_transaction import PaymentTransaction
from aid.models.webhook_event import WebhookEvent
from aid.models.withdrawal import PartnerSchoolBudgetWithdrawal

__all__ = [
    "AidDisbursement",
    "BudgetAllocation",
    "PartnerSchoolBudget",
    "PartnerSchoolBudgetWithdrawal",
    "PartnerSchoolFundRequest",
    "PaymentTransaction",
    "ScholarshipApplication",
    "WebhookEvent",
]
