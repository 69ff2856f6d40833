"""
State enums for aid models.

This module defines the status enums used by aid models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

PartnerSchoolBudget (sub-ledger) Status:
    active ⇄ depleted (recomputed from available amount)
    active → expired (expiry sweep)

FundRequest States:
    pending → approved → disbursed → liquidated
    pending → rejected

PaymentTransaction States:
    pending → processing → completed → refunded
    pending/processing → failed
    pending/processing → cancelled

ScholarshipApplication States (pipeline subset):
    approved → grants_processing → grants_disbursed
    grants_processing → approved (revert)
    grants_disbursed → approved (reversal)
"""

from django.db import models


class BudgetType(models.TextChoices):
    """Budget envelope categories."""

    FINANCIAL_SUPPORT = "financial_support", "Financial Support"
    SCHOLARSHIP_BENEFITS = "scholarship_benefits", "Scholarship Benefits"


class SubLedgerStatus(models.TextChoices):
    """
    Status of a partner school sub-ledger.

    DEPLETED must hold whenever available_amount <= 0. It returns to
    ACTIVE once availability is positive again (refund or allocation
    increase). EXPIRED is set by the expiry sweep only.
    """

    ACTIVE = "active", "Active"
    EXPIRED = "expired", "Expired"
    DEPLETED = "depleted", "Depleted"


class FundRequestStatus(models.TextChoices):
    """
    States for the PartnerSchoolFundRequest lifecycle.

    Terminal states: REJECTED, LIQUIDATED

    State Flow:
        PENDING → APPROVED → DISBURSED → LIQUIDATED
        PENDING → REJECTED
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    DISBURSED = "disbursed", "Disbursed"
    REJECTED = "rejected", "Rejected"
    LIQUIDATED = "liquidated", "Liquidated"


class TransactionStatus(models.TextChoices):
    """
    States for the PaymentTransaction lifecycle.

    Terminal states: FAILED, CANCELLED, REFUNDED

    State Flow:
        PENDING → PROCESSING → COMPLETED
        PENDING → COMPLETED (provider confirms directly)
        PENDING/PROCESSING → FAILED
        PENDING/PROCESSING → CANCELLED
        COMPLETED → REFUNDED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"
    REFUNDED = "refunded", "Refunded"


class PaymentProvider(models.TextChoices):
    """Payment gateway or bank used for a transaction."""

    GCASH = "gcash", "GCash"
    MAYA = "maya", "Maya"
    PAYMONGO = "paymongo", "PayMongo"
    BPI = "bpi", "BPI"
    BDO = "bdo", "BDO"
    UNIONBANK = "unionbank", "UnionBank"
    LANDBANK = "landbank", "LandBank"
    MANUAL = "manual", "Manual"


class PaymentMethod(models.TextChoices):
    """Method of payment for a transaction."""

    DIGITAL_WALLET = "digital_wallet", "Digital Wallet"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    OVER_THE_COUNTER = "over_the_counter", "Over the Counter"
    ONLINE_BANKING = "online_banking", "Online Banking"
    MANUAL = "manual", "Manual"


class ApplicationStatus(models.TextChoices):
    """
    Scholarship application statuses.

    Only the grant pipeline transitions are driven from this codebase;
    review statuses are set by the scholarship service.
    """

    SUBMITTED = "submitted", "Submitted"
    UNDER_REVIEW = "under_review", "Under Review"
    APPROVED = "approved", "Approved"
    PENDING_DISBURSEMENT = "pending_disbursement", "Pending Disbursement"
    GRANTS_PROCESSING = "grants_processing", "Grants Processing"
    GRANTS_DISBURSED = "grants_disbursed", "Grants Disbursed"
    REJECTED = "rejected", "Rejected"


class DisbursementStatus(models.TextChoices):
    """
    Status of a disbursement record.

    At most one COMPLETED disbursement may exist per application.
    REVERSED rows are kept for audit after a refund.
    """

    COMPLETED = "completed", "Completed"
    REVERSED = "reversed", "Reversed"


class WithdrawalEntryType(models.TextChoices):
    """Kind of withdrawal ledger entry."""

    WITHDRAWAL = "withdrawal", "Withdrawal"
    REVERSAL = "reversal", "Reversal"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
