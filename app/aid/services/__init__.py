"""
Aid services.

Services:
    WithdrawalService - Partner school withdrawals and reversals
    FundRequestService - Fund request review and payout workflow
    TransactionService - PaymentTransaction state changes
    DisbursementService - Finalize, reverse and query disbursements
    GrantService - Start and revert hosted checkout grant payouts
    ReceiptService - Render, store and open disbursement receipts
"""

from aid.services.disbursement_service import DisbursementService
from aid.services.fund_request_service import FundRequestService
from aid.services.grant_service import GrantCheckout, GrantService
from aid.services.receipt_service import ReceiptService
from aid.services.transaction_service import TransactionService
from aid.services.withdrawal_service import WithdrawalService

__all__ = [
    "DisbursementService",
    "FundRequestService",
    "GrantCheckout",
    "GrantService",
    "ReceiptService",
    "TransactionService",
    "WithdrawalService",
]
