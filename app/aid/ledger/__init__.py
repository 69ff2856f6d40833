"""
Ledger - Budget envelopes and partner school sub-ledgers.

Money enters through a budget envelope (BudgetAllocation) per budget type
and school year. Envelopes reserve funds for partner school sub-ledgers
(PartnerSchoolBudget), which are spent by withdrawals, fund requests and
grants. Grants for schools without a sub-ledger settle directly against
the envelope.

Public API:
    Services (import from aid.ledger.services):
        BudgetLedgerService - fund, reserve, settle, unsettle
        SubLedgerService - allocate, deduct, refund, adjust_allocation, check_budget
        resolve_funding_source / charge - Pick and charge the ledger for a grant

    Types:
        BudgetCheck - Result of a budget check
        FundingSource - Ledger charged for a disbursement

    Exceptions:
        LedgerError - Base exception for ledger operations
        InsufficientFunds - Amount exceeds availability
        StaleReference - Source envelope soft deleted
        BudgetNotFound - Envelope or sub-ledger lookup failures
        InvalidAmount - Non-positive or out-of-range amounts

Note:
    Services are not re-exported here because they import models, which
    need the app registry to be ready.
"""

from .exceptions import (
    BudgetNotFound,
    InsufficientFunds,
    InvalidAmount,
    LedgerError,
    StaleReference,
)
from .types import BudgetCheck, FundingSource

__all__ = [
    "BudgetCheck",
    "FundingSource",
    "LedgerError",
    "InsufficientFunds",
    "StaleReference",
    "BudgetNotFound",
    "InvalidAmount",
]
