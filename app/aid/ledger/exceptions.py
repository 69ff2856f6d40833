"""
Ledger-specific exceptions for budget operations.

This module provides a hierarchy of exceptions for envelope and
sub-ledger operations, inheriting from the core exception base classes
for API consistency.

Exception Hierarchy:
    LedgerError (base)
    ├── InsufficientFunds - Amount exceeds what the ledger can give
    ├── StaleReference - Source envelope was soft deleted
    ├── BudgetNotFound - Envelope or sub-ledger lookup failures
    └── InvalidAmount - Non-positive or out-of-range amounts

Usage:
    from aid.ledger.exceptions import InsufficientFunds

    if amount > budget.available_amount:
        raise InsufficientFunds(
            "partner_school_budget",
            budget.id,
            required=amount,
            available=budget.available_amount,
        )
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


class LedgerError(BaseApplicationError):
    """
    Base exception for all ledger operations.

    Raised inside transaction.atomic() so the whole unit of work
    rolls back.
    """

    default_error_code: str = "LEDGER_ERROR"


class InsufficientFunds(LedgerError):
    """
    Raised when a ledger cannot cover the requested amount.

    Attributes:
        ledger: "partner_school_budget" or "budget_allocation"
        ledger_id: Primary key of the ledger row
        required: Amount requested
        available: Amount the ledger could give
        shortfall: required - available
    """

    default_error_code: str = "INSUFFICIENT_FUNDS"

    def __init__(
        self,
        ledger: str,
        ledger_id: Any,
        required: Decimal,
        available: Decimal,
        message: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.ledger = ledger
        self.ledger_id = ledger_id
        self.required = Decimal(required)
        self.available = Decimal(available)
        self.shortfall = max(Decimal("0.00"), self.required - self.available)

        full_details = {
            "ledger": ledger,
            "ledger_id": ledger_id,
            "required": str(self.required),
            "available": str(self.available),
            "shortfall": str(self.shortfall),
        }
        if details:
            full_details.update(details)

        if message is None:
            if ledger == "partner_school_budget":
                message = "Insufficient school budget"
            else:
                message = "Insufficient budget"

        super().__init__(message=message, error_code=error_code, details=full_details)


class StaleReference(LedgerError, ConflictError):
    """
    Raised when a sub-ledger points at a soft-deleted envelope.

    The sub-ledger still exists but can no longer be charged until
    it is re-linked or the envelope is restored.
    """

    default_error_code: str = "STALE_REFERENCE"


class BudgetNotFound(LedgerError, NotFoundError):
    """Raised when an envelope or sub-ledger cannot be found."""

    default_error_code: str = "BUDGET_NOT_FOUND"


class InvalidAmount(LedgerError, ValidationError):
    """
    Raised for amounts that are zero, negative, unparseable, or would
    drive a ledger column below zero.
    """

    default_error_code: str = "INVALID_AMOUNT"


__all__ = [
    "LedgerError",
    "InsufficientFunds",
    "StaleReference",
    "BudgetNotFound",
    "InvalidAmount",
]
