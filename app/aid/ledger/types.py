"""
Data types for ledger operations.

Types:
    BudgetCheck: Result of checking a school's budget against an amount
    FundingSource: Ledger charged for a disbursement

Usage:
    from aid.ledger.services import SubLedgerService

    check = SubLedgerService.check_budget(school_id=42, amount=Decimal("5000"))
    if not check.has_sufficient_funds:
        print(check.shortfall)
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from aid.state_machines import SubLedgerStatus

if TYPE_CHECKING:
    from datetime import datetime

    from aid.models import BudgetAllocation, PartnerSchoolBudget


@dataclass(frozen=True)
class BudgetCheck:
    """
    Snapshot of a school's current sub-ledger against a required amount.

    Attributes:
        budget_id: Sub-ledger primary key
        allocated/disbursed/available: Sub-ledger amounts at check time
        required: Amount the caller needs
        has_sufficient_funds: available >= required
        shortfall: max(0, required - available)
        status: Sub-ledger status
        expiry_date: When the allocation expires, if set
    """

    budget_id: int
    allocated: Decimal
    disbursed: Decimal
    available: Decimal
    required: Decimal
    has_sufficient_funds: bool
    shortfall: Decimal
    status: str
    expiry_date: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "budget_id": self.budget_id,
            "allocated": str(self.allocated),
            "disbursed": str(self.disbursed),
            "available": str(self.available),
            "required": str(self.required),
            "has_sufficient_funds": self.has_sufficient_funds,
            "shortfall": str(self.shortfall),
            "status": self.status,
            "expiry_date": self.expiry_date.isoformat() if self.expiry_date else None,
        }


@dataclass
class FundingSource:
    """
    The ledger a disbursement is charged against.

    Exactly one of sub_ledger or envelope is set.
    """

    sub_ledger: PartnerSchoolBudget | None = None
    envelope: BudgetAllocation | None = None

    @property
    def kind(self) -> str:
        return "partner_school_budget" if self.sub_ledger is not None else "budget_allocation"

    def has_funds(self, amount: Decimal) -> bool:
        return self.available >= amount

    @property
    def available(self) -> Decimal:
        """What the ledger can pay out; an expired sub-ledger gives nothing."""
        if self.sub_ledger is not None:
            if self.sub_ledger.status == SubLedgerStatus.EXPIRED:
                return Decimal("0.00")
            return self.sub_ledger.available_amount
        return self.envelope.remaining_budget
