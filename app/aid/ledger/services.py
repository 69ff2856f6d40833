"""
Ledger service layer for budget operations.

This module provides the two ledger services. All writes to budget
amounts go through them so that row locks, validation and status
recomputation happen in one place.

    BudgetLedgerService: Envelope per (budget_type, school_year)
    SubLedgerService: Partner school sub-ledger per (school_id, academic_year)

Lock Ordering:
    Any operation touching both a sub-ledger and its envelope locks the
    sub-ledger row first, then the envelope row. Every method that
    mutates amounts runs inside transaction.atomic() and raises
    LedgerError subclasses so the enclosing unit rolls back.

Usage:
    from aid.ledger.services import BudgetLedgerService, SubLedgerService

    envelope = BudgetLedgerService.fund("scholarship_benefits", "2025-2026", Decimal("1000000"))
    budget = SubLedgerService.allocate(
        school_id=42,
        school_name="Quezon City Science High School",
        academic_year="2025-2026",
        allocated_amount=Decimal("50000"),
        allocation_date=timezone.now(),
        source_budget_id=envelope.id,
    )
    SubLedgerService.deduct(budget.id, Decimal("20000"))
"""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.utils import timezone

from aid.ledger.exceptions import (
    BudgetNotFound,
    InsufficientFunds,
    InvalidAmount,
    StaleReference,
)
from aid.ledger.types import BudgetCheck, FundingSource
from aid.models import BudgetAllocation, PartnerSchoolBudget
from aid.state_machines import SubLedgerStatus
from core.exceptions import ConflictError

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_amount(value, allow_zero: bool = False) -> Decimal:
    """
    Parse a monetary amount into a two-decimal Decimal.

    Half cents round up, matching the model's derived amounts.

    Raises:
        InvalidAmount: If the value is not a finite number, is negative, or
            is zero when allow_zero is False
    """
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            raise InvalidOperation
        amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount(
            f"Invalid amount: {value!r}",
            details={"amount": str(value)},
        )
    if amount < 0 or (amount == 0 and not allow_zero):
        raise InvalidAmount(
            "Amount must be greater than zero",
            details={"amount": str(amount)},
        )
    return amount


# =============================================================================
# Budget Envelopes
# =============================================================================


class BudgetLedgerService:
    """
    Operations on budget envelopes (BudgetAllocation rows).

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def _lock(envelope_id) -> BudgetAllocation:
        """Lock an envelope row, refusing soft-deleted envelopes."""
        envelope = (
            BudgetAllocation.all_objects.select_for_update()
            .filter(pk=envelope_id)
            .first()
        )
        if envelope is None:
            raise BudgetNotFound(
                f"Budget allocation {envelope_id} not found",
                details={"budget_allocation_id": envelope_id},
            )
        if envelope.is_deleted:
            raise StaleReference(
                f"Budget allocation {envelope_id} has been deleted",
                details={"budget_allocation_id": envelope_id},
            )
        return envelope

    @staticmethod
    def get(envelope_id) -> BudgetAllocation:
        try:
            return BudgetAllocation.objects.get(pk=envelope_id)
        except BudgetAllocation.DoesNotExist:
            raise BudgetNotFound(
                f"Budget allocation {envelope_id} not found",
                details={"budget_allocation_id": envelope_id},
            )

    @staticmethod
    def list_budgets(school_year: str | None = None) -> QuerySet[BudgetAllocation]:
        """Envelopes ordered by school year (newest first), then budget type."""
        queryset = BudgetAllocation.objects.all()
        if school_year:
            queryset = queryset.filter(school_year=school_year)
        return queryset.order_by("-school_year", "budget_type")

    @staticmethod
    def get_active_envelope(budget_type: str, school_year: str) -> BudgetAllocation | None:
        return BudgetAllocation.objects.filter(
            budget_type=budget_type,
            school_year=school_year,
            is_active=True,
        ).first()

    @staticmethod
    def fund(
        budget_type: str,
        school_year: str,
        amount,
        description: str | None = None,
        user=None,
    ) -> BudgetAllocation:
        """
        Create or update the envelope for (budget_type, school_year).

        Sets total_budget to amount and reactivates the envelope.

        Raises:
            InvalidAmount: If amount is not positive, or is below what the
                envelope has already reserved or paid out
        """
        total = to_amount(amount)

        with transaction.atomic():
            envelope = (
                BudgetAllocation.objects.select_for_update()
                .filter(budget_type=budget_type, school_year=school_year)
                .first()
            )
            if envelope is None:
                envelope = BudgetAllocation.objects.create(
                    budget_type=budget_type,
                    school_year=school_year,
                    total_budget=total,
                    description=description,
                    is_active=True,
                    created_by=user,
                    updated_by=user,
                )
                logger.info(
                    "Budget envelope created",
                    extra={
                        "budget_allocation_id": envelope.id,
                        "budget_type": budget_type,
                        "school_year": school_year,
                        "total_budget": str(total),
                    },
                )
                return envelope

            floor = max(envelope.allocated_budget, envelope.disbursed_budget)
            if total < floor:
                raise InvalidAmount(
                    "Total budget cannot be lower than the amount already allocated or disbursed",
                    details={
                        "total_budget": str(total),
                        "allocated_budget": str(envelope.allocated_budget),
                        "disbursed_budget": str(envelope.disbursed_budget),
                    },
                )

            envelope.total_budget = total
            if description is not None:
                envelope.description = description
            envelope.is_active = True
            envelope.updated_by = user
            envelope.save()

        logger.info(
            "Budget envelope funded",
            extra={
                "budget_allocation_id": envelope.id,
                "total_budget": str(total),
            },
        )
        return envelope

    @staticmethod
    def reserve(envelope_id, amount) -> BudgetAllocation:
        """
        Reserve part of an envelope for a partner school sub-ledger.

        Raises:
            InsufficientFunds: If amount exceeds total - allocated
        """
        amount = to_amount(amount)
        with transaction.atomic():
            envelope = BudgetLedgerService._lock(envelope_id)
            available = envelope.total_budget - envelope.allocated_budget
            if amount > available:
                raise InsufficientFunds(
                    "budget_allocation",
                    envelope.id,
                    required=amount,
                    available=max(ZERO, available),
                    message="Insufficient funds in source budget",
                )
            envelope.allocated_budget += amount
            envelope.save(update_fields=["allocated_budget", "updated_at"])

        logger.info(
            "Envelope funds reserved",
            extra={"budget_allocation_id": envelope.id, "amount": str(amount)},
        )
        return envelope

    @staticmethod
    def settle(envelope_id, amount) -> BudgetAllocation:
        """
        Record a payout made directly from the envelope.

        Raises:
            InsufficientFunds: If total - disbursed < amount
        """
        amount = to_amount(amount)
        with transaction.atomic():
            envelope = BudgetLedgerService._lock(envelope_id)
            remaining = envelope.total_budget - envelope.disbursed_budget
            if amount > remaining:
                raise InsufficientFunds(
                    "budget_allocation",
                    envelope.id,
                    required=amount,
                    available=max(ZERO, remaining),
                )
            envelope.disbursed_budget += amount
            envelope.save(update_fields=["disbursed_budget", "updated_at"])
        return envelope

    @staticmethod
    def unsettle(envelope_id, amount) -> BudgetAllocation:
        """
        Undo a settle after a reversal.

        Raises:
            InvalidAmount: If amount exceeds disbursed_budget
        """
        amount = to_amount(amount)
        with transaction.atomic():
            envelope = BudgetLedgerService._lock(envelope_id)
            if amount > envelope.disbursed_budget:
                raise InvalidAmount(
                    "Cannot return more than the disbursed budget",
                    details={
                        "amount": str(amount),
                        "disbursed_budget": str(envelope.disbursed_budget),
                    },
                )
            envelope.disbursed_budget -= amount
            envelope.save(update_fields=["disbursed_budget", "updated_at"])
        return envelope


# =============================================================================
# Partner School Sub-Ledgers
# =============================================================================


class SubLedgerService:
    """
    Operations on partner school sub-ledgers (PartnerSchoolBudget rows).

    All methods are static - no instance state is maintained.
    """

    @staticmethod
    def _lock(budget_id) -> PartnerSchoolBudget:
        budget = (
            PartnerSchoolBudget.objects.select_for_update()
            .filter(pk=budget_id)
            .first()
        )
        if budget is None:
            raise BudgetNotFound(
                f"Partner school budget {budget_id} not found",
                details={"partner_school_budget_id": budget_id},
            )
        return budget

    @staticmethod
    def _lock_source(budget: PartnerSchoolBudget) -> BudgetAllocation | None:
        """Lock the sub-ledger's source envelope, if it has one."""
        if budget.source_budget_id is None:
            return None
        return BudgetLedgerService._lock(budget.source_budget_id)

    @staticmethod
    def get(budget_id) -> PartnerSchoolBudget:
        try:
            return PartnerSchoolBudget.objects.select_related("source_budget").get(pk=budget_id)
        except PartnerSchoolBudget.DoesNotExist:
            raise BudgetNotFound(
                f"Partner school budget {budget_id} not found",
                details={"partner_school_budget_id": budget_id},
            )

    @staticmethod
    def get_current_budget(school_id) -> PartnerSchoolBudget | None:
        return PartnerSchoolBudget.objects.get_current_budget(school_id)

    @staticmethod
    def list_budgets(
        school_id=None,
        academic_year: str | None = None,
        status: str | None = None,
    ) -> QuerySet[PartnerSchoolBudget]:
        queryset = PartnerSchoolBudget.objects.select_related("source_budget")
        if school_id is not None:
            queryset = queryset.for_school(school_id)
        if academic_year:
            queryset = queryset.for_year(academic_year)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by("-allocation_date", "-id")

    @staticmethod
    def has_funds(budget: PartnerSchoolBudget, amount) -> bool:
        return budget.has_funds(to_amount(amount))

    @staticmethod
    def allocate(
        school_id,
        school_name: str,
        academic_year: str,
        allocated_amount,
        allocation_date: datetime,
        expiry_date: datetime | None = None,
        source_budget_id=None,
        notes: str | None = None,
        user=None,
    ) -> PartnerSchoolBudget:
        """
        Create a school's sub-ledger for an academic year.

        When source_budget_id is given the amount is reserved on that
        envelope in the same transaction.

        Raises:
            ConflictError: A sub-ledger already exists for the school and year
            BudgetNotFound: The source envelope does not exist
            InsufficientFunds: The source envelope cannot cover the amount
        """
        amount = to_amount(allocated_amount)

        with transaction.atomic():
            if PartnerSchoolBudget.objects.filter(
                school_id=school_id, academic_year=academic_year
            ).exists():
                raise ConflictError(
                    "Budget already exists for this school and academic year",
                    error_code="DUPLICATE_BUDGET",
                    details={"school_id": school_id, "academic_year": academic_year},
                )

            if source_budget_id is not None:
                BudgetLedgerService.reserve(source_budget_id, amount)

            try:
                with transaction.atomic():
                    budget = PartnerSchoolBudget.objects.create(
                        source_budget_id=source_budget_id,
                        school_id=school_id,
                        school_name=school_name,
                        academic_year=academic_year,
                        allocated_amount=amount,
                        allocation_date=allocation_date,
                        expiry_date=expiry_date,
                        notes=notes or None,
                        allocated_by=user,
                    )
            except IntegrityError:
                raise ConflictError(
                    "Budget already exists for this school and academic year",
                    error_code="DUPLICATE_BUDGET",
                    details={"school_id": school_id, "academic_year": academic_year},
                )

        logger.info(
            "Partner school budget allocated",
            extra={
                "partner_school_budget_id": budget.id,
                "school_id": school_id,
                "academic_year": academic_year,
                "allocated_amount": str(amount),
                "source_budget_id": source_budget_id,
            },
        )
        return budget

    @staticmethod
    def deduct(budget_id, amount, refuse_expired: bool = False) -> PartnerSchoolBudget:
        """
        Spend from a sub-ledger and its source envelope.

        Args:
            refuse_expired: Treat an expired sub-ledger as having no funds

        Raises:
            BudgetNotFound: Unknown sub-ledger
            InsufficientFunds: amount exceeds the sub-ledger's available_amount
                or the envelope's remaining budget (nothing is changed)
            StaleReference: The source envelope has been soft deleted
        """
        amount = to_amount(amount)

        with transaction.atomic():
            budget = SubLedgerService._lock(budget_id)
            if refuse_expired and budget.status == SubLedgerStatus.EXPIRED:
                raise InsufficientFunds(
                    "partner_school_budget",
                    budget.id,
                    required=amount,
                    available=ZERO,
                    message="School budget has expired",
                )
            if amount > budget.available_amount:
                raise InsufficientFunds(
                    "partner_school_budget",
                    budget.id,
                    required=amount,
                    available=budget.available_amount,
                )

            envelope = SubLedgerService._lock_source(budget)
            if envelope is not None:
                remaining = envelope.total_budget - envelope.disbursed_budget
                if amount > remaining:
                    raise InsufficientFunds(
                        "budget_allocation",
                        envelope.id,
                        required=amount,
                        available=max(ZERO, remaining),
                        details={"partner_school_budget_id": budget.id},
                    )

            budget.disbursed_amount += amount
            budget.recompute_status()
            budget.save(update_fields=["disbursed_amount", "status", "updated_at"])

            if envelope is not None:
                envelope.disbursed_budget += amount
                envelope.save(update_fields=["disbursed_budget", "updated_at"])

        logger.info(
            "Partner school budget deducted",
            extra={
                "partner_school_budget_id": budget.id,
                "amount": str(amount),
                "available_amount": str(budget.available_amount),
                "status": budget.status,
            },
        )
        return budget

    @staticmethod
    def refund(budget_id, amount) -> PartnerSchoolBudget:
        """
        Return funds to a sub-ledger (inverse of deduct).

        A depleted sub-ledger becomes active again once availability is
        positive.

        Raises:
            InvalidAmount: amount > disbursed_amount
        """
        amount = to_amount(amount)

        with transaction.atomic():
            budget = SubLedgerService._lock(budget_id)
            if amount > budget.disbursed_amount:
                raise InvalidAmount(
                    "Cannot refund more than the disbursed amount",
                    details={
                        "partner_school_budget_id": budget.id,
                        "amount": str(amount),
                        "disbursed_amount": str(budget.disbursed_amount),
                    },
                )

            envelope = None
            if budget.source_budget_id is not None:
                envelope = (
                    BudgetAllocation.all_objects.select_for_update()
                    .filter(pk=budget.source_budget_id)
                    .first()
                )

            budget.disbursed_amount -= amount
            budget.recompute_status()
            budget.save(update_fields=["disbursed_amount", "status", "updated_at"])

            if envelope is not None:
                envelope.disbursed_budget = max(ZERO, envelope.disbursed_budget - amount)
                envelope.save(update_fields=["disbursed_budget", "updated_at"])

        logger.info(
            "Partner school budget refunded",
            extra={
                "partner_school_budget_id": budget.id,
                "amount": str(amount),
                "available_amount": str(budget.available_amount),
                "status": budget.status,
            },
        )
        return budget

    @staticmethod
    def adjust_allocation(budget_id, new_amount, notes: str | None = None) -> PartnerSchoolBudget:
        """
        Set a sub-ledger's allocated amount.

        Status is recomputed from availability alone. The source envelope
        and disbursed_amount are not touched.
        """
        amount = to_amount(new_amount, allow_zero=True)

        with transaction.atomic():
            budget = SubLedgerService._lock(budget_id)
            previous = budget.allocated_amount
            budget.allocated_amount = amount
            budget.append_note(notes)
            budget.recompute_status()
            budget.save(update_fields=["allocated_amount", "notes", "status", "updated_at"])

        logger.info(
            "Partner school budget adjusted",
            extra={
                "partner_school_budget_id": budget.id,
                "previous_amount": str(previous),
                "allocated_amount": str(amount),
                "status": budget.status,
            },
        )
        return budget

    @staticmethod
    def check_budget(school_id, amount) -> BudgetCheck:
        """
        Compare a school's current sub-ledger against a required amount.

        Raises:
            BudgetNotFound: The school has no active sub-ledger
        """
        required = to_amount(amount, allow_zero=True)
        budget = SubLedgerService.get_current_budget(school_id)
        if budget is None:
            raise BudgetNotFound(
                "No active budget found for this school",
                details={"school_id": school_id},
            )

        available = budget.available_amount
        return BudgetCheck(
            budget_id=budget.id,
            allocated=budget.allocated_amount,
            disbursed=budget.disbursed_amount,
            available=available,
            required=required,
            has_sufficient_funds=available >= required,
            shortfall=max(ZERO, required - available),
            status=budget.status,
            expiry_date=budget.expiry_date,
        )

    @staticmethod
    def expire_budgets(now: datetime | None = None) -> int:
        """
        Mark active sub-ledgers past their expiry date as expired.

        Returns:
            Number of sub-ledgers expired
        """
        now = now or timezone.now()
        count = PartnerSchoolBudget.objects.filter(
            status=SubLedgerStatus.ACTIVE,
            expiry_date__isnull=False,
            expiry_date__lt=now,
        ).update(status=SubLedgerStatus.EXPIRED, updated_at=now)

        if count:
            logger.info("Expired partner school budgets", extra={"count": count})
        return count


# =============================================================================
# Funding Source Resolution
# =============================================================================


def resolve_funding_source(
    school_id,
    budget_type: str,
    school_year: str,
) -> FundingSource | None:
    """
    Find the ledger that pays for a grant.

    The school's sub-ledger for school_year is used whatever its status,
    so a depleted or expired allocation refuses the grant instead of
    passing it to the envelope. A school without one for that year falls
    back to its current active sub-ledger. The active envelope for
    (budget_type, school_year) pays only when neither is found.

    Returns:
        FundingSource, or None when neither exists
    """
    sub_ledger = (
        PartnerSchoolBudget.objects.for_school(school_id).for_year(school_year).first()
        or SubLedgerService.get_current_budget(school_id)
    )
    if sub_ledger is not None:
        return FundingSource(sub_ledger=sub_ledger)

    envelope = BudgetLedgerService.get_active_envelope(budget_type, school_year)
    if envelope is not None:
        return FundingSource(envelope=envelope)
    return None


def charge(source: FundingSource, amount) -> FundingSource:
    """Deduct from the sub-ledger or settle on the envelope."""
    if source.sub_ledger is not None:
        return FundingSource(
            sub_ledger=SubLedgerService.deduct(source.sub_ledger.id, amount, refuse_expired=True)
        )
    return FundingSource(envelope=BudgetLedgerService.settle(source.envelope.id, amount))
