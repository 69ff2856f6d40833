"""
Withdrawal service for partner school spending.

This module provides the WithdrawalService class which records money a
partner school takes out of its sub-ledger. Each withdrawal deducts the
sub-ledger and writes an append-only PartnerSchoolBudgetWithdrawal row in
the same transaction.

The service implements:
1. Proof document validation and storage
2. Recording withdrawals against a budget or a school's current budget
3. Read-only withdrawal history
4. Reversals that refund the sub-ledger and append a correcting row

Usage:
    from aid.services import WithdrawalService

    path = WithdrawalService.store_proof_document(request.FILES["proof_document"])
    result = WithdrawalService.record(
        school_id=42,
        amount=Decimal("2500.00"),
        purpose="Learning materials",
        proof_document_path=path,
        withdrawal_date=timezone.now(),
        recorded_by=request.user,
    )

    if not result.success:
        print(result.error_code)  # INSUFFICIENT_FUNDS / BUDGET_NOT_FOUND
"""

from __future__ import annotations

import os
import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.files.storage import default_storage
from django.db import IntegrityError

from aid.ledger.exceptions import (
    BudgetNotFound,
    InsufficientFunds,
    InvalidAmount,
    StaleReference,
)
from aid.ledger.services import SubLedgerService, to_amount
from aid.models import PartnerSchoolBudgetWithdrawal
from aid.state_machines import WithdrawalEntryType
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult
from core.validators import validate_upload

if TYPE_CHECKING:
    from datetime import datetime

    from django.db.models import QuerySet


# =============================================================================
# Constants
# =============================================================================

# Storage directory for withdrawal proof documents
PROOF_DOCUMENT_DIR = "budget_withdrawals"


class WithdrawalService(BaseService):
    """
    Service for recording partner school withdrawals.

    Safety Guarantees:
        - The deduction and the withdrawal row commit together or not at all
        - Rows are never updated; corrections are reversal rows
        - A withdrawal can be reversed at most once (one-to-one reverses link)
    """

    @classmethod
    def store_proof_document(cls, uploaded_file) -> str:
        """
        Validate and store a proof document.

        Returns:
            Storage path of the saved file

        Raises:
            ValidationError: Wrong extension or file too large
        """
        try:
            validate_upload(
                uploaded_file,
                allowed_extensions=settings.AID_PROOF_ALLOWED_EXTENSIONS,
                max_mb=settings.AID_PROOF_MAX_UPLOAD_MB,
            )
        except DjangoValidationError as e:
            raise ValidationError(
                e.messages[0],
                error_code="INVALID_DOCUMENT",
                details={"proof_document": e.messages},
            )

        extension = os.path.splitext(uploaded_file.name)[1].lower()
        name = f"{PROOF_DOCUMENT_DIR}/{uuid.uuid4().hex}{extension}"
        return default_storage.save(name, uploaded_file)

    @classmethod
    def record(
        cls,
        amount,
        purpose: str,
        proof_document_path: str,
        withdrawal_date: datetime,
        recorded_by=None,
        notes: str | None = None,
        budget_id=None,
        school_id=None,
    ) -> ServiceResult[PartnerSchoolBudgetWithdrawal]:
        """
        Record a withdrawal against a sub-ledger.

        Either budget_id or school_id must be given. With school_id the
        school's current active budget is used.

        Returns:
            ServiceResult with the withdrawal row, or a failure with
            INSUFFICIENT_FUNDS, BUDGET_NOT_FOUND, INVALID_AMOUNT or
            VALIDATION_ERROR
        """
        validation = cls.validate_required(
            purpose=purpose,
            proof_document_path=proof_document_path,
            withdrawal_date=withdrawal_date,
        )
        if validation:
            return validation

        try:
            amount = to_amount(amount)
        except InvalidAmount as e:
            return ServiceResult.from_exception(e)

        if budget_id is None:
            if school_id is None:
                return ServiceResult.failure(
                    "Either budget_id or school_id is required",
                    error_code="VALIDATION_ERROR",
                    errors={"school_id": ["This field is required."]},
                )
            budget = SubLedgerService.get_current_budget(school_id)
            if budget is None:
                return ServiceResult.failure(
                    "No active budget found for this school",
                    error_code="BUDGET_NOT_FOUND",
                    details={"school_id": school_id},
                )
            budget_id = budget.id

        try:
            with cls.atomic():
                budget = SubLedgerService.deduct(budget_id, amount)
                withdrawal = PartnerSchoolBudgetWithdrawal.objects.create(
                    partner_school_budget=budget,
                    school_id=budget.school_id,
                    entry_type=WithdrawalEntryType.WITHDRAWAL,
                    amount=amount,
                    purpose=purpose,
                    notes=notes or None,
                    proof_document_path=proof_document_path,
                    withdrawal_date=withdrawal_date,
                    available_after=budget.available_amount,
                    recorded_by=recorded_by,
                )
        except (InsufficientFunds, BudgetNotFound, StaleReference) as e:
            cls.get_logger().warning(
                "Withdrawal refused",
                extra={
                    "partner_school_budget_id": budget_id,
                    "amount": str(amount),
                    "error_code": e.error_code,
                },
            )
            return ServiceResult.from_exception(e)

        cls.get_logger().info(
            "Withdrawal recorded",
            extra={
                "withdrawal_id": withdrawal.id,
                "partner_school_budget_id": budget.id,
                "school_id": budget.school_id,
                "amount": str(amount),
                "available_after": str(withdrawal.available_after),
            },
        )
        return ServiceResult.success(withdrawal)

    @classmethod
    def list_for_school(cls, school_id) -> QuerySet[PartnerSchoolBudgetWithdrawal]:
        """Withdrawals and reversals for a school, newest withdrawal_date first."""
        return (
            PartnerSchoolBudgetWithdrawal.objects.filter(school_id=school_id)
            .select_related("partner_school_budget")
            .order_by("-withdrawal_date", "-id")
        )

    @classmethod
    def get(cls, withdrawal_id) -> PartnerSchoolBudgetWithdrawal:
        try:
            return PartnerSchoolBudgetWithdrawal.objects.select_related(
                "partner_school_budget"
            ).get(pk=withdrawal_id)
        except PartnerSchoolBudgetWithdrawal.DoesNotExist:
            raise NotFoundError(
                f"Withdrawal {withdrawal_id} not found",
                error_code="WITHDRAWAL_NOT_FOUND",
                details={"withdrawal_id": withdrawal_id},
            )

    @classmethod
    def reverse(
        cls,
        withdrawal_id,
        reason: str,
        recorded_by=None,
    ) -> PartnerSchoolBudgetWithdrawal:
        """
        Correct a withdrawal by refunding its amount and appending a
        reversal row that points at it.

        The original row is left untouched.

        Returns:
            The reversal row

        Raises:
            NotFoundError: Unknown withdrawal
            ConflictError: The entry is itself a reversal, or was already reversed
            ValidationError: No reason given
        """
        if not reason or not reason.strip():
            raise ValidationError(
                "A reason is required to reverse a withdrawal",
                details={"reason": ["This field is required."]},
            )

        with cls.atomic():
            original = (
                PartnerSchoolBudgetWithdrawal.objects.select_for_update()
                .filter(pk=withdrawal_id)
                .first()
            )
            if original is None:
                raise NotFoundError(
                    f"Withdrawal {withdrawal_id} not found",
                    error_code="WITHDRAWAL_NOT_FOUND",
                    details={"withdrawal_id": withdrawal_id},
                )
            if original.is_reversal:
                raise ConflictError(
                    "Reversal entries cannot be reversed",
                    error_code="REVERSAL_NOT_ALLOWED",
                    details={"withdrawal_id": original.id},
                )
            if PartnerSchoolBudgetWithdrawal.objects.filter(reverses=original).exists():
                raise ConflictError(
                    "Withdrawal has already been reversed",
                    error_code="ALREADY_REVERSED",
                    details={"withdrawal_id": original.id},
                )

            budget = SubLedgerService.refund(original.partner_school_budget_id, original.amount)

            try:
                with cls.atomic():
                    reversal = PartnerSchoolBudgetWithdrawal.objects.create(
                        partner_school_budget=budget,
                        school_id=budget.school_id,
                        entry_type=WithdrawalEntryType.REVERSAL,
                        reverses=original,
                        amount=original.amount,
                        purpose=f"Reversal of withdrawal {original.id}",
                        notes=reason,
                        proof_document_path=original.proof_document_path,
                        withdrawal_date=original.withdrawal_date,
                        available_after=budget.available_amount,
                        recorded_by=recorded_by,
                    )
            except IntegrityError:
                raise ConflictError(
                    "Withdrawal has already been reversed",
                    error_code="ALREADY_REVERSED",
                    details={"withdrawal_id": original.id},
                )

        cls.get_logger().info(
            "Withdrawal reversed",
            extra={
                "withdrawal_id": original.id,
                "reversal_id": reversal.id,
                "partner_school_budget_id": budget.id,
                "amount": str(original.amount),
            },
        )
        return reversal
