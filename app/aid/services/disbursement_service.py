"""
Disbursement service: the single path that records a paid-out grant.

This module provides the DisbursementService class. Every disbursement,
whether confirmed by the payment provider or recorded by staff, goes
through finalize(), which charges the funding ledger, writes the
AidDisbursement row and moves the application to grants_disbursed in
one transaction.

Funding Source:
    1. The school's current active partner school budget (deduct)
    2. Otherwise the active envelope for the application's budget type
       and school year (settle)
    3. Otherwise FundingSourceNotFound

Lock Ordering:
    application row -> sub-ledger row -> envelope row

Usage:
    from aid.services import DisbursementService

    disbursement = DisbursementService.record_manual(
        application_id=app.id,
        method="bank_transfer",
        provider_name="LandBank",
        reference_number="LB-000123",
        receipt_file=request.FILES["receipt"],
        user=request.user,
    )
"""

from __future__ import annotations

import os
import uuid
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.files.storage import default_storage
from django.db import IntegrityError, transaction
from django_fsm import can_proceed

from aid.exceptions import (
    DuplicateDisbursement,
    FundingSourceNotFound,
    InvalidStateTransitionError,
)
from aid.filters import DisbursementFilter
from aid.ledger.services import (
    BudgetLedgerService,
    SubLedgerService,
    charge,
    resolve_funding_source,
    to_amount,
)
from aid.locks import lock_row
from aid.models import AidDisbursement, PaymentTransaction, ScholarshipApplication
from aid.services.transaction_service import TransactionService, user_display_name
from aid.state_machines import ApplicationStatus, DisbursementStatus, PaymentMethod
from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import BaseService
from core.validators import validate_upload

if TYPE_CHECKING:
    from django.db.models import QuerySet


# =============================================================================
# Constants
# =============================================================================

PROVIDER_DISPLAY_NAME = "PayMongo"

SYSTEM_DISBURSER_NAME = "System (PayMongo)"

# Statuses from which staff may record a manual disbursement
MANUAL_DISBURSEMENT_STATUSES = frozenset(
    [
        ApplicationStatus.APPROVED,
        ApplicationStatus.PENDING_DISBURSEMENT,
        ApplicationStatus.GRANTS_PROCESSING,
    ]
)

SORT_FIELDS = frozenset(["disbursed_at", "amount", "created_at"])


class DisbursementService(BaseService):
    """
    Service for creating, reversing and querying disbursements.

    Safety Guarantees:
        - At most one completed disbursement per application (checked under
          the application row lock and backed by a partial unique constraint)
        - The ledger charge, the disbursement row and the application status
          change commit together
        - Rows are append-only; reversal only stamps status and reason
    """

    # =========================================================================
    # Finalize
    # =========================================================================

    @classmethod
    def finalize(
        cls,
        application_id,
        amount,
        method: str,
        provider_name: str,
        reference_number: str,
        account_number: str | None = None,
        payment_transaction: PaymentTransaction | None = None,
        receipt_path: str | None = None,
        notes: str | None = None,
        disbursed_by=None,
        disbursed_by_name: str | None = None,
    ) -> AidDisbursement:
        """
        Charge the funding ledger and record the disbursement.

        Raises:
            NotFoundError: Unknown application
            DuplicateDisbursement: A completed disbursement already exists
            InvalidStateTransitionError: Application cannot be disbursed
            FundingSourceNotFound: No sub-ledger or envelope can pay
            InsufficientFunds: The funding ledger cannot cover the amount
            StaleReference: The sub-ledger's envelope was soft deleted
        """
        amount = to_amount(amount)

        with cls.atomic():
            application = lock_row(
                ScholarshipApplication,
                application_id,
                error_code="APPLICATION_NOT_FOUND",
            )

            if AidDisbursement.objects.filter(
                application=application,
                status=DisbursementStatus.COMPLETED,
            ).exists():
                raise DuplicateDisbursement(
                    "Application already has a completed disbursement",
                    details={"application_id": application.id},
                )

            if not can_proceed(application.mark_grants_disbursed):
                raise InvalidStateTransitionError(
                    f"Cannot disburse application in '{application.status}' state",
                    details={
                        "application_id": application.id,
                        "current_state": application.status,
                        "transition": "mark_grants_disbursed",
                    },
                )

            source = resolve_funding_source(
                application.school_id,
                application.budget_type,
                application.school_year,
            )
            if source is None:
                raise FundingSourceNotFound(
                    "No partner school budget or budget allocation can fund this grant",
                    details={
                        "application_id": application.id,
                        "school_id": application.school_id,
                        "budget_type": application.budget_type,
                        "school_year": application.school_year,
                    },
                )

            source = charge(source, amount)

            try:
                with transaction.atomic():
                    disbursement = AidDisbursement.objects.create(
                        application=application,
                        application_number=application.application_number,
                        student_id=application.student_id,
                        school_id=application.school_id,
                        payment_transaction=payment_transaction,
                        partner_school_budget=source.sub_ledger,
                        budget_allocation=source.envelope,
                        amount=amount,
                        method=method,
                        provider_name=provider_name,
                        reference_number=reference_number,
                        account_number=account_number or None,
                        receipt_path=receipt_path or None,
                        notes=notes or None,
                        disbursed_by=disbursed_by,
                        disbursed_by_name=disbursed_by_name or user_display_name(disbursed_by),
                    )
            except IntegrityError:
                raise DuplicateDisbursement(
                    "Application already has a completed disbursement",
                    details={"application_id": application.id},
                )

            application.mark_grants_disbursed()
            application.save()

        cls.get_logger().info(
            "Disbursement finalized",
            extra={
                "disbursement_id": disbursement.id,
                "application_id": application.id,
                "amount": str(amount),
                "funding_source": source.kind,
                "method": method,
                "transaction_reference": getattr(payment_transaction, "transaction_reference", None),
            },
        )
        return disbursement

    @classmethod
    def finalize_transaction(cls, txn: PaymentTransaction) -> AidDisbursement:
        """
        Record the disbursement for a provider-confirmed transaction.

        Call only after TransactionService.mark_completed returned
        applied=True. Receipt generation is queued once the surrounding
        transaction commits.
        """
        from aid.tasks import generate_disbursement_receipt

        application = txn.application
        disbursement = cls.finalize(
            application_id=txn.application_id,
            amount=txn.transaction_amount,
            method=PaymentMethod.DIGITAL_WALLET,
            provider_name=PROVIDER_DISPLAY_NAME,
            reference_number=txn.provider_reference_number or txn.transaction_reference,
            account_number=application.wallet_account_number,
            payment_transaction=txn,
            disbursed_by=txn.initiated_by,
            disbursed_by_name=SYSTEM_DISBURSER_NAME,
        )

        transaction.on_commit(lambda: generate_disbursement_receipt.delay(disbursement.id))
        return disbursement

    # =========================================================================
    # Manual Disbursement
    # =========================================================================

    @classmethod
    def store_receipt(cls, receipt_file, application_number: str) -> str:
        """
        Validate and store an uploaded receipt under AID_RECEIPT_DIR.

        Raises:
            ValidationError: Wrong extension or file too large
        """
        try:
            validate_upload(
                receipt_file,
                allowed_extensions=settings.AID_PROOF_ALLOWED_EXTENSIONS,
                max_mb=settings.AID_PROOF_MAX_UPLOAD_MB,
            )
        except DjangoValidationError as e:
            raise ValidationError(
                e.messages[0],
                error_code="INVALID_DOCUMENT",
                details={"receipt": e.messages},
            )

        extension = os.path.splitext(receipt_file.name)[1].lower()
        name = f"{settings.AID_RECEIPT_DIR}/manual_{application_number}_{uuid.uuid4().hex[:8]}{extension}"
        return default_storage.save(name, receipt_file)

    @classmethod
    def record_manual(
        cls,
        application_id,
        method: str,
        provider_name: str,
        reference_number: str,
        receipt_file=None,
        account_number: str | None = None,
        notes: str | None = None,
        user=None,
    ) -> AidDisbursement:
        """
        Record a disbursement paid outside the provider checkout.

        Any open provider transaction for the application is cancelled
        first so a late webhook cannot disburse the grant a second time.

        Raises:
            ValidationError: Missing fields or receipt, or no approved amount
            InvalidStateTransitionError: Application status does not allow it
            Any error raised by finalize()
        """
        missing = {
            name: ["This field is required."]
            for name, value in (
                ("method", method),
                ("provider_name", provider_name),
                ("reference_number", reference_number),
                ("receipt", receipt_file),
            )
            if not value
        }
        if missing:
            raise ValidationError("Required fields missing", details=missing)

        try:
            application = ScholarshipApplication.objects.get(pk=application_id)
        except ScholarshipApplication.DoesNotExist:
            raise NotFoundError(
                f"Application {application_id} not found",
                error_code="APPLICATION_NOT_FOUND",
                details={"application_id": application_id},
            )

        if application.status not in MANUAL_DISBURSEMENT_STATUSES:
            raise InvalidStateTransitionError(
                f"Cannot disburse application in '{application.status}' state",
                details={
                    "application_id": application.id,
                    "current_state": application.status,
                    "allowed_states": sorted(MANUAL_DISBURSEMENT_STATUSES),
                },
            )
        if not application.approved_amount or application.approved_amount <= 0:
            raise ValidationError(
                "Application has no approved amount",
                details={"application_id": application.id},
            )

        receipt_path = cls.store_receipt(receipt_file, application.application_number)

        try:
            with cls.atomic():
                for txn in TransactionService.open_for_application(application.id):
                    TransactionService.cancel(
                        txn.transaction_reference,
                        reason="Superseded by manual disbursement",
                    )

                disbursement = cls.finalize(
                    application_id=application.id,
                    amount=application.approved_amount,
                    method=method,
                    provider_name=provider_name,
                    reference_number=reference_number,
                    account_number=account_number or application.wallet_account_number,
                    receipt_path=receipt_path,
                    notes=notes,
                    disbursed_by=user,
                )
        except Exception:
            default_storage.delete(receipt_path)
            raise

        return disbursement

    # =========================================================================
    # Reversal
    # =========================================================================

    @classmethod
    def reverse(cls, disbursement: AidDisbursement, reason: str) -> AidDisbursement:
        """
        Compensate a disbursement after a refund.

        Refunds the ledger that was charged, stamps the disbursement
        reversed and returns the application to approved.

        Raises:
            ConflictError: The disbursement is already reversed
        """
        with cls.atomic():
            application = lock_row(
                ScholarshipApplication,
                disbursement.application_id,
                error_code="APPLICATION_NOT_FOUND",
            )
            disbursement = lock_row(
                AidDisbursement,
                disbursement.pk,
                error_code="DISBURSEMENT_NOT_FOUND",
            )
            if disbursement.is_reversed:
                raise ConflictError(
                    "Disbursement has already been reversed",
                    error_code="ALREADY_REVERSED",
                    details={"disbursement_id": disbursement.id},
                )

            if disbursement.partner_school_budget_id is not None:
                SubLedgerService.refund(disbursement.partner_school_budget_id, disbursement.amount)
            elif disbursement.budget_allocation_id is not None:
                BudgetLedgerService.unsettle(disbursement.budget_allocation_id, disbursement.amount)

            disbursement.mark_reversed(reason)
            disbursement.save(update_fields=["status", "reversed_at", "reversal_reason", "updated_at"])

            if can_proceed(application.reverse_disbursement):
                application.reverse_disbursement()
                application.save()

        cls.get_logger().info(
            "Disbursement reversed",
            extra={
                "disbursement_id": disbursement.id,
                "application_id": application.id,
                "amount": str(disbursement.amount),
            },
        )
        return disbursement

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get(cls, disbursement_id) -> AidDisbursement:
        try:
            return AidDisbursement.objects.select_related(
                "application", "payment_transaction"
            ).get(pk=disbursement_id)
        except AidDisbursement.DoesNotExist:
            raise NotFoundError(
                f"Disbursement {disbursement_id} not found",
                error_code="DISBURSEMENT_NOT_FOUND",
                details={"disbursement_id": disbursement_id},
            )

    @classmethod
    def list(cls, filters: dict[str, Any] | None = None) -> QuerySet[AidDisbursement]:
        """
        Disbursement history.

        Filters:
            application_id, student_id, method, status: exact match
            reference: substring of reference_number
            date_from/date_to: inclusive bounds on disbursed_at's date
            search: student, school, application number, reference,
                provider or disburser name
            sort_by: disbursed_at | amount | created_at (default disbursed_at)
            sort_order: asc | desc (default desc)
        """
        filters = filters or {}
        queryset = DisbursementFilter(
            filters,
            queryset=AidDisbursement.objects.select_related("application", "payment_transaction"),
        ).qs

        sort_by = filters.get("sort_by") or "disbursed_at"
        if sort_by not in SORT_FIELDS:
            sort_by = "disbursed_at"
        prefix = "" if filters.get("sort_order") == "asc" else "-"
        return queryset.order_by(f"{prefix}{sort_by}", f"{prefix}id")

