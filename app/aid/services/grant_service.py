"""
Grant processing service.

This module provides the GrantService class which starts the automatic
payout of an approved scholarship grant through a PayMongo hosted
checkout, and reverts the application when the payer abandons it.

Two-Phase Pattern:
    1. Validate the application and check the funding source has funds
    2. Create the checkout session OUTSIDE any database transaction
    3. In one transaction: re-lock the application, open the pending
       PaymentTransaction and move the application to grants_processing

Money only moves later, when the paid webhook completes the transaction
and DisbursementService.finalize_transaction charges the ledger.

Usage:
    from aid.services import GrantService

    result = GrantService.process_grant(application.id, request.user)
    if result.success:
        redirect_to(result.data.checkout_url)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.utils import timezone

from aid.adapters import CheckoutSessionParams, PayMongoAdapter
from aid.exceptions import InvalidStateTransitionError
from aid.ledger.exceptions import InsufficientFunds
from aid.ledger.services import resolve_funding_source
from aid.locks import lock_row
from aid.models import PaymentTransaction, ScholarshipApplication
from aid.models.payment_transaction import generate_transaction_reference
from aid.services.transaction_service import TransactionService
from aid.state_machines import ApplicationStatus, PaymentMethod, PaymentProvider
from core.exceptions import ExternalServiceError, NotFoundError, ValidationError
from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from datetime import datetime


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class GrantCheckout:
    """
    Result of starting a grant payout.

    Attributes:
        transaction: The pending PaymentTransaction
        checkout_url: Hosted page the payer is sent to
        expires_at: When the payment link expires
    """

    transaction: PaymentTransaction
    checkout_url: str
    expires_at: datetime | None = None


# =============================================================================
# Grant Service
# =============================================================================


class GrantService(BaseService):
    """
    Service for starting and abandoning automatic grant payouts.

    Safety Guarantees:
        - The provider call never runs inside a database transaction
        - A provider failure leaves the database untouched
        - An application has at most one open transaction, because opening
          one moves it out of approved
    """

    # PayMongo adapter - can be injected for testing
    _paymongo_adapter: type | None = None

    @classmethod
    def get_paymongo_adapter(cls) -> type:
        """Get the PayMongo adapter class."""
        return cls._paymongo_adapter or PayMongoAdapter

    @classmethod
    def set_paymongo_adapter(cls, adapter: type | None) -> None:
        """Set the PayMongo adapter class (for testing)."""
        cls._paymongo_adapter = adapter

    @classmethod
    def _get_application(cls, application_id) -> ScholarshipApplication:
        try:
            return ScholarshipApplication.objects.get(pk=application_id)
        except ScholarshipApplication.DoesNotExist:
            raise NotFoundError(
                f"Application {application_id} not found",
                error_code="APPLICATION_NOT_FOUND",
                details={"application_id": application_id},
            )

    @staticmethod
    def _require_approved(application: ScholarshipApplication) -> None:
        if application.status != ApplicationStatus.APPROVED:
            raise InvalidStateTransitionError(
                f"Cannot process grant for application in '{application.status}' state",
                details={
                    "application_id": application.id,
                    "current_state": application.status,
                    "transition": "start_grant_processing",
                },
            )

    @classmethod
    def process_grant(cls, application_id, user=None) -> ServiceResult[GrantCheckout]:
        """
        Open a hosted checkout for an approved application.

        Returns:
            ServiceResult with GrantCheckout, or a failure with
            INSUFFICIENT_FUNDS, NO_FUNDING_SOURCE, VALIDATION_ERROR or
            PROVIDER_ERROR

        Raises:
            NotFoundError: Unknown application
            InvalidStateTransitionError: Application is not approved
        """
        logger = cls.get_logger()
        application = cls._get_application(application_id)
        cls._require_approved(application)

        amount = application.approved_amount
        if not amount or amount <= 0:
            return ServiceResult.failure(
                "Application has no approved amount",
                error_code="VALIDATION_ERROR",
                details={"application_id": application.id},
            )

        source = resolve_funding_source(
            application.school_id,
            application.budget_type,
            application.school_year,
        )
        if source is None:
            return ServiceResult.failure(
                "No partner school budget or budget allocation can fund this grant",
                error_code="NO_FUNDING_SOURCE",
                details={"application_id": application.id, "school_id": application.school_id},
            )
        if not source.has_funds(amount):
            ledger = source.sub_ledger or source.envelope
            return ServiceResult.from_exception(
                InsufficientFunds(
                    source.kind,
                    ledger.id,
                    required=amount,
                    available=source.available,
                )
            )

        reference = generate_transaction_reference()
        params = CheckoutSessionParams(
            transaction_reference=reference,
            amount=amount,
            description=f"Scholarship Grant - Application #{application.application_number}",
            metadata={
                "application_id": str(application.id),
                "application_number": application.application_number,
                "student_id": str(application.student_id),
            },
        )

        # Phase 1: provider call, outside any transaction
        try:
            session = cls.get_paymongo_adapter().create_checkout_session(params)
        except ExternalServiceError as e:
            logger.warning(
                "Checkout session creation failed",
                extra={
                    "application_id": application.id,
                    "transaction_reference": reference,
                    "error_code": e.error_code,
                },
            )
            return ServiceResult.failure(
                e.message,
                error_code="PROVIDER_ERROR",
                details={"provider_error_code": e.error_code},
            )

        expires_at = session.expires_at or timezone.now() + timedelta(
            minutes=settings.PAYMENT_LINK_EXPIRY_MINUTES
        )

        # Phase 2: record the open transaction
        with cls.atomic():
            application = lock_row(
                ScholarshipApplication,
                application.id,
                error_code="APPLICATION_NOT_FOUND",
            )
            cls._require_approved(application)

            txn = TransactionService.open(
                application,
                amount=amount,
                provider=PaymentProvider.PAYMONGO,
                method=PaymentMethod.DIGITAL_WALLET,
                initiated_by=user,
                expires_at=expires_at,
                payment_link_url=session.checkout_url,
                provider_transaction_id=session.id,
                provider_response=session.raw_response,
                transaction_reference=reference,
            )
            application.start_grant_processing()
            application.save()

        logger.info(
            "Grant processing started",
            extra={
                "application_id": application.id,
                "transaction_reference": txn.transaction_reference,
                "checkout_session_id": session.id,
                "amount": str(amount),
            },
        )
        return ServiceResult.success(
            GrantCheckout(transaction=txn, checkout_url=session.checkout_url, expires_at=expires_at)
        )

    @classmethod
    def revert_on_cancel(
        cls,
        application_id=None,
        checkout_session_id: str | None = None,
        transaction_reference: str | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        """
        Undo a grant checkout the payer abandoned.

        The application is resolved from any of the three keys. An open
        transaction is cancelled and a grants_processing application goes
        back to approved. Any other status needs no reversion.

        Raises:
            NotFoundError: Nothing matches the given keys
        """
        if application_id is None and not checkout_session_id and not transaction_reference:
            raise ValidationError(
                "application_id, checkout_session_id or transaction_reference is required",
            )

        txn = TransactionService.find(
            reference=transaction_reference,
            provider_transaction_id=checkout_session_id,
            application_id=application_id,
        )
        if txn is not None:
            application = txn.application
        elif application_id is not None:
            application = cls._get_application(application_id)
        else:
            raise NotFoundError(
                "No payment transaction matches the given reference",
                error_code="TRANSACTION_NOT_FOUND",
                details={
                    "checkout_session_id": checkout_session_id,
                    "transaction_reference": transaction_reference,
                },
            )

        if application.status != ApplicationStatus.GRANTS_PROCESSING:
            return ServiceResult.success(
                {
                    "reverted": False,
                    "message": "No reversion needed",
                    "application_id": application.id,
                    "status": application.status,
                }
            )

        with cls.atomic():
            if txn is not None and txn.is_open:
                TransactionService.cancel(txn.transaction_reference, reason="Checkout cancelled")
            else:
                TransactionService.revert_application(application.id)

        cls.get_logger().info(
            "Grant checkout reverted",
            extra={
                "application_id": application.id,
                "transaction_reference": getattr(txn, "transaction_reference", None),
            },
        )
        return ServiceResult.success(
            {
                "reverted": True,
                "message": "Application reverted to approved",
                "application_id": application.id,
                "status": ApplicationStatus.APPROVED,
                "transaction_reference": getattr(txn, "transaction_reference", None),
            }
        )
