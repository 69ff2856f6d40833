"""
Fund request service for partner school payout requests.

This module provides the FundRequestService class which drives a
PartnerSchoolFundRequest through its review and payout lifecycle.

State Flow:
    PENDING -> APPROVED -> DISBURSED -> LIQUIDATED
    PENDING -> REJECTED

Only disburse moves money. Approval checks that the sub-ledger could
cover the request at that moment but reserves nothing, so a disburse
can still be refused later if the budget was spent in between.

Usage:
    from aid.services import FundRequestService

    result = FundRequestService.submit(budget.id, Decimal("5000"), "Lab equipment")
    request = result.data

    result = FundRequestService.approve(request.id, user)
    if not result.success:
        print(result.error)  # "Insufficient school budget"

    FundRequestService.disburse(request.id, user)
    FundRequestService.liquidate(request.id, "liquidations/lab.pdf", user)
"""

from __future__ import annotations

from django_fsm import TransitionNotAllowed, can_proceed

from aid.exceptions import InvalidStateTransitionError
from aid.ledger.exceptions import BudgetNotFound, InsufficientFunds, InvalidAmount, StaleReference
from aid.ledger.services import SubLedgerService, to_amount
from aid.locks import lock_row
from aid.models import PartnerSchoolFundRequest
from core.exceptions import NotFoundError
from core.services import BaseService, ServiceResult


class FundRequestService(BaseService):
    """
    Service for the partner school fund request workflow.

    Transitions are the django-fsm methods on PartnerSchoolFundRequest.
    A transition from the wrong state raises InvalidStateTransitionError;
    business refusals (insufficient funds) come back as failed results.
    """

    @classmethod
    def _lock(cls, request_id) -> PartnerSchoolFundRequest:
        return lock_row(PartnerSchoolFundRequest, request_id, error_code="FUND_REQUEST_NOT_FOUND")

    @staticmethod
    def _invalid(fund_request: PartnerSchoolFundRequest, name: str) -> InvalidStateTransitionError:
        return InvalidStateTransitionError(
            f"Cannot {name} fund request in '{fund_request.status}' state",
            details={
                "fund_request_id": fund_request.id,
                "current_state": fund_request.status,
                "transition": name,
            },
        )

    @classmethod
    def _require(cls, fund_request: PartnerSchoolFundRequest, name: str) -> None:
        """Raise InvalidStateTransitionError unless the named transition is allowed."""
        if not can_proceed(getattr(fund_request, name)):
            raise cls._invalid(fund_request, name)

    @classmethod
    def _transition(cls, fund_request: PartnerSchoolFundRequest, name: str, **kwargs) -> None:
        """Run a named FSM transition, translating TransitionNotAllowed."""
        try:
            getattr(fund_request, name)(**kwargs)
        except TransitionNotAllowed:
            raise cls._invalid(fund_request, name)

    @classmethod
    def submit(
        cls,
        budget_id,
        amount,
        purpose: str,
        notes: str | None = None,
        request_document_path: str | None = None,
    ) -> ServiceResult[PartnerSchoolFundRequest]:
        """Create a pending fund request against a sub-ledger."""
        validation = cls.validate_required(purpose=purpose)
        if validation:
            return validation

        try:
            amount = to_amount(amount)
            budget = SubLedgerService.get(budget_id)
        except (InvalidAmount, BudgetNotFound) as e:
            return ServiceResult.from_exception(e)

        fund_request = PartnerSchoolFundRequest.objects.create(
            partner_school_budget=budget,
            school_id=budget.school_id,
            amount=amount,
            purpose=purpose,
            notes=notes or None,
            request_document_path=request_document_path or None,
        )

        cls.get_logger().info(
            "Fund request submitted",
            extra={
                "fund_request_id": fund_request.id,
                "partner_school_budget_id": budget.id,
                "amount": str(amount),
            },
        )
        return ServiceResult.success(fund_request)

    @classmethod
    def get(cls, request_id) -> PartnerSchoolFundRequest:
        try:
            return PartnerSchoolFundRequest.objects.select_related(
                "partner_school_budget"
            ).get(pk=request_id)
        except PartnerSchoolFundRequest.DoesNotExist:
            raise NotFoundError(
                f"Fund request {request_id} not found",
                error_code="FUND_REQUEST_NOT_FOUND",
                details={"fund_request_id": request_id},
            )

    @classmethod
    def list_requests(cls, school_id=None, status: str | None = None):
        """Fund requests, newest first."""
        queryset = PartnerSchoolFundRequest.objects.select_related("partner_school_budget")
        if school_id is not None:
            queryset = queryset.filter(school_id=school_id)
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by("-created_at", "-id")

    @classmethod
    def approve(cls, request_id, user=None) -> ServiceResult[PartnerSchoolFundRequest]:
        """
        Approve a pending request if the sub-ledger can currently cover it.

        Returns:
            ServiceResult with the request, or an INSUFFICIENT_FUNDS
            failure with the request left pending

        Raises:
            InvalidStateTransitionError: The request is not pending
        """
        with cls.atomic():
            fund_request = cls._lock(request_id)
            cls._require(fund_request, "approve")

            budget = fund_request.partner_school_budget
            if not budget.has_funds(fund_request.amount):
                error = InsufficientFunds(
                    "partner_school_budget",
                    budget.id,
                    required=fund_request.amount,
                    available=budget.available_amount,
                )
                cls.get_logger().warning(
                    "Fund request approval refused",
                    extra={
                        "fund_request_id": fund_request.id,
                        "amount": str(fund_request.amount),
                        "available_amount": str(budget.available_amount),
                    },
                )
                return ServiceResult.from_exception(error)

            cls._transition(fund_request, "approve", user=user)
            fund_request.save()

        cls.get_logger().info(
            "Fund request approved",
            extra={"fund_request_id": fund_request.id, "amount": str(fund_request.amount)},
        )
        return ServiceResult.success(fund_request)

    @classmethod
    def reject(
        cls,
        request_id,
        user=None,
        reason: str | None = None,
    ) -> ServiceResult[PartnerSchoolFundRequest]:
        """
        Reject a pending request. Terminal, with no ledger effect.

        Raises:
            InvalidStateTransitionError: The request is not pending
        """
        with cls.atomic():
            fund_request = cls._lock(request_id)
            cls._transition(fund_request, "reject", user=user, reason=reason)
            fund_request.save()

        cls.get_logger().info(
            "Fund request rejected",
            extra={"fund_request_id": fund_request.id},
        )
        return ServiceResult.success(fund_request)

    @classmethod
    def disburse(cls, request_id, user=None) -> ServiceResult[PartnerSchoolFundRequest]:
        """
        Pay out an approved request.

        The sub-ledger deduction and the APPROVED -> DISBURSED transition
        commit together. If the sub-ledger can no longer cover the amount
        nothing changes and a failed result is returned.

        Raises:
            InvalidStateTransitionError: The request is not approved
        """
        try:
            with cls.atomic():
                fund_request = cls._lock(request_id)
                cls._require(fund_request, "disburse")

                budget = SubLedgerService.deduct(
                    fund_request.partner_school_budget_id,
                    fund_request.amount,
                )
                cls._transition(fund_request, "disburse", user=user)
                fund_request.save()
        except (InsufficientFunds, StaleReference, BudgetNotFound) as e:
            cls.get_logger().warning(
                "Fund request disbursement refused",
                extra={"fund_request_id": request_id, "error_code": e.error_code},
            )
            return ServiceResult.from_exception(e)

        cls.get_logger().info(
            "Fund request disbursed",
            extra={
                "fund_request_id": fund_request.id,
                "partner_school_budget_id": budget.id,
                "amount": str(fund_request.amount),
                "available_amount": str(budget.available_amount),
            },
        )
        return ServiceResult.success(fund_request)

    @classmethod
    def liquidate(
        cls,
        request_id,
        liquidation_document_path: str,
        user=None,
    ) -> ServiceResult[PartnerSchoolFundRequest]:
        """
        Close a disbursed request with proof of spending. No ledger effect.

        Raises:
            InvalidStateTransitionError: The request is not disbursed
        """
        validation = cls.validate_required(liquidation_document_path=liquidation_document_path)
        if validation:
            return validation

        with cls.atomic():
            fund_request = cls._lock(request_id)
            cls._transition(
                fund_request,
                "liquidate",
                liquidation_document_path=liquidation_document_path,
                user=user,
            )
            fund_request.save()

        cls.get_logger().info(
            "Fund request liquidated",
            extra={"fund_request_id": fund_request.id},
        )
        return ServiceResult.success(fund_request)
