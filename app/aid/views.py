"""
DRF views for the school aid API.

This module provides API views for:
- Budget envelopes and partner school sub-ledgers
- Withdrawals and fund requests against sub-ledgers
- Grant processing, revert-on-cancel and manual disbursement
- Disbursement history and receipts

Related files:
    - services/: Withdrawal, fund request, grant, disbursement and receipt services
    - ledger/services.py: BudgetLedgerService and SubLedgerService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Error Mapping:
    Service failures and application errors are returned as
    {"error", "error_code", "details"} bodies:
    - 400: Validation errors, invalid amounts, insufficient funds
    - 404: Unknown rows, no budget, no funding source
    - 409: Invalid state transitions, duplicates, already reversed
    - 502: Payment provider failures

Security:
    - All endpoints require authentication
"""

from __future__ import annotations

import logging
import os

from django.http import FileResponse
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.pagination import PageNumberPagination
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from aid.ledger.exceptions import LedgerError
from aid.ledger.services import BudgetLedgerService, SubLedgerService, to_amount
from aid.serializers import (
    BudgetAdjustSerializer,
    BudgetAllocationSerializer,
    BudgetCheckSerializer,
    BudgetFundSerializer,
    DisbursementFilterSerializer,
    DisbursementSerializer,
    FundRequestCreateSerializer,
    FundRequestLiquidateSerializer,
    FundRequestRejectSerializer,
    FundRequestSerializer,
    GrantCheckoutSerializer,
    ManualDisbursementSerializer,
    PartnerSchoolBudgetCreateSerializer,
    PartnerSchoolBudgetSerializer,
    RevertOnCancelSerializer,
    WithdrawalCreateSerializer,
    WithdrawalReverseSerializer,
    WithdrawalSerializer,
)
from aid.services import (
    DisbursementService,
    FundRequestService,
    GrantService,
    ReceiptService,
    WithdrawalService,
)
from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Error Mapping
# =============================================================================

# Failure codes returned in ServiceResult that are not plain 400s
FAILURE_STATUS_CODES = {
    "BUDGET_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "NO_FUNDING_SOURCE": status.HTTP_404_NOT_FOUND,
    "FUND_REQUEST_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "APPLICATION_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_TRANSITION": status.HTTP_409_CONFLICT,
    "STALE_REFERENCE": status.HTTP_409_CONFLICT,
    "DUPLICATE_DISBURSEMENT": status.HTTP_409_CONFLICT,
    "PROVIDER_ERROR": status.HTTP_502_BAD_GATEWAY,
}


def status_for_error(exc: BaseApplicationError) -> int:
    """HTTP status for an application error."""
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, ExternalServiceError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


def error_response(exc: BaseApplicationError) -> Response:
    return Response(exc.to_dict(), status=status_for_error(exc))


def failure_response(result) -> Response:
    body = result.to_response()
    body.pop("success", None)
    return Response(
        body,
        status=FAILURE_STATUS_CODES.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


class AidAPIView(APIView):
    """
    Base view for aid endpoints.

    Application errors raised by services are rendered with their error
    code and mapped status instead of reaching DRF's 500 handler.
    """

    permission_classes = [IsAuthenticated]

    def handle_exception(self, exc):
        if isinstance(exc, BaseApplicationError):
            logger.info(
                f"Request refused: {exc.error_code}",
                extra={"error_code": exc.error_code, "path": self.request.path},
            )
            return error_response(exc)
        return super().handle_exception(exc)

    def paginate(self, queryset, serializer_class):
        paginator = PageNumberPagination()
        page = paginator.paginate_queryset(queryset, self.request, view=self)
        serializer = serializer_class(page, many=True)
        return paginator.get_paginated_response(serializer.data)


# =============================================================================
# Budget Envelopes
# =============================================================================


class BudgetListView(AidAPIView):
    """
    List budget envelopes.

    GET /api/v1/school-aid/budgets/?school_year=2025-2026
    """

    @extend_schema(
        operation_id="list_aid_budgets",
        summary="List budget envelopes",
        parameters=[
            OpenApiParameter(
                name="school_year",
                type=str,
                location=OpenApiParameter.QUERY,
                description="Filter by school year",
                required=False,
            ),
        ],
        responses={200: BudgetAllocationSerializer(many=True)},
        tags=["School Aid - Budgets"],
    )
    def get(self, request):
        budgets = BudgetLedgerService.list_budgets(request.query_params.get("school_year"))
        return Response(BudgetAllocationSerializer(budgets, many=True).data)


class BudgetFundView(AidAPIView):
    """
    Create or update the envelope for a budget type and school year.

    POST /api/v1/school-aid/budget/
    """

    @extend_schema(
        operation_id="fund_aid_budget",
        summary="Create or update a budget envelope",
        request=BudgetFundSerializer,
        responses={
            200: BudgetAllocationSerializer,
            400: OpenApiResponse(description="Invalid amount or total below disbursed"),
        },
        tags=["School Aid - Budgets"],
    )
    def post(self, request):
        serializer = BudgetFundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        envelope = BudgetLedgerService.fund(
            budget_type=data["budget_type"],
            school_year=data["school_year"],
            amount=data["total_budget"],
            description=data.get("description"),
            user=request.user,
        )
        return Response(BudgetAllocationSerializer(envelope).data)


# =============================================================================
# Partner School Sub-Ledgers
# =============================================================================


class PartnerSchoolBudgetListView(AidAPIView):
    """
    List or allocate partner school budgets.

    GET /api/v1/school-aid/partner-school-budgets/
    POST /api/v1/school-aid/partner-school-budgets/
    """

    @extend_schema(
        operation_id="list_partner_school_budgets",
        summary="List partner school budgets",
        parameters=[
            OpenApiParameter(name="school_id", type=int, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="academic_year", type=str, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=str, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: PartnerSchoolBudgetSerializer(many=True)},
        tags=["School Aid - Partner School Budgets"],
    )
    def get(self, request):
        params = request.query_params
        budgets = SubLedgerService.list_budgets(
            school_id=params.get("school_id") or None,
            academic_year=params.get("academic_year"),
            status=params.get("status"),
        )
        return self.paginate(budgets, PartnerSchoolBudgetSerializer)

    @extend_schema(
        operation_id="create_partner_school_budget",
        summary="Allocate a partner school budget",
        request=PartnerSchoolBudgetCreateSerializer,
        responses={
            201: PartnerSchoolBudgetSerializer,
            400: OpenApiResponse(description="Validation error or insufficient envelope funds"),
            404: OpenApiResponse(description="Source budget not found"),
            409: OpenApiResponse(description="Budget already exists for school and year"),
        },
        tags=["School Aid - Partner School Budgets"],
    )
    def post(self, request):
        serializer = PartnerSchoolBudgetCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        budget = SubLedgerService.allocate(user=request.user, **serializer.validated_data)
        return Response(PartnerSchoolBudgetSerializer(budget).data, status=status.HTTP_201_CREATED)


class PartnerSchoolBudgetDetailView(AidAPIView):
    """GET /api/v1/school-aid/partner-school-budgets/{id}/"""

    @extend_schema(
        operation_id="get_partner_school_budget",
        summary="Get partner school budget",
        responses={200: PartnerSchoolBudgetSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["School Aid - Partner School Budgets"],
    )
    def get(self, request, budget_id):
        return Response(PartnerSchoolBudgetSerializer(SubLedgerService.get(budget_id)).data)


class PartnerSchoolBudgetAdjustView(AidAPIView):
    """
    Change a partner school budget's allocation.

    POST /api/v1/school-aid/partner-school-budgets/{id}/adjust/

    Status is recomputed: depleted when nothing is available, active
    otherwise. Disbursed amounts are not touched.
    """

    @extend_schema(
        operation_id="adjust_partner_school_budget",
        summary="Adjust partner school budget allocation",
        request=BudgetAdjustSerializer,
        responses={200: PartnerSchoolBudgetSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["School Aid - Partner School Budgets"],
    )
    def post(self, request, budget_id):
        serializer = BudgetAdjustSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        budget = SubLedgerService.adjust_allocation(
            budget_id,
            serializer.validated_data["allocated_amount"],
            notes=serializer.validated_data.get("notes"),
        )
        return Response(PartnerSchoolBudgetSerializer(budget).data)


class PartnerSchoolBudgetCheckView(AidAPIView):
    """
    Check whether a school's current budget covers an amount.

    GET /api/v1/school-aid/partner-school-budgets/check/{school_id}/?amount=5000
    """

    @extend_schema(
        operation_id="check_partner_school_budget",
        summary="Check partner school budget",
        parameters=[
            OpenApiParameter(name="amount", type=str, location=OpenApiParameter.QUERY, required=True),
        ],
        responses={
            200: BudgetCheckSerializer,
            400: OpenApiResponse(description="Invalid amount"),
            404: OpenApiResponse(description="No active budget for school"),
        },
        tags=["School Aid - Partner School Budgets"],
    )
    def get(self, request, school_id):
        amount = to_amount(request.query_params.get("amount"), allow_zero=True)
        check = SubLedgerService.check_budget(school_id, amount)
        return Response(BudgetCheckSerializer(check).data)


class PartnerSchoolCurrentBudgetView(AidAPIView):
    """GET /api/v1/school-aid/partner-school-budgets/school/{school_id}/"""

    @extend_schema(
        operation_id="get_current_partner_school_budget",
        summary="Get a school's current budget",
        responses={
            200: PartnerSchoolBudgetSerializer,
            404: OpenApiResponse(description="No active budget for school"),
        },
        tags=["School Aid - Partner School Budgets"],
    )
    def get(self, request, school_id):
        budget = SubLedgerService.get_current_budget(school_id)
        if budget is None:
            return Response(
                {"error": "No active budget found for this school", "error_code": "BUDGET_NOT_FOUND"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(PartnerSchoolBudgetSerializer(budget).data)


# =============================================================================
# Withdrawals
# =============================================================================


class WithdrawalListView(AidAPIView):
    """
    List or record partner school withdrawals.

    GET /api/v1/school-aid/partner-school-budgets/withdrawals/?school_id=42
    POST /api/v1/school-aid/partner-school-budgets/withdrawals/ (multipart)
    """

    parser_classes = [MultiPartParser, FormParser, JSONParser]

    @extend_schema(
        operation_id="list_partner_school_withdrawals",
        summary="List withdrawals for a school",
        parameters=[
            OpenApiParameter(name="school_id", type=int, location=OpenApiParameter.QUERY, required=True),
        ],
        responses={200: WithdrawalSerializer(many=True)},
        tags=["School Aid - Withdrawals"],
    )
    def get(self, request):
        school_id = request.query_params.get("school_id")
        if not school_id:
            return Response(
                {"error": "school_id is required", "error_code": "VALIDATION_ERROR"},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return self.paginate(WithdrawalService.list_for_school(school_id), WithdrawalSerializer)

    @extend_schema(
        operation_id="record_partner_school_withdrawal",
        summary="Record a withdrawal",
        description=(
            "Deduct from the school's budget and record the withdrawal with its "
            "proof document. Refused with INSUFFICIENT_FUNDS when the budget "
            "cannot cover the amount."
        ),
        request=WithdrawalCreateSerializer,
        responses={
            201: WithdrawalSerializer,
            400: OpenApiResponse(description="Validation error or insufficient funds"),
            404: OpenApiResponse(description="No active budget for school"),
        },
        tags=["School Aid - Withdrawals"],
    )
    def post(self, request):
        serializer = WithdrawalCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        proof_path = WithdrawalService.store_proof_document(data["proof_document"])
        result = WithdrawalService.record(
            budget_id=data.get("partner_school_budget_id"),
            school_id=data.get("school_id"),
            amount=data["amount"],
            purpose=data["purpose"],
            proof_document_path=proof_path,
            withdrawal_date=data["withdrawal_date"],
            recorded_by=request.user,
            notes=data.get("notes"),
        )
        if not result.success:
            return failure_response(result)

        return Response(WithdrawalSerializer(result.data).data, status=status.HTTP_201_CREATED)


class WithdrawalDetailView(AidAPIView):
    """GET /api/v1/school-aid/partner-school-budgets/withdrawals/{id}/"""

    @extend_schema(
        operation_id="get_partner_school_withdrawal",
        summary="Get withdrawal",
        responses={200: WithdrawalSerializer, 404: OpenApiResponse(description="Not found")},
        tags=["School Aid - Withdrawals"],
    )
    def get(self, request, withdrawal_id):
        return Response(WithdrawalSerializer(WithdrawalService.get(withdrawal_id)).data)


class WithdrawalReverseView(AidAPIView):
    """
    Reverse a withdrawal.

    POST /api/v1/school-aid/partner-school-budgets/withdrawals/{id}/reverse/

    The amount is refunded to the budget and a reversal entry is appended.
    The original entry is not changed.
    """

    @extend_schema(
        operation_id="reverse_partner_school_withdrawal",
        summary="Reverse a withdrawal",
        request=WithdrawalReverseSerializer,
        responses={
            201: WithdrawalSerializer,
            404: OpenApiResponse(description="Not found"),
            409: OpenApiResponse(description="Already reversed or is a reversal"),
        },
        tags=["School Aid - Withdrawals"],
    )
    def post(self, request, withdrawal_id):
        serializer = WithdrawalReverseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reversal = WithdrawalService.reverse(
            withdrawal_id,
            serializer.validated_data["reason"],
            recorded_by=request.user,
        )
        return Response(WithdrawalSerializer(reversal).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Fund Requests
# =============================================================================


class FundRequestListView(AidAPIView):
    """
    List or submit fund requests.

    GET /api/v1/school-aid/fund-requests/
    POST /api/v1/school-aid/fund-requests/
    """

    @extend_schema(
        operation_id="list_fund_requests",
        summary="List fund requests",
        parameters=[
            OpenApiParameter(name="school_id", type=int, location=OpenApiParameter.QUERY, required=False),
            OpenApiParameter(name="status", type=str, location=OpenApiParameter.QUERY, required=False),
        ],
        responses={200: FundRequestSerializer(many=True)},
        tags=["School Aid - Fund Requests"],
    )
    def get(self, request):
        params = request.query_params
        queryset = FundRequestService.list_requests(
            school_id=params.get("school_id") or None,
            status=params.get("status"),
        )
        return self.paginate(queryset, FundRequestSerializer)

    @extend_schema(
        operation_id="submit_fund_request",
        summary="Submit a fund request",
        request=FundRequestCreateSerializer,
        responses={
            201: FundRequestSerializer,
            400: OpenApiResponse(description="Validation error"),
            404: OpenApiResponse(description="Budget not found"),
        },
        tags=["School Aid - Fund Requests"],
    )
    def post(self, request):
        serializer = FundRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = FundRequestService.submit(
            budget_id=data["partner_school_budget_id"],
            amount=data["amount"],
            purpose=data["purpose"],
            notes=data.get("notes"),
            request_document_path=data.get("request_document_path"),
        )
        if not result.success:
            return failure_response(result)
        return Response(FundRequestSerializer(result.data).data, status=status.HTTP_201_CREATED)


class FundRequestActionView(AidAPIView):
    """
    Move a fund request through its workflow.

    POST /api/v1/school-aid/fund-requests/{id}/approve/
    POST /api/v1/school-aid/fund-requests/{id}/reject/
    POST /api/v1/school-aid/fund-requests/{id}/disburse/
    POST /api/v1/school-aid/fund-requests/{id}/liquidate/
    """

    action = None

    @extend_schema(
        summary="Approve, reject, disburse or liquidate a fund request",
        request=FundRequestRejectSerializer,
        responses={
            200: FundRequestSerializer,
            400: OpenApiResponse(description="Insufficient school budget"),
            404: OpenApiResponse(description="Not found"),
            409: OpenApiResponse(description="Transition not allowed from current status"),
        },
        tags=["School Aid - Fund Requests"],
    )
    def post(self, request, request_id):
        if self.action == "approve":
            result = FundRequestService.approve(request_id, user=request.user)
        elif self.action == "reject":
            serializer = FundRequestRejectSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            result = FundRequestService.reject(
                request_id,
                user=request.user,
                reason=serializer.validated_data.get("reason"),
            )
        elif self.action == "disburse":
            result = FundRequestService.disburse(request_id, user=request.user)
        else:
            serializer = FundRequestLiquidateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            result = FundRequestService.liquidate(
                request_id,
                serializer.validated_data["liquidation_document_path"],
                user=request.user,
            )

        if not result.success:
            return failure_response(result)
        return Response(FundRequestSerializer(result.data).data)


# =============================================================================
# Grants and Disbursements
# =============================================================================


class ProcessGrantView(AidAPIView):
    """
    Start the automatic payout of an approved grant.

    POST /api/v1/school-aid/applications/{id}/process-grant/

    Returns:
        {"checkout_url": "...", "expires_at": "...", "transaction": {...}}
    """

    @extend_schema(
        operation_id="process_aid_grant",
        summary="Process grant through hosted checkout",
        request=None,
        responses={
            201: GrantCheckoutSerializer,
            400: OpenApiResponse(description="Insufficient school budget or no approved amount"),
            404: OpenApiResponse(description="Application or funding source not found"),
            409: OpenApiResponse(description="Application is not approved"),
            502: OpenApiResponse(description="Payment provider error"),
        },
        tags=["School Aid - Grants"],
    )
    def post(self, request, application_id):
        result = GrantService.process_grant(application_id, user=request.user)
        if not result.success:
            return failure_response(result)
        return Response(GrantCheckoutSerializer(result.data).data, status=status.HTTP_201_CREATED)


class RevertOnCancelView(AidAPIView):
    """
    Revert an application whose hosted checkout was abandoned.

    POST /api/v1/school-aid/applications/revert-on-cancel/
    """

    @extend_schema(
        operation_id="revert_aid_grant_on_cancel",
        summary="Revert grant processing after checkout cancel",
        request=RevertOnCancelSerializer,
        responses={200: OpenApiResponse(description="Reversion result"), 404: OpenApiResponse(description="Not found")},
        tags=["School Aid - Grants"],
    )
    def post(self, request):
        serializer = RevertOnCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = GrantService.revert_on_cancel(
            application_id=data.get("application_id"),
            checkout_session_id=data.get("checkout_session_id") or None,
            transaction_reference=data.get("transaction_reference") or None,
        )
        return Response(result.data)


class ManualDisbursementView(AidAPIView):
    """
    Record a disbursement paid outside the hosted checkout.

    POST /api/v1/school-aid/applications/{id}/disburse/ (multipart)
    """

    parser_classes = [MultiPartParser, FormParser]

    @extend_schema(
        operation_id="record_manual_disbursement",
        summary="Record manual disbursement",
        request=ManualDisbursementSerializer,
        responses={
            201: DisbursementSerializer,
            400: OpenApiResponse(description="Validation error or insufficient funds"),
            404: OpenApiResponse(description="Application or funding source not found"),
            409: OpenApiResponse(description="Already disbursed or status does not allow it"),
        },
        tags=["School Aid - Disbursements"],
    )
    def post(self, request, application_id):
        serializer = ManualDisbursementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        disbursement = DisbursementService.record_manual(
            application_id=application_id,
            method=data["method"],
            provider_name=data["provider_name"],
            reference_number=data["reference_number"],
            receipt_file=data["receipt"],
            account_number=data.get("account_number"),
            notes=data.get("notes"),
            user=request.user,
        )
        return Response(DisbursementSerializer(disbursement).data, status=status.HTTP_201_CREATED)


class DisbursementListView(AidAPIView):
    """
    Disbursement history.

    GET /api/v1/school-aid/disbursements/

    Query params:
        application_id, student_id, method, status, reference,
        date_from, date_to, search, sort_by, sort_order
    """

    @extend_schema(
        operation_id="list_aid_disbursements",
        summary="List disbursements",
        parameters=[DisbursementFilterSerializer],
        responses={200: DisbursementSerializer(many=True)},
        tags=["School Aid - Disbursements"],
    )
    def get(self, request):
        filters = DisbursementFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)
        return self.paginate(DisbursementService.list(filters.validated_data), DisbursementSerializer)


class DisbursementReceiptView(AidAPIView):
    """
    View or download a disbursement receipt.

    GET /api/v1/school-aid/disbursements/{id}/receipt/
    GET /api/v1/school-aid/disbursements/{id}/receipt/download/

    A missing receipt is generated on first access.
    """

    as_attachment = False

    @extend_schema(
        operation_id="get_aid_disbursement_receipt",
        summary="Get disbursement receipt",
        responses={
            200: OpenApiResponse(description="Receipt file content"),
            404: OpenApiResponse(description="Disbursement or receipt not found"),
        },
        tags=["School Aid - Disbursements"],
    )
    def get(self, request, disbursement_id):
        disbursement = DisbursementService.get(disbursement_id)
        if not disbursement.receipt_path:
            disbursement.receipt_path = ReceiptService.generate(disbursement)

        handle = ReceiptService.open_receipt(disbursement)
        return FileResponse(
            handle,
            as_attachment=self.as_attachment,
            filename=os.path.basename(disbursement.receipt_path),
        )


class DisbursementReceiptDownloadView(DisbursementReceiptView):
    as_attachment = True

    @extend_schema(
        operation_id="download_aid_disbursement_receipt",
        summary="Download disbursement receipt",
        responses={
            200: OpenApiResponse(description="Receipt file with attachment header"),
            404: OpenApiResponse(description="Disbursement or receipt not found"),
        },
        tags=["School Aid - Disbursements"],
    )
    def get(self, request, disbursement_id):
        return super().get(request, disbursement_id)
