"""
Serializers for the school aid API.

This module provides DRF serializers for the aid endpoints. Input
serializers validate request bodies and query strings; output serializers
are read-only renderings of the ledger and pipeline rows.

Serializers:
    BudgetAllocationSerializer: Budget envelope with derived totals
    BudgetFundSerializer: Create or update an envelope
    PartnerSchoolBudgetSerializer: Sub-ledger with availability
    PartnerSchoolBudgetCreateSerializer: Allocate a sub-ledger
    BudgetAdjustSerializer: Change a sub-ledger allocation
    BudgetCheckSerializer: Result of a budget check
    WithdrawalSerializer: Withdrawal or reversal entry
    WithdrawalCreateSerializer: Record a withdrawal with proof document
    FundRequestSerializer: Fund request with workflow stamps
    GrantCheckoutSerializer: Hosted checkout started for a grant
    RevertOnCancelSerializer: Keys identifying an abandoned checkout
    ManualDisbursementSerializer: Manual payout inputs with receipt file
    DisbursementSerializer: Disbursement history row
    DisbursementFilterSerializer: Disbursement list query string

Usage:
    from aid.serializers import DisbursementSerializer

    serializer = DisbursementSerializer(disbursements, many=True)
    data = serializer.data
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from aid.models import (
    AidDisbursement,
    BudgetAllocation,
    PartnerSchoolBudget,
    PartnerSchoolBudgetWithdrawal,
    PartnerSchoolFundRequest,
    PaymentTransaction,
)
from aid.services.disbursement_service import SORT_FIELDS
from aid.state_machines import BudgetType, PaymentMethod

MIN_AMOUNT = Decimal("0.01")


def _amount_field(**kwargs) -> serializers.DecimalField:
    return serializers.DecimalField(max_digits=15, decimal_places=2, min_value=MIN_AMOUNT, **kwargs)


# ============================================================================
# Budget Envelopes
# ============================================================================


class BudgetAllocationSerializer(serializers.ModelSerializer):
    """Read-only serializer for BudgetAllocation with derived totals."""

    remaining_budget = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    available_budget = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    utilization_rate = serializers.DecimalField(max_digits=7, decimal_places=2, read_only=True)

    class Meta:
        model = BudgetAllocation
        fields = [
            "id",
            "budget_type",
            "school_year",
            "total_budget",
            "allocated_budget",
            "disbursed_budget",
            "remaining_budget",
            "available_budget",
            "utilization_rate",
            "description",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class BudgetFundSerializer(serializers.Serializer):
    """
    Serializer for creating or updating a budget envelope.

    Fields:
        budget_type: financial_support or scholarship_benefits
        school_year: School year label, e.g. "2025-2026"
        total_budget: New total for the envelope
        description: Optional description
    """

    budget_type = serializers.ChoiceField(choices=BudgetType.choices)
    school_year = serializers.CharField(max_length=20)
    total_budget = _amount_field()
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)


# ============================================================================
# Partner School Sub-Ledgers
# ============================================================================


class PartnerSchoolBudgetSerializer(serializers.ModelSerializer):
    """Read-only serializer for PartnerSchoolBudget."""

    available_amount = serializers.DecimalField(max_digits=15, decimal_places=2, read_only=True)
    utilization_rate = serializers.DecimalField(max_digits=7, decimal_places=2, read_only=True)

    class Meta:
        model = PartnerSchoolBudget
        fields = [
            "id",
            "source_budget",
            "school_id",
            "school_name",
            "academic_year",
            "allocated_amount",
            "disbursed_amount",
            "available_amount",
            "utilization_rate",
            "status",
            "allocation_date",
            "expiry_date",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class PartnerSchoolBudgetCreateSerializer(serializers.Serializer):
    """Serializer for allocating a partner school sub-ledger."""

    school_id = serializers.IntegerField(min_value=1)
    school_name = serializers.CharField(max_length=255)
    academic_year = serializers.CharField(max_length=20)
    allocated_amount = _amount_field()
    allocation_date = serializers.DateTimeField()
    expiry_date = serializers.DateTimeField(required=False, allow_null=True)
    source_budget_id = serializers.IntegerField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        expiry_date = attrs.get("expiry_date")
        if expiry_date and expiry_date <= attrs["allocation_date"]:
            raise serializers.ValidationError(
                {"expiry_date": ["Expiry date must be after the allocation date."]}
            )
        return attrs


class BudgetAdjustSerializer(serializers.Serializer):
    """Serializer for changing a sub-ledger's allocated amount."""

    allocated_amount = serializers.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal("0"))
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class BudgetCheckSerializer(serializers.Serializer):
    """Response serializer for the budget check endpoint."""

    budget_id = serializers.IntegerField()
    allocated = serializers.DecimalField(max_digits=15, decimal_places=2)
    disbursed = serializers.DecimalField(max_digits=15, decimal_places=2)
    available = serializers.DecimalField(max_digits=15, decimal_places=2)
    required = serializers.DecimalField(max_digits=15, decimal_places=2)
    has_sufficient_funds = serializers.BooleanField()
    shortfall = serializers.DecimalField(max_digits=15, decimal_places=2)
    status = serializers.CharField()
    expiry_date = serializers.DateTimeField(allow_null=True)


# ============================================================================
# Withdrawals
# ============================================================================


class WithdrawalSerializer(serializers.ModelSerializer):
    """Read-only serializer for withdrawal and reversal entries."""

    school_name = serializers.CharField(source="partner_school_budget.school_name", read_only=True)
    recorded_by_name = serializers.SerializerMethodField()

    class Meta:
        model = PartnerSchoolBudgetWithdrawal
        fields = [
            "id",
            "partner_school_budget",
            "school_id",
            "school_name",
            "entry_type",
            "reverses",
            "amount",
            "purpose",
            "notes",
            "proof_document_path",
            "withdrawal_date",
            "available_after",
            "recorded_by_name",
            "created_at",
        ]
        read_only_fields = fields

    def get_recorded_by_name(self, obj: PartnerSchoolBudgetWithdrawal) -> str | None:
        """Recorder's display name, or None when the user was removed."""
        if obj.recorded_by is None:
            return None
        return obj.recorded_by.get_full_name() or obj.recorded_by.get_username()


class WithdrawalCreateSerializer(serializers.Serializer):
    """
    Serializer for recording a withdrawal.

    Either partner_school_budget_id or school_id identifies the
    sub-ledger. With school_id the school's current budget is used.
    """

    partner_school_budget_id = serializers.IntegerField(required=False, allow_null=True)
    school_id = serializers.IntegerField(required=False, allow_null=True)
    amount = _amount_field()
    purpose = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    withdrawal_date = serializers.DateTimeField()
    proof_document = serializers.FileField()

    def validate(self, attrs):
        if not attrs.get("partner_school_budget_id") and not attrs.get("school_id"):
            raise serializers.ValidationError(
                {"school_id": ["Either school_id or partner_school_budget_id is required."]}
            )
        return attrs


class WithdrawalReverseSerializer(serializers.Serializer):
    reason = serializers.CharField()


# ============================================================================
# Fund Requests
# ============================================================================


class FundRequestSerializer(serializers.ModelSerializer):
    """Read-only serializer for PartnerSchoolFundRequest."""

    class Meta:
        model = PartnerSchoolFundRequest
        fields = [
            "id",
            "partner_school_budget",
            "school_id",
            "amount",
            "purpose",
            "notes",
            "status",
            "request_document_path",
            "rejection_reason",
            "liquidation_document_path",
            "processed_at",
            "approved_at",
            "disbursed_at",
            "liquidated_at",
            "created_at",
        ]
        read_only_fields = fields


class FundRequestCreateSerializer(serializers.Serializer):
    partner_school_budget_id = serializers.IntegerField()
    amount = _amount_field()
    purpose = serializers.CharField(max_length=255)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    request_document_path = serializers.CharField(
        max_length=500, required=False, allow_blank=True, allow_null=True
    )


class FundRequestRejectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class FundRequestLiquidateSerializer(serializers.Serializer):
    liquidation_document_path = serializers.CharField(max_length=500)


# ============================================================================
# Grants and Transactions
# ============================================================================


class PaymentTransactionSerializer(serializers.ModelSerializer):
    """Read-only serializer for PaymentTransaction."""

    class Meta:
        model = PaymentTransaction
        fields = [
            "id",
            "application",
            "application_number",
            "transaction_reference",
            "payment_provider",
            "payment_method",
            "transaction_amount",
            "transaction_status",
            "payment_link_url",
            "provider_transaction_id",
            "provider_reference_number",
            "failure_reason",
            "initiated_at",
            "completed_at",
            "expires_at",
            "initiated_by_name",
        ]
        read_only_fields = fields


class GrantCheckoutSerializer(serializers.Serializer):
    """Response serializer for process-grant."""

    checkout_url = serializers.URLField()
    expires_at = serializers.DateTimeField(allow_null=True)
    transaction = PaymentTransactionSerializer()


class RevertOnCancelSerializer(serializers.Serializer):
    """At least one key identifying the abandoned checkout is required."""

    application_id = serializers.IntegerField(required=False, allow_null=True)
    checkout_session_id = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    transaction_reference = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if not any(attrs.get(key) for key in ("application_id", "checkout_session_id", "transaction_reference")):
            raise serializers.ValidationError(
                "application_id, checkout_session_id or transaction_reference is required."
            )
        return attrs


# ============================================================================
# Disbursements
# ============================================================================


class ManualDisbursementSerializer(serializers.Serializer):
    """Multipart inputs for recording a manual disbursement."""

    method = serializers.ChoiceField(choices=PaymentMethod.choices)
    provider_name = serializers.CharField(max_length=100)
    reference_number = serializers.CharField(max_length=100)
    account_number = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    receipt = serializers.FileField()


class DisbursementSerializer(serializers.ModelSerializer):
    """
    Serializer for AidDisbursement history rows.

    Includes student and school names from the application and whether a
    receipt is available for download.
    """

    student_name = serializers.CharField(source="application.student_name", read_only=True)
    school_name = serializers.CharField(source="application.school_name", read_only=True)
    transaction_reference = serializers.CharField(
        source="payment_transaction.transaction_reference",
        read_only=True,
        default=None,
    )
    has_receipt = serializers.SerializerMethodField()

    class Meta:
        model = AidDisbursement
        fields = [
            "id",
            "application",
            "application_number",
            "student_id",
            "student_name",
            "school_id",
            "school_name",
            "amount",
            "method",
            "provider_name",
            "reference_number",
            "account_number",
            "transaction_reference",
            "has_receipt",
            "notes",
            "disbursed_by_name",
            "disbursed_at",
            "status",
            "reversed_at",
            "reversal_reason",
        ]
        read_only_fields = fields

    def get_has_receipt(self, obj: AidDisbursement) -> bool:
        return bool(obj.receipt_path)


class DisbursementFilterSerializer(serializers.Serializer):
    """Query string for the disbursement list endpoint."""

    application_id = serializers.IntegerField(required=False)
    student_id = serializers.IntegerField(required=False)
    method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False)
    status = serializers.CharField(required=False)
    reference = serializers.CharField(required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)
    search = serializers.CharField(required=False)
    sort_by = serializers.ChoiceField(choices=sorted(SORT_FIELDS), required=False)
    sort_order = serializers.ChoiceField(choices=["asc", "desc"], required=False)
