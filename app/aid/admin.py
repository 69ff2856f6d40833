"""
Aid admin configuration.

Registers the aid domain models with the Django admin. Ledger amounts,
transaction states and disbursements are changed through the service
layer only, so most fields are read-only here and deletes are disabled.
"""

from django.contrib import admin

from aid.models import (
    AidDisbursement,
    BudgetAllocation,
    PartnerSchoolBudget,
    PartnerSchoolBudgetWithdrawal,
    PartnerSchoolFundRequest,
    PaymentTransaction,
    ScholarshipApplication,
    WebhookEvent,
)


def peso(amount) -> str:
    return f"PHP {amount:,.2f}" if amount is not None else "-"


@admin.register(ScholarshipApplication)
class ScholarshipApplicationAdmin(admin.ModelAdmin):
    """Applications as seen by the grant pipeline."""

    list_display = [
        "application_number",
        "student_name",
        "school_name",
        "approved_amount",
        "status",
        "disbursed_at",
    ]
    list_filter = ["status", "budget_type", "school_year"]
    search_fields = ["application_number", "student_name", "school_name"]
    readonly_fields = ["status", "disbursed_at", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(BudgetAllocation)
class BudgetAllocationAdmin(admin.ModelAdmin):
    """
    Admin configuration for BudgetAllocation.

    Amounts are read-only; use the budget endpoints to fund envelopes.
    """

    list_display = [
        "budget_type",
        "school_year",
        "total_display",
        "allocated_budget",
        "disbursed_budget",
        "is_active",
        "is_deleted",
    ]
    list_filter = ["budget_type", "is_active", "is_deleted"]
    search_fields = ["school_year", "description"]
    readonly_fields = [
        "total_budget",
        "allocated_budget",
        "disbursed_budget",
        "created_at",
        "updated_at",
        "deleted_at",
    ]
    ordering = ["-school_year", "budget_type"]

    def get_queryset(self, request):
        return BudgetAllocation.all_objects.all()

    def total_display(self, obj: BudgetAllocation) -> str:
        return peso(obj.total_budget)

    total_display.short_description = "Total"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Envelopes are soft deleted through the service layer."""
        return False


@admin.register(PartnerSchoolBudget)
class PartnerSchoolBudgetAdmin(admin.ModelAdmin):
    """Admin configuration for partner school sub-ledgers."""

    list_display = [
        "school_name",
        "academic_year",
        "allocated_amount",
        "disbursed_amount",
        "available_display",
        "status",
        "expiry_date",
    ]
    list_filter = ["status", "academic_year"]
    search_fields = ["school_name", "school_id"]
    readonly_fields = [
        "source_budget",
        "allocated_amount",
        "disbursed_amount",
        "status",
        "allocated_by",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "allocation_date"
    ordering = ["-allocation_date"]

    fieldsets = (
        (
            None,
            {
                "fields": ("school_id", "school_name", "academic_year", "source_budget"),
            },
        ),
        (
            "Amounts",
            {
                "fields": ("allocated_amount", "disbursed_amount", "status"),
            },
        ),
        (
            "Lifecycle",
            {
                "fields": ("allocation_date", "expiry_date", "allocated_by", "notes"),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def available_display(self, obj: PartnerSchoolBudget) -> str:
        return peso(obj.available_amount)

    available_display.short_description = "Available"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for sub-ledgers (audit trail)."""
        return False


@admin.register(PartnerSchoolBudgetWithdrawal)
class PartnerSchoolBudgetWithdrawalAdmin(admin.ModelAdmin):
    """
    Admin configuration for withdrawals.

    Withdrawal rows are immutable; corrections go through the reverse
    endpoint, which appends a reversal entry.
    """

    list_display = [
        "id",
        "partner_school_budget",
        "entry_type",
        "amount",
        "available_after",
        "withdrawal_date",
    ]
    list_filter = ["entry_type", "withdrawal_date"]
    search_fields = ["purpose", "school_id"]
    date_hierarchy = "withdrawal_date"
    ordering = ["-withdrawal_date", "-id"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PartnerSchoolFundRequest)
class PartnerSchoolFundRequestAdmin(admin.ModelAdmin):
    """Admin configuration for fund requests. Status changes go through the API."""

    list_display = ["id", "school_id", "amount", "purpose", "status", "processed_at"]
    list_filter = ["status"]
    search_fields = ["purpose", "school_id"]
    readonly_fields = [
        "status",
        "processed_at",
        "processed_by",
        "approved_at",
        "disbursed_at",
        "liquidated_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for PaymentTransaction.

    Provides visibility into provider payment attempts and their states.
    State changes should be made through the service layer, not admin.
    """

    list_display = [
        "transaction_reference",
        "application_number",
        "amount_display",
        "payment_provider",
        "transaction_status",
        "expires_at",
        "created_at",
    ]
    list_filter = ["transaction_status", "payment_provider", "payment_method", "created_at"]
    search_fields = [
        "transaction_reference",
        "application_number",
        "provider_transaction_id",
        "provider_reference_number",
    ]
    readonly_fields = [
        "transaction_reference",
        "transaction_status",
        "provider_transaction_id",
        "provider_reference_number",
        "provider_response",
        "initiated_at",
        "completed_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("transaction_reference", "application", "application_number", "transaction_status"),
            },
        ),
        (
            "Payment Details",
            {
                "fields": (
                    "payment_provider",
                    "payment_method",
                    "transaction_amount",
                    "payment_link_url",
                    "expires_at",
                ),
            },
        ),
        (
            "Provider",
            {
                "fields": ("provider_transaction_id", "provider_reference_number", "provider_response"),
                "classes": ("collapse",),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("failure_reason",),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("initiated_at", "completed_at", "created_at", "updated_at"),
            },
        ),
    )

    def amount_display(self, obj: PaymentTransaction) -> str:
        """Display the amount formatted as currency."""
        return peso(obj.transaction_amount)

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payment transactions (audit trail)."""
        return False


@admin.register(AidDisbursement)
class AidDisbursementAdmin(admin.ModelAdmin):
    """Admin configuration for disbursements. Append-only, so fully read-only."""

    list_display = [
        "id",
        "application_number",
        "amount",
        "method",
        "reference_number",
        "status",
        "disbursed_at",
    ]
    list_filter = ["status", "method", "disbursed_at"]
    search_fields = ["application_number", "reference_number", "provider_name"]
    date_hierarchy = "disbursed_at"
    ordering = ["-disbursed_at"]

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "provider",
        "event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["provider", "status", "event_type", "created_at"]
    search_fields = ["id", "event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "provider",
        "event_id",
        "event_type",
        "payload",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        return False
