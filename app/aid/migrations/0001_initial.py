import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.conf import settings
from django.db import migrations, models

import aid.models.payment_transaction


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ScholarshipApplication",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("application_number", models.CharField(help_text="Human-facing application number", max_length=50, unique=True)),
                ("student_id", models.PositiveBigIntegerField(db_index=True, help_text="Student ID from the scholarship service")),
                ("student_name", models.CharField(blank=True, default="", help_text="Student display name (cached)", max_length=255)),
                ("school_id", models.PositiveBigIntegerField(db_index=True, help_text="School ID from the scholarship service")),
                ("school_name", models.CharField(blank=True, default="", help_text="School display name (cached)", max_length=255)),
                (
                    "budget_type",
                    models.CharField(
                        choices=[("financial_support", "Financial Support"), ("scholarship_benefits", "Scholarship Benefits")],
                        default="scholarship_benefits",
                        help_text="Envelope category used when no school sub-ledger exists",
                        max_length=30,
                    ),
                ),
                ("school_year", models.CharField(blank=True, default="", help_text="School year of the grant (e.g., '2025-2026')", max_length=20)),
                ("approved_amount", models.DecimalField(blank=True, decimal_places=2, help_text="Grant amount approved by the review committee", max_digits=15, null=True)),
                ("wallet_account_number", models.CharField(blank=True, help_text="Student's digital wallet account number", max_length=100, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("submitted", "Submitted"),
                            ("under_review", "Under Review"),
                            ("approved", "Approved"),
                            ("pending_disbursement", "Pending Disbursement"),
                            ("grants_processing", "Grants Processing"),
                            ("grants_disbursed", "Grants Disbursed"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="submitted",
                        help_text="Current application status (grant transitions managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("disbursed_at", models.DateTimeField(blank=True, help_text="When the grant was disbursed", null=True)),
            ],
            options={
                "verbose_name": "Scholarship Application",
                "verbose_name_plural": "Scholarship Applications",
                "db_table": "scholarship_applications",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["school_id", "status"], name="sch_app_school_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="BudgetAllocation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("is_deleted", models.BooleanField(db_index=True, default=False, help_text="Whether this record has been soft deleted")),
                ("deleted_at", models.DateTimeField(blank=True, help_text="Timestamp when this record was soft deleted", null=True)),
                (
                    "budget_type",
                    models.CharField(
                        choices=[("financial_support", "Financial Support"), ("scholarship_benefits", "Scholarship Benefits")],
                        help_text="Budget category",
                        max_length=30,
                    ),
                ),
                ("school_year", models.CharField(db_index=True, help_text="School year this envelope funds (e.g., '2025-2026')", max_length=20)),
                ("total_budget", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Total funds available for the school year", max_digits=15)),
                ("allocated_budget", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Funds reserved by partner school sub-ledgers", max_digits=15)),
                ("disbursed_budget", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Funds paid out directly from this envelope", max_digits=15)),
                ("description", models.TextField(blank=True, help_text="Free-form description of the budget", null=True)),
                ("is_active", models.BooleanField(default=True, help_text="Whether grants may draw on this envelope")),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who created the envelope",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "updated_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who last changed the envelope",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "deleted_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who soft deleted the envelope",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Budget Allocation",
                "verbose_name_plural": "Budget Allocations",
                "db_table": "budget_allocations",
                "ordering": ["-school_year", "budget_type"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_deleted", False)),
                        fields=("budget_type", "school_year"),
                        name="budget_allocation_unique_type_year",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("total_budget__gte", 0),
                            ("allocated_budget__gte", 0),
                            ("disbursed_budget__gte", 0),
                        ),
                        name="budget_allocation_amounts_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("provider", models.CharField(help_text="Provider that sent the event (e.g., 'paymongo')", max_length=30)),
                ("event_id", models.CharField(help_text="Provider event ID", max_length=255)),
                ("event_type", models.CharField(db_index=True, help_text="Provider event type (e.g., 'checkout_session.payment.paid')", max_length=100)),
                ("payload", models.JSONField(help_text="Full webhook payload (JSON)")),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, help_text="When event was successfully processed", null=True)),
                ("error_message", models.TextField(blank=True, help_text="Error message if processing failed", null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts")),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "db_table": "aid_webhook_events",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["status", "created_at"], name="aid_webhook_status_created_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "event_id"),
                        name="aid_webhook_event_unique_provider_event",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PartnerSchoolBudget",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("school_id", models.PositiveBigIntegerField(db_index=True, help_text="School ID from the scholarship service")),
                ("school_name", models.CharField(help_text="School display name (cached)", max_length=255)),
                ("academic_year", models.CharField(db_index=True, help_text="Academic year (e.g., '2025-2026')", max_length=20)),
                ("allocated_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Funds allocated to the school", max_digits=15)),
                ("disbursed_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), help_text="Funds spent from this allocation", max_digits=15)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("expired", "Expired"), ("depleted", "Depleted")],
                        db_index=True,
                        default="active",
                        help_text="Active, expired or depleted",
                        max_length=20,
                    ),
                ),
                ("allocation_date", models.DateTimeField(help_text="When the allocation was made")),
                ("expiry_date", models.DateTimeField(blank=True, help_text="When unspent funds expire", null=True)),
                ("notes", models.TextField(blank=True, help_text="Allocation notes, one entry per line", null=True)),
                (
                    "allocated_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who made the allocation",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "source_budget",
                    models.ForeignKey(
                        blank=True,
                        help_text="Envelope this allocation was reserved from",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="partner_school_budgets",
                        to="aid.budgetallocation",
                    ),
                ),
            ],
            options={
                "verbose_name": "Partner School Budget",
                "verbose_name_plural": "Partner School Budgets",
                "db_table": "partner_school_budgets",
                "ordering": ["-allocation_date"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("school_id", "academic_year"),
                        name="partner_school_budget_unique_school_year",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("allocated_amount__gte", 0), ("disbursed_amount__gte", 0)),
                        name="partner_school_budget_amounts_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PartnerSchoolFundRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("school_id", models.PositiveBigIntegerField(db_index=True, help_text="School ID (denormalised from the sub-ledger)")),
                ("amount", models.DecimalField(decimal_places=2, help_text="Requested amount", max_digits=15)),
                ("purpose", models.CharField(help_text="What the funds will be used for", max_length=255)),
                ("notes", models.TextField(blank=True, help_text="Additional notes", null=True)),
                ("request_document_path", models.CharField(blank=True, help_text="Storage path of the supporting document", max_length=500, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("approved", "Approved"),
                            ("disbursed", "Disbursed"),
                            ("rejected", "Rejected"),
                            ("liquidated", "Liquidated"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the request (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("rejection_reason", models.TextField(blank=True, help_text="Reason given when the request was rejected", null=True)),
                ("liquidation_document_path", models.CharField(blank=True, help_text="Storage path of the liquidation proof", max_length=500, null=True)),
                ("processed_at", models.DateTimeField(blank=True, help_text="When the request was last processed", null=True)),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("disbursed_at", models.DateTimeField(blank=True, null=True)),
                ("liquidated_at", models.DateTimeField(blank=True, null=True)),
                (
                    "partner_school_budget",
                    models.ForeignKey(
                        help_text="Sub-ledger the funds are requested from",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fund_requests",
                        to="aid.partnerschoolbudget",
                    ),
                ),
                (
                    "processed_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who last processed the request",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Partner School Fund Request",
                "verbose_name_plural": "Partner School Fund Requests",
                "db_table": "partner_school_fund_requests",
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["school_id", "status"], name="fund_request_school_status_idx")],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="fund_request_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PartnerSchoolBudgetWithdrawal",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("school_id", models.PositiveBigIntegerField(db_index=True, help_text="School ID (denormalised from the sub-ledger)")),
                (
                    "entry_type",
                    models.CharField(
                        choices=[("withdrawal", "Withdrawal"), ("reversal", "Reversal")],
                        default="withdrawal",
                        help_text="Withdrawal or reversal",
                        max_length=20,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount withdrawn or returned", max_digits=15)),
                ("purpose", models.CharField(help_text="What the funds were used for", max_length=255)),
                ("notes", models.TextField(blank=True, help_text="Additional notes", null=True)),
                ("proof_document_path", models.CharField(help_text="Storage path of the proof of use", max_length=500)),
                ("withdrawal_date", models.DateTimeField(db_index=True, help_text="When the funds were withdrawn")),
                ("available_after", models.DecimalField(decimal_places=2, help_text="Sub-ledger availability right after this entry", max_digits=15)),
                (
                    "partner_school_budget",
                    models.ForeignKey(
                        help_text="Sub-ledger this withdrawal was deducted from",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="withdrawals",
                        to="aid.partnerschoolbudget",
                    ),
                ),
                (
                    "recorded_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who recorded the entry",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reverses",
                    models.OneToOneField(
                        blank=True,
                        help_text="Withdrawal this reversal entry corrects",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reversal",
                        to="aid.partnerschoolbudgetwithdrawal",
                    ),
                ),
            ],
            options={
                "verbose_name": "Partner School Budget Withdrawal",
                "verbose_name_plural": "Partner School Budget Withdrawals",
                "db_table": "partner_school_budget_withdrawals",
                "ordering": ["-withdrawal_date", "-id"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="withdrawal_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("is_deleted", models.BooleanField(db_index=True, default=False, help_text="Whether this record has been soft deleted")),
                ("deleted_at", models.DateTimeField(blank=True, help_text="Timestamp when this record was soft deleted", null=True)),
                ("application_number", models.CharField(db_index=True, help_text="Application number (denormalised)", max_length=50)),
                ("student_id", models.PositiveBigIntegerField(db_index=True, help_text="Student ID (denormalised)")),
                (
                    "transaction_reference",
                    models.CharField(
                        default=aid.models.payment_transaction.generate_transaction_reference,
                        help_text="Unique reference (TXN-xxxxxxxxxxxxxxxx)",
                        max_length=100,
                        unique=True,
                    ),
                ),
                (
                    "payment_provider",
                    models.CharField(
                        choices=[
                            ("gcash", "GCash"),
                            ("maya", "Maya"),
                            ("paymongo", "PayMongo"),
                            ("bpi", "BPI"),
                            ("bdo", "BDO"),
                            ("unionbank", "UnionBank"),
                            ("landbank", "LandBank"),
                            ("manual", "Manual"),
                        ],
                        help_text="Payment gateway or bank used",
                        max_length=20,
                    ),
                ),
                (
                    "payment_method",
                    models.CharField(
                        choices=[
                            ("digital_wallet", "Digital Wallet"),
                            ("bank_transfer", "Bank Transfer"),
                            ("over_the_counter", "Over the Counter"),
                            ("online_banking", "Online Banking"),
                            ("manual", "Manual"),
                        ],
                        help_text="Method of payment",
                        max_length=20,
                    ),
                ),
                ("transaction_amount", models.DecimalField(decimal_places=2, help_text="Amount being paid out", max_digits=15)),
                (
                    "transaction_status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                            ("cancelled", "Cancelled"),
                            ("refunded", "Refunded"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the transaction (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                ("payment_link_url", models.URLField(blank=True, help_text="Hosted checkout URL", max_length=500, null=True)),
                ("provider_transaction_id", models.CharField(blank=True, db_index=True, help_text="Provider checkout session ID (cs_xxx)", max_length=100, null=True)),
                ("provider_reference_number", models.CharField(blank=True, help_text="Provider payment ID or reference number", max_length=100, null=True)),
                ("provider_response", models.JSONField(blank=True, help_text="Last raw response or event payload from the provider", null=True)),
                ("failure_reason", models.TextField(blank=True, help_text="Why the transaction failed or was cancelled", null=True)),
                ("initiated_at", models.DateTimeField(default=django.utils.timezone.now, help_text="When the payment was initiated")),
                ("completed_at", models.DateTimeField(blank=True, help_text="When the provider confirmed payment", null=True)),
                ("expires_at", models.DateTimeField(blank=True, help_text="When the payment link expires", null=True)),
                ("initiated_by_name", models.CharField(blank=True, default="", help_text="Display name of the initiating user", max_length=255)),
                (
                    "application",
                    models.ForeignKey(
                        help_text="Application this payment funds",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_transactions",
                        to="aid.scholarshipapplication",
                    ),
                ),
                (
                    "initiated_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who initiated the payment",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Transaction",
                "verbose_name_plural": "Payment Transactions",
                "db_table": "payment_transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["transaction_status", "expires_at"], name="payment_txn_status_expires_idx"),
                    models.Index(fields=["transaction_status", "created_at"], name="payment_txn_status_created_idx"),
                    models.Index(fields=["payment_provider", "transaction_status"], name="payment_txn_provider_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("transaction_amount__gt", 0)),
                        name="payment_transaction_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="AidDisbursement",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="When this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="When this record was last modified")),
                ("application_number", models.CharField(db_index=True, help_text="Application number (denormalised)", max_length=50)),
                ("student_id", models.PositiveBigIntegerField(db_index=True, help_text="Student ID (denormalised)")),
                ("school_id", models.PositiveBigIntegerField(blank=True, db_index=True, help_text="School ID (denormalised)", null=True)),
                ("amount", models.DecimalField(decimal_places=2, help_text="Amount paid out", max_digits=15)),
                ("method", models.CharField(help_text="Disbursement method (e.g., digital_wallet, bank_transfer)", max_length=100)),
                ("provider_name", models.CharField(help_text="Bank or wallet provider name", max_length=255)),
                ("reference_number", models.CharField(db_index=True, help_text="Provider or bank reference number", max_length=255)),
                ("account_number", models.CharField(blank=True, help_text="Destination account number", max_length=100, null=True)),
                ("receipt_path", models.CharField(blank=True, help_text="Storage path of the receipt", max_length=500, null=True)),
                ("notes", models.TextField(blank=True, help_text="Additional notes", null=True)),
                ("disbursed_by_name", models.CharField(blank=True, default="", help_text="Display name of the disbursing user or system", max_length=255)),
                ("disbursed_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now, help_text="When the grant was paid out")),
                (
                    "status",
                    models.CharField(
                        choices=[("completed", "Completed"), ("reversed", "Reversed")],
                        db_index=True,
                        default="completed",
                        help_text="Completed or reversed",
                        max_length=20,
                    ),
                ),
                ("reversed_at", models.DateTimeField(blank=True, help_text="When the disbursement was reversed", null=True)),
                ("reversal_reason", models.TextField(blank=True, help_text="Why the disbursement was reversed", null=True)),
                (
                    "application",
                    models.ForeignKey(
                        help_text="Application that was funded",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="disbursements",
                        to="aid.scholarshipapplication",
                    ),
                ),
                (
                    "budget_allocation",
                    models.ForeignKey(
                        blank=True,
                        help_text="Envelope charged for this grant",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="disbursements",
                        to="aid.budgetallocation",
                    ),
                ),
                (
                    "disbursed_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who disbursed (empty for provider-confirmed payouts)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "partner_school_budget",
                    models.ForeignKey(
                        blank=True,
                        help_text="Sub-ledger charged for this grant",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="disbursements",
                        to="aid.partnerschoolbudget",
                    ),
                ),
                (
                    "payment_transaction",
                    models.OneToOneField(
                        blank=True,
                        help_text="Provider transaction that paid this grant",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="disbursement",
                        to="aid.paymenttransaction",
                    ),
                ),
            ],
            options={
                "verbose_name": "Aid Disbursement",
                "verbose_name_plural": "Aid Disbursements",
                "db_table": "aid_disbursements",
                "ordering": ["-disbursed_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "completed")),
                        fields=("application",),
                        name="aid_disbursement_one_completed_per_application",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="aid_disbursement_amount_positive",
                    ),
                ],
            },
        ),
    ]
