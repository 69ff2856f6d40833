"""
URL configuration for the aid app.

Routes:
    - POST school-aid/applications/{id}/process-grant/ - Start hosted checkout
    - POST school-aid/applications/{id}/disburse/ - Record manual disbursement
    - POST school-aid/applications/revert-on-cancel/ - Revert abandoned checkout
    - GET school-aid/budgets/ - List budget envelopes
    - POST school-aid/budget/ - Create or update an envelope
    - GET school-aid/disbursements/ - Disbursement history
    - GET school-aid/disbursements/{id}/receipt/ - View receipt inline
    - GET school-aid/disbursements/{id}/receipt/download/ - Download receipt
    - GET/POST school-aid/partner-school-budgets/ - List/allocate sub-ledgers
    - GET school-aid/partner-school-budgets/{id}/ - Sub-ledger detail
    - POST school-aid/partner-school-budgets/{id}/adjust/ - Adjust allocation
    - GET school-aid/partner-school-budgets/check/{school_id}/ - Budget check
    - GET school-aid/partner-school-budgets/school/{school_id}/ - Current budget
    - GET/POST school-aid/partner-school-budgets/withdrawals/ - Withdrawals
    - GET school-aid/partner-school-budgets/withdrawals/{id}/ - Withdrawal detail
    - POST school-aid/partner-school-budgets/withdrawals/{id}/reverse/ - Reverse
    - GET/POST school-aid/fund-requests/ - List/submit fund requests
    - POST school-aid/fund-requests/{id}/{approve,reject,disburse,liquidate}/
    - POST webhooks/{provider}/ - Payment provider webhook endpoint

All routes are prefixed with /api/v1/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("", include("aid.urls")),
    ]
"""

from django.urls import path

from aid import views
from aid.webhooks.views import provider_webhook

app_name = "aid"

school_aid = "school-aid"

urlpatterns = [
    # Grants
    path(
        f"{school_aid}/applications/<int:application_id>/process-grant/",
        views.ProcessGrantView.as_view(),
        name="process-grant",
    ),
    path(
        f"{school_aid}/applications/<int:application_id>/disburse/",
        views.ManualDisbursementView.as_view(),
        name="manual-disbursement",
    ),
    path(
        f"{school_aid}/applications/revert-on-cancel/",
        views.RevertOnCancelView.as_view(),
        name="revert-on-cancel",
    ),
    # Budget envelopes
    path(f"{school_aid}/budgets/", views.BudgetListView.as_view(), name="budget-list"),
    path(f"{school_aid}/budget/", views.BudgetFundView.as_view(), name="budget-fund"),
    # Disbursements
    path(
        f"{school_aid}/disbursements/",
        views.DisbursementListView.as_view(),
        name="disbursement-list",
    ),
    path(
        f"{school_aid}/disbursements/<int:disbursement_id>/receipt/",
        views.DisbursementReceiptView.as_view(),
        name="disbursement-receipt",
    ),
    path(
        f"{school_aid}/disbursements/<int:disbursement_id>/receipt/download/",
        views.DisbursementReceiptDownloadView.as_view(),
        name="disbursement-receipt-download",
    ),
    # Partner school budgets
    path(
        f"{school_aid}/partner-school-budgets/",
        views.PartnerSchoolBudgetListView.as_view(),
        name="partner-school-budget-list",
    ),
    path(
        f"{school_aid}/partner-school-budgets/<int:budget_id>/",
        views.PartnerSchoolBudgetDetailView.as_view(),
        name="partner-school-budget-detail",
    ),
    path(
        f"{school_aid}/partner-school-budgets/<int:budget_id>/adjust/",
        views.PartnerSchoolBudgetAdjustView.as_view(),
        name="partner-school-budget-adjust",
    ),
    path(
        f"{school_aid}/partner-school-budgets/check/<int:school_id>/",
        views.PartnerSchoolBudgetCheckView.as_view(),
        name="partner-school-budget-check",
    ),
    path(
        f"{school_aid}/partner-school-budgets/school/<int:school_id>/",
        views.PartnerSchoolCurrentBudgetView.as_view(),
        name="partner-school-budget-current",
    ),
    # Withdrawals
    path(
        f"{school_aid}/partner-school-budgets/withdrawals/",
        views.WithdrawalListView.as_view(),
        name="withdrawal-list",
    ),
    path(
        f"{school_aid}/partner-school-budgets/withdrawals/<int:withdrawal_id>/",
        views.WithdrawalDetailView.as_view(),
        name="withdrawal-detail",
    ),
    path(
        f"{school_aid}/partner-school-budgets/withdrawals/<int:withdrawal_id>/reverse/",
        views.WithdrawalReverseView.as_view(),
        name="withdrawal-reverse",
    ),
    # Fund requests
    path(
        f"{school_aid}/fund-requests/",
        views.FundRequestListView.as_view(),
        name="fund-request-list",
    ),
    path(
        f"{school_aid}/fund-requests/<int:request_id>/approve/",
        views.FundRequestActionView.as_view(action="approve"),
        name="fund-request-approve",
    ),
    path(
        f"{school_aid}/fund-requests/<int:request_id>/reject/",
        views.FundRequestActionView.as_view(action="reject"),
        name="fund-request-reject",
    ),
    path(
        f"{school_aid}/fund-requests/<int:request_id>/disburse/",
        views.FundRequestActionView.as_view(action="disburse"),
        name="fund-request-disburse",
    ),
    path(
        f"{school_aid}/fund-requests/<int:request_id>/liquidate/",
        views.FundRequestActionView.as_view(action="liquidate"),
        name="fund-request-liquidate",
    ),
    # Webhook endpoints
    path("webhooks/<str:provider>/", provider_webhook, name="provider-webhook"),
]
