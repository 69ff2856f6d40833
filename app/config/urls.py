"""
URL configuration for the scholarship aid service.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/token/            - Obtain JWT access/refresh pair
    /api/v1/auth/token/refresh/    - Refresh JWT access token
    /api/v1/school-aid/            - School aid endpoints
        applications/{id}/process-grant/   - Start hosted checkout for a grant
        applications/{id}/disburse/        - Record manual disbursement
        applications/revert-on-cancel/     - Revert abandoned checkout
        budgets/                           - List budget envelopes
        budget/                            - Create/update a budget envelope
        disbursements/                     - Disbursement history
        disbursements/{id}/receipt/        - View receipt
        disbursements/{id}/receipt/download/ - Download receipt
        partner-school-budgets/            - List/allocate sub-ledgers
        partner-school-budgets/{id}/       - Sub-ledger detail
        partner-school-budgets/{id}/adjust/ - Adjust allocation
        partner-school-budgets/check/{school_id}/  - Budget check
        partner-school-budgets/school/{school_id}/ - Current budget for school
        partner-school-budgets/withdrawals/        - List/record withdrawals
        partner-school-budgets/withdrawals/{id}/   - Withdrawal detail
        partner-school-budgets/withdrawals/{id}/reverse/ - Reverse withdrawal
        fund-requests/                     - List/submit fund requests
        fund-requests/{id}/approve|reject|disburse|liquidate/
    /api/v1/webhooks/{provider}/   - Payment provider webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # School aid and provider webhooks
    path("", include("aid.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "School Aid Admin"
admin.site.site_title = "School Aid Portal"
admin.site.index_title = "Scholarship Fund Administration"
