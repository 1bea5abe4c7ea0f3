"""
Root URL configuration for the billing backend.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/billing/               - Billing endpoints
        plans/                     - Active subscription plans
        packages/                  - Active credit packages
        webhooks/stripe/           - Stripe webhook endpoint (POST)
        organizations/{org}/credits/                - Credit balance
        organizations/{org}/credits/transactions/   - Transaction history (newest first)
        organizations/{org}/credits/breakdown/      - Remaining credits by type
        organizations/{org}/credits/consume/        - Consume credits (POST)
        organizations/{org}/credits/bonus/          - Grant bonus credits (POST)
        organizations/{org}/credits/checkout/       - Credit purchase checkout (POST)
        organizations/{org}/subscription/           - Current subscription
        organizations/{org}/subscription/checkout/  - Subscription checkout (POST)
        organizations/{org}/subscription/cancel/    - Cancel subscription (POST)
        organizations/{org}/subscription/reactivate/ - Reactivate subscription (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

api_v1_patterns = [
    path("billing/", include("billing.urls")),
]

urlpatterns = [
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    path("admin/", admin.site.urls),
    path("health/", health_check, name="health_check"),
    path("api/v1/", include(api_v1_patterns)),
]

admin.site.site_header = "Billing Admin"
admin.site.site_title = "Billing Admin Portal"
admin.site.index_title = "Credits and subscriptions"
