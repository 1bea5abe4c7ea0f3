"""
URL configuration for the billing app.

All routes are prefixed with /api/v1/billing/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("billing/", include("billing.urls")),
    ]
"""

from django.urls import include, path

from billing import views
from billing.webhooks.views import stripe_webhook

app_name = "billing"

organization_patterns = [
    # Credits
    path("credits/", views.CreditBalanceView.as_view(), name="credit_balance"),
    path(
        "credits/transactions/",
        views.CreditTransactionListView.as_view(),
        name="credit_transactions",
    ),
    path(
        "credits/breakdown/",
        views.CreditBreakdownView.as_view(),
        name="credit_breakdown",
    ),
    path("credits/consume/", views.ConsumeCreditsView.as_view(), name="credit_consume"),
    path("credits/bonus/", views.GrantBonusView.as_view(), name="credit_bonus"),
    path(
        "credits/checkout/",
        views.CreditCheckoutView.as_view(),
        name="credit_checkout",
    ),
    # Subscription
    path("subscription/", views.SubscriptionView.as_view(), name="subscription"),
    path(
        "subscription/checkout/",
        views.SubscriptionCheckoutView.as_view(),
        name="subscription_checkout",
    ),
    path(
        "subscription/cancel/",
        views.CancelSubscriptionView.as_view(),
        name="subscription_cancel",
    ),
    path(
        "subscription/reactivate/",
        views.ReactivateSubscriptionView.as_view(),
        name="subscription_reactivate",
    ),
]

urlpatterns = [
    # Catalog
    path("plans/", views.SubscriptionPlanListView.as_view(), name="plan_list"),
    path("packages/", views.CreditPackageListView.as_view(), name="package_list"),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    # Organization-scoped endpoints
    path(
        "organizations/<uuid:organization_id>/",
        include(organization_patterns),
    ),
]
