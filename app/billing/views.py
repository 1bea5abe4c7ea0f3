"""
DRF views for the billing app.

Endpoints (prefixed with /api/v1/billing/):
    GET  plans/                                        - Active subscription plans
    GET  packages/                                     - Active credit packages
    GET  organizations/{org}/credits/                  - Credit balance
    GET  organizations/{org}/credits/transactions/     - History, newest first
    GET  organizations/{org}/credits/breakdown/        - Remaining credits by type
    POST organizations/{org}/credits/consume/          - Consume credits
    POST organizations/{org}/credits/bonus/            - Grant bonus credits
    POST organizations/{org}/credits/checkout/         - Credit package checkout
    GET  organizations/{org}/subscription/             - Current subscription
    POST organizations/{org}/subscription/checkout/    - Subscription checkout
    POST organizations/{org}/subscription/cancel/      - Cancel subscription
    POST organizations/{org}/subscription/reactivate/  - Reactivate subscription

Security:
    - Catalog endpoints are public
    - Organization endpoints check membership at the HTTP layer; the
      services behind the POST endpoints check the role again
    - Application errors are rendered by core.exceptions.api_exception_handler

Related files:
    - serializers.py: Request/response serializers
    - services/: CreditService, SubscriptionService
    - webhooks/views.py: Stripe webhook endpoint
"""

from __future__ import annotations

import logging

from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema
from rest_framework import generics, status
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from organizations.permissions import (
    IsOrganizationBillingManager,
    IsOrganizationMember,
)

from billing.exceptions import SubscriptionNotFound
from billing.filters import CreditTransactionFilter
from billing.ledger import credit_ledger
from billing.models import CreditPackage, SubscriptionPlan
from billing.serializers import (
    CancelSubscriptionSerializer,
    CheckoutSessionSerializer,
    ConsumeCreditsSerializer,
    ConsumeResultSerializer,
    CreditBalanceSerializer,
    CreditBreakdownSerializer,
    CreditCheckoutSerializer,
    CreditPackageSerializer,
    CreditTransactionSerializer,
    GrantBonusSerializer,
    GrantResultSerializer,
    SubscriptionCheckoutSerializer,
    SubscriptionPlanSerializer,
    SubscriptionSerializer,
)
from billing.services import CreditService, SubscriptionService

logger = logging.getLogger(__name__)


class TransactionPagination(PageNumberPagination):
    page_size = 50
    max_page_size = 200
    page_size_query_param = "page_size"


# =============================================================================
# Catalog
# =============================================================================


class SubscriptionPlanListView(generics.ListAPIView):
    """GET /api/v1/billing/plans/ - active plans by sort order."""

    permission_classes = [AllowAny]
    serializer_class = SubscriptionPlanSerializer
    pagination_class = None

    def get_queryset(self):
        return SubscriptionPlan.objects.active()


class CreditPackageListView(generics.ListAPIView):
    """GET /api/v1/billing/packages/ - active credit packages by sort order."""

    permission_classes = [AllowAny]
    serializer_class = CreditPackageSerializer
    pagination_class = None

    def get_queryset(self):
        return CreditPackage.objects.active()


# =============================================================================
# Credits
# =============================================================================


class CreditBalanceView(APIView):
    permission_classes = [IsOrganizationMember]

    @extend_schema(responses={200: CreditBalanceSerializer})
    def get(self, request, organization_id):
        balance = credit_ledger.get_balance(organization_id)
        return Response(CreditBalanceSerializer(balance).data)


class CreditTransactionListView(generics.ListAPIView):
    """
    Credit history of the organization, newest first.

    Query parameters:
        transaction_type: One or more of earned, purchased, bonus, refunded,
            used, expired, adjustment
        start_date / end_date: ISO 8601 bounds on created_at
        page / page_size: Page number pagination (50 per page)
    """

    permission_classes = [IsOrganizationMember]
    serializer_class = CreditTransactionSerializer
    pagination_class = TransactionPagination
    filter_backends = [DjangoFilterBackend]
    filterset_class = CreditTransactionFilter

    def get_queryset(self):
        return credit_ledger.get_transaction_queryset(self.kwargs["organization_id"])


class CreditBreakdownView(APIView):
    permission_classes = [IsOrganizationMember]

    @extend_schema(responses={200: CreditBreakdownSerializer})
    def get(self, request, organization_id):
        breakdown = credit_ledger.get_breakdown(organization_id)
        return Response(CreditBreakdownSerializer(breakdown).data)


class ConsumeCreditsView(APIView):
    """
    POST /api/v1/billing/organizations/{org}/credits/consume/

    Request body:
        {"amount": 15, "description": "Report export", "service_used": "reports"}

    Returns:
        New balance and the per-entry breakdown. 400 with error_code
        INSUFFICIENT_CREDITS when the balance does not cover amount.
    """

    permission_classes = [IsOrganizationMember]

    @extend_schema(
        request=ConsumeCreditsSerializer,
        responses={200: ConsumeResultSerializer},
    )
    def post(self, request, organization_id):
        serializer = ConsumeCreditsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = CreditService.consume(
            organization_id=organization_id,
            user=request.user,
            **serializer.validated_data,
        )
        return Response(ConsumeResultSerializer(result).data)


class GrantBonusView(APIView):
    """
    POST /api/v1/billing/organizations/{org}/credits/bonus/

    Request body:
        {"amount": 500, "description": "Launch promotion", "expires_in_days": 30}
    """

    permission_classes = [IsOrganizationBillingManager]

    @extend_schema(
        request=GrantBonusSerializer,
        responses={201: GrantResultSerializer},
    )
    def post(self, request, organization_id):
        serializer = GrantBonusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = CreditService.grant_bonus(
            organization_id=organization_id,
            user=request.user,
            **serializer.validated_data,
        )
        return Response(
            GrantResultSerializer(result).data,
            status=status.HTTP_201_CREATED,
        )


class CreditCheckoutView(APIView):
    """
    POST /api/v1/billing/organizations/{org}/credits/checkout/

    Request body:
        {"package_id": "credits_500"}

    Returns:
        {"url": "https://checkout.stripe.com/..."}
    """

    permission_classes = [IsOrganizationMember]

    @extend_schema(
        request=CreditCheckoutSerializer,
        responses={200: CheckoutSessionSerializer},
    )
    def post(self, request, organization_id):
        serializer = CreditCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = CreditService.create_credit_checkout(
            organization_id=organization_id,
            user=request.user,
            package_id=serializer.validated_data["package_id"],
        )
        return Response({"url": session.url})


# =============================================================================
# Subscriptions
# =============================================================================


class SubscriptionView(APIView):
    """
    GET /api/v1/billing/organizations/{org}/subscription/

    Returns:
        The most recent subscription, or 404 if the organization never
        subscribed
    """

    permission_classes = [IsOrganizationMember]

    @extend_schema(responses={200: SubscriptionSerializer})
    def get(self, request, organization_id):
        subscription = SubscriptionService.get_current(
            organization_id=organization_id,
            user=request.user,
        )
        if subscription is None:
            raise SubscriptionNotFound(
                "Organization has no subscription",
                details={"organization_id": str(organization_id)},
            )
        return Response(SubscriptionSerializer(subscription).data)


class SubscriptionCheckoutView(APIView):
    """
    POST /api/v1/billing/organizations/{org}/subscription/checkout/

    Request body:
        {"plan_id": "pro", "interval": "month"}

    Returns:
        {"url": "https://checkout.stripe.com/..."}
    """

    permission_classes = [IsOrganizationBillingManager]

    @extend_schema(
        request=SubscriptionCheckoutSerializer,
        responses={200: CheckoutSessionSerializer},
    )
    def post(self, request, organization_id):
        serializer = SubscriptionCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        session = SubscriptionService.create_checkout(
            organization_id=organization_id,
            user=request.user,
            **serializer.validated_data,
        )
        return Response({"url": session.url})


class CancelSubscriptionView(APIView):
    """
    POST /api/v1/billing/organizations/{org}/subscription/cancel/

    Request body:
        {"at_period_end": true}   # Cancel at period end (default)
        {"at_period_end": false}  # Cancel immediately
    """

    permission_classes = [IsOrganizationBillingManager]

    @extend_schema(
        request=CancelSubscriptionSerializer,
        responses={200: SubscriptionSerializer},
    )
    def post(self, request, organization_id):
        serializer = CancelSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        subscription = SubscriptionService.cancel(
            organization_id=organization_id,
            user=request.user,
            at_period_end=serializer.validated_data["at_period_end"],
        )
        return Response(SubscriptionSerializer(subscription).data)


class ReactivateSubscriptionView(APIView):
    permission_classes = [IsOrganizationBillingManager]

    @extend_schema(request=None, responses={200: SubscriptionSerializer})
    def post(self, request, organization_id):
        subscription = SubscriptionService.reactivate(
            organization_id=organization_id,
            user=request.user,
        )
        return Response(SubscriptionSerializer(subscription).data)
