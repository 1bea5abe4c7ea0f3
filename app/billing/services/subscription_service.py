"""
Subscription lifecycle operations initiated by organization members.

The local Subscription row follows Stripe: checkout and cancellation only ask
Stripe for the change, and the customer.subscription.* webhooks write the
resulting state. Reactivation also clears the flag locally so the UI reflects
it before the webhook arrives.

Usage:
    from billing.services import SubscriptionService

    session = SubscriptionService.create_checkout(
        organization_id=org.id,
        user=request.user,
        plan_id="pro",
        interval=BillingInterval.MONTH,
    )
    return Response({"url": session.url})
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.conf import settings

from core.services import BaseService
from organizations.authorization import (
    OrganizationAuthorizationService,
    require_org_role,
)
from organizations.models import ANY_ROLE, MANAGEMENT_ROLES

from billing.adapters import (
    CheckoutSessionResult,
    CreateCheckoutSessionParams,
    StripeAdapter,
)
from billing.exceptions import (
    InvalidSubscriptionState,
    PlanNotFound,
    SubscriptionNotFound,
)
from billing.ledger import AdjustmentGrant, credit_ledger
from billing.models import (
    BillingInterval,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
)

from .customer_service import CustomerService

if TYPE_CHECKING:
    import uuid

    from authentication.models import User
    from organizations.models import OrganizationMember


class SubscriptionService(BaseService):
    """Reads and changes an organization's subscription."""

    # =========================================================================
    # Reads
    # =========================================================================

    @classmethod
    @require_org_role(ANY_ROLE)
    def get_current(
        cls,
        *,
        organization_id: uuid.UUID | str,
        user: User,
        _membership: OrganizationMember | None = None,
    ) -> Subscription | None:
        """Most recent subscription of the organization, or None."""
        return Subscription.objects.current_for(organization_id)

    # =========================================================================
    # Checkout
    # =========================================================================

    @classmethod
    @require_org_role(MANAGEMENT_ROLES)
    def create_checkout(
        cls,
        *,
        organization_id: uuid.UUID | str,
        user: User,
        plan_id: str,
        interval: str = BillingInterval.MONTH,
        _membership: OrganizationMember | None = None,
    ) -> CheckoutSessionResult:
        """
        Start a subscription checkout for plan_id.

        Both the session and the subscription it creates carry
        organization_id and plan_id in their metadata; the subscription
        webhooks rely on them.

        Raises:
            PlanNotFound: Unknown or inactive plan
            StripeError: Provider call failed
        """
        plan = SubscriptionPlan.objects.active().filter(plan_id=plan_id).first()
        if plan is None:
            raise PlanNotFound(
                f"Subscription plan {plan_id} not found",
                details={"plan_id": plan_id},
            )

        organization = OrganizationAuthorizationService.get_organization(
            organization_id
        )
        customer_id = CustomerService.ensure_stripe_customer(organization)

        metadata = {
            "organization_id": str(organization.id),
            "plan_id": plan.plan_id,
        }
        base_url = settings.BILLING_FRONTEND_URL.rstrip("/")
        session = StripeAdapter.create_checkout_session(
            CreateCheckoutSessionParams(
                mode="subscription",
                customer_id=customer_id,
                price_id=plan.price_id_for_interval(interval),
                success_url=f"{base_url}/dashboard/billing?subscription=success",
                cancel_url=f"{base_url}/dashboard/billing?subscription=cancelled",
                metadata=metadata,
                subscription_metadata=metadata,
            )
        )

        cls.get_logger().info(
            "Subscription checkout session created",
            extra={
                "organization_id": str(organization.id),
                "plan_id": plan.plan_id,
                "interval": interval,
                "checkout_session_id": session.id,
            },
        )
        return session

    # =========================================================================
    # Cancel / Reactivate
    # =========================================================================

    @classmethod
    def _get_required(cls, organization_id: uuid.UUID | str) -> Subscription:
        subscription = Subscription.objects.current_for(organization_id)
        if subscription is None:
            raise SubscriptionNotFound(
                "Organization has no subscription",
                details={"organization_id": str(organization_id)},
            )
        return subscription

    @classmethod
    @require_org_role(MANAGEMENT_ROLES)
    def cancel(
        cls,
        *,
        organization_id: uuid.UUID | str,
        user: User,
        at_period_end: bool = True,
        _membership: OrganizationMember | None = None,
    ) -> Subscription:
        """
        Cancel the subscription now or at the end of the current period.

        Raises:
            SubscriptionNotFound: No subscription on record
            InvalidSubscriptionState: Subscription already ended
            StripeError: Provider call failed
        """
        subscription = cls._get_required(organization_id)
        if subscription.is_canceled:
            raise InvalidSubscriptionState(
                "Subscription is already canceled",
                details={"subscription_id": subscription.stripe_subscription_id},
            )

        StripeAdapter.cancel_subscription(
            subscription.stripe_subscription_id,
            at_period_end=at_period_end,
        )

        if at_period_end:
            subscription.cancel_at_period_end = True
            subscription.save(update_fields=["cancel_at_period_end", "updated_at"])

        cls.get_logger().info(
            "Subscription cancellation requested",
            extra={
                "organization_id": str(organization_id),
                "subscription_id": subscription.stripe_subscription_id,
                "at_period_end": at_period_end,
                "user_id": user.pk,
            },
        )
        return subscription

    @classmethod
    @require_org_role(MANAGEMENT_ROLES)
    def reactivate(
        cls,
        *,
        organization_id: uuid.UUID | str,
        user: User,
        _membership: OrganizationMember | None = None,
    ) -> Subscription:
        """
        Undo a scheduled cancellation.

        A zero-amount adjustment is written to the credit history as an
        audit record of who reactivated.

        Raises:
            SubscriptionNotFound: No subscription on record
            InvalidSubscriptionState: Subscription ended, or no cancellation
                is scheduled
            StripeError: Provider call failed
        """
        subscription = cls._get_required(organization_id)
        if subscription.status == SubscriptionStatus.CANCELED:
            raise InvalidSubscriptionState(
                "A canceled subscription cannot be reactivated",
                details={"subscription_id": subscription.stripe_subscription_id},
            )
        if not subscription.cancel_at_period_end:
            raise InvalidSubscriptionState(
                "Subscription is not scheduled for cancellation",
                details={"subscription_id": subscription.stripe_subscription_id},
            )

        StripeAdapter.reactivate_subscription(subscription.stripe_subscription_id)

        with cls.atomic():
            subscription.cancel_at_period_end = False
            subscription.save(update_fields=["cancel_at_period_end", "updated_at"])
            credit_ledger.grant(
                organization_id,
                AdjustmentGrant(
                    amount=0,
                    description="Subscription reactivated by user",
                    reason="subscription_reactivated",
                    extra={
                        "subscription_id": subscription.stripe_subscription_id,
                        "user_id": user.pk,
                    },
                ),
            )

        cls.get_logger().info(
            "Subscription reactivated",
            extra={
                "organization_id": str(organization_id),
                "subscription_id": subscription.stripe_subscription_id,
                "user_id": user.pk,
            },
        )
        return subscription
