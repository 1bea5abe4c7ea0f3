"""
User-facing credit operations.

Every call goes through the Authorization Gate before the ledger is touched:
consuming credits and buying a credit package need any active membership,
granting bonus credits needs OWNER or ADMIN.

Usage:
    from billing.services import CreditService

    result = CreditService.consume(
        organization_id=org.id,
        user=request.user,
        amount=15,
        description="Report export",
        service_used="reports",
    )

    CreditService.grant_bonus(
        organization_id=org.id,
        user=request.user,
        amount=500,
        description="Launch promotion",
        promotion_code="LAUNCH",
    )
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

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
from billing.exceptions import PackageNotFound
from billing.ledger import BonusGrant, ConsumeResult, GrantResult, credit_ledger
from billing.models import CreditPackage

from .customer_service import CustomerService

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from authentication.models import User
    from organizations.models import OrganizationMember


class CreditService(BaseService):
    """Credit consumption, bonus grants and credit package checkout."""

    @classmethod
    @require_org_role(ANY_ROLE)
    def consume(
        cls,
        *,
        organization_id: uuid.UUID | str,
        user: User,
        amount: int,
        description: str,
        service_used: str | None = None,
        metadata: dict[str, Any] | None = None,
        _membership: OrganizationMember | None = None,
    ) -> ConsumeResult:
        """
        Spend the organization's credits on behalf of a member.

        Raises:
            NotAuthorized: Caller is not an active member
            InsufficientCredits: Balance does not cover amount
        """
        return credit_ledger.consume(
            organization_id,
            amount,
            description,
            service_used=service_used,
            user_id=user.pk,
            metadata=metadata,
        )

    @classmethod
    @require_org_role(MANAGEMENT_ROLES)
    def grant_bonus(
        cls,
        *,
        organization_id: uuid.UUID | str,
        user: User,
        amount: int,
        description: str,
        expires_in_days: int | None = None,
        promotion_code: str | None = None,
        referral_id: str | None = None,
        _membership: OrganizationMember | None = None,
    ) -> GrantResult:
        """
        Grant bonus credits that lapse after expires_in_days.

        expires_in_days defaults to CREDIT_BONUS_DEFAULT_EXPIRY_DAYS.

        Raises:
            NotAuthorized: Caller is not an owner or admin
            InvalidGrant: amount is not a positive integer
        """
        if expires_in_days is None:
            expires_in_days = settings.CREDIT_BONUS_DEFAULT_EXPIRY_DAYS

        grant = BonusGrant(
            amount=amount,
            description=description,
            expires_at=timezone.now() + timedelta(days=expires_in_days),
            granted_by=user.pk,
            promotion_code=promotion_code,
            referral_id=referral_id,
        )
        result = credit_ledger.grant(organization_id, grant)

        cls.get_logger().info(
            "Bonus credits granted",
            extra={
                "organization_id": str(organization_id),
                "user_id": user.pk,
                "amount": amount,
                "expires_in_days": expires_in_days,
            },
        )
        return result

    @classmethod
    @require_org_role(ANY_ROLE)
    def create_credit_checkout(
        cls,
        *,
        organization_id: uuid.UUID | str,
        user: User,
        package_id: str,
        _membership: OrganizationMember | None = None,
    ) -> CheckoutSessionResult:
        """
        Start a one-time checkout for a credit package.

        The purchased credits are granted by the checkout.session.completed
        webhook, which reads organization_id and credits back from the
        session metadata.

        Raises:
            PackageNotFound: Unknown or inactive package
            StripeError: Provider call failed
        """
        package = CreditPackage.objects.active().filter(package_id=package_id).first()
        if package is None:
            raise PackageNotFound(
                f"Credit package {package_id} not found",
                details={"package_id": package_id},
            )

        organization = OrganizationAuthorizationService.get_organization(
            organization_id
        )
        customer_id = CustomerService.ensure_stripe_customer(organization)

        base_url = settings.BILLING_FRONTEND_URL.rstrip("/")
        session = StripeAdapter.create_checkout_session(
            CreateCheckoutSessionParams(
                mode="payment",
                customer_id=customer_id,
                price_id=package.stripe_price_id,
                success_url=f"{base_url}/dashboard/billing?credits=success",
                cancel_url=f"{base_url}/dashboard/billing?credits=cancelled",
                metadata={
                    "organization_id": str(organization.id),
                    "package_id": package.package_id,
                    "credits": str(package.credits),
                },
            )
        )

        cls.get_logger().info(
            "Credit checkout session created",
            extra={
                "organization_id": str(organization.id),
                "package_id": package.package_id,
                "checkout_session_id": session.id,
            },
        )
        return session
