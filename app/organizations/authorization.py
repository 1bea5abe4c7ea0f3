"""
Authorization Gate for organization-scoped billing operations.

Every mutating billing call resolves the caller's membership in the target
organization before touching the ledger. Management operations (bonus
credits, subscription checkout, cancel/reactivate) need OWNER or ADMIN;
consuming credits, buying credit packages and reading billing state need
any active membership.

Key Components:
    OrganizationAuthorizationService: Stateless role lookups and checks
    require_org_role: Decorator for service classmethods

Error Codes:
    NOT_AUTHORIZED: No active membership, or role below the threshold
    ORGANIZATION_NOT_FOUND: Organization does not exist or is inactive

Usage:
    # Direct call
    role = OrganizationAuthorizationService.has_org_role(org_id, user)

    # Decorator usage (arguments must be passed as keywords)
    class SubscriptionService(BaseService):
        @classmethod
        @require_org_role(MANAGEMENT_ROLES)
        def cancel(cls, *, organization_id, user, at_period_end=True, _membership=None):
            ...
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import wraps
from typing import TYPE_CHECKING, Callable, TypeVar

from organizations.exceptions import NotAuthorized, OrganizationNotFound
from organizations.models import (
    ANY_ROLE,
    Organization,
    OrganizationMember,
)

if TYPE_CHECKING:
    from uuid import UUID

    from authentication.models import User

logger = logging.getLogger(__name__)

T = TypeVar("T")


class OrganizationAuthorizationService:
    """
    Stateless service answering "may this user act on this organization?".

    Results are not cached: a membership revoked a moment ago must stop
    the very next billing call.
    """

    @classmethod
    def get_organization(cls, organization_id: UUID | str) -> Organization:
        """
        Fetch an active organization.

        Raises:
            OrganizationNotFound: If absent or inactive
        """
        organization = Organization.objects.filter(
            id=organization_id, is_active=True
        ).first()
        if organization is None:
            raise OrganizationNotFound(
                f"Organization {organization_id} not found",
                details={"organization_id": str(organization_id)},
            )
        return organization

    @classmethod
    def get_membership(
        cls,
        organization_id: UUID | str,
        user: User,
    ) -> OrganizationMember | None:
        """Return the caller's active membership, or None."""
        if user is None or not getattr(user, "is_authenticated", False):
            return None

        return (
            OrganizationMember.objects.select_related("organization")
            .filter(
                organization_id=organization_id,
                user=user,
                is_active=True,
                organization__is_active=True,
            )
            .first()
        )

    @classmethod
    def has_org_role(cls, organization_id: UUID | str, user: User) -> str | None:
        """
        Resolve the caller's role in the organization.

        Returns:
            The MemberRole value, or None without an active membership
        """
        membership = cls.get_membership(organization_id, user)
        return membership.role if membership else None

    @classmethod
    def require_role(
        cls,
        organization_id: UUID | str,
        user: User,
        allowed_roles: Iterable[str] = ANY_ROLE,
    ) -> OrganizationMember:
        """
        Require an active membership with one of allowed_roles.

        Returns:
            The caller's membership

        Raises:
            NotAuthorized: No active membership, or role not allowed
        """
        allowed = frozenset(allowed_roles)
        membership = cls.get_membership(organization_id, user)

        if membership is None:
            logger.info(
                "Billing access denied: no active membership",
                extra={
                    "organization_id": str(organization_id),
                    "user_id": getattr(user, "pk", None),
                },
            )
            raise NotAuthorized(
                "Not authorized for this organization",
                details={"organization_id": str(organization_id)},
            )

        if membership.role not in allowed:
            logger.info(
                "Billing access denied: insufficient role",
                extra={
                    "organization_id": str(organization_id),
                    "user_id": user.pk,
                    "role": membership.role,
                },
            )
            raise NotAuthorized(
                "Your role does not allow this billing operation",
                details={
                    "organization_id": str(organization_id),
                    "role": membership.role,
                    "required_roles": sorted(allowed),
                },
            )

        return membership


def require_org_role(
    allowed_roles: Iterable[str] = ANY_ROLE,
    organization_id_param: str = "organization_id",
    user_param: str = "user",
) -> Callable:
    """
    Decorator that requires the caller to hold one of allowed_roles.

    Reads the organization id and user from the call's keyword arguments,
    checks membership, and injects the membership as `_membership`.

    Raises:
        NotAuthorized: If the check fails or either argument is missing
    """
    allowed = frozenset(allowed_roles)

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            user = kwargs.get(user_param)
            organization_id = kwargs.get(organization_id_param)

            if user is None or organization_id is None:
                raise NotAuthorized(
                    "Missing caller or organization",
                    error_code="INVALID_REQUEST",
                )

            kwargs["_membership"] = OrganizationAuthorizationService.require_role(
                organization_id, user, allowed
            )
            return func(*args, **kwargs)

        return wrapper

    return decorator
