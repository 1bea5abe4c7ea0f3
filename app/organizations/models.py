"""
Organization and membership models.

Models:
    Organization: The tenant unit all billing records are scoped to
    OrganizationMember: A user's role within an organization

Role Hierarchy:
    OWNER > ADMIN > MEMBER > VIEWER

    OWNER/ADMIN: manage billing (bonus credits, checkout, cancel/reactivate)
    MEMBER/VIEWER: read billing state, consume credits, buy credit packages

Related files:
    - authorization.py: Role checks used by billing services and views
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class MemberRole(models.TextChoices):
    """Role of a user within an organization."""

    OWNER = "owner", "Owner"
    ADMIN = "admin", "Admin"
    MEMBER = "member", "Member"
    VIEWER = "viewer", "Viewer"


# Roles allowed to manage billing for an organization
MANAGEMENT_ROLES: frozenset[str] = frozenset({MemberRole.OWNER, MemberRole.ADMIN})

# Any active membership
ANY_ROLE: frozenset[str] = frozenset(MemberRole.values)


class Organization(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tenant organization.

    Fields:
        name: Display name, also sent to Stripe as the customer name
        slug: URL-safe unique identifier
        contact_email: Billing contact, used when creating the Stripe customer
        stripe_customer_id: Stripe customer (cus_xxx), set on first checkout
        is_active: Inactive organizations cannot be billed
    """

    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=100, unique=True)
    contact_email = models.EmailField(blank=True)
    stripe_customer_id = models.CharField(
        max_length=255,
        blank=True,
        db_index=True,
        help_text="Stripe customer ID (cus_xxx)",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class OrganizationMember(BaseModel):
    """
    Membership of a user in an organization.

    A deactivated membership (is_active=False) grants no access.
    """

    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="members",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="organization_memberships",
    )
    role = models.CharField(
        max_length=20,
        choices=MemberRole.choices,
        default=MemberRole.MEMBER,
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "user"],
                name="unique_organization_member",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "organization"], name="org_member_user_org_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.user_id} ({self.role}) in {self.organization_id}"

    @property
    def can_manage_billing(self) -> bool:
        return self.is_active and self.role in MANAGEMENT_ROLES
