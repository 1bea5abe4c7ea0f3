"""
Permission classes for organization-scoped API endpoints.

Billing URLs carry the organization in the path
(`/organizations/<organization_id>/...`). These classes run the
Authorization Gate at the HTTP layer so read endpoints need no service call
to be protected; mutating services check again on their own.

    IsOrganizationMember: Any active membership
    IsOrganizationBillingManager: OWNER or ADMIN
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from organizations.authorization import OrganizationAuthorizationService
from organizations.models import ANY_ROLE, MANAGEMENT_ROLES

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsOrganizationMember(permissions.BasePermission):
    """Allows access only to active members of the path organization."""

    message = "You are not a member of this organization."
    allowed_roles = ANY_ROLE

    def has_permission(self, request: Request, view: APIView) -> bool:
        organization_id = view.kwargs.get("organization_id")
        if organization_id is None or not request.user.is_authenticated:
            return False

        role = OrganizationAuthorizationService.has_org_role(
            organization_id, request.user
        )
        return role in self.allowed_roles


class IsOrganizationBillingManager(IsOrganizationMember):
    """Allows access only to owners and admins of the path organization."""

    message = "Only organization owners and admins can manage billing."
    allowed_roles = MANAGEMENT_ROLES
