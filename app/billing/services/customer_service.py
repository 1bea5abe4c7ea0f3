"""
Stripe customer bookkeeping for organizations.

An organization gets one Stripe customer, created on its first checkout and
stored on Organization.stripe_customer_id.
"""

from __future__ import annotations

from core.services import BaseService
from organizations.models import Organization

from billing.adapters import StripeAdapter


class CustomerService(BaseService):
    @classmethod
    def ensure_stripe_customer(cls, organization: Organization) -> str:
        """
        Return the organization's Stripe customer id, creating it if needed.

        The create call carries an idempotency key derived from the
        organization, and the id is only written where none is stored yet,
        so two concurrent first checkouts end up with the same customer.
        """
        if organization.stripe_customer_id:
            return organization.stripe_customer_id

        customer_id = StripeAdapter.create_customer(
            email=organization.contact_email,
            name=organization.name,
            metadata={"organization_id": str(organization.id)},
            idempotency_key=f"customer:{organization.id}",
        )

        updated = Organization.objects.filter(
            pk=organization.pk, stripe_customer_id=""
        ).update(stripe_customer_id=customer_id)

        if not updated:
            organization.refresh_from_db(fields=["stripe_customer_id"])
            return organization.stripe_customer_id

        organization.stripe_customer_id = customer_id
        cls.get_logger().info(
            "Created Stripe customer for organization",
            extra={
                "organization_id": str(organization.id),
                "stripe_customer_id": customer_id,
            },
        )
        return customer_id
