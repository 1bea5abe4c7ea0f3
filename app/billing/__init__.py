"""
Billing app: credits, subscriptions and Stripe integration.

This app handles:
- The credit ledger (grants, priority consumption, expiration)
- Subscription mirroring from Stripe webhooks
- Checkout sessions for plans and credit packages
- Scheduled expiration sweeps and webhook recovery

Related apps:
    - organizations: Tenants and the Authorization Gate
    - authentication: User model for membership checks

Usage:
    from billing.ledger import credit_ledger
    from billing.services import CreditService

    # Spend credits on behalf of a member
    CreditService.consume(
        organization_id=org.id, user=user, amount=15, description="Report export"
    )

    # Read the balance
    credit_ledger.get_balance(org.id)
"""
