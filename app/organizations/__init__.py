"""
Organizations application.

Tenants of the billing backend. Every ledger record, subscription and
checkout belongs to exactly one Organization; users reach an organization
through an OrganizationMember row carrying their role.

Organization and membership CRUD happen elsewhere. This app provides the
models and the Authorization Gate consulted before every billing mutation:

    from organizations.authorization import OrganizationAuthorizationService

    OrganizationAuthorizationService.require_role(
        organization_id, user, MANAGEMENT_ROLES
    )
"""
