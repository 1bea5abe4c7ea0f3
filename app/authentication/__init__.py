"""
Authentication application.

Provides the email-keyed User model that organization memberships and
billing audit metadata point at. Sign-up, login and token issuance are
handled by the identity provider in front of this service.

Usage:
    from authentication.models import User
"""
