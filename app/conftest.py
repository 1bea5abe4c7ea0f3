"""
Project-wide pytest configuration and fixtures.

Fixtures here are shared by every app: users, organizations with members in
each role, and an authenticated DRF client. App-specific fixtures are defined
in each app's tests/conftest.py.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_integration.py → e2e (full billing journeys)
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_types.py, test_locks.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    e2e_patterns = ["test_integration.py"]

    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_permissions.py",
        "test_handlers.py",
        "test_engine.py",
        "test_subscription_service.py",
        "test_credit_service.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_serializers.py",
        "test_types.py",
        "test_exceptions.py",
        "test_adapters.py",
        "test_stripe_adapter.py",
        "test_locks.py",
    ]

    for item in items:
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in e2e_patterns):
            item.add_marker(pytest.mark.e2e)
        elif any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated DRF test client."""
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def user(db):
    """Create a test user."""
    from authentication.tests.factories import UserFactory

    return UserFactory()


@pytest.fixture
def organization(db):
    """Create an organization without a Stripe customer."""
    from organizations.tests.factories import OrganizationFactory

    return OrganizationFactory()


@pytest.fixture
def owner(db, organization):
    """User holding the owner role in `organization`."""
    from organizations.models import MemberRole
    from organizations.tests.factories import OrganizationMemberFactory

    return OrganizationMemberFactory(
        organization=organization, role=MemberRole.OWNER
    ).user


@pytest.fixture
def member(db, organization):
    """User holding the plain member role in `organization`."""
    from organizations.models import MemberRole
    from organizations.tests.factories import OrganizationMemberFactory

    return OrganizationMemberFactory(
        organization=organization, role=MemberRole.MEMBER
    ).user


@pytest.fixture
def outsider(db):
    """User with no membership in `organization`."""
    from authentication.tests.factories import UserFactory

    return UserFactory()


@pytest.fixture
def owner_client(api_client, owner):
    """API client authenticated as the organization owner."""
    api_client.force_authenticate(user=owner)
    return api_client


@pytest.fixture
def member_client(api_client, member):
    """API client authenticated as a plain organization member."""
    api_client.force_authenticate(user=member)
    return api_client
