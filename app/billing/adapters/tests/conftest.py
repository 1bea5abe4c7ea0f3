"""
Pytest fixtures for Stripe adapter tests.

Sections:
    - Mock Stripe Object Fixtures
    - Stripe Error Fixtures
"""

from dataclasses import dataclass
from typing import Any

import pytest
import stripe


# =============================================================================
# Mock Stripe Object Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Stand-in for a Stripe API object with attribute access and to_dict."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_subscription():
    def _create(
        id: str = "sub_test123",
        status: str = "active",
        cancel_at_period_end: bool = False,
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "subscription",
                "status": status,
                "customer": "cus_test123",
                "cancel_at_period_end": cancel_at_period_end,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_checkout_session():
    def _create(
        id: str = "cs_test123",
        url: str = "https://checkout.stripe.com/c/pay/cs_test123",
    ) -> MockStripeObject:
        return MockStripeObject({"id": id, "object": "checkout.session", "url": url})

    return _create


# =============================================================================
# Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    return stripe.CardError(
        message="Your card was declined.",
        param=None,
        code="card_declined",
    )


@pytest.fixture
def invalid_request_error():
    return stripe.InvalidRequestError(
        message="No such subscription: 'sub_missing'",
        param="id",
        code="resource_missing",
    )


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError(message="Too many requests hit the API too quickly.")


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError(message="Could not connect to Stripe.")


@pytest.fixture
def timeout_error():
    return stripe.APIConnectionError(message="Request to Stripe timed out.")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError(message="Invalid API Key provided.")


@pytest.fixture
def api_error():
    return stripe.APIError(message="An unknown error occurred.")
