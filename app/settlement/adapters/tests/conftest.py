"""
Pytest fixtures for Stripe adapter tests.

Sections:
    - Mock Stripe Response Fixtures
    - Error Response Fixtures
    - Mock Stripe API Fixtures
"""

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe


# =============================================================================
# Mock Stripe Response Fixtures
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute, get and to_dict access."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_transfer():
    """Create a mock Transfer response."""

    def _create(
        id: str = "tr_test123456",
        amount: int = 7000,
        currency: str = "usd",
        destination: str = "acct_creator_1",
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "transfer",
                "amount": amount,
                "currency": currency,
                "destination": destination,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_account():
    """Create a mock connected Account response."""

    def _create(
        id: str = "acct_creator_1",
        payouts_enabled: bool = True,
        charges_enabled: bool = True,
        details_submitted: bool = True,
        disabled_reason: str | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "account",
                "payouts_enabled": payouts_enabled,
                "charges_enabled": charges_enabled,
                "details_submitted": details_submitted,
                "requirements": {"disabled_reason": disabled_reason},
            }
        )

    return _create


# =============================================================================
# Error Response Fixtures
# =============================================================================


@pytest.fixture
def invalid_request_error():
    """Create an InvalidRequestError."""

    def _create(
        message: str = "Invalid request",
        param: str | None = None,
        code: str | None = None,
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message, param, code=code)

    return _create


@pytest.fixture
def rate_limit_error():
    return stripe.RateLimitError("Too many requests")


@pytest.fixture
def api_connection_error():
    return stripe.APIConnectionError("Could not connect to Stripe")


@pytest.fixture
def api_error():
    return stripe.APIError("Internal server error")


@pytest.fixture
def authentication_error():
    return stripe.AuthenticationError("Invalid API key provided")


# =============================================================================
# Mock Stripe API Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def mock_stripe_http_client():
    """Keep the adapter from building a real HTTP client."""
    with patch("stripe.RequestsClient") as mock:
        yield mock


@pytest.fixture
def mock_stripe_transfer(mock_transfer):
    """Mock stripe.Transfer API."""
    with patch("stripe.Transfer") as mock:
        mock.create.return_value = mock_transfer()
        yield mock


@pytest.fixture
def mock_stripe_account(mock_account):
    """Mock stripe.Account API."""
    with patch("stripe.Account") as mock:
        mock.retrieve.return_value = mock_account()
        yield mock


@pytest.fixture
def sign_payload():
    """Build a valid Stripe-Signature header for a payload."""

    def _sign(payload: str, secret: str = "whsec_test", timestamp: int | None = None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        signed = f"{timestamp}.{payload}".encode()
        digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign
