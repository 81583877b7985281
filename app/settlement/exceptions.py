"""
Settlement-specific exceptions.

Exception Hierarchy:
    SettlementError (base for the settlement domain)
    ├── SettlementValidationError - rejected, never retried internally
    │   ├── InvalidRevenueShareError - revenue share bps or gross out of range
    │   ├── WebhookSignatureError - missing/invalid Stripe-Signature
    │   └── MalformedEventError - webhook body fails typed decoding
    ├── UnknownReferenceError - event references a missing purchase/payout
    ├── PersistenceError - database failure that aborts a batch run
    └── ExternalProviderError - payment rail failures
        ├── DestinationNotPayableError - connected account cannot receive funds
        └── StripeError - Base for all Stripe errors
            ├── StripeInvalidAccountError - Invalid connected account (permanent)
            ├── StripeInvalidRequestError - Invalid request params (permanent)
            ├── StripeInsufficientFundsError - Platform balance too low (permanent)
            ├── StripeRateLimitError - Rate limited (transient, retry)
            ├── StripeAPIUnavailableError - API unavailable (transient, retry)
            └── StripeTimeoutError - Request timeout (transient, retry)

    ReservationConflictError - reservation claim lost the race (ConflictError)
    InvalidStateTransitionError - transition not allowed (ConflictError)

Usage:
    from settlement.exceptions import StripeError

    try:
        StripeAdapter.create_transfer(...)
    except StripeError as e:
        if e.is_retryable:
            raise  # payout stays pending, Celery retries with the same key
        fail_and_release(payout, str(e))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Settlement Domain Exceptions
# =============================================================================


class SettlementError(BaseApplicationError):
    """Base exception for all settlement operations."""

    default_error_code: str = "SETTLEMENT_ERROR"


class SettlementValidationError(SettlementError, ValidationError):
    """
    Raised when settlement input fails validation.

    The caller rejects the input; nothing is retried.
    """

    default_error_code: str = "SETTLEMENT_VALIDATION_ERROR"


class InvalidRevenueShareError(SettlementValidationError):
    """
    Raised for a revenue share outside [0, 10000] bps or a negative gross.

    This is a configuration error on the item or purchase, not a
    transient condition.
    """

    default_error_code: str = "INVALID_REVENUE_SHARE"


class WebhookSignatureError(SettlementValidationError):
    """Raised when a webhook signature is missing, invalid or too old."""

    default_error_code: str = "INVALID_WEBHOOK_SIGNATURE"


class MalformedEventError(SettlementValidationError):
    """
    Raised when a webhook body does not decode into its typed event.

    Example:
        raise MalformedEventError(
            "checkout.session.completed is missing amount_total",
            details={"field": "amount_total"},
        )
    """

    default_error_code: str = "MALFORMED_EVENT"


class UnknownReferenceError(SettlementError, NotFoundError):
    """
    Raised when an event references a purchase, payout or creator we
    do not know about.

    Webhook handlers log and acknowledge these so the provider stops
    redelivering.
    """

    default_error_code: str = "UNKNOWN_REFERENCE"


class PersistenceError(SettlementError):
    """
    Raised when the durable store fails during a batch run.

    The run stops processing the remaining creators; payouts already
    committed are unaffected.
    """

    default_error_code: str = "PERSISTENCE_ERROR"


# =============================================================================
# Payment Rail Exceptions
# =============================================================================


class ExternalProviderError(SettlementError, ExternalServiceError):
    """
    Base exception for payment rail failures.

    Attributes:
        is_retryable: Whether the operation can be retried with the same
            idempotency key. Non-retryable errors fail the payout and
            release its reservation.
    """

    default_error_code: str = "EXTERNAL_PROVIDER_ERROR"
    is_retryable: bool = False


class DestinationNotPayableError(ExternalProviderError):
    """
    Raised when a creator's connected account cannot receive transfers.

    Example:
        raise DestinationNotPayableError(
            "Connected account has payouts disabled",
            details={"stripe_account_id": "acct_123"},
        )
    """

    default_error_code: str = "DESTINATION_NOT_PAYABLE"


OUTCOME_UNKNOWN_CODES = frozenset({"idempotency_error", "authentication_error"})


class StripeError(ExternalProviderError):
    """
    Base exception for all Stripe-related errors.

    Provides common attributes for Stripe error handling:
    - stripe_code: Stripe's internal error code
    - is_retryable: Whether the operation can be retried
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code

    @property
    def leaves_outcome_unknown(self) -> bool:
        """
        Whether a request that already went out under the same idempotency
        key may have succeeded despite this error.

        Stripe replays the stored response for a repeated key, so only
        errors raised before that replay (key reuse conflicts, rejected
        credentials) say nothing about the earlier attempt.
        """
        return self.stripe_code in OUTCOME_UNKNOWN_CODES


# -----------------------------------------------------------------------------
# Permanent Errors (do not retry)
# -----------------------------------------------------------------------------


class StripeInvalidAccountError(StripeError):
    """
    Connected account is invalid or cannot receive transfers.

    Common causes: account deleted, restricted, or not onboarded.
    """

    default_error_code: str = "STRIPE_INVALID_ACCOUNT"
    is_retryable: bool = False


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Indicates a bug or an authentication problem; retrying will not help.
    """

    default_error_code: str = "STRIPE_INVALID_REQUEST"
    is_retryable: bool = False


class StripeInsufficientFundsError(StripeError):
    """
    Platform balance is too low to fund the transfer.

    Stripe rejects the transfer outright, so no money moved.
    """

    default_error_code: str = "STRIPE_INSUFFICIENT_FUNDS"
    is_retryable: bool = False


# -----------------------------------------------------------------------------
# Transient Errors (retry with backoff)
# -----------------------------------------------------------------------------


class StripeRateLimitError(StripeError):
    """Rate limited by Stripe. Retry with the same idempotency key."""

    default_error_code: str = "STRIPE_RATE_LIMIT"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """
    Stripe API unavailable or returned a server error.

    The outcome of the request is unknown. Only a retry that reuses the
    payout's idempotency key is safe.
    """

    default_error_code: str = "STRIPE_API_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Request to Stripe timed out.

    Same handling as StripeAPIUnavailableError: ambiguous outcome,
    retry only with the same idempotency key.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# Concurrency Control Exceptions
# =============================================================================


class ReservationConflictError(ConflictError):
    """
    Raised when a reservation claim lost the race to another batch run.

    The affected earnings are skipped in this run and picked up by the
    next one.
    """

    default_error_code: str = "RESERVATION_CONFLICT"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a requested state transition is not allowed.

    Example:
        raise InvalidStateTransitionError(
            "Cannot cancel a payout after its transfer was requested",
            details={"payout_id": str(payout.id), "current_state": payout.status},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"
