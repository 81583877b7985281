"""
Stripe API adapter for settlement operations.

This module provides the StripeAdapter class which encapsulates all
Stripe API interactions used by settlement. All Stripe calls go through
this adapter to ensure consistent error handling, timeouts, idempotency,
and observability.

Features:
- Bounded timeout on every API call
- Automatic error translation to domain exceptions
- Structured logging with timing metrics
- Payout-scoped idempotency keys for safe retries

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_WEBHOOK_TOLERANCE_SECONDS: Max webhook age (default: 300)
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: SDK network retries, reusing the idempotency key

Usage:
    from settlement.adapters import StripeAdapter, transfer_idempotency_key

    result = StripeAdapter.create_transfer(
        amount_minor=payout.net_minor,
        destination_account=creator.stripe_account_id,
        idempotency_key=transfer_idempotency_key(payout.id),
        currency=payout.currency,
        metadata={"payout_id": str(payout.id)},
    )
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from settlement.exceptions import (
    StripeAPIUnavailableError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
    WebhookSignatureError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_minor: Amount transferred in minor units
        currency: Currency code
        destination_account: Destination Stripe account ID
        metadata: Attached metadata
        raw_response: Full Stripe response dict
    """

    id: str
    amount_minor: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class AccountResult:
    """
    Result from Stripe Account retrieval.

    Attributes:
        id: Connected account ID (acct_xxx)
        payouts_enabled: Whether Stripe allows payouts to the account
        charges_enabled: Whether the account can accept charges
        details_submitted: Whether onboarding details were submitted
        disabled_reason: Stripe's requirements.disabled_reason, if any
    """

    id: str
    payouts_enabled: bool
    charges_enabled: bool
    details_submitted: bool = False
    disabled_reason: str | None = None

    @property
    def can_receive_transfers(self) -> bool:
        return self.payouts_enabled and not self.disabled_reason


def transfer_idempotency_key(payout_id: uuid.UUID | str) -> str:
    """
    Idempotency key for a payout's transfer.

    Derived from the payout id alone, so every retry of the same payout
    (SDK retries, Celery retries, manual replays) maps to the same
    Stripe transfer.
    """
    return f"payout-transfer:{payout_id}"


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key, timeout and retries."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.max_network_retries = settings.STRIPE_MAX_RETRIES
        stripe.default_http_client = stripe.RequestsClient(
            timeout=settings.STRIPE_API_TIMEOUT_SECONDS
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Get logger for this adapter."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    # =========================================================================
    # Core Operations
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_minor: int,
        destination_account: str,
        idempotency_key: str,
        currency: str = "usd",
        metadata: dict[str, str] | None = None,
        description: str | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected Stripe account.

        Args:
            amount_minor: Amount to transfer in minor units
            destination_account: Stripe Connect account ID (acct_xxx)
            idempotency_key: Stable key for the payout being settled
            currency: Currency code (default: 'usd')
            metadata: Metadata dict; carries payout_id for webhook correlation
            description: Optional human-readable description

        Returns:
            TransferResult with transfer details

        Raises:
            StripeInvalidAccountError: Invalid destination account
            StripeInsufficientFundsError: Insufficient platform balance
            StripeRateLimitError, StripeAPIUnavailableError, StripeTimeoutError:
                Transient - outcome unknown, retry with the same key
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_minor": amount_minor,
            "currency": currency,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer_params: dict[str, Any] = {
                "amount": amount_minor,
                "currency": currency,
                "destination": destination_account,
                "metadata": metadata or {},
            }
            if description:
                transfer_params["description"] = description

            transfer = stripe.Transfer.create(
                idempotency_key=idempotency_key,
                **transfer_params,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "transfer_id": transfer.id,
                    "duration_ms": duration_ms,
                },
            )

            return TransferResult(
                id=transfer.id,
                amount_minor=transfer.amount,
                currency=transfer.currency,
                destination_account=transfer.destination,
                metadata=dict(transfer.metadata or {}),
                raw_response=transfer.to_dict(),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_account(cls, account_id: str) -> AccountResult:
        """
        Retrieve a connected account to check it can receive funds.

        Args:
            account_id: Stripe Connect account ID (acct_xxx)

        Returns:
            AccountResult with capability flags

        Raises:
            StripeInvalidAccountError: Account does not exist or is not
                connected to the platform
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_account",
            "account_id": account_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            account = stripe.Account.retrieve(account_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payouts_enabled": account.payouts_enabled,
                    "duration_ms": duration_ms,
                },
            )

            requirements = account.get("requirements") or {}
            return AccountResult(
                id=account.id,
                payouts_enabled=bool(account.get("payouts_enabled")),
                charges_enabled=bool(account.get("charges_enabled")),
                details_submitted=bool(account.get("details_submitted")),
                disabled_reason=requirements.get("disabled_reason"),
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify a Stripe webhook signature and parse the body.

        The signature is an HMAC of the raw body with the endpoint's
        signing secret. Events older than STRIPE_WEBHOOK_TOLERANCE_SECONDS
        are rejected to limit replay.

        Args:
            payload: Raw webhook payload bytes
            signature: Stripe-Signature header value

        Returns:
            Parsed event body

        Raises:
            WebhookSignatureError: Missing, invalid or expired signature
            ValueError: Signature valid but the body is not JSON
        """
        if not signature:
            raise WebhookSignatureError("Missing Stripe-Signature header")

        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
                settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(
                "Invalid webhook signature",
                details={"error": str(e)},
            ) from e

        return json.loads(body)

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to domain exceptions.

        Maps Stripe SDK errors to domain exceptions with the retry
        classification the settlement service relies on: permanent
        errors fail the payout, transient ones leave it pending.

        Raises:
            StripeInsufficientFundsError: Platform balance too low
            StripeInvalidAccountError: Invalid Connect account
            StripeInvalidRequestError: Invalid request parameters
            StripeRateLimitError: Rate limited
            StripeTimeoutError: Request timed out
            StripeAPIUnavailableError: API unavailable
        """
        logger = cls.get_logger()

        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )

            if error.code == "balance_insufficient":
                raise StripeInsufficientFundsError(
                    str(error),
                    stripe_code=error.code,
                )

            if error.param == "destination" or "account" in str(error).lower():
                raise StripeInvalidAccountError(
                    str(error),
                    stripe_code=error.code,
                )

            raise StripeInvalidRequestError(
                str(error),
                stripe_code=error.code,
            )

        elif isinstance(error, stripe.PermissionError):
            # Account not connected to this platform
            logger.error(
                "Stripe denied access to account",
                extra=log_context,
            )
            raise StripeInvalidAccountError(
                str(error),
                stripe_code="permission_error",
            )

        elif isinstance(error, stripe.IdempotencyError):
            # Same key reused with different parameters
            logger.critical(
                "Stripe idempotency key reused with different parameters",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                str(error),
                stripe_code="idempotency_error",
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning(
                "Rate limited by Stripe",
                extra=log_context,
            )
            raise StripeRateLimitError(
                "Stripe rate limit exceeded. Please retry.",
                stripe_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            if "timed out" in str(error).lower():
                raise StripeTimeoutError(
                    "Stripe request timed out. Outcome unknown, retry with the same key.",
                    stripe_code="timeout",
                )
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe. Please retry.",
                stripe_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error(
                "Stripe API error",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                "Stripe service error. Please retry.",
                stripe_code="api_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise StripeInvalidRequestError(
                "Stripe authentication failed",
                stripe_code="authentication_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise StripeAPIUnavailableError(
                f"Unexpected Stripe error: {error}",
                stripe_code="unknown_error",
            )
