"""
Payment rail adapters.

All Stripe API calls go through StripeAdapter to ensure consistent error
handling, timeouts, idempotency, and observability.
"""

from settlement.adapters.stripe_adapter import (
    AccountResult,
    StripeAdapter,
    TransferResult,
    transfer_idempotency_key,
)

__all__ = [
    "AccountResult",
    "StripeAdapter",
    "TransferResult",
    "transfer_idempotency_key",
]
