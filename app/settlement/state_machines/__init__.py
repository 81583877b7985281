"""
State machine enums for settlement models.
"""

from settlement.state_machines.states import (
    PayoutRunStatus,
    PayoutState,
    PurchaseKind,
    PurchaseStatus,
    VerificationStatus,
    WebhookEventStatus,
)

__all__ = [
    "PayoutRunStatus",
    "PayoutState",
    "PurchaseKind",
    "PurchaseStatus",
    "VerificationStatus",
    "WebhookEventStatus",
]
