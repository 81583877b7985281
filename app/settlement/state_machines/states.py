"""
State enums for settlement models.

This module defines all state enums used by settlement models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Purchase States:
    pending → active (checkout confirmed)
    pending → payment_failed / canceled
    active ⇄ past_due, active/past_due → canceling → canceled
    canceling → active (cancellation withdrawn)
    any non-refunded state → refunded

Payout States:
    pending → paid
    pending → failed (rejection, cancellation, unpayable destination)
    paid → failed (late transfer.failed from the rail is authoritative)
"""

from django.db import models


class PurchaseKind(models.TextChoices):
    """How the buyer pays for an item."""

    ONE_OFF = "one_off", "One-off"
    SUBSCRIPTION = "subscription", "Subscription"


class PurchaseStatus(models.TextChoices):
    """
    States for the Purchase model lifecycle.

    Terminal states: CANCELED, REFUNDED, PAYMENT_FAILED
    (a refund may still follow a cancellation).

    State Flow (one-off):
        PENDING → ACTIVE → REFUNDED

    State Flow (subscription):
        PENDING → ACTIVE ⇄ PAST_DUE
        ACTIVE/PAST_DUE → CANCELING → CANCELED
    """

    PENDING = "pending", "Pending"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELING = "canceling", "Canceling"
    CANCELED = "canceled", "Canceled"
    REFUNDED = "refunded", "Refunded"
    PAYMENT_FAILED = "payment_failed", "Payment Failed"


class PayoutState(models.TextChoices):
    """
    States for the Payout model lifecycle.

    A pending payout holds a reservation on its earnings. Failing a
    payout releases the reservation so the earnings are picked up by
    the next batch run.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


class VerificationStatus(models.TextChoices):
    """
    Identity verification status of a creator on the payment rail.

    Only VERIFIED creators are selected by the payout batcher.
    """

    UNVERIFIED = "unverified", "Unverified"
    PENDING = "pending", "Pending Review"
    VERIFIED = "verified", "Verified"
    REJECTED = "rejected", "Rejected"


class PayoutRunStatus(models.TextChoices):
    """Status of a payout batch run."""

    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    ABORTED = "aborted", "Aborted"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for Stripe webhook events.

    Flow:
        PENDING → PROCESSING → PROCESSED (success)
        PENDING → PROCESSING → FAILED (retried by the sweeper)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
