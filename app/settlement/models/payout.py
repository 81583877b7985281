"""
Payout model: one settlement attempt for a creator in one currency.

A Payout is created pending by the batcher in the same transaction that
reserves its earnings. The settlement service then moves the money through
a Stripe transfer.

Usage:
    from settlement.models import Payout

    payout.mark_paid(transfer_id="tr_123")
    payout.save()

    payout.fail(reason="Connected account has payouts disabled")
    payout.save()
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.state_machines import PayoutState

CANCELED_REASON_PREFIX = "canceled"


class Payout(UUIDPrimaryKeyMixin, BaseModel):
    """
    Money transfer to a creator's connected Stripe account.

    State Flow:
        PENDING -> PAID (transfer confirmed, synchronously or by webhook)
        PENDING -> FAILED (rejected, unpayable, or canceled before transfer)
        PAID -> FAILED (transfer.failed arriving after local success)

    Invariant:
        While status != FAILED, the sum of net_minor over earnings with
        payout = this equals net_minor. Failing releases every reserved
        earning.

    Fields:
        creator: Creator receiving the payout
        run: Batch run that created the payout
        currency: ISO 4217 currency code (lowercase)
        period_start: First day of the settled period
        period_end: Last day of the settled period (inclusive)
        gross_minor: Sum of gross over reserved earnings
        net_minor: Sum of net over reserved earnings (amount transferred)
        earnings_count: Number of reserved earnings
        status: Current FSM state
        external_transfer_ref: Stripe Transfer ID (tr_xxx)
        transfer_requested_at: Set right before the transfer call is issued
        failure_reason: Reason when failed
        report_url: Retrievable location of the line-item report
        paid_at: When the transfer was confirmed
        failed_at: When the payout failed
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    creator = models.ForeignKey(
        "settlement.Creator",
        on_delete=models.PROTECT,
        related_name="payouts",
        help_text="Creator receiving the payout",
    )

    run = models.ForeignKey(
        "settlement.PayoutRun",
        on_delete=models.SET_NULL,
        related_name="payouts",
        null=True,
        blank=True,
        help_text="Batch run that created this payout",
    )

    # ==========================================================================
    # Period & Amounts
    # ==========================================================================

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    period_start = models.DateField(
        help_text="First day of the settled period",
    )

    period_end = models.DateField(
        help_text="Last day of the settled period (inclusive)",
    )

    gross_minor = models.BigIntegerField(
        help_text="Sum of gross over reserved earnings",
    )

    net_minor = models.BigIntegerField(
        help_text="Sum of net over reserved earnings - the transferred amount",
    )

    earnings_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of earnings reserved by this payout",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutState.PENDING,
        choices=PayoutState.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    external_transfer_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )

    transfer_requested_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer call was issued. Blocks cancellation once set.",
    )

    # ==========================================================================
    # Outcome
    # ==========================================================================

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Reason the payout failed",
    )

    report_url = models.CharField(
        max_length=1024,
        null=True,
        blank=True,
        help_text="Retrievable location of the line-item report",
    )

    paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the transfer was confirmed",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout failed",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["creator", "status"], name="payout_creator_status_idx"),
            models.Index(
                fields=["status", "transfer_requested_at"],
                name="payout_status_requested_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(net_minor__gt=0),
                name="payout_net_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{self.net_minor / 100:.2f} {self.currency.upper()}"
        return f"Payout({self.id}, {self.status}, {amount_display})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutState.PENDING,
        target=PayoutState.PAID,
    )
    def mark_paid(self, transfer_id: str | None = None):
        """
        Record a confirmed transfer.

        Transition: PENDING -> PAID
        """
        if transfer_id:
            self.external_transfer_ref = transfer_id
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=[PayoutState.PENDING, PayoutState.PAID],
        target=PayoutState.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark payout as failed.

        Transition: PENDING/PAID -> FAILED

        The caller releases the reserved earnings in the same transaction.
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_pending(self) -> bool:
        return self.status == PayoutState.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in [PayoutState.PAID, PayoutState.FAILED]

    @property
    def can_cancel(self) -> bool:
        """Only pending payouts whose transfer was never requested."""
        return self.is_pending and self.transfer_requested_at is None

    @property
    def is_canceled(self) -> bool:
        return self.status == PayoutState.FAILED and (
            self.failure_reason or ""
        ).startswith(CANCELED_REASON_PREFIX)

    @property
    def period_label(self) -> str:
        return f"{self.period_start.isoformat()} to {self.period_end.isoformat()}"
