"""
PayoutRun model: one invocation of the payout batch.

Each scheduled or manual batch run records its period, options and
outcome counters. The run summary notification is built from this row.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.state_machines import PayoutRunStatus


class PayoutRun(UUIDPrimaryKeyMixin, BaseModel):
    """
    Audit record of a payout batch run.

    Fields:
        period_start: First day of the settled period
        period_end: Last day of the settled period (inclusive)
        dry_run: Grouping and thresholds computed without reserving
        creator: Single-creator filter for operational replays
        status: running, completed or aborted
        groups_evaluated: (creator, currency) groups considered
        groups_below_threshold: Groups skipped for being under threshold
        reservation_conflicts: Groups lost to a concurrent run
        payouts_created: Payouts reserved in this run
        payouts_paid: Payouts that reached PAID during the run
        payouts_failed: Payouts that reached FAILED during the run
        payouts_pending: Payouts left pending (transfer outcome unknown)
        totals: Net amount per currency, {"usd": 12345}
        error_message: Why the run aborted
        started_at / finished_at: Run timing
    """

    period_start = models.DateField()

    period_end = models.DateField()

    dry_run = models.BooleanField(default=False)

    creator = models.ForeignKey(
        "settlement.Creator",
        on_delete=models.SET_NULL,
        related_name="payout_runs",
        null=True,
        blank=True,
        help_text="Single-creator filter, when the run was a replay",
    )

    status = models.CharField(
        max_length=20,
        choices=PayoutRunStatus.choices,
        default=PayoutRunStatus.RUNNING,
        db_index=True,
    )

    # ==========================================================================
    # Counters
    # ==========================================================================

    groups_evaluated = models.PositiveIntegerField(default=0)
    groups_below_threshold = models.PositiveIntegerField(default=0)
    reservation_conflicts = models.PositiveIntegerField(default=0)
    payouts_created = models.PositiveIntegerField(default=0)
    payouts_paid = models.PositiveIntegerField(default=0)
    payouts_failed = models.PositiveIntegerField(default=0)
    payouts_pending = models.PositiveIntegerField(default=0)

    totals = models.JSONField(
        default=dict,
        blank=True,
        help_text="Net amount reserved per currency",
    )

    error_message = models.TextField(null=True, blank=True)

    started_at = models.DateTimeField(default=timezone.now)

    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-started_at"]
        verbose_name = "Payout Run"
        verbose_name_plural = "Payout Runs"

    def __str__(self) -> str:
        return f"PayoutRun({self.period_start} to {self.period_end}, {self.status})"

    def finish(self, status: str, error_message: str | None = None) -> None:
        """
        Close the run.

        Note: Does not save - caller must save after calling.
        """
        self.status = status
        self.error_message = error_message
        self.finished_at = timezone.now()
