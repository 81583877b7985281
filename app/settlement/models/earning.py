"""
CreatorEarning model: one revenue event owed to a creator.

Earnings form an append-only ledger. Amounts never change after insert;
reversals only set flags (voided, clawback) and corrections are recorded
as new negative-adjustment earnings.

Usage:
    from settlement.models import CreatorEarning

    unpaid = CreatorEarning.objects.eligible_for_batch().filter(creator=creator)
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class CreatorEarningQuerySet(models.QuerySet):
    def eligible_for_batch(self):
        """Unpaid, unreserved earnings that have not been reversed."""
        return self.filter(
            paid_out=False,
            payout__isnull=True,
            is_voided=False,
            reversed_at__isnull=True,
        )

    def in_period(self, period_start, period_end):
        """Earnings with earned_at inside [period_start, period_end)."""
        return self.filter(earned_at__gte=period_start, earned_at__lt=period_end)

    def earned_before(self, period_end):
        """Earnings with earned_at before period_end, however old."""
        return self.filter(earned_at__lt=period_end)


class CreatorEarning(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable earning record owed to a creator.

    Created exactly once per (purchase, charge/invoice reference) pair,
    enforced by the unique dedupe_key.

    Fields:
        creator: Creator owed the money
        item_id: Item that generated the revenue
        purchase: Purchase the revenue came from
        gross_minor: Gross amount in minor units
        fee_minor: Platform fee in minor units
        net_minor: Creator net in minor units (gross - fee)
        currency: ISO 4217 currency code (lowercase)
        revenue_share_bps: Creator share used for the split
        earned_at: When the revenue was recognised
        paid_out: True once the reserving payout is confirmed paid
        payout: Payout currently reserving this earning
        dedupe_key: "{purchase_id}:{charge_or_invoice_ref}"
        source_ref: Provider reference the earning was recorded from
        charge_ref: Provider charge reference, used to match refunds
        is_voided: Excluded from batching after a reversal before payout
        voided_at: When the earning was voided
        clawback_required: Reversed after it was paid or reserved
        reversed_at: When a refund or dispute reversed the earning
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    creator = models.ForeignKey(
        "settlement.Creator",
        on_delete=models.PROTECT,
        related_name="earnings",
        help_text="Creator owed this earning",
    )

    purchase = models.ForeignKey(
        "settlement.Purchase",
        on_delete=models.PROTECT,
        related_name="earnings",
        help_text="Purchase that generated the revenue",
    )

    payout = models.ForeignKey(
        "settlement.Payout",
        on_delete=models.PROTECT,
        related_name="earnings",
        null=True,
        blank=True,
        help_text="Payout reserving this earning. Set only by a batch reservation.",
    )

    item_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Item that generated the revenue",
    )

    # ==========================================================================
    # Amounts (immutable)
    # ==========================================================================

    gross_minor = models.BigIntegerField(
        help_text="Gross amount in minor units",
    )

    fee_minor = models.BigIntegerField(
        help_text="Platform fee in minor units",
    )

    net_minor = models.BigIntegerField(
        help_text="Creator net in minor units",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    revenue_share_bps = models.PositiveIntegerField(
        help_text="Creator share in basis points used for the split",
    )

    earned_at = models.DateTimeField(
        db_index=True,
        help_text="When the revenue was recognised",
    )

    # ==========================================================================
    # Idempotency
    # ==========================================================================

    dedupe_key = models.CharField(
        max_length=255,
        unique=True,
        help_text="Purchase id plus charge/invoice reference - one earning per cycle",
    )

    source_ref = models.CharField(
        max_length=255,
        help_text="Provider reference the earning was recorded from",
    )

    charge_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider charge or PaymentIntent reference, used to match refunds",
    )

    # ==========================================================================
    # Settlement Flags
    # ==========================================================================

    paid_out = models.BooleanField(
        default=False,
        db_index=True,
        help_text="True once the reserving payout is confirmed paid",
    )

    is_voided = models.BooleanField(
        default=False,
        help_text="Reversed before payout - excluded from batching",
    )

    voided_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the earning was voided",
    )

    clawback_required = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Reversed after it was paid or reserved - needs recovery",
    )

    reversed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When a refund or dispute reversed this earning",
    )

    objects = CreatorEarningQuerySet.as_manager()

    class Meta:
        ordering = ["earned_at"]
        verbose_name = "Creator Earning"
        verbose_name_plural = "Creator Earnings"
        indexes = [
            models.Index(
                fields=["creator", "currency", "earned_at"],
                name="earning_creator_cur_time_idx",
            ),
            models.Index(fields=["payout", "paid_out"], name="earning_payout_paid_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(
                    gross_minor=models.F("fee_minor") + models.F("net_minor")
                ),
                name="earning_gross_equals_fee_plus_net",
            ),
        ]

    def __str__(self) -> str:
        return f"CreatorEarning({self.id}, {self.net_minor} {self.currency.upper()})"

    @property
    def is_reserved(self) -> bool:
        return self.payout_id is not None and not self.paid_out
