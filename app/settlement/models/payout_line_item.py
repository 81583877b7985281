"""
PayoutLineItem model: snapshot of an earning reserved into a payout.

Line items are written in the reservation transaction and never change.
They keep the audit trail of what a payout covered after a failed payout
has released its earnings back to the unpaid pool.
"""

from __future__ import annotations

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class PayoutLineItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    One reserved earning as it was when the payout was created.

    Fields:
        payout: Payout the earning was reserved into
        earning: The reserved earning
        item_id: Item that generated the revenue
        purchase_id: Purchase the revenue came from
        net_minor: Earning net at reservation time
        currency: ISO 4217 currency code (lowercase)
        earned_at: When the revenue was recognised
    """

    payout = models.ForeignKey(
        "settlement.Payout",
        on_delete=models.CASCADE,
        related_name="line_items",
    )

    earning = models.ForeignKey(
        "settlement.CreatorEarning",
        on_delete=models.PROTECT,
        related_name="line_items",
    )

    item_id = models.CharField(max_length=255)

    purchase_id = models.UUIDField()

    net_minor = models.BigIntegerField()

    currency = models.CharField(max_length=3)

    earned_at = models.DateTimeField()

    class Meta:
        ordering = ["earned_at"]
        verbose_name = "Payout Line Item"
        verbose_name_plural = "Payout Line Items"
        constraints = [
            models.UniqueConstraint(
                fields=["payout", "earning"],
                name="payout_line_item_unique_earning",
            ),
        ]

    def __str__(self) -> str:
        return f"PayoutLineItem({self.payout_id}, {self.earning_id})"
