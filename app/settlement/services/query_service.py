"""
Read-side queries behind the settlement API.
"""

from __future__ import annotations

import uuid
from datetime import date

from django.db.models import Count, Q, QuerySet, Sum

from core.services import BaseService

from settlement.models import CreatorEarning, Payout, Purchase
from settlement.periods import period_bounds


class SettlementQueryService(BaseService):
    @classmethod
    def purchase_status(cls, buyer_id: str, item_id: str) -> Purchase | None:
        """Most recent purchase of an item by a buyer."""
        return (
            Purchase.objects.filter(buyer_id=buyer_id, item_id=item_id)
            .order_by("-created_at")
            .first()
        )

    @classmethod
    def earnings_summary(
        cls,
        creator_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> list[dict]:
        """
        Per-currency earnings totals for a creator over a period.

        Totals:
            total_gross_minor, total_fee_minor, total_net_minor: every
                earning in the period, whatever its state

        Buckets:
            unpaid_net_minor: eligible for the next batch
            reserved_net_minor: held by a pending payout
            paid_net_minor: settled by a paid payout
            voided_net_minor: reversed before payout
            clawback_net_minor: reversed after payout or reservation
        """
        window_start, window_end = period_bounds(period_start, period_end)
        active = Q(is_voided=False, reversed_at__isnull=True)

        rows = (
            CreatorEarning.objects.filter(creator_id=creator_id)
            .in_period(window_start, window_end)
            .values("currency")
            .annotate(
                earnings_count=Count("id"),
                total_gross_minor=Sum("gross_minor", default=0),
                total_fee_minor=Sum("fee_minor", default=0),
                total_net_minor=Sum("net_minor", default=0),
                unpaid_net_minor=Sum(
                    "net_minor",
                    filter=active & Q(payout__isnull=True, paid_out=False),
                    default=0,
                ),
                reserved_net_minor=Sum(
                    "net_minor",
                    filter=active & Q(payout__isnull=False, paid_out=False),
                    default=0,
                ),
                paid_net_minor=Sum(
                    "net_minor",
                    filter=Q(paid_out=True, clawback_required=False),
                    default=0,
                ),
                voided_net_minor=Sum("net_minor", filter=Q(is_voided=True), default=0),
                clawback_net_minor=Sum(
                    "net_minor", filter=Q(clawback_required=True), default=0
                ),
            )
            .order_by("currency")
        )
        return list(rows)

    @classmethod
    def payout_history(cls, creator_id: uuid.UUID) -> QuerySet[Payout]:
        return Payout.objects.filter(creator_id=creator_id).order_by("-created_at")
