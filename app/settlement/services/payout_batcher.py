"""
Payout batcher.

Groups unpaid earnings per (creator, currency) earned before a period
end, older remainders included, and reserves each group above the
creator's threshold into a pending Payout.

Reservation:
    The claim is a single conditional UPDATE that attaches every still
    eligible earning to the new payout. Totals are then taken from the
    rows actually claimed, so an earning reserved by a concurrent run is
    silently left out. If nothing (or too little) was claimed the payout
    insert is rolled back and the group counts as a conflict.

Usage:
    from settlement.services import PayoutBatcher

    result = PayoutBatcher.run(date(2024, 1, 1), date(2024, 1, 31))
    for payout in result.payouts:
        SettlementService.settle(payout.id)
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from datetime import date
from typing import TYPE_CHECKING

from django.db import DatabaseError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from core.services import BaseService

from settlement.exceptions import PersistenceError, ReservationConflictError
from settlement.models import Creator, CreatorEarning, Payout, PayoutLineItem
from settlement.periods import period_bounds
from settlement.types import BatchResult, PayoutGroup

if TYPE_CHECKING:
    from settlement.models import PayoutRun


class GroupOutcome:
    RESERVED = "reserved"
    BELOW_THRESHOLD = "below_threshold"
    CONFLICT = "conflict"
    DRY_RUN = "dry_run"


class PayoutBatcher(BaseService):
    """Reserves unpaid earnings into pending payouts."""

    @classmethod
    def run(
        cls,
        period_start: date,
        period_end: date,
        *,
        dry_run: bool = False,
        creator_id: uuid.UUID | None = None,
        run: PayoutRun | None = None,
    ) -> BatchResult:
        """Evaluate every eligible group and return the collected outcomes."""
        return BatchResult(
            groups=list(
                cls.iter_groups(
                    period_start,
                    period_end,
                    dry_run=dry_run,
                    creator_id=creator_id,
                    run=run,
                )
            )
        )

    @classmethod
    def iter_groups(
        cls,
        period_start: date,
        period_end: date,
        *,
        dry_run: bool = False,
        creator_id: uuid.UUID | None = None,
        run: PayoutRun | None = None,
    ) -> Iterator[PayoutGroup]:
        """
        Yield each (creator, currency) group as soon as it is decided.

        Reserved groups are committed before they are yielded, so a caller
        can hand each payout to settlement straight away.

        Raises:
            SettlementValidationError: If period_end is before period_start
            PersistenceError: On a database failure; groups already yielded
                stay committed
        """
        _, window_end = period_bounds(period_start, period_end)

        creators = Creator.objects.eligible_for_payout().order_by("created_at")
        if creator_id is not None:
            creators = creators.filter(id=creator_id)

        try:
            creator_list = list(creators)
        except DatabaseError as e:
            raise PersistenceError(f"Failed to load creators: {e}") from e

        for creator in creator_list:
            try:
                totals = list(
                    CreatorEarning.objects.eligible_for_batch()
                    .filter(creator=creator)
                    .earned_before(window_end)
                    .values("currency")
                    .annotate(net=Sum("net_minor"), count=Count("id"))
                    .order_by("currency")
                )
            except DatabaseError as e:
                raise PersistenceError(
                    f"Failed to read earnings for creator {creator.id}: {e}",
                    details={"creator_id": str(creator.id)},
                ) from e

            threshold = creator.effective_minimum_payout_minor
            for row in totals:
                group = PayoutGroup(
                    creator_id=creator.id,
                    currency=row["currency"],
                    net_minor=row["net"] or 0,
                    earnings_count=row["count"],
                    threshold_minor=threshold,
                )

                if group.net_minor <= 0 or group.net_minor < threshold:
                    group.outcome = GroupOutcome.BELOW_THRESHOLD
                elif dry_run:
                    group.outcome = GroupOutcome.DRY_RUN
                else:
                    try:
                        group.payout = cls.reserve(
                            creator=creator,
                            currency=group.currency,
                            period_start=period_start,
                            period_end=period_end,
                            threshold_minor=threshold,
                            run=run,
                        )
                        group.outcome = GroupOutcome.RESERVED
                    except ReservationConflictError:
                        group.outcome = GroupOutcome.CONFLICT
                    except DatabaseError as e:
                        raise PersistenceError(
                            f"Failed to reserve payout for creator {creator.id}: {e}",
                            details={
                                "creator_id": str(creator.id),
                                "currency": group.currency,
                            },
                        ) from e

                cls.get_logger().info(
                    "Payout group evaluated",
                    extra={
                        "creator_id": str(creator.id),
                        "currency": group.currency,
                        "net_minor": group.net_minor,
                        "threshold_minor": threshold,
                        "outcome": group.outcome,
                        "payout_id": str(group.payout.id) if group.payout else None,
                    },
                )
                yield group

    @classmethod
    def reserve(
        cls,
        *,
        creator: Creator,
        currency: str,
        period_start: date,
        period_end: date,
        threshold_minor: int,
        run: PayoutRun | None = None,
    ) -> Payout:
        """
        Atomically claim the group's eligible earnings into a new payout.

        Raises:
            ReservationConflictError: If a concurrent run claimed the
                earnings first; nothing is persisted
        """
        _, window_end = period_bounds(period_start, period_end)

        with transaction.atomic():
            expected = (
                CreatorEarning.objects.eligible_for_batch()
                .filter(creator=creator, currency=currency)
                .earned_before(window_end)
                .aggregate(net=Sum("net_minor"))["net"]
                or 0
            )
            if expected <= 0:
                raise ReservationConflictError(
                    "No eligible earnings left to reserve",
                    details={"creator_id": str(creator.id), "currency": currency},
                )

            payout = Payout.objects.create(
                creator=creator,
                run=run,
                currency=currency,
                period_start=period_start,
                period_end=period_end,
                gross_minor=0,
                net_minor=expected,
            )

            claimed = (
                CreatorEarning.objects.eligible_for_batch()
                .filter(creator=creator, currency=currency)
                .earned_before(window_end)
                .update(payout=payout, updated_at=timezone.now())
            )

            totals = CreatorEarning.objects.filter(payout=payout).aggregate(
                gross=Sum("gross_minor"),
                net=Sum("net_minor"),
                count=Count("id"),
            )
            net_minor = totals["net"] or 0
            if not claimed or net_minor <= 0 or net_minor < threshold_minor:
                raise ReservationConflictError(
                    "Reservation lost to a concurrent run",
                    details={
                        "creator_id": str(creator.id),
                        "currency": currency,
                        "claimed": claimed,
                        "net_minor": net_minor,
                    },
                )

            payout.gross_minor = totals["gross"]
            payout.net_minor = net_minor
            payout.earnings_count = totals["count"]
            payout.save(
                update_fields=["gross_minor", "net_minor", "earnings_count", "updated_at"]
            )

            PayoutLineItem.objects.bulk_create(
                [
                    PayoutLineItem(
                        payout=payout,
                        earning_id=row["id"],
                        item_id=row["item_id"],
                        purchase_id=row["purchase_id"],
                        net_minor=row["net_minor"],
                        currency=row["currency"],
                        earned_at=row["earned_at"],
                    )
                    for row in CreatorEarning.objects.filter(payout=payout).values(
                        "id", "item_id", "purchase_id", "net_minor", "currency", "earned_at"
                    )
                ]
            )

        cls.get_logger().info(
            "Payout reserved",
            extra={
                "payout_id": str(payout.id),
                "creator_id": str(creator.id),
                "currency": currency,
                "net_minor": payout.net_minor,
                "earnings_count": payout.earnings_count,
            },
        )
        return payout

