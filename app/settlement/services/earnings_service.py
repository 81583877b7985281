"""
Earnings accumulator.

Converts purchase and renewal signals into CreatorEarning rows. Rows are
append-only: amounts never change after insert and reversals only set
flags.

Reversal Rules:
    - Unpaid and unreserved: voided, excluded from every future batch
    - Reserved by a pending payout or already paid: flagged for clawback,
      an operator alert is raised, the payout itself is not touched
"""

from __future__ import annotations

import uuid
from datetime import datetime
from functools import partial

from django.db import IntegrityError, transaction
from django.utils import timezone

from core.services import BaseService

from settlement.calculator import split
from settlement.exceptions import UnknownReferenceError
from settlement.models import Creator, CreatorEarning
from settlement.services.report_service import ReportService


def earning_dedupe_key(purchase_id: uuid.UUID, source_ref: str) -> str:
    """One earning per purchase and charge/invoice reference."""
    return f"{purchase_id}:{source_ref}"


class EarningsService(BaseService):
    """Records and reverses creator earnings."""

    @classmethod
    def record_earning(
        cls,
        *,
        creator_id: uuid.UUID,
        purchase_id: uuid.UUID,
        item_id: str,
        source_ref: str,
        gross_minor: int,
        currency: str,
        revenue_share_bps: int,
        charge_ref: str | None = None,
        earned_at: datetime | None = None,
    ) -> CreatorEarning:
        """
        Record the earning for one purchase charge or renewal invoice.

        Calling twice with the same purchase and source_ref returns the
        existing row unchanged.

        Args:
            creator_id: Creator owed the earning
            purchase_id: Purchase the revenue came from
            item_id: Item that generated the revenue
            source_ref: Charge or invoice reference (part of the dedupe key)
            gross_minor: Gross amount in minor units
            currency: ISO 4217 currency code
            revenue_share_bps: Creator share in basis points
            charge_ref: Provider charge reference used to match refunds
            earned_at: When the revenue was recognised (defaults to now)

        Raises:
            InvalidRevenueShareError: If the share or gross is out of range
            UnknownReferenceError: If the creator does not exist
        """
        dedupe_key = earning_dedupe_key(purchase_id, source_ref)

        existing = CreatorEarning.objects.filter(dedupe_key=dedupe_key).first()
        if existing is not None:
            cls.get_logger().info(
                "Earning already recorded",
                extra={"earning_id": str(existing.id), "dedupe_key": dedupe_key},
            )
            return existing

        amounts = split(gross_minor, revenue_share_bps)

        if not Creator.objects.filter(id=creator_id).exists():
            raise UnknownReferenceError(
                "Creator not found",
                error_code="CREATOR_NOT_FOUND",
                details={"creator_id": str(creator_id)},
            )

        try:
            with transaction.atomic():
                earning = CreatorEarning.objects.create(
                    creator_id=creator_id,
                    purchase_id=purchase_id,
                    item_id=item_id,
                    gross_minor=gross_minor,
                    fee_minor=amounts.fee_minor,
                    net_minor=amounts.net_minor,
                    currency=currency.lower(),
                    revenue_share_bps=revenue_share_bps,
                    earned_at=earned_at or timezone.now(),
                    dedupe_key=dedupe_key,
                    source_ref=source_ref,
                    charge_ref=charge_ref,
                )
        except IntegrityError:
            return CreatorEarning.objects.get(dedupe_key=dedupe_key)

        cls.get_logger().info(
            "Earning recorded",
            extra={
                "earning_id": str(earning.id),
                "creator_id": str(creator_id),
                "purchase_id": str(purchase_id),
                "gross_minor": gross_minor,
                "net_minor": amounts.net_minor,
                "currency": earning.currency,
            },
        )
        return earning

    @classmethod
    def reverse_earning(
        cls,
        purchase_id: uuid.UUID,
        earning_id: uuid.UUID | None = None,
    ) -> list[CreatorEarning]:
        """
        Reverse the earnings of a refunded or disputed purchase.

        Args:
            purchase_id: Refunded purchase
            earning_id: Restrict the reversal to one earning (a refunded renewal)

        Returns:
            Earnings reversed by this call
        """
        candidates = CreatorEarning.objects.filter(
            purchase_id=purchase_id, reversed_at__isnull=True
        )
        if earning_id is not None:
            candidates = candidates.filter(id=earning_id)

        reversed_ids = []
        for candidate_id in list(candidates.values_list("id", flat=True)):
            now = timezone.now()

            voided = CreatorEarning.objects.filter(
                id=candidate_id,
                payout__isnull=True,
                paid_out=False,
                reversed_at__isnull=True,
            ).update(is_voided=True, voided_at=now, reversed_at=now, updated_at=now)
            if voided:
                reversed_ids.append(candidate_id)
                cls.get_logger().info(
                    "Unpaid earning voided",
                    extra={"earning_id": str(candidate_id), "purchase_id": str(purchase_id)},
                )
                continue

            # Reserved or paid: the reservation claim won the race
            flagged = CreatorEarning.objects.filter(
                id=candidate_id, reversed_at__isnull=True
            ).update(clawback_required=True, reversed_at=now, updated_at=now)
            if flagged:
                reversed_ids.append(candidate_id)
                cls._alert_clawback(candidate_id)

        return list(CreatorEarning.objects.filter(id__in=reversed_ids))

    @classmethod
    def _alert_clawback(cls, earning_id: uuid.UUID) -> None:
        earning = CreatorEarning.objects.get(id=earning_id)
        details = {
            "earning_id": str(earning.id),
            "creator_id": str(earning.creator_id),
            "purchase_id": str(earning.purchase_id),
            "payout_id": str(earning.payout_id) if earning.payout_id else "",
            "net_minor": earning.net_minor,
            "currency": earning.currency,
            "paid_out": earning.paid_out,
        }
        cls.get_logger().warning("Earning reversed after payout; clawback required", extra=details)
        transaction.on_commit(
            partial(
                ReportService.send_reconciliation_alert,
                "Clawback required for reversed earning",
                details,
            )
        )
