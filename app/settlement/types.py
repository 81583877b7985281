"""
Data types for settlement operations.

This module defines dataclasses used between the webhook layer, the
services and the batch tasks.

Types:
    PurchaseIntent: What the checkout flow supplies when a purchase starts
    CheckoutResult: Outcome of upserting a purchase from a confirmed checkout
    RenewalSignal: A paid subscription invoice to record as an earning
    RefundMatch: Purchase (and optionally one earning) hit by a refund
    PayoutGroup: One (creator, currency) group evaluated by the batcher
    BatchResult: Outcome of one batcher pass

Usage:
    from settlement.types import PurchaseIntent

    intent = PurchaseIntent(
        tenant_id="tenant_1",
        buyer_id="user_1",
        item_id="item_1",
        currency="usd",
        amount_minor=2900,
        kind=PurchaseKind.ONE_OFF,
        revenue_share_bps=7000,
        creator_id=creator.id,
    )
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from settlement.models import CreatorEarning, Payout, Purchase


@dataclass(frozen=True)
class PurchaseIntent:
    """
    Purchase data supplied by the front-end checkout flow.

    Attributes:
        tenant_id: Marketplace tenant
        buyer_id: Buyer identity
        item_id: Item being bought
        currency: ISO 4217 currency code (lowercase)
        amount_minor: Price in minor units
        kind: PurchaseKind value
        revenue_share_bps: Creator share in basis points
        creator_id: Creator owed the revenue
    """

    tenant_id: str
    buyer_id: str
    item_id: str
    currency: str
    amount_minor: int
    kind: str
    revenue_share_bps: int
    creator_id: uuid.UUID


@dataclass
class CheckoutResult:
    """
    Result of upserting a purchase from a confirmed checkout.

    Attributes:
        purchase: The purchase row
        activated: True only for the call that moved it to ACTIVE
    """

    purchase: Purchase
    activated: bool


@dataclass(frozen=True)
class RenewalSignal:
    """
    A paid renewal invoice for a known subscription purchase.

    Attributes:
        purchase: Subscription purchase that renewed
        invoice_ref: Stripe invoice ID (in_xxx)
        amount_minor: Invoice amount paid
        charge_ref: PaymentIntent/charge that paid the invoice, if known
    """

    purchase: Purchase
    invoice_ref: str
    amount_minor: int
    charge_ref: str | None = None


@dataclass
class RefundMatch:
    """
    Purchase hit by a refund or dispute.

    Attributes:
        purchase: Refunded purchase
        earning: The specific renewal earning the charge paid for, when the
            refunded charge belongs to one renewal rather than the checkout
    """

    purchase: Purchase
    earning: CreatorEarning | None = None


@dataclass
class PayoutGroup:
    """
    One (creator, currency) group considered by the batcher.

    Attributes:
        creator_id: Creator of the group
        currency: Currency of the group
        net_minor: Unpaid net at evaluation time
        earnings_count: Unpaid earnings at evaluation time
        threshold_minor: Effective minimum payout
        outcome: reserved, below_threshold, conflict, or dry_run
        payout: Payout created for the group, if reserved
    """

    creator_id: uuid.UUID
    currency: str
    net_minor: int
    earnings_count: int
    threshold_minor: int
    outcome: str = ""
    payout: Payout | None = None


@dataclass
class BatchResult:
    """Outcome of one batcher pass over the eligible creators."""

    groups: list[PayoutGroup] = field(default_factory=list)

    @property
    def payouts(self) -> list[Payout]:
        return [g.payout for g in self.groups if g.payout is not None]

    def count(self, outcome: str) -> int:
        return sum(1 for g in self.groups if g.outcome == outcome)
