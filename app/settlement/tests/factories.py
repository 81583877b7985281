"""
Factory Boy factories for settlement test data.

Usage:
    from settlement.tests.factories import (
        CreatorFactory,
        CreatorEarningFactory,
        PayoutFactory,
        PurchaseFactory,
        WebhookEventFactory,
    )

    # Verified creator with a connected account
    creator = CreatorFactory()

    # Unpaid earning for that creator, earned mid-January 2024
    earning = CreatorEarningFactory(
        creator=creator,
        earned_at=datetime(2024, 1, 15, tzinfo=UTC),
    )
"""

import uuid
from datetime import UTC, date, datetime

import factory

from settlement.calculator import split
from settlement.models import (
    Creator,
    CreatorEarning,
    Payout,
    PayoutRun,
    Purchase,
    WebhookEvent,
)
from settlement.state_machines import (
    PurchaseKind,
    VerificationStatus,
    WebhookEventStatus,
)

# Mid-period timestamp for January 2024, the default test period
JANUARY_15 = datetime(2024, 1, 15, 12, 0, tzinfo=UTC)


class CreatorFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Creator instances.

    Default creates a verified creator whose connected account can receive
    transfers.

    Example:
        # Creator still in onboarding
        creator = CreatorFactory(
            verification_status=VerificationStatus.PENDING,
            payouts_enabled=False,
        )
    """

    class Meta:
        model = Creator
        skip_postgeneration_save = True

    display_name = factory.Sequence(lambda n: f"Creator {n}")
    email = factory.Sequence(lambda n: f"creator{n}@example.com")
    stripe_account_id = factory.Sequence(
        lambda n: f"acct_test_{n}_{uuid.uuid4().hex[:8]}"
    )
    verification_status = VerificationStatus.VERIFIED
    payouts_enabled = True
    charges_enabled = True


class PurchaseFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Purchase instances.

    Default creates a PENDING one-off purchase of $100 with a 70% creator
    share. Use the FSM transitions (purchase.activate()) to change status.
    """

    class Meta:
        model = Purchase
        skip_postgeneration_save = True

    tenant_id = "tenant_1"
    buyer_id = factory.Sequence(lambda n: f"buyer_{n}")
    item_id = factory.Sequence(lambda n: f"item_{n}")
    creator = factory.SubFactory(CreatorFactory)
    revenue_share_bps = 7000
    external_charge_ref = factory.Sequence(
        lambda n: f"cs_test_{n}_{uuid.uuid4().hex[:8]}"
    )
    currency = "usd"
    amount_minor = 10000
    kind = PurchaseKind.ONE_OFF


class CreatorEarningFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating CreatorEarning instances.

    Fee and net are derived from gross and revenue_share_bps, so the
    gross = fee + net constraint always holds.

    Example:
        earning = CreatorEarningFactory(creator=creator, gross_minor=2900)
    """

    class Meta:
        model = CreatorEarning
        skip_postgeneration_save = True

    creator = factory.SubFactory(CreatorFactory)
    purchase = factory.SubFactory(
        PurchaseFactory, creator=factory.SelfAttribute("..creator")
    )
    item_id = factory.SelfAttribute("purchase.item_id")
    gross_minor = 10000
    revenue_share_bps = 7000
    fee_minor = factory.LazyAttribute(
        lambda o: split(o.gross_minor, o.revenue_share_bps).fee_minor
    )
    net_minor = factory.LazyAttribute(
        lambda o: split(o.gross_minor, o.revenue_share_bps).net_minor
    )
    currency = "usd"
    earned_at = JANUARY_15
    source_ref = factory.Sequence(lambda n: f"pi_test_{n}_{uuid.uuid4().hex[:8]}")
    charge_ref = factory.SelfAttribute("source_ref")
    dedupe_key = factory.LazyAttribute(lambda o: f"{o.purchase.id}:{o.source_ref}")


class PayoutRunFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = PayoutRun
        skip_postgeneration_save = True

    period_start = date(2024, 1, 1)
    period_end = date(2024, 1, 31)


class PayoutFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating Payout instances.

    Default creates a PENDING $70 payout for January 2024 with no earnings
    attached. Prefer PayoutBatcher.reserve() when earnings matter.
    """

    class Meta:
        model = Payout
        skip_postgeneration_save = True

    creator = factory.SubFactory(CreatorFactory)
    currency = "usd"
    period_start = date(2024, 1, 1)
    period_end = date(2024, 1, 31)
    gross_minor = 10000
    net_minor = 7000
    earnings_count = 1


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for creating WebhookEvent instances.

    Default creates a PENDING account.updated event for an unknown account.
    """

    class Meta:
        model = WebhookEvent
        skip_postgeneration_save = True

    stripe_event_id = factory.Sequence(lambda n: f"evt_test_{n}_{uuid.uuid4().hex[:8]}")
    event_type = "account.updated"
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.stripe_event_id,
            "type": o.event_type,
            "data": {
                "object": {
                    "id": "acct_unknown",
                    "payouts_enabled": True,
                    "charges_enabled": True,
                    "details_submitted": True,
                }
            },
        }
    )
    status = WebhookEventStatus.PENDING


def aware(year: int, month: int, day: int, hour: int = 12) -> datetime:
    """UTC datetime helper for earned_at values."""
    return datetime(year, month, day, hour, tzinfo=UTC)
