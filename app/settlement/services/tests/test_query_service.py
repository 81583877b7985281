"""
Tests for SettlementQueryService and CreatorService.

Tests cover:
- Purchase status lookup by buyer and item
- Earnings summary buckets per currency
- Payout history ordering
- Verification status derived from the connected account
- Syncing account capabilities onto the creator
"""

from datetime import date

import pytest
from django.utils import timezone

from settlement.adapters import AccountResult
from settlement.models import Creator
from settlement.services import CreatorService, SettlementQueryService
from settlement.state_machines import VerificationStatus
from settlement.tests.factories import (
    CreatorEarningFactory,
    CreatorFactory,
    PayoutFactory,
    PurchaseFactory,
    aware,
)

JANUARY = (date(2024, 1, 1), date(2024, 1, 31))


# =============================================================================
# Purchase Status Tests
# =============================================================================


@pytest.mark.django_db
class TestPurchaseStatus:
    def test_returns_most_recent_purchase(self, creator):
        PurchaseFactory(creator=creator, buyer_id="buyer_1", item_id="item_1")
        latest = PurchaseFactory(creator=creator, buyer_id="buyer_1", item_id="item_1")

        assert SettlementQueryService.purchase_status("buyer_1", "item_1").id == latest.id

    def test_other_buyer_is_not_matched(self, creator):
        PurchaseFactory(creator=creator, buyer_id="buyer_1", item_id="item_1")

        assert SettlementQueryService.purchase_status("buyer_2", "item_1") is None


# =============================================================================
# Earnings Summary Tests
# =============================================================================


@pytest.mark.django_db
class TestEarningsSummary:
    """Tests for earnings_summary."""

    def test_buckets(self, creator, reserved_payout):
        CreatorEarningFactory(creator=creator)
        CreatorEarningFactory(creator=creator, is_voided=True, reversed_at=timezone.now())
        CreatorEarningFactory(
            creator=creator,
            paid_out=True,
            clawback_required=True,
            reversed_at=timezone.now(),
        )

        (row,) = SettlementQueryService.earnings_summary(creator.id, *JANUARY)

        assert row["currency"] == "usd"
        assert row["earnings_count"] == 6
        assert row["total_gross_minor"] == 60_000
        assert row["total_fee_minor"] == 18_000
        assert row["total_net_minor"] == 42_000
        assert row["unpaid_net_minor"] == 7000
        assert row["reserved_net_minor"] == 21_000
        assert row["paid_net_minor"] == 0
        assert row["voided_net_minor"] == 7000
        assert row["clawback_net_minor"] == 7000

    def test_paid_bucket(self, creator):
        CreatorEarningFactory(creator=creator, paid_out=True)

        (row,) = SettlementQueryService.earnings_summary(creator.id, *JANUARY)

        assert row["paid_net_minor"] == 7000
        assert row["unpaid_net_minor"] == 0

    def test_one_row_per_currency(self, creator):
        CreatorEarningFactory(creator=creator, currency="usd")
        CreatorEarningFactory(creator=creator, currency="eur", gross_minor=5000)

        rows = SettlementQueryService.earnings_summary(creator.id, *JANUARY)

        assert [row["currency"] for row in rows] == ["eur", "usd"]
        assert rows[0]["total_net_minor"] == 3500

    def test_period_is_inclusive_of_end_date(self, creator):
        CreatorEarningFactory(creator=creator, earned_at=aware(2024, 1, 31, 23))
        CreatorEarningFactory(creator=creator, earned_at=aware(2024, 2, 1, 0))

        (row,) = SettlementQueryService.earnings_summary(creator.id, *JANUARY)

        assert row["earnings_count"] == 1

    def test_no_earnings(self, creator):
        assert SettlementQueryService.earnings_summary(creator.id, *JANUARY) == []


@pytest.mark.django_db
class TestPayoutHistory:
    def test_newest_first(self, creator):
        older = PayoutFactory(creator=creator)
        newer = PayoutFactory(creator=creator, period_start=date(2024, 2, 1), period_end=date(2024, 2, 29))
        PayoutFactory()

        history = list(SettlementQueryService.payout_history(creator.id))

        assert [p.id for p in history] == [newer.id, older.id]


# =============================================================================
# Creator Service Tests
# =============================================================================


def account(**overrides) -> AccountResult:
    values = {
        "id": "acct_creator_1",
        "payouts_enabled": True,
        "charges_enabled": True,
        "details_submitted": True,
    }
    values.update(overrides)
    return AccountResult(**values)


class TestVerificationStatusFor:
    @pytest.mark.parametrize(
        "overrides,expected",
        [
            ({}, VerificationStatus.VERIFIED),
            ({"details_submitted": False}, VerificationStatus.PENDING),
            ({"payouts_enabled": False}, VerificationStatus.PENDING),
            ({"disabled_reason": "requirements.past_due"}, VerificationStatus.PENDING),
            ({"disabled_reason": "rejected.fraud"}, VerificationStatus.REJECTED),
        ],
    )
    def test_status(self, overrides, expected):
        assert CreatorService.verification_status_for(account(**overrides)) == expected


@pytest.mark.django_db
class TestSyncAccount:
    def test_updates_creator(self, creator):
        synced = CreatorService.sync_account(
            account(payouts_enabled=False, disabled_reason="rejected.terms_of_service")
        )

        assert synced.id == creator.id
        creator = Creator.objects.get(id=creator.id)
        assert not creator.payouts_enabled
        assert creator.verification_status == VerificationStatus.REJECTED
        assert not Creator.objects.eligible_for_payout().filter(id=creator.id).exists()

    def test_verifies_onboarded_creator(self):
        creator = CreatorFactory(
            stripe_account_id="acct_new",
            verification_status=VerificationStatus.PENDING,
            payouts_enabled=False,
        )

        CreatorService.sync_account(account(id="acct_new"))

        creator.refresh_from_db()
        assert creator.verification_status == VerificationStatus.VERIFIED
        assert creator.payouts_enabled

    def test_unknown_account(self, db):
        assert CreatorService.sync_account(account(id="acct_unknown")) is None
