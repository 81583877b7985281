"""
Pytest fixtures for settlement tests.

This module provides fixtures shared by the model, service, webhook and
task tests: creators, purchases and earnings in the January 2024 test
period, payouts in each state, and a mocked Stripe adapter.

Usage:
    def test_settle_pays_creator(stripe_adapter, reserved_payout):
        result = SettlementService.settle(reserved_payout.id)
        assert result.success
"""

from datetime import date
from unittest.mock import MagicMock

import pytest
from django.utils import timezone

from settlement.adapters import AccountResult, TransferResult
from settlement.services import PayoutBatcher, SettlementService
from settlement.state_machines import PayoutState, PurchaseKind, VerificationStatus
from settlement.tests.factories import (
    CreatorEarningFactory,
    CreatorFactory,
    PayoutFactory,
    PurchaseFactory,
    aware,
)

PERIOD_START = date(2024, 1, 1)
PERIOD_END = date(2024, 1, 31)


# =============================================================================
# Creator Fixtures
# =============================================================================


@pytest.fixture
def creator(db):
    """Verified creator whose connected account can receive transfers."""
    return CreatorFactory(stripe_account_id="acct_creator_1")


@pytest.fixture
def unverified_creator(db):
    """Creator still in onboarding."""
    return CreatorFactory(
        verification_status=VerificationStatus.PENDING,
        payouts_enabled=False,
    )


# =============================================================================
# Purchase Fixtures
# =============================================================================


@pytest.fixture
def pending_purchase(db, creator):
    """One-off purchase recorded at checkout start."""
    return PurchaseFactory(creator=creator, external_charge_ref="cs_test_pending")


@pytest.fixture
def active_purchase(db, creator):
    """One-off purchase confirmed by checkout.session.completed."""
    purchase = PurchaseFactory(
        creator=creator,
        external_charge_ref="cs_test_active",
        external_payment_ref="pi_test_active",
    )
    purchase.activate()
    purchase.save()
    return purchase


@pytest.fixture
def active_subscription(db, creator):
    """Active subscription purchase with a known Stripe subscription."""
    purchase = PurchaseFactory(
        creator=creator,
        kind=PurchaseKind.SUBSCRIPTION,
        amount_minor=2900,
        external_charge_ref="cs_test_subscription",
        external_subscription_ref="sub_test_1",
    )
    purchase.activate()
    purchase.save()
    return purchase


# =============================================================================
# Earning & Payout Fixtures
# =============================================================================


@pytest.fixture
def january_earnings(db, creator):
    """Three unpaid USD earnings of $100 gross (70% share) in January 2024."""
    return [
        CreatorEarningFactory(creator=creator, earned_at=aware(2024, 1, day))
        for day in (3, 15, 28)
    ]


@pytest.fixture
def reserved_payout(db, creator, january_earnings):
    """Pending payout reserving january_earnings ($210 net)."""
    return PayoutBatcher.reserve(
        creator=creator,
        currency="usd",
        period_start=PERIOD_START,
        period_end=PERIOD_END,
        threshold_minor=5000,
    )


@pytest.fixture
def requested_payout(db, reserved_payout):
    """Pending payout whose transfer call was already issued."""
    from settlement.models import Payout

    Payout.objects.filter(id=reserved_payout.id).update(
        transfer_requested_at=timezone.now()
    )
    return Payout.objects.get(id=reserved_payout.id)


@pytest.fixture
def paid_payout(db, creator):
    """Payout already confirmed paid."""
    payout = PayoutFactory(creator=creator)
    payout.mark_paid("tr_test_paid")
    payout.save()
    return payout


@pytest.fixture
def failed_payout(db, creator):
    payout = PayoutFactory(creator=creator)
    payout.fail("Connected account has payouts disabled")
    payout.save()
    assert payout.status == PayoutState.FAILED
    return payout


# =============================================================================
# Stripe Adapter Fixtures
# =============================================================================


@pytest.fixture
def stripe_adapter():
    """
    Mocked Stripe adapter injected into SettlementService.

    Defaults: the account can receive transfers and create_transfer
    returns tr_test_123 for whatever amount was requested.
    """
    adapter = MagicMock()

    def _account(account_id):
        return AccountResult(
            id=account_id,
            payouts_enabled=True,
            charges_enabled=True,
            details_submitted=True,
        )

    def _transfer(**kwargs):
        return TransferResult(
            id="tr_test_123",
            amount_minor=kwargs["amount_minor"],
            currency=kwargs["currency"],
            destination_account=kwargs["destination_account"],
            metadata=kwargs.get("metadata") or {},
        )

    adapter.retrieve_account.side_effect = _account
    adapter.create_transfer.side_effect = _transfer

    SettlementService.set_stripe_adapter(adapter)
    yield adapter
    SettlementService.set_stripe_adapter(None)


# =============================================================================
# Report & Notification Fixtures
# =============================================================================


@pytest.fixture
def report_storage(settings, tmp_path):
    """Write payout reports under a temporary MEDIA_ROOT."""
    settings.MEDIA_ROOT = str(tmp_path)
    settings.MEDIA_URL = "/uploads/"
    return tmp_path


@pytest.fixture
def notification_recipients(settings):
    settings.SETTLEMENT_NOTIFICATION_RECIPIENTS = ["payouts-ops@example.com"]
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    return settings.SETTLEMENT_NOTIFICATION_RECIPIENTS
