"""
Tests for PurchaseLedgerService.

Tests cover:
- Recording the pending purchase at checkout start
- Upserting from a confirmed checkout (create, activate, redelivery)
- Renewal bookkeeping and first-invoice payment linking
- Status changes that are reachable, unreachable, or for unknown refs
- Refund matching by earning charge, payment ref, or session
"""

import logging
import uuid
from datetime import UTC, datetime

import pytest

from settlement.exceptions import (
    InvalidRevenueShareError,
    SettlementValidationError,
    UnknownReferenceError,
)
from settlement.models import Purchase
from settlement.services import PurchaseLedgerService
from settlement.state_machines import PurchaseKind, PurchaseStatus
from settlement.tests.factories import CreatorEarningFactory
from settlement.types import PurchaseIntent


def make_intent(creator, **overrides) -> PurchaseIntent:
    values = {
        "tenant_id": "tenant_1",
        "buyer_id": "buyer_1",
        "item_id": "item_1",
        "currency": "USD",
        "amount_minor": 2900,
        "kind": PurchaseKind.ONE_OFF,
        "revenue_share_bps": 7000,
        "creator_id": creator.id,
    }
    values.update(overrides)
    return PurchaseIntent(**values)


def checkout_kwargs(**overrides) -> dict:
    values = {
        "charge_ref": "cs_test_checkout",
        "tenant_id": "tenant_1",
        "buyer_id": "buyer_1",
        "item_id": "item_1",
        "amount_minor": 2900,
        "currency": "usd",
        "kind": PurchaseKind.ONE_OFF,
    }
    values.update(overrides)
    return values


# =============================================================================
# Checkout Intent Tests
# =============================================================================


@pytest.mark.django_db
class TestRecordCheckoutIntent:
    """Tests for record_checkout_intent."""

    def test_creates_pending_purchase(self, creator):
        purchase = PurchaseLedgerService.record_checkout_intent(
            make_intent(creator), "cs_intent_1", customer_ref="cus_1"
        )

        assert purchase.status == PurchaseStatus.PENDING
        assert purchase.creator_id == creator.id
        assert purchase.revenue_share_bps == 7000
        assert purchase.currency == "usd"
        assert purchase.external_customer_ref == "cus_1"
        assert purchase.fingerprint

    def test_same_charge_ref_returns_existing(self, creator):
        first = PurchaseLedgerService.record_checkout_intent(make_intent(creator), "cs_1")
        second = PurchaseLedgerService.record_checkout_intent(make_intent(creator), "cs_1")

        assert first.id == second.id
        assert Purchase.objects.count() == 1

    def test_rejects_bad_share_before_writing(self, creator):
        with pytest.raises(InvalidRevenueShareError):
            PurchaseLedgerService.record_checkout_intent(
                make_intent(creator, revenue_share_bps=12_000), "cs_1"
            )

        assert not Purchase.objects.exists()

    def test_rejects_unknown_kind(self, creator):
        with pytest.raises(SettlementValidationError, match="Unknown purchase kind"):
            PurchaseLedgerService.record_checkout_intent(
                make_intent(creator, kind="rental"), "cs_1"
            )

    def test_rejects_non_positive_amount(self, creator):
        with pytest.raises(SettlementValidationError):
            PurchaseLedgerService.record_checkout_intent(
                make_intent(creator, amount_minor=0), "cs_1"
            )

    def test_unknown_creator(self, creator):
        intent = make_intent(creator, creator_id=uuid.uuid4())

        with pytest.raises(UnknownReferenceError) as exc_info:
            PurchaseLedgerService.record_checkout_intent(intent, "cs_1")

        assert exc_info.value.error_code == "CREATOR_NOT_FOUND"


# =============================================================================
# Checkout Upsert Tests
# =============================================================================


@pytest.mark.django_db
class TestUpsertFromCheckout:
    """Tests for upsert_from_checkout."""

    def test_creates_active_purchase(self, creator):
        result = PurchaseLedgerService.upsert_from_checkout(
            **checkout_kwargs(
                payment_ref="pi_1",
                creator_id=creator.id,
                revenue_share_bps=7000,
            )
        )

        assert result.activated
        purchase = Purchase.objects.get(id=result.purchase.id)
        assert purchase.status == PurchaseStatus.ACTIVE
        assert purchase.starts_at is not None
        assert purchase.external_payment_ref == "pi_1"
        assert purchase.creator_id == creator.id

    def test_activates_pending_intent(self, creator):
        pending = PurchaseLedgerService.record_checkout_intent(
            make_intent(creator), "cs_test_checkout"
        )

        result = PurchaseLedgerService.upsert_from_checkout(
            **checkout_kwargs(customer_ref="cus_9", payment_ref="pi_9")
        )

        assert result.activated
        assert result.purchase.id == pending.id
        purchase = Purchase.objects.get(id=pending.id)
        assert purchase.status == PurchaseStatus.ACTIVE
        assert purchase.external_customer_ref == "cus_9"
        assert purchase.external_payment_ref == "pi_9"

    def test_intent_creator_wins_over_metadata(self, creator):
        from settlement.tests.factories import CreatorFactory

        other = CreatorFactory()
        PurchaseLedgerService.record_checkout_intent(make_intent(creator), "cs_test_checkout")

        result = PurchaseLedgerService.upsert_from_checkout(
            **checkout_kwargs(creator_id=other.id, revenue_share_bps=9000)
        )

        assert result.purchase.creator_id == creator.id
        assert result.purchase.revenue_share_bps == 7000

    def test_redelivery_does_not_reactivate(self, creator):
        first = PurchaseLedgerService.upsert_from_checkout(**checkout_kwargs())
        second = PurchaseLedgerService.upsert_from_checkout(**checkout_kwargs())

        assert first.activated
        assert not second.activated
        assert first.purchase.id == second.purchase.id
        assert Purchase.objects.count() == 1

    def test_matches_existing_subscription(self, active_subscription):
        result = PurchaseLedgerService.upsert_from_checkout(
            **checkout_kwargs(
                charge_ref="cs_other_session",
                kind=PurchaseKind.SUBSCRIPTION,
                subscription_ref="sub_test_1",
            )
        )

        assert result.purchase.id == active_subscription.id
        assert not result.activated

    def test_unknown_creator_leaves_purchase_unattributed(self):
        result = PurchaseLedgerService.upsert_from_checkout(
            **checkout_kwargs(creator_id=uuid.uuid4(), revenue_share_bps=7000)
        )

        assert result.purchase.creator_id is None
        assert result.purchase.revenue_share_bps is None


# =============================================================================
# Subscription Lifecycle Tests
# =============================================================================


@pytest.mark.django_db
class TestMarkRenewed:
    def test_returns_signal_and_records_invoice(self, active_subscription):
        signal = PurchaseLedgerService.mark_renewed(
            "sub_test_1", "in_2", 2900, charge_ref="pi_2"
        )

        assert signal.purchase.id == active_subscription.id
        assert signal.invoice_ref == "in_2"
        assert signal.amount_minor == 2900
        assert signal.charge_ref == "pi_2"
        assert Purchase.objects.get(id=active_subscription.id).last_invoice_ref == "in_2"

    def test_unknown_subscription(self, db):
        assert PurchaseLedgerService.mark_renewed("sub_missing", "in_1", 100) is None


@pytest.mark.django_db
class TestLinkPaymentRef:
    def test_links_checkout_earning(self, active_subscription):
        earning = CreatorEarningFactory(
            creator=active_subscription.creator,
            purchase=active_subscription,
            source_ref=active_subscription.external_charge_ref,
            charge_ref=None,
        )

        linked = PurchaseLedgerService.link_payment_ref("sub_test_1", "pi_first")

        assert linked
        assert Purchase.objects.get(id=active_subscription.id).external_payment_ref == "pi_first"
        earning.refresh_from_db()
        assert earning.charge_ref == "pi_first"

    def test_does_not_overwrite_existing_ref(self, active_subscription):
        PurchaseLedgerService.link_payment_ref("sub_test_1", "pi_first")

        assert not PurchaseLedgerService.link_payment_ref("sub_test_1", "pi_second")
        assert Purchase.objects.get(id=active_subscription.id).external_payment_ref == "pi_first"

    def test_unknown_subscription(self, db):
        assert not PurchaseLedgerService.link_payment_ref("sub_missing", "pi_1")


@pytest.mark.django_db
class TestMarkStatus:
    """Tests for mark_status."""

    def test_reachable_status(self, active_subscription):
        expires_at = datetime(2024, 2, 1, tzinfo=UTC)

        purchase = PurchaseLedgerService.mark_status(
            "sub_test_1", PurchaseStatus.PAST_DUE, expires_at=expires_at
        )

        assert purchase.status == PurchaseStatus.PAST_DUE
        assert Purchase.objects.get(id=active_subscription.id).expires_at == expires_at

    def test_active_reached_through_reactivate(self, active_subscription):
        PurchaseLedgerService.mark_status("sub_test_1", PurchaseStatus.CANCELING)

        purchase = PurchaseLedgerService.mark_status("sub_test_1", PurchaseStatus.ACTIVE)

        assert purchase.status == PurchaseStatus.ACTIVE

    def test_unreachable_status_is_ignored(self, active_purchase, caplog):
        """Out-of-order delivery: a refunded purchase does not become active."""
        caplog.set_level(logging.INFO)
        PurchaseLedgerService.mark_status(
            active_purchase.external_charge_ref, PurchaseStatus.REFUNDED
        )

        purchase = PurchaseLedgerService.mark_status(
            active_purchase.external_charge_ref, PurchaseStatus.ACTIVE
        )

        assert purchase.status == PurchaseStatus.REFUNDED
        assert "Ignoring unreachable purchase status" in caplog.text

    def test_same_status_is_a_no_op(self, active_subscription):
        purchase = PurchaseLedgerService.mark_status("sub_test_1", PurchaseStatus.ACTIVE)

        assert purchase.status == PurchaseStatus.ACTIVE

    def test_unknown_ref(self, db):
        assert PurchaseLedgerService.mark_status("sub_missing", PurchaseStatus.CANCELED) is None

    def test_rejects_pending_target(self, active_subscription):
        with pytest.raises(SettlementValidationError):
            PurchaseLedgerService.mark_status("sub_test_1", PurchaseStatus.PENDING)


# =============================================================================
# Refund Tests
# =============================================================================


@pytest.mark.django_db
class TestMarkRefunded:
    """Tests for mark_refunded."""

    def test_matches_by_payment_ref(self, active_purchase):
        match = PurchaseLedgerService.mark_refunded("ch_1", payment_ref="pi_test_active")

        assert match.purchase.id == active_purchase.id
        assert match.earning is None
        assert Purchase.objects.get(id=active_purchase.id).status == PurchaseStatus.REFUNDED

    def test_matches_renewal_earning_first(self, active_subscription):
        renewal = CreatorEarningFactory(
            creator=active_subscription.creator,
            purchase=active_subscription,
            source_ref="in_renewal",
            charge_ref="pi_renewal",
        )

        match = PurchaseLedgerService.mark_refunded("ch_renewal", payment_ref="pi_renewal")

        assert match.purchase.id == active_subscription.id
        assert match.earning.id == renewal.id

    def test_unknown_charge(self, db):
        assert PurchaseLedgerService.mark_refunded("ch_missing", "pi_missing") is None

    def test_second_refund_keeps_refunded(self, active_purchase):
        PurchaseLedgerService.mark_refunded("ch_1", payment_ref="pi_test_active")
        match = PurchaseLedgerService.mark_refunded("ch_1", payment_ref="pi_test_active")

        assert match.purchase.status == PurchaseStatus.REFUNDED
