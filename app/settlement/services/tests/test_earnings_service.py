"""
Tests for EarningsService.

Tests cover:
- Recording an earning with the revenue split
- Idempotency on the (purchase, source reference) dedupe key
- Validation of share and creator
- Reversal of unpaid, reserved and paid earnings
- Clawback alerts
"""

import uuid
from unittest.mock import patch

import pytest

from settlement.exceptions import InvalidRevenueShareError, UnknownReferenceError
from settlement.models import CreatorEarning
from settlement.services import EarningsService, earning_dedupe_key
from settlement.tests.factories import CreatorEarningFactory, aware


def record(purchase, **overrides):
    values = {
        "creator_id": purchase.creator_id,
        "purchase_id": purchase.id,
        "item_id": purchase.item_id,
        "source_ref": "pi_test_active",
        "gross_minor": 2900,
        "currency": "USD",
        "revenue_share_bps": 7000,
        "charge_ref": "pi_test_active",
        "earned_at": aware(2024, 1, 10),
    }
    values.update(overrides)
    return EarningsService.record_earning(**values)


# =============================================================================
# Record Tests
# =============================================================================


@pytest.mark.django_db
class TestRecordEarning:
    """Tests for record_earning."""

    def test_records_split(self, active_purchase):
        earning = record(active_purchase)

        assert earning.gross_minor == 2900
        assert earning.fee_minor == 870
        assert earning.net_minor == 2030
        assert earning.currency == "usd"
        assert earning.dedupe_key == f"{active_purchase.id}:pi_test_active"
        assert earning.charge_ref == "pi_test_active"
        assert earning.payout_id is None
        assert not earning.paid_out

    def test_same_source_ref_returns_existing(self, active_purchase):
        first = record(active_purchase)
        second = record(active_purchase, gross_minor=9999)

        assert first.id == second.id
        assert second.gross_minor == 2900
        assert CreatorEarning.objects.count() == 1

    def test_new_invoice_records_new_earning(self, active_subscription):
        record(active_subscription, source_ref="in_1", charge_ref=None)
        record(active_subscription, source_ref="in_2", charge_ref=None)

        assert CreatorEarning.objects.filter(purchase=active_subscription).count() == 2

    def test_invalid_share(self, active_purchase):
        with pytest.raises(InvalidRevenueShareError):
            record(active_purchase, revenue_share_bps=10_001)

        assert not CreatorEarning.objects.exists()

    def test_unknown_creator(self, active_purchase):
        with pytest.raises(UnknownReferenceError):
            record(active_purchase, creator_id=uuid.uuid4())

    def test_defaults_earned_at_to_now(self, active_purchase):
        earning = record(active_purchase, earned_at=None)

        assert earning.earned_at is not None

    def test_dedupe_key_format(self):
        purchase_id = uuid.uuid4()

        assert earning_dedupe_key(purchase_id, "in_1") == f"{purchase_id}:in_1"


# =============================================================================
# Reversal Tests
# =============================================================================


@pytest.mark.django_db
class TestReverseEarning:
    """Tests for reverse_earning."""

    def test_unpaid_earning_is_voided(self, active_purchase):
        earning = record(active_purchase)

        reversed_earnings = EarningsService.reverse_earning(active_purchase.id)

        assert [e.id for e in reversed_earnings] == [earning.id]
        earning.refresh_from_db()
        assert earning.is_voided
        assert earning.voided_at is not None
        assert earning.reversed_at is not None
        assert not earning.clawback_required
        assert not CreatorEarning.objects.eligible_for_batch().exists()

    def test_reserved_earning_flagged_for_clawback(
        self, reserved_payout, django_capture_on_commit_callbacks
    ):
        earning = reserved_payout.earnings.first()

        with patch(
            "settlement.services.earnings_service.ReportService.send_reconciliation_alert"
        ) as mock_alert:
            with django_capture_on_commit_callbacks(execute=True):
                EarningsService.reverse_earning(earning.purchase_id)

        earning.refresh_from_db()
        assert earning.clawback_required
        assert not earning.is_voided
        assert earning.payout_id == reserved_payout.id
        mock_alert.assert_called_once()
        subject, details = mock_alert.call_args.args
        assert subject == "Clawback required for reversed earning"
        assert details["earning_id"] == str(earning.id)
        assert details["payout_id"] == str(reserved_payout.id)

    def test_paid_earning_flagged_for_clawback(self, creator):
        earning = CreatorEarningFactory(creator=creator, paid_out=True)

        EarningsService.reverse_earning(earning.purchase_id)

        earning.refresh_from_db()
        assert earning.clawback_required
        assert earning.paid_out

    def test_reversal_is_idempotent(self, active_purchase):
        record(active_purchase)

        EarningsService.reverse_earning(active_purchase.id)
        second = EarningsService.reverse_earning(active_purchase.id)

        assert second == []

    def test_single_earning(self, active_subscription):
        first = record(active_subscription, source_ref="in_1", charge_ref="pi_1")
        second = record(active_subscription, source_ref="in_2", charge_ref="pi_2")

        EarningsService.reverse_earning(active_subscription.id, earning_id=second.id)

        first.refresh_from_db()
        second.refresh_from_db()
        assert not first.is_voided
        assert second.is_voided

    def test_amounts_never_change(self, active_purchase):
        earning = record(active_purchase)

        EarningsService.reverse_earning(active_purchase.id)

        earning.refresh_from_db()
        assert (earning.gross_minor, earning.fee_minor, earning.net_minor) == (
            2900,
            870,
            2030,
        )
