"""
Tests for the settlement read API.

Tests cover:
- Authentication on every endpoint
- Purchase status lookup
- Creator earnings summary with period validation
- Paginated payout history
"""

import uuid
from datetime import date

import pytest
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from settlement.tests.factories import CreatorEarningFactory, PayoutFactory


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def authenticated_client(api_client, django_user_model):
    user = django_user_model.objects.create_user(username="ops", password="testpass123")
    api_client.force_authenticate(user=user)
    return api_client


# =============================================================================
# Authentication Tests
# =============================================================================


@pytest.mark.django_db
class TestAuthentication:
    @pytest.mark.parametrize(
        "url_name,kwargs",
        [
            ("settlement:purchase_status", {}),
            ("settlement:creator_earnings_summary", {"creator_id": uuid.uuid4()}),
            ("settlement:creator_payouts", {"creator_id": uuid.uuid4()}),
        ],
    )
    def test_requires_authentication(self, api_client, url_name, kwargs):
        response = api_client.get(reverse(url_name, kwargs=kwargs))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# =============================================================================
# Purchase Status Tests
# =============================================================================


@pytest.mark.django_db
class TestPurchaseStatusView:
    """Tests for GET /purchases/status/."""

    def url(self):
        return reverse("settlement:purchase_status")

    def test_returns_purchase(self, authenticated_client, active_purchase):
        response = authenticated_client.get(
            self.url(),
            {"buyer_id": active_purchase.buyer_id, "item_id": active_purchase.item_id},
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["id"] == str(active_purchase.id)
        assert response.data["status"] == "active"
        assert response.data["is_entitled"] is True
        assert response.data["amount_minor"] == active_purchase.amount_minor

    def test_pending_purchase_is_not_entitled(self, authenticated_client, pending_purchase):
        response = authenticated_client.get(
            self.url(),
            {"buyer_id": pending_purchase.buyer_id, "item_id": pending_purchase.item_id},
        )

        assert response.data["status"] == "pending"
        assert response.data["is_entitled"] is False

    def test_missing_params(self, authenticated_client):
        response = authenticated_client.get(self.url(), {"buyer_id": "buyer_1"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "item_id" in response.data

    def test_not_found(self, authenticated_client):
        response = authenticated_client.get(
            self.url(), {"buyer_id": "nobody", "item_id": "nothing"}
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {
            "error": "Purchase not found",
            "error_code": "PURCHASE_NOT_FOUND",
        }


# =============================================================================
# Earnings Summary Tests
# =============================================================================


@pytest.mark.django_db
class TestCreatorEarningsSummaryView:
    """Tests for GET /creators/{id}/earnings-summary/."""

    def get(self, client, creator_id, **params):
        url = reverse("settlement:creator_earnings_summary", kwargs={"creator_id": creator_id})
        return client.get(url, params)

    def test_returns_rows_per_currency(self, authenticated_client, creator, january_earnings):
        CreatorEarningFactory(creator=creator, currency="eur")

        response = self.get(
            authenticated_client,
            creator.id,
            period_start="2024-01-01",
            period_end="2024-01-31",
        )

        assert response.status_code == status.HTTP_200_OK
        assert [row["currency"] for row in response.data] == ["eur", "usd"]
        usd = response.data[1]
        assert usd["earnings_count"] == 3
        assert usd["total_net_minor"] == 21_000
        assert usd["unpaid_net_minor"] == 21_000

    def test_end_before_start(self, authenticated_client, creator):
        response = self.get(
            authenticated_client,
            creator.id,
            period_start="2024-01-31",
            period_end="2024-01-01",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "period_end" in response.data

    def test_invalid_date(self, authenticated_client, creator):
        response = self.get(
            authenticated_client,
            creator.id,
            period_start="January",
            period_end="2024-01-31",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_creator(self, authenticated_client):
        response = self.get(
            authenticated_client,
            uuid.uuid4(),
            period_start="2024-01-01",
            period_end="2024-01-31",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


# =============================================================================
# Payout History Tests
# =============================================================================


@pytest.mark.django_db
class TestCreatorPayoutListView:
    """Tests for GET /creators/{id}/payouts/."""

    def test_lists_creator_payouts(self, authenticated_client, creator, paid_payout):
        PayoutFactory()
        url = reverse("settlement:creator_payouts", kwargs={"creator_id": creator.id})

        response = authenticated_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 1
        payout = response.data["results"][0]
        assert payout["id"] == str(paid_payout.id)
        assert payout["status"] == "paid"
        assert payout["external_transfer_ref"] == "tr_test_paid"
        assert payout["is_canceled"] is False

    def test_paginated(self, authenticated_client, creator):
        for month in range(1, 4):
            PayoutFactory(
                creator=creator,
                period_start=date(2024, month, 1),
                period_end=date(2024, month, 28),
            )
        url = reverse("settlement:creator_payouts", kwargs={"creator_id": creator.id})

        response = authenticated_client.get(url, {"page": 1})

        assert response.data["count"] == 3
        assert len(response.data["results"]) == 3
        assert response.data["next"] is None

    def test_unknown_creator(self, authenticated_client):
        url = reverse("settlement:creator_payouts", kwargs={"creator_id": uuid.uuid4()})

        assert authenticated_client.get(url).status_code == status.HTTP_404_NOT_FOUND

