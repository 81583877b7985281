"""
URL configuration for the settlement app.

Routes:
    - POST /webhooks/stripe/ - Stripe webhook endpoint
    - GET /purchases/status/ - Purchase status lookup
    - GET /creators/{creator_id}/earnings-summary/ - Earnings totals by currency
    - GET /creators/{creator_id}/payouts/ - Payout history

All routes are prefixed with /api/v1/settlement/ when included in the main URLconf.
"""

from django.urls import path

from settlement.views import (
    CreatorEarningsSummaryView,
    CreatorPayoutListView,
    PurchaseStatusView,
)
from settlement.webhooks.views import stripe_webhook

app_name = "settlement"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    # Read API
    path("purchases/status/", PurchaseStatusView.as_view(), name="purchase_status"),
    path(
        "creators/<uuid:creator_id>/earnings-summary/",
        CreatorEarningsSummaryView.as_view(),
        name="creator_earnings_summary",
    ),
    path(
        "creators/<uuid:creator_id>/payouts/",
        CreatorPayoutListView.as_view(),
        name="creator_payouts",
    ),
]
