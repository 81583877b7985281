"""
Webhook handling for Stripe events.

Webhooks are verified, decoded into typed events, stored idempotently,
and processed asynchronously via Celery tasks.

Usage:
    # In urls.py
    from settlement.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from settlement.webhooks.events import decode_event
from settlement.webhooks.handlers import dispatch_event, register_handler
from settlement.webhooks.views import stripe_webhook

__all__ = [
    "decode_event",
    "dispatch_event",
    "register_handler",
    "stripe_webhook",
]
