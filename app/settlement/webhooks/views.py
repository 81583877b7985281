"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature (401 on failure)
2. Decodes the body into its typed event (400 on schema failure)
3. Acknowledges unsupported event types without storing them
4. Creates/retrieves the WebhookEvent record (idempotent)
5. Queues the event for async processing and returns immediately

Usage:
    # In urls.py
    from settlement.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from settlement.adapters import StripeAdapter
from settlement.exceptions import MalformedEventError, WebhookSignatureError
from settlement.models import WebhookEvent
from settlement.state_machines import WebhookEventStatus
from settlement.webhooks.events import decode_event

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - A redelivered event that was already processed returns 200 without
      reprocessing

    Returns:
        HttpResponse with status:
        - 200: Event accepted, duplicate, or unsupported type
        - 400: Body does not match the event schema
        - 401: Missing or invalid signature
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    # Step 1: Verify signature
    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except WebhookSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message},
        )
        return HttpResponse("Invalid signature", status=401)
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return HttpResponse("Invalid payload", status=400)

    # Step 2: Decode into the typed event
    try:
        event = decode_event(event_data)
    except MalformedEventError as e:
        logger.warning(
            "Webhook payload failed schema validation",
            extra={"error": e.message, "details": e.details},
        )
        return HttpResponse("Invalid event", status=400)

    if event is None:
        logger.info(
            f"Ignoring unsupported webhook type: {event_data.get('type')}",
            extra={"stripe_event_id": event_data.get("id")},
        )
        return HttpResponse("Ignored", status=200)

    logger.info(
        f"Received Stripe webhook: {event.event_type}",
        extra={
            "stripe_event_id": event.event_id,
            "event_type": event.event_type,
        },
    )

    # Step 3: Create/get WebhookEvent (idempotent)
    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=event.event_id,
        defaults={
            "event_type": event.event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": event.event_id},
        )
        return HttpResponse("Already processed", status=200)

    # Step 4: Queue for async processing
    try:
        from settlement.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Webhook queued for processing",
            extra={
                "stripe_event_id": event.event_id,
                "webhook_event_id": str(webhook_event.id),
            },
        )
    except Exception as e:
        # The stored event is picked up by retry_failed_webhooks
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"stripe_event_id": event.event_id},
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)
