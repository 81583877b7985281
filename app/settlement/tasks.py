"""
Celery tasks for settlement.

This module provides async tasks for:
- Processing stored Stripe webhook events
- Retrying failed webhook events
- Running the payout batch (monthly via celery-beat, or on demand)
- Settling a single payout, with retries for transient Stripe errors
- Resuming payouts whose transfer was requested but never confirmed

Usage:
    from settlement.tasks import run_payout_batch

    # Previous calendar month, as scheduled
    run_payout_batch.delay()

    # Explicit period for one creator, without reserving anything
    run_payout_batch.delay(
        period_start="2024-01-01",
        period_end="2024-01-31",
        dry_run=True,
        creator_id=str(creator.id),
    )
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from settlement.exceptions import (
    SettlementValidationError,
    StripeAPIUnavailableError,
    StripeRateLimitError,
    StripeTimeoutError,
    UnknownReferenceError,
)
from settlement.models import Payout, WebhookEvent
from settlement.periods import parse_period_date, previous_month_period
from settlement.state_machines import PayoutState, WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum settlement attempts for transient Stripe errors
MAX_SETTLEMENT_RETRIES = 5

# Requested transfers older than this are re-driven by resume_pending_payouts
STALE_TRANSFER_REQUEST_MINUTES = 30

# Reserved payouts never requested (account check kept failing) are re-driven
# after this, once settle_payout has exhausted its own retries
STALE_UNREQUESTED_PAYOUT_MINUTES = 120

# Maximum rows handled per periodic sweep
BATCH_SIZE = 100


# =============================================================================
# Webhook Processing Tasks
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": 5},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a stored Stripe webhook event.

    The event row is locked, decoded, dispatched and marked processed in
    one transaction, so a handler failure leaves no partial writes and the
    event stays retryable.

    Args:
        webhook_event_id: UUID of the WebhookEvent to process

    Returns:
        Dict with processing result status

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    # Import here to avoid circular imports
    from settlement.webhooks.events import decode_event
    from settlement.webhooks.handlers import dispatch_event

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    logger.info(
        "Processing webhook event",
        extra={"webhook_event_id": str(webhook_event_id)},
    )

    try:
        with transaction.atomic():
            webhook_event = (
                WebhookEvent.objects.select_for_update()
                .filter(id=webhook_event_id)
                .first()
            )
            if webhook_event is None:
                logger.error(
                    "WebhookEvent not found",
                    extra={"webhook_event_id": str(webhook_event_id)},
                )
                return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

            if webhook_event.is_processed:
                logger.info(
                    "WebhookEvent already processed, skipping",
                    extra={
                        "webhook_event_id": str(webhook_event_id),
                        "stripe_event_id": webhook_event.stripe_event_id,
                    },
                )
                return {
                    "status": "already_processed",
                    "webhook_event_id": str(webhook_event_id),
                }

            webhook_event.mark_processing()
            event = decode_event(webhook_event.payload)
            if event is None:
                result_success, error = True, None
            else:
                result = dispatch_event(event)
                result_success, error = result.success, result.error

            if result_success:
                webhook_event.mark_processed()
            else:
                webhook_event.mark_failed(error or "Handler failed")
            webhook_event.save()

    except SettlementValidationError as e:
        # A stored payload that no longer decodes will never succeed
        _record_failure(webhook_event_id, e.message)
        logger.error(
            "Webhook payload rejected",
            extra={"webhook_event_id": str(webhook_event_id), "error": e.message},
        )
        return {"status": "rejected", "webhook_event_id": str(webhook_event_id)}

    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        _record_failure(webhook_event_id, error_msg)
        logger.error(
            "Webhook processing error",
            extra={"webhook_event_id": str(webhook_event_id), "error": error_msg},
            exc_info=True,
        )
        # Re-raise to trigger Celery retry
        raise

    if not result_success:
        logger.warning(
            "Webhook handler returned failure",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error": error,
            },
        )
        return {
            "status": "failed",
            "webhook_event_id": str(webhook_event_id),
            "error": error,
        }

    logger.info(
        "Webhook processed successfully",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "event_type": webhook_event.event_type,
        },
    )
    return {"status": "processed", "webhook_event_id": str(webhook_event_id)}


def _record_failure(webhook_event_id: UUID, error_message: str) -> None:
    WebhookEvent.objects.filter(id=webhook_event_id).exclude(
        status=WebhookEventStatus.PROCESSED
    ).update(
        status=WebhookEventStatus.FAILED,
        error_message=error_message,
        retry_count=F("retry_count") + 1,
        updated_at=timezone.now(),
    )


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Finds failed webhooks that haven't exceeded WEBHOOK_MAX_RETRIES and
    re-queues them for processing.

    Returns:
        Dict with count of webhooks queued for retry
    """
    failed_webhooks = WebhookEvent.objects.filter(
        status__in=[WebhookEventStatus.FAILED, WebhookEventStatus.PENDING],
        retry_count__lt=settings.WEBHOOK_MAX_RETRIES,
        updated_at__lt=timezone.now() - timedelta(minutes=5),
    ).order_by("created_at")[:BATCH_SIZE]

    queued_count = 0
    for webhook in failed_webhooks:
        process_webhook_event.delay(str(webhook.id))
        queued_count += 1
        logger.info(
            "Queued webhook for retry",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "retry_count": webhook.retry_count,
            },
        )

    logger.info(
        f"Queued {queued_count} webhooks for retry",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}


# =============================================================================
# Payout Tasks
# =============================================================================


@shared_task(bind=True)
def run_payout_batch(
    self,
    period_start: str | None = None,
    period_end: str | None = None,
    dry_run: bool = False,
    creator_id: str | None = None,
) -> dict:
    """
    Reserve and settle payouts for a period.

    With no period given the previous calendar month is used, which is
    what the monthly celery-beat schedule relies on.

    Args:
        period_start: ISO date, inclusive
        period_end: ISO date, inclusive
        dry_run: Evaluate groups without reserving or transferring
        creator_id: Restrict the run to one creator

    Returns:
        Dict with the run summary
    """
    from settlement.services import SettlementService

    if period_start and period_end:
        start = parse_period_date(period_start, "period_start")
        end = parse_period_date(period_end, "period_end")
    elif period_start or period_end:
        raise SettlementValidationError(
            "period_start and period_end must be given together"
        )
    else:
        start, end = previous_month_period()

    run = SettlementService.run_batch(
        start,
        end,
        dry_run=dry_run,
        creator_id=UUID(creator_id) if creator_id else None,
    )

    return {
        "run_id": str(run.id),
        "status": run.status,
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "dry_run": dry_run,
        "groups_evaluated": run.groups_evaluated,
        "payouts_created": run.payouts_created,
        "payouts_paid": run.payouts_paid,
        "payouts_failed": run.payouts_failed,
        "payouts_pending": run.payouts_pending,
        "totals": run.totals,
    }


@shared_task(
    bind=True,
    autoretry_for=(StripeRateLimitError, StripeAPIUnavailableError, StripeTimeoutError),
    retry_backoff=True,
    retry_backoff_max=600,
    retry_kwargs={"max_retries": MAX_SETTLEMENT_RETRIES},
    acks_late=True,
)
def settle_payout(self, payout_id: str) -> dict:
    """
    Settle one pending payout.

    Transient Stripe errors are retried with backoff; every retry reuses
    the payout's transfer idempotency key, so a transfer is never
    duplicated.
    """
    from settlement.services import SettlementService

    logger.info(
        "Settling payout",
        extra={"payout_id": payout_id, "attempt": self.request.retries + 1},
    )

    try:
        result = SettlementService.settle(UUID(payout_id))
    except UnknownReferenceError:
        logger.error("Payout not found", extra={"payout_id": payout_id})
        return {"status": "not_found", "payout_id": payout_id}

    status = Payout.objects.filter(id=payout_id).values_list("status", flat=True).first()
    return {
        "status": status,
        "payout_id": payout_id,
        "error": result.error,
    }


@shared_task
def resume_pending_payouts() -> dict:
    """
    Periodic task to re-drive payouts stuck in PENDING.

    Two cases are swept:
    - A worker died between requesting the transfer and recording the
      result. The retry reuses the same idempotency key, so Stripe returns
      the original transfer if one was created.
    - The transfer was never requested because the account check kept
      failing transiently and settle_payout gave up.
    """
    now = timezone.now()
    requested_before = now - timedelta(minutes=STALE_TRANSFER_REQUEST_MINUTES)
    created_before = now - timedelta(minutes=STALE_UNREQUESTED_PAYOUT_MINUTES)
    stale = Payout.objects.filter(
        Q(transfer_requested_at__lt=requested_before)
        | Q(transfer_requested_at__isnull=True, created_at__lt=created_before),
        status=PayoutState.PENDING,
    ).order_by("created_at")[:BATCH_SIZE]

    queued_count = 0
    for payout in stale:
        settle_payout.delay(str(payout.id))
        queued_count += 1
        logger.info(
            "Queued stale payout for settlement",
            extra={
                "payout_id": str(payout.id),
                "transfer_requested": payout.transfer_requested_at is not None,
                "created_at": payout.created_at.isoformat(),
            },
        )

    return {"queued_count": queued_count}
