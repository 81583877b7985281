"""
Settlement service for moving reserved payouts to a terminal state.

Settlement of one payout:
1. Check the creator's connected account can receive transfers
2. Record transfer_requested_at (the payout can no longer be canceled)
3. Call Stripe create_transfer with the payout's idempotency key
   (outside any transaction)
4. On success mark the payout PAID and its earnings paid_out
5. On a permanent error mark it FAILED and release its earnings
6. On a transient error leave it PENDING and re-raise for a retry that
   reuses the same key

Webhooks confirm or fail transfers through confirm_transfer and
fail_transfer. A webhook failure is authoritative and may override PAID.

Usage:
    from settlement.services import SettlementService

    run = SettlementService.run_batch(date(2024, 1, 1), date(2024, 1, 31))

    result = SettlementService.settle(payout_id)
    if not result.success:
        logger.warning(f"Payout failed: {result.error}")
"""

from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import date
from functools import partial

from django.db import DatabaseError, transaction
from django.utils import timezone

from core.services import BaseService, ServiceResult

from settlement.adapters import StripeAdapter, transfer_idempotency_key
from settlement.exceptions import (
    DestinationNotPayableError,
    InvalidStateTransitionError,
    PersistenceError,
    StripeError,
    UnknownReferenceError,
)
from settlement.models import CreatorEarning, Payout, PayoutRun
from settlement.models.payout import CANCELED_REASON_PREFIX
from settlement.services.creator_service import CreatorService
from settlement.services.payout_batcher import GroupOutcome, PayoutBatcher
from settlement.services.report_service import ReportService
from settlement.state_machines import PayoutRunStatus, PayoutState


class SettlementService(BaseService):
    """
    Drives payouts from PENDING to PAID or FAILED.

    Safety Guarantees:
        - The transfer idempotency key depends only on the payout id
        - Phase changes are conditional updates or row-locked transitions,
          so a webhook and the synchronous path can race safely
        - Failing a payout always releases its earnings in the same
          transaction
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        """Get the Stripe adapter class."""
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        """Set the Stripe adapter class (for testing)."""
        cls._stripe_adapter = adapter

    # ==========================================================================
    # Batch Run
    # ==========================================================================

    @classmethod
    def run_batch(
        cls,
        period_start: date,
        period_end: date,
        *,
        dry_run: bool = False,
        creator_id: uuid.UUID | None = None,
    ) -> PayoutRun:
        """
        Reserve and settle every eligible payout for a period.

        Each reserved payout is settled as soon as it is committed. Payouts
        hit by a transient provider error stay pending and are queued for a
        retry. A database failure aborts the rest of the run.

        Returns:
            The finished PayoutRun with its counters and totals
        """
        run = PayoutRun.objects.create(
            period_start=period_start,
            period_end=period_end,
            dry_run=dry_run,
            creator_id=creator_id,
        )
        cls.get_logger().info(
            "Payout run started",
            extra={
                "run_id": str(run.id),
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
                "dry_run": dry_run,
            },
        )

        totals: dict[str, int] = defaultdict(int)
        try:
            for group in PayoutBatcher.iter_groups(
                period_start,
                period_end,
                dry_run=dry_run,
                creator_id=creator_id,
                run=run,
            ):
                run.groups_evaluated += 1
                if group.outcome == GroupOutcome.BELOW_THRESHOLD:
                    run.groups_below_threshold += 1
                elif group.outcome == GroupOutcome.CONFLICT:
                    run.reservation_conflicts += 1
                elif group.outcome == GroupOutcome.DRY_RUN:
                    totals[group.currency] += group.net_minor
                elif group.outcome == GroupOutcome.RESERVED:
                    run.payouts_created += 1
                    totals[group.currency] += group.payout.net_minor
                    status = cls._settle_in_run(group.payout.id)
                    if status == PayoutState.PAID:
                        run.payouts_paid += 1
                    elif status == PayoutState.FAILED:
                        run.payouts_failed += 1
                    else:
                        run.payouts_pending += 1
        except PersistenceError as e:
            cls.get_logger().error(
                "Payout run aborted",
                extra={"run_id": str(run.id), "error": e.message},
                exc_info=True,
            )
            run.finish(PayoutRunStatus.ABORTED, error_message=e.message)
        else:
            run.finish(PayoutRunStatus.COMPLETED)

        run.totals = dict(totals)
        run.save()

        cls.get_logger().info(
            "Payout run finished",
            extra={
                "run_id": str(run.id),
                "status": run.status,
                "payouts_created": run.payouts_created,
                "payouts_paid": run.payouts_paid,
                "payouts_failed": run.payouts_failed,
                "payouts_pending": run.payouts_pending,
            },
        )
        ReportService.send_run_notification(run)
        return run

    @classmethod
    def _settle_in_run(cls, payout_id: uuid.UUID) -> str:
        from settlement.tasks import settle_payout

        try:
            cls.settle(payout_id)
        except StripeError as e:
            cls.get_logger().warning(
                "Transient error settling payout, queued for retry",
                extra={"payout_id": str(payout_id), "error": e.message},
            )
            settle_payout.delay(str(payout_id))
        except DatabaseError as e:
            raise PersistenceError(
                f"Failed to settle payout {payout_id}: {e}",
                details={"payout_id": str(payout_id)},
            ) from e

        return Payout.objects.filter(id=payout_id).values_list("status", flat=True).get()

    # ==========================================================================
    # Settlement
    # ==========================================================================

    @classmethod
    def settle(cls, payout_id: uuid.UUID) -> ServiceResult[Payout]:
        """
        Transfer a pending payout to the creator's connected account.

        Returns:
            ServiceResult with the payout. A failure result means the payout
            was marked FAILED and its earnings released, unless its error code
            is TRANSFER_NEEDS_RECONCILIATION: a re-issued transfer whose first
            attempt may have succeeded stays PENDING and raises an alert.

        Raises:
            UnknownReferenceError: If the payout does not exist
            StripeRateLimitError, StripeAPIUnavailableError, StripeTimeoutError:
                Transient; the payout stays PENDING, retry with settle()
        """
        payout = Payout.objects.select_related("creator").filter(id=payout_id).first()
        if payout is None:
            raise UnknownReferenceError(
                "Payout not found",
                error_code="PAYOUT_NOT_FOUND",
                details={"payout_id": str(payout_id)},
            )

        if payout.status != PayoutState.PENDING:
            cls.get_logger().info(
                "Payout already settled",
                extra={"payout_id": str(payout.id), "status": payout.status},
            )
            return ServiceResult.success(payout)

        creator = payout.creator
        retrying_request = payout.transfer_requested_at is not None

        # Step 1: destination check, skipped when re-issuing a requested transfer
        if not retrying_request:
            try:
                cls._verify_destination(payout)
            except (DestinationNotPayableError, StripeError) as e:
                if e.is_retryable:
                    raise
                cls.get_logger().warning(
                    "Destination cannot receive payout",
                    extra={
                        "payout_id": str(payout.id),
                        "creator_id": str(creator.id),
                        "error": e.message,
                    },
                )
                cls.fail_payout(payout.id, e.message)
                return ServiceResult.from_exception(e)

            # Step 2: record the request so the payout can no longer be canceled
            Payout.objects.filter(
                id=payout.id,
                status=PayoutState.PENDING,
                transfer_requested_at__isnull=True,
            ).update(transfer_requested_at=timezone.now(), updated_at=timezone.now())

            payout = Payout.objects.select_related("creator").get(id=payout.id)
            if payout.status != PayoutState.PENDING:
                return ServiceResult.success(payout)

        # Step 3: transfer, outside any transaction
        try:
            transfer = cls.get_stripe_adapter().create_transfer(
                amount_minor=payout.net_minor,
                destination_account=creator.stripe_account_id,
                idempotency_key=transfer_idempotency_key(payout.id),
                currency=payout.currency,
                metadata={
                    "payout_id": str(payout.id),
                    "creator_id": str(creator.id),
                    "period": payout.period_label,
                    "earnings_count": str(payout.earnings_count),
                },
                description=f"Marketplace payout - {payout.period_label}",
            )
        except StripeError as e:
            if e.is_retryable:
                cls.get_logger().warning(
                    f"Transient Stripe error, will retry: {type(e).__name__}",
                    extra={"payout_id": str(payout.id), "error": e.message},
                )
                raise
            if retrying_request and e.leaves_outcome_unknown:
                return cls._hold_for_reconciliation(payout, e)
            cls.get_logger().error(
                f"Stripe rejected transfer: {type(e).__name__}",
                extra={"payout_id": str(payout.id), "error": e.message},
            )
            cls.fail_payout(payout.id, e.message)
            return ServiceResult.from_exception(e)

        # Step 4: finalize
        payout = cls.confirm_transfer(payout.id, transfer.id)
        return ServiceResult.success(payout)

    @classmethod
    def _verify_destination(cls, payout: Payout) -> None:
        creator = payout.creator
        if not creator.stripe_account_id:
            raise DestinationNotPayableError(
                "Creator has no connected account",
                details={"creator_id": str(creator.id)},
            )

        account = cls.get_stripe_adapter().retrieve_account(creator.stripe_account_id)
        CreatorService.sync_account(account)

        if not account.can_receive_transfers:
            reason = account.disabled_reason or "payouts disabled"
            raise DestinationNotPayableError(
                f"Connected account cannot receive transfers: {reason}",
                details={
                    "creator_id": str(creator.id),
                    "stripe_account_id": creator.stripe_account_id,
                },
            )

    @classmethod
    def _hold_for_reconciliation(cls, payout: Payout, error: StripeError) -> ServiceResult:
        """
        Keep a re-issued payout pending when Stripe cannot say whether the
        first request created a transfer. Its earnings stay reserved until
        an operator (or a transfer webhook) settles the question.
        """
        details = {
            "payout_id": str(payout.id),
            "idempotency_key": transfer_idempotency_key(payout.id),
            "stripe_code": error.stripe_code or "",
            "error": error.message,
        }
        cls.get_logger().error(
            "Transfer outcome unknown, payout held for reconciliation",
            extra=details,
        )
        transaction.on_commit(
            partial(
                ReportService.send_reconciliation_alert,
                "Transfer outcome unknown after retry",
                details,
            )
        )
        return ServiceResult.from_exception(error, error_code="TRANSFER_NEEDS_RECONCILIATION")

    # ==========================================================================
    # State Changes
    # ==========================================================================

    @classmethod
    def confirm_transfer(cls, payout_id: uuid.UUID, transfer_id: str) -> Payout:
        """
        Record a created transfer against its payout.

        PENDING becomes PAID and the reserved earnings become paid_out. A
        PAID payout only gains a missing transfer reference. A FAILED payout
        is left alone and raised for reconciliation.

        Raises:
            UnknownReferenceError: If the payout does not exist
        """
        became_paid = False
        with transaction.atomic():
            payout = Payout.objects.select_for_update().filter(id=payout_id).first()
            if payout is None:
                raise UnknownReferenceError(
                    "Payout not found",
                    error_code="PAYOUT_NOT_FOUND",
                    details={"payout_id": str(payout_id), "transfer_id": transfer_id},
                )

            if payout.status == PayoutState.PENDING:
                payout.mark_paid(transfer_id)
                payout.save()
                CreatorEarning.objects.filter(payout=payout).update(
                    paid_out=True, updated_at=timezone.now()
                )
                became_paid = True
            elif payout.status == PayoutState.PAID:
                if not payout.external_transfer_ref:
                    payout.external_transfer_ref = transfer_id
                    payout.save(update_fields=["external_transfer_ref", "updated_at"])
            else:
                details = {
                    "payout_id": str(payout.id),
                    "transfer_id": transfer_id,
                    "failure_reason": payout.failure_reason or "",
                }
                transaction.on_commit(
                    partial(
                        ReportService.send_reconciliation_alert,
                        "Transfer created for a failed payout",
                        details,
                    )
                )

            if became_paid:
                transaction.on_commit(
                    partial(ReportService.emit_payout_report, payout.id)
                )

        if became_paid:
            cls.get_logger().info(
                "Payout paid",
                extra={
                    "payout_id": str(payout.id),
                    "transfer_id": transfer_id,
                    "net_minor": payout.net_minor,
                    "currency": payout.currency,
                },
            )
        return payout

    @classmethod
    def fail_payout(cls, payout_id: uuid.UUID, reason: str) -> Payout:
        """
        Mark a payout FAILED and release its earnings for the next batch.

        Earnings that were reversed while reserved are voided on release
        instead of returning to the unpaid pool.
        """
        with transaction.atomic():
            payout = Payout.objects.select_for_update().get(id=payout_id)
            if payout.status == PayoutState.FAILED:
                return payout

            was_paid = payout.status == PayoutState.PAID
            payout.fail(reason)
            payout.save()
            released = cls._release_earnings(payout)

            if was_paid:
                transaction.on_commit(
                    partial(
                        ReportService.send_reconciliation_alert,
                        "Paid payout reported failed",
                        {
                            "payout_id": str(payout.id),
                            "transfer_id": payout.external_transfer_ref or "",
                            "failure_reason": reason,
                        },
                    )
                )
            transaction.on_commit(partial(ReportService.emit_payout_report, payout.id))

        cls.get_logger().warning(
            "Payout failed",
            extra={
                "payout_id": str(payout.id),
                "reason": reason,
                "released_earnings": released,
                "was_paid": was_paid,
            },
        )
        return payout

    @classmethod
    def fail_transfer(
        cls,
        transfer_id: str,
        reason: str,
        payout_id: uuid.UUID | None = None,
    ) -> Payout:
        """
        Apply a provider-reported transfer failure.

        The payout is found by the metadata payout_id, falling back to the
        transfer reference.

        Raises:
            UnknownReferenceError: If no payout matches
        """
        payout = None
        if payout_id is not None:
            payout = Payout.objects.filter(id=payout_id).first()
        if payout is None:
            payout = Payout.objects.filter(external_transfer_ref=transfer_id).first()
        if payout is None:
            raise UnknownReferenceError(
                "No payout for failed transfer",
                error_code="PAYOUT_NOT_FOUND",
                details={"transfer_id": transfer_id},
            )
        return cls.fail_payout(payout.id, reason)

    @classmethod
    def cancel_payout(cls, payout_id: uuid.UUID, reason: str = "") -> Payout:
        """
        Cancel a pending payout whose transfer was never requested.

        The payout ends FAILED with a "canceled" reason and its earnings are
        released.

        Raises:
            UnknownReferenceError: If the payout does not exist
            InvalidStateTransitionError: If the transfer was already requested
                or the payout is terminal
        """
        with transaction.atomic():
            payout = Payout.objects.select_for_update().filter(id=payout_id).first()
            if payout is None:
                raise UnknownReferenceError(
                    "Payout not found",
                    error_code="PAYOUT_NOT_FOUND",
                    details={"payout_id": str(payout_id)},
                )
            if not payout.can_cancel:
                raise InvalidStateTransitionError(
                    "Cannot cancel a payout after its transfer was requested",
                    details={
                        "payout_id": str(payout.id),
                        "current_state": payout.status,
                        "transfer_requested": payout.transfer_requested_at is not None,
                    },
                )
            full_reason = (
                f"{CANCELED_REASON_PREFIX}: {reason}" if reason else CANCELED_REASON_PREFIX
            )
            payout.fail(full_reason)
            payout.save()
            released = cls._release_earnings(payout)
            transaction.on_commit(partial(ReportService.emit_payout_report, payout.id))

        cls.get_logger().info(
            "Payout canceled",
            extra={"payout_id": str(payout.id), "released_earnings": released},
        )
        return payout

    @classmethod
    def _release_earnings(cls, payout: Payout) -> int:
        now = timezone.now()
        CreatorEarning.objects.filter(payout=payout, clawback_required=True).update(
            payout=None,
            paid_out=False,
            clawback_required=False,
            is_voided=True,
            voided_at=now,
            updated_at=now,
        )
        return CreatorEarning.objects.filter(payout=payout).update(
            payout=None, paid_out=False, updated_at=now
        )
