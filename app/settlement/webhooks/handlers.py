"""
Webhook event handlers for decoded Stripe events.

Handlers are registered per typed event class and return a
ServiceResult. References to purchases, payouts or creators we do not
know are logged and acknowledged: the provider would otherwise keep
redelivering an event that can never apply.

Usage:
    from settlement.webhooks.handlers import dispatch_event, register_handler

    @register_handler(TransferCreated)
    def handle_transfer_created(event: TransferCreated) -> ServiceResult:
        ...

    result = dispatch_event(event)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.utils import timezone

from core.services import ServiceResult

from settlement.adapters import AccountResult
from settlement.exceptions import UnknownReferenceError
from settlement.services import (
    CreatorService,
    EarningsService,
    PurchaseLedgerService,
    SettlementService,
)
from settlement.state_machines import PurchaseStatus
from settlement.webhooks.events import (
    AccountUpdated,
    ChargeRefunded,
    CheckoutCompleted,
    DisputeCreated,
    InvoicePaid,
    InvoicePaymentFailed,
    ProviderEvent,
    SubscriptionDeleted,
    SubscriptionUpdated,
    TransferCreated,
    TransferFailed,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps typed event classes to handler functions
EVENT_HANDLERS: dict[type[ProviderEvent], Callable[[ProviderEvent], ServiceResult]] = {}


def register_handler(event_class: type[ProviderEvent]) -> Callable:
    """
    Decorator to register the handler for a typed event.

    Args:
        event_class: The decoded event dataclass the handler accepts
    """

    def decorator(func: Callable[[ProviderEvent], ServiceResult]) -> Callable:
        EVENT_HANDLERS[event_class] = func
        logger.debug(f"Registered webhook handler for {event_class.__name__}")
        return func

    return decorator


def dispatch_event(event: ProviderEvent) -> ServiceResult:
    """
    Dispatch a decoded event to its handler.

    Returns:
        ServiceResult from the handler, or success if no handler exists
    """
    handler = EVENT_HANDLERS.get(type(event))

    if not handler:
        logger.info(
            f"No handler registered for event type: {event.event_type}",
            extra={"stripe_event_id": event.event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {event.event_type} to handler",
        extra={"stripe_event_id": event.event_id},
    )
    return handler(event)


def _acknowledge_unknown(event: ProviderEvent, message: str, **context) -> ServiceResult:
    logger.warning(
        f"{event.event_type}: {message}",
        extra={"stripe_event_id": event.event_id, **context},
    )
    return ServiceResult.success(None)


# =============================================================================
# Checkout & Subscription Handlers
# =============================================================================


@register_handler(CheckoutCompleted)
def handle_checkout_completed(event: CheckoutCompleted) -> ServiceResult:
    """
    Activate the purchase and record the first earning.

    The earning is keyed on the purchase and the PaymentIntent (or the
    session when no PaymentIntent exists), so redelivery records nothing new.
    """
    if not event.is_marketplace_sale:
        logger.info(
            "checkout.session.completed without marketplace metadata, ignoring",
            extra={"stripe_event_id": event.event_id, "session_id": event.session_id},
        )
        return ServiceResult.success(None)

    result = PurchaseLedgerService.upsert_from_checkout(
        charge_ref=event.session_id,
        tenant_id=event.tenant_id,
        buyer_id=event.buyer_id or "",
        item_id=event.item_id,
        amount_minor=event.amount_total,
        currency=event.currency,
        kind=event.kind,
        customer_ref=event.customer_ref,
        payment_ref=event.payment_ref,
        subscription_ref=event.subscription_ref,
        creator_id=event.creator_id,
        revenue_share_bps=event.revenue_share_bps,
    )
    purchase = result.purchase

    if purchase.creator_id is None or purchase.revenue_share_bps is None:
        logger.warning(
            "Purchase has no creator, no earning recorded",
            extra={"stripe_event_id": event.event_id, "purchase_id": str(purchase.id)},
        )
        return ServiceResult.success(purchase)

    if event.amount_total > 0:
        source_ref = event.payment_ref or event.session_id
        EarningsService.record_earning(
            creator_id=purchase.creator_id,
            purchase_id=purchase.id,
            item_id=purchase.item_id,
            source_ref=source_ref,
            gross_minor=event.amount_total,
            currency=event.currency,
            revenue_share_bps=purchase.revenue_share_bps,
            charge_ref=event.payment_ref,
        )

    return ServiceResult.success(purchase)


@register_handler(InvoicePaid)
def handle_invoice_paid(event: InvoicePaid) -> ServiceResult:
    """Record a renewal earning; the creation invoice only links its PaymentIntent."""
    if not event.subscription_ref:
        logger.info(
            "invoice.paid without subscription, ignoring",
            extra={"stripe_event_id": event.event_id, "invoice_id": event.invoice_id},
        )
        return ServiceResult.success(None)

    if event.is_subscription_creation:
        if event.payment_ref:
            PurchaseLedgerService.link_payment_ref(event.subscription_ref, event.payment_ref)
        return ServiceResult.success(None)

    signal = PurchaseLedgerService.mark_renewed(
        event.subscription_ref,
        event.invoice_id,
        event.amount_paid,
        charge_ref=event.payment_ref,
    )
    if signal is None:
        return _acknowledge_unknown(
            event, "unknown subscription", subscription_ref=event.subscription_ref
        )

    purchase = signal.purchase
    if purchase.creator_id is None or purchase.revenue_share_bps is None:
        logger.warning(
            "Renewed purchase has no creator, no earning recorded",
            extra={"stripe_event_id": event.event_id, "purchase_id": str(purchase.id)},
        )
        return ServiceResult.success(purchase)

    if signal.amount_minor > 0:
        EarningsService.record_earning(
            creator_id=purchase.creator_id,
            purchase_id=purchase.id,
            item_id=purchase.item_id,
            source_ref=signal.invoice_ref,
            gross_minor=signal.amount_minor,
            currency=event.currency,
            revenue_share_bps=purchase.revenue_share_bps,
            charge_ref=signal.charge_ref,
        )
    return ServiceResult.success(purchase)


@register_handler(InvoicePaymentFailed)
def handle_invoice_payment_failed(event: InvoicePaymentFailed) -> ServiceResult:
    if not event.subscription_ref:
        return ServiceResult.success(None)

    purchase = PurchaseLedgerService.mark_status(event.subscription_ref, PurchaseStatus.PAST_DUE)
    if purchase is None:
        return _acknowledge_unknown(
            event, "unknown subscription", subscription_ref=event.subscription_ref
        )
    return ServiceResult.success(purchase)


def subscription_status_for(event: SubscriptionUpdated) -> str:
    """Map a Stripe subscription status onto a purchase status."""
    if event.status == "canceled":
        return PurchaseStatus.CANCELED
    if event.cancel_at_period_end:
        return PurchaseStatus.CANCELING
    if event.status in ("past_due", "unpaid"):
        return PurchaseStatus.PAST_DUE
    return PurchaseStatus.ACTIVE


@register_handler(SubscriptionUpdated)
def handle_subscription_updated(event: SubscriptionUpdated) -> ServiceResult:
    purchase = PurchaseLedgerService.mark_status(
        event.subscription_id,
        subscription_status_for(event),
        expires_at=event.current_period_end,
    )
    if purchase is None:
        return _acknowledge_unknown(
            event, "unknown subscription", subscription_ref=event.subscription_id
        )
    return ServiceResult.success(purchase)


@register_handler(SubscriptionDeleted)
def handle_subscription_deleted(event: SubscriptionDeleted) -> ServiceResult:
    purchase = PurchaseLedgerService.mark_status(
        event.subscription_id,
        PurchaseStatus.CANCELED,
        expires_at=timezone.now(),
    )
    if purchase is None:
        return _acknowledge_unknown(
            event, "unknown subscription", subscription_ref=event.subscription_id
        )
    return ServiceResult.success(purchase)


# =============================================================================
# Refund & Dispute Handlers
# =============================================================================


def _reverse_charge(
    event: ProviderEvent, charge_id: str, payment_ref: str | None
) -> ServiceResult:
    match = PurchaseLedgerService.mark_refunded(charge_id, payment_ref)
    if match is None:
        return _acknowledge_unknown(event, "unknown charge", charge_id=charge_id)

    reversed_earnings = EarningsService.reverse_earning(
        match.purchase.id,
        earning_id=match.earning.id if match.earning else None,
    )
    logger.info(
        f"{event.event_type}: reversed {len(reversed_earnings)} earning(s)",
        extra={"stripe_event_id": event.event_id, "purchase_id": str(match.purchase.id)},
    )
    return ServiceResult.success(match.purchase)


@register_handler(ChargeRefunded)
def handle_charge_refunded(event: ChargeRefunded) -> ServiceResult:
    """Only a full refund reverses the purchase."""
    if not event.refunded:
        logger.info(
            "Partial refund, purchase unchanged",
            extra={
                "stripe_event_id": event.event_id,
                "charge_id": event.charge_id,
                "amount_refunded": event.amount_refunded,
            },
        )
        return ServiceResult.success(None)
    return _reverse_charge(event, event.charge_id, event.payment_ref)


@register_handler(DisputeCreated)
def handle_dispute_created(event: DisputeCreated) -> ServiceResult:
    return _reverse_charge(event, event.charge_id, event.payment_ref)


# =============================================================================
# Transfer Handlers
# =============================================================================


@register_handler(TransferCreated)
def handle_transfer_created(event: TransferCreated) -> ServiceResult:
    if event.payout_id is None:
        return _acknowledge_unknown(
            event, "transfer without payout metadata", transfer_id=event.transfer_id
        )
    try:
        payout = SettlementService.confirm_transfer(event.payout_id, event.transfer_id)
    except UnknownReferenceError:
        return _acknowledge_unknown(
            event, "unknown payout", payout_id=str(event.payout_id)
        )
    return ServiceResult.success(payout)


@register_handler(TransferFailed)
def handle_transfer_failed(event: TransferFailed) -> ServiceResult:
    reason = event.failure_message or "Transfer failed"
    try:
        payout = SettlementService.fail_transfer(
            event.transfer_id, reason, payout_id=event.payout_id
        )
    except UnknownReferenceError:
        return _acknowledge_unknown(event, "unknown transfer", transfer_id=event.transfer_id)
    return ServiceResult.success(payout)


# =============================================================================
# Account Handlers
# =============================================================================


@register_handler(AccountUpdated)
def handle_account_updated(event: AccountUpdated) -> ServiceResult:
    creator = CreatorService.sync_account(
        AccountResult(
            id=event.account_id,
            payouts_enabled=event.payouts_enabled,
            charges_enabled=event.charges_enabled,
            details_submitted=event.details_submitted,
            disabled_reason=event.disabled_reason,
        )
    )
    return ServiceResult.success(creator)
