"""
Typed Stripe webhook events.

Each supported Stripe event type decodes into a frozen dataclass before
any business logic runs. The data.object of each type is validated by its
DRF serializer (see serializers.py). A body that fails validation
raises MalformedEventError; an event type with no decoder decodes to
None and is acknowledged without processing.

Supported Types:
    checkout.session.completed     -> CheckoutCompleted
    invoice.paid                   -> InvoicePaid
    invoice.payment_failed         -> InvoicePaymentFailed
    customer.subscription.updated  -> SubscriptionUpdated
    customer.subscription.deleted  -> SubscriptionDeleted
    charge.refunded                -> ChargeRefunded
    charge.dispute.created         -> DisputeCreated
    transfer.created               -> TransferCreated
    transfer.failed                -> TransferFailed
    account.updated                -> AccountUpdated

Usage:
    from settlement.webhooks.events import decode_event

    event = decode_event(payload)
    if event is None:
        return  # unsupported type
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable

from rest_framework import serializers
from rest_framework.settings import api_settings

from settlement.exceptions import MalformedEventError
from settlement.webhooks.serializers import (
    AccountSerializer,
    ChargeSerializer,
    CheckoutSessionSerializer,
    DisputeSerializer,
    InvoiceSerializer,
    PaidInvoiceSerializer,
    StripeObjectSerializer,
    SubscriptionSerializer,
    TransferSerializer,
)


# =============================================================================
# Event Types
# =============================================================================


@dataclass(frozen=True)
class ProviderEvent:
    """Fields shared by every decoded event."""

    event_id: str
    event_type: str


@dataclass(frozen=True)
class CheckoutCompleted(ProviderEvent):
    """
    A Checkout Session completed.

    Marketplace fields come from the session metadata set by the checkout
    flow. A session without tenant_id, item_id and kind is not a
    marketplace sale.
    """

    session_id: str
    amount_total: int
    currency: str
    customer_ref: str = ""
    payment_ref: str | None = None
    subscription_ref: str | None = None
    tenant_id: str | None = None
    buyer_id: str | None = None
    item_id: str | None = None
    kind: str | None = None
    creator_id: uuid.UUID | None = None
    revenue_share_bps: int | None = None

    @property
    def is_marketplace_sale(self) -> bool:
        return bool(self.tenant_id and self.item_id and self.kind)


@dataclass(frozen=True)
class InvoicePaid(ProviderEvent):
    invoice_id: str
    amount_paid: int
    currency: str
    subscription_ref: str | None = None
    billing_reason: str | None = None
    payment_ref: str | None = None

    @property
    def is_subscription_creation(self) -> bool:
        """The first invoice is already covered by checkout.session.completed."""
        return self.billing_reason == "subscription_create"


@dataclass(frozen=True)
class InvoicePaymentFailed(ProviderEvent):
    invoice_id: str
    subscription_ref: str | None = None


@dataclass(frozen=True)
class SubscriptionUpdated(ProviderEvent):
    subscription_id: str
    status: str
    cancel_at_period_end: bool = False
    current_period_end: datetime | None = None


@dataclass(frozen=True)
class SubscriptionDeleted(ProviderEvent):
    subscription_id: str


@dataclass(frozen=True)
class ChargeRefunded(ProviderEvent):
    charge_id: str
    refunded: bool
    amount_refunded: int = 0
    payment_ref: str | None = None


@dataclass(frozen=True)
class DisputeCreated(ProviderEvent):
    dispute_id: str
    charge_id: str
    payment_ref: str | None = None
    reason: str = ""


@dataclass(frozen=True)
class TransferCreated(ProviderEvent):
    transfer_id: str
    amount: int = 0
    payout_id: uuid.UUID | None = None


@dataclass(frozen=True)
class TransferFailed(ProviderEvent):
    transfer_id: str
    payout_id: uuid.UUID | None = None
    failure_message: str = ""


@dataclass(frozen=True)
class AccountUpdated(ProviderEvent):
    account_id: str
    payouts_enabled: bool = False
    charges_enabled: bool = False
    details_submitted: bool = False
    disabled_reason: str | None = None
    requirements_due: tuple[str, ...] = ()




# =============================================================================
# Decoder Registry
# =============================================================================


Decoder = Callable[[str, str, dict[str, Any]], ProviderEvent]

# event type -> (serializer for data.object, decoder over its validated_data)
EVENT_DECODERS: dict[str, tuple[type[serializers.Serializer], Decoder]] = {}


def register_decoder(event_type: str, serializer_class: type[serializers.Serializer]) -> Callable:
    """Decorator registering a decoder and the serializer its object must pass."""

    def decorator(func: Decoder) -> Decoder:
        EVENT_DECODERS[event_type] = (serializer_class, func)
        return func

    return decorator


def _first_error(errors: Any, path: str) -> tuple[str, str]:
    """
    Walk DRF's nested serializer.errors down to the first failing field.

    Returns:
        (dotted path of the field, its first error message)
    """
    if isinstance(errors, dict):
        key, value = next(iter(errors.items()))
        if key != api_settings.NON_FIELD_ERRORS_KEY:
            path = f"{path}.{key}"
        return _first_error(value, path)
    if isinstance(errors, list):
        for index, item in enumerate(errors):
            if isinstance(item, (dict, list)):
                if item:
                    return _first_error(item, f"{path}.{index}")
            else:
                return path, str(item)
    return path, str(errors)


def decode_event(payload: Any) -> ProviderEvent | None:
    """
    Decode a Stripe event body into its typed event.

    Returns:
        The typed event, or None for an event type with no decoder

    Raises:
        MalformedEventError: If the envelope or the object does not match
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Event body must be a JSON object")

    event_id = payload.get("id")
    event_type = payload.get("type")
    if not isinstance(event_id, str) or not event_id:
        raise MalformedEventError("Event is missing id", details={"field": "id"})
    if not isinstance(event_type, str) or not event_type:
        raise MalformedEventError("Event is missing type", details={"field": "type"})

    registered = EVENT_DECODERS.get(event_type)
    if registered is None:
        return None
    serializer_class, decoder = registered

    data = payload.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise MalformedEventError(
            f"{event_type}: data.object must be an object",
            details={"event_type": event_type, "field": "data.object"},
        )

    serializer = serializer_class(data=obj)
    if not serializer.is_valid():
        field, message = _first_error(serializer.errors, "data.object")
        raise MalformedEventError(
            f"{event_type}: {field}: {message}",
            details={"event_type": event_type, "field": field},
        )

    return decoder(event_id, event_type, serializer.validated_data)


def _timestamp(value: int | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


# =============================================================================
# Decoders
# =============================================================================


@register_decoder("checkout.session.completed", CheckoutSessionSerializer)
def _decode_checkout_completed(event_id: str, event_type: str, obj: dict) -> CheckoutCompleted:
    metadata = obj.get("metadata") or {}
    return CheckoutCompleted(
        event_id=event_id,
        event_type=event_type,
        session_id=obj["id"],
        amount_total=obj["amount_total"],
        currency=obj["currency"].lower(),
        customer_ref=obj.get("customer") or "",
        payment_ref=obj.get("payment_intent"),
        subscription_ref=obj.get("subscription"),
        tenant_id=metadata.get("tenant_id"),
        buyer_id=metadata.get("buyer_id") or metadata.get("user_id"),
        item_id=metadata.get("item_id"),
        kind=metadata.get("kind"),
        creator_id=metadata.get("creator_id"),
        revenue_share_bps=metadata.get("revenue_share_bps"),
    )


def _invoice_subscription(obj: dict) -> str | None:
    if obj.get("subscription"):
        return obj["subscription"]
    details = (obj.get("parent") or {}).get("subscription_details") or {}
    return details.get("subscription")


@register_decoder("invoice.paid", PaidInvoiceSerializer)
def _decode_invoice_paid(event_id: str, event_type: str, obj: dict) -> InvoicePaid:
    return InvoicePaid(
        event_id=event_id,
        event_type=event_type,
        invoice_id=obj["id"],
        amount_paid=obj["amount_paid"],
        currency=obj["currency"].lower(),
        subscription_ref=_invoice_subscription(obj),
        billing_reason=obj.get("billing_reason") or None,
        payment_ref=obj.get("payment_intent") or obj.get("charge"),
    )


@register_decoder("invoice.payment_failed", InvoiceSerializer)
def _decode_invoice_payment_failed(
    event_id: str, event_type: str, obj: dict
) -> InvoicePaymentFailed:
    return InvoicePaymentFailed(
        event_id=event_id,
        event_type=event_type,
        invoice_id=obj["id"],
        subscription_ref=_invoice_subscription(obj),
    )


@register_decoder("customer.subscription.updated", SubscriptionSerializer)
def _decode_subscription_updated(
    event_id: str, event_type: str, obj: dict
) -> SubscriptionUpdated:
    period_end = obj.get("current_period_end")
    if period_end is None:
        items = (obj.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")

    return SubscriptionUpdated(
        event_id=event_id,
        event_type=event_type,
        subscription_id=obj["id"],
        status=obj["status"],
        cancel_at_period_end=bool(obj.get("cancel_at_period_end")),
        current_period_end=_timestamp(period_end),
    )


@register_decoder("customer.subscription.deleted", StripeObjectSerializer)
def _decode_subscription_deleted(
    event_id: str, event_type: str, obj: dict
) -> SubscriptionDeleted:
    return SubscriptionDeleted(
        event_id=event_id,
        event_type=event_type,
        subscription_id=obj["id"],
    )


@register_decoder("charge.refunded", ChargeSerializer)
def _decode_charge_refunded(event_id: str, event_type: str, obj: dict) -> ChargeRefunded:
    return ChargeRefunded(
        event_id=event_id,
        event_type=event_type,
        charge_id=obj["id"],
        refunded=bool(obj.get("refunded")),
        amount_refunded=obj.get("amount_refunded") or 0,
        payment_ref=obj.get("payment_intent"),
    )


@register_decoder("charge.dispute.created", DisputeSerializer)
def _decode_dispute_created(event_id: str, event_type: str, obj: dict) -> DisputeCreated:
    return DisputeCreated(
        event_id=event_id,
        event_type=event_type,
        dispute_id=obj["id"],
        charge_id=obj["charge"],
        payment_ref=obj.get("payment_intent"),
        reason=obj.get("reason") or "",
    )


@register_decoder("transfer.created", TransferSerializer)
def _decode_transfer_created(event_id: str, event_type: str, obj: dict) -> TransferCreated:
    return TransferCreated(
        event_id=event_id,
        event_type=event_type,
        transfer_id=obj["id"],
        amount=obj.get("amount") or 0,
        payout_id=(obj.get("metadata") or {}).get("payout_id"),
    )


@register_decoder("transfer.failed", TransferSerializer)
def _decode_transfer_failed(event_id: str, event_type: str, obj: dict) -> TransferFailed:
    return TransferFailed(
        event_id=event_id,
        event_type=event_type,
        transfer_id=obj["id"],
        payout_id=(obj.get("metadata") or {}).get("payout_id"),
        failure_message=obj.get("failure_message") or "",
    )


@register_decoder("account.updated", AccountSerializer)
def _decode_account_updated(event_id: str, event_type: str, obj: dict) -> AccountUpdated:
    requirements = obj.get("requirements") or {}
    due = list(requirements.get("currently_due") or []) + list(
        requirements.get("past_due") or []
    )
    return AccountUpdated(
        event_id=event_id,
        event_type=event_type,
        account_id=obj["id"],
        payouts_enabled=bool(obj.get("payouts_enabled")),
        charges_enabled=bool(obj.get("charges_enabled")),
        details_submitted=bool(obj.get("details_submitted")),
        disabled_reason=requirements.get("disabled_reason") or None,
        requirements_due=tuple(due),
    )
