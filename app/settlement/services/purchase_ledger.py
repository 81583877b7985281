"""
Purchase ledger service.

Maintains the durable Purchase record for every marketplace sale. The
ledger is driven by the Stripe webhook handlers and, for the pending
row, by the checkout flow.

Idempotency:
    external_charge_ref (the Checkout Session ID) is unique. Concurrent
    deliveries of the same checkout race on the insert; the loser re-reads
    the winner's row and continues as an update.

Usage:
    from settlement.services import PurchaseLedgerService

    result = PurchaseLedgerService.upsert_from_checkout(
        charge_ref="cs_test_123",
        tenant_id="tenant_1",
        buyer_id="user_1",
        item_id="item_1",
        amount_minor=2900,
        currency="usd",
        kind=PurchaseKind.ONE_OFF,
    )
    if result.activated:
        ...
"""

from __future__ import annotations

import uuid
from datetime import datetime

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from django_fsm import can_proceed

from core.services import BaseService

from settlement.calculator import split
from settlement.exceptions import SettlementValidationError, UnknownReferenceError
from settlement.models import Creator, CreatorEarning, Purchase
from settlement.state_machines import PurchaseKind, PurchaseStatus
from settlement.types import CheckoutResult, PurchaseIntent, RefundMatch, RenewalSignal


class PurchaseLedgerService(BaseService):
    """
    Service for creating and advancing Purchase records.

    Status changes go through the django-fsm transitions on Purchase. A
    requested status that the current state cannot reach is logged and
    left alone, since providers deliver events out of order.
    """

    # Transitions that lead to each target status, tried in order
    STATUS_TRANSITIONS: dict[str, tuple[str, ...]] = {
        PurchaseStatus.ACTIVE: ("activate", "reactivate"),
        PurchaseStatus.PAST_DUE: ("mark_past_due",),
        PurchaseStatus.CANCELING: ("schedule_cancellation",),
        PurchaseStatus.CANCELED: ("cancel",),
        PurchaseStatus.PAYMENT_FAILED: ("mark_payment_failed",),
        PurchaseStatus.REFUNDED: ("refund",),
    }

    # ==========================================================================
    # Checkout
    # ==========================================================================

    @classmethod
    def record_checkout_intent(
        cls,
        intent: PurchaseIntent,
        charge_ref: str,
        customer_ref: str = "",
    ) -> Purchase:
        """
        Record a pending purchase when checkout starts.

        Args:
            intent: Purchase data from the checkout flow
            charge_ref: Checkout Session ID the purchase will be confirmed by
            customer_ref: Stripe Customer ID, if already known

        Returns:
            The pending Purchase (or the existing row for this charge_ref)

        Raises:
            SettlementValidationError: If the amount or kind is invalid
            InvalidRevenueShareError: If the revenue share is out of range
            UnknownReferenceError: If the creator does not exist
        """
        if intent.kind not in PurchaseKind.values:
            raise SettlementValidationError(
                f"Unknown purchase kind: {intent.kind}",
                details={"kind": intent.kind},
            )
        if intent.amount_minor <= 0:
            raise SettlementValidationError(
                "amount_minor must be positive",
                details={"amount_minor": intent.amount_minor},
            )
        # Validates the share before anything is written
        split(intent.amount_minor, intent.revenue_share_bps)

        creator = Creator.objects.filter(id=intent.creator_id).first()
        if creator is None:
            raise UnknownReferenceError(
                "Creator not found",
                error_code="CREATOR_NOT_FOUND",
                details={"creator_id": str(intent.creator_id)},
            )

        existing = Purchase.objects.filter(external_charge_ref=charge_ref).first()
        if existing is not None:
            return existing

        try:
            with transaction.atomic():
                purchase = Purchase.objects.create(
                    tenant_id=intent.tenant_id,
                    buyer_id=intent.buyer_id,
                    item_id=intent.item_id,
                    creator=creator,
                    revenue_share_bps=intent.revenue_share_bps,
                    external_customer_ref=customer_ref,
                    external_charge_ref=charge_ref,
                    currency=intent.currency.lower(),
                    amount_minor=intent.amount_minor,
                    kind=intent.kind,
                )
        except IntegrityError:
            purchase = Purchase.objects.get(external_charge_ref=charge_ref)

        cls.get_logger().info(
            "Recorded checkout intent",
            extra={
                "purchase_id": str(purchase.id),
                "charge_ref": charge_ref,
                "item_id": intent.item_id,
            },
        )
        return purchase

    @classmethod
    def upsert_from_checkout(
        cls,
        *,
        charge_ref: str,
        tenant_id: str,
        buyer_id: str,
        item_id: str,
        amount_minor: int,
        currency: str,
        kind: str,
        customer_ref: str = "",
        payment_ref: str | None = None,
        subscription_ref: str | None = None,
        creator_id: uuid.UUID | None = None,
        revenue_share_bps: int | None = None,
    ) -> CheckoutResult:
        """
        Create or activate the purchase for a confirmed checkout.

        An existing pending row (from record_checkout_intent) is activated
        and any missing references are filled in. Creator and revenue share
        from the intent win over the checkout metadata.

        Returns:
            CheckoutResult; activated is True only for the call that moved
            the purchase to ACTIVE.
        """
        with transaction.atomic():
            purchase = cls._lock_for_checkout(charge_ref, subscription_ref)

            if purchase is None:
                creator = cls._resolve_creator(creator_id)
                try:
                    with transaction.atomic():
                        purchase = Purchase(
                            tenant_id=tenant_id,
                            buyer_id=buyer_id,
                            item_id=item_id,
                            creator=creator,
                            revenue_share_bps=(
                                revenue_share_bps if creator is not None else None
                            ),
                            external_customer_ref=customer_ref,
                            external_charge_ref=charge_ref,
                            external_payment_ref=payment_ref,
                            external_subscription_ref=subscription_ref,
                            currency=currency.lower(),
                            amount_minor=amount_minor,
                            kind=kind,
                        )
                        purchase.activate()
                        purchase.save()
                except IntegrityError:
                    purchase = cls._lock_for_checkout(charge_ref, subscription_ref)
                    if purchase is None:
                        raise
                else:
                    cls._log_checkout(purchase, activated=True)
                    return CheckoutResult(purchase=purchase, activated=True)

            if not purchase.external_customer_ref and customer_ref:
                purchase.external_customer_ref = customer_ref
            if not purchase.external_payment_ref and payment_ref:
                purchase.external_payment_ref = payment_ref
            if not purchase.external_subscription_ref and subscription_ref:
                purchase.external_subscription_ref = subscription_ref
            if purchase.creator_id is None and creator_id is not None:
                creator = cls._resolve_creator(creator_id)
                if creator is not None:
                    purchase.creator = creator
                    purchase.revenue_share_bps = revenue_share_bps

            activated = False
            if can_proceed(purchase.activate):
                purchase.activate()
                activated = True
            purchase.save()

        cls._log_checkout(purchase, activated=activated)
        return CheckoutResult(purchase=purchase, activated=activated)

    # ==========================================================================
    # Subscription Lifecycle
    # ==========================================================================

    @classmethod
    def mark_renewed(
        cls,
        subscription_ref: str,
        invoice_ref: str,
        amount_minor: int,
        charge_ref: str | None = None,
    ) -> RenewalSignal | None:
        """
        Record a paid renewal invoice on its subscription purchase.

        Returns:
            RenewalSignal for the earnings accumulator, or None when the
            subscription is unknown.
        """
        purchase = Purchase.objects.filter(
            external_subscription_ref=subscription_ref
        ).first()
        if purchase is None:
            cls.get_logger().warning(
                "Renewal for unknown subscription",
                extra={"subscription_ref": subscription_ref, "invoice_ref": invoice_ref},
            )
            return None

        Purchase.objects.filter(id=purchase.id).exclude(
            last_invoice_ref=invoice_ref
        ).update(last_invoice_ref=invoice_ref, updated_at=timezone.now())

        return RenewalSignal(
            purchase=purchase,
            invoice_ref=invoice_ref,
            amount_minor=amount_minor,
            charge_ref=charge_ref,
        )

    @classmethod
    def link_payment_ref(cls, subscription_ref: str, payment_ref: str) -> bool:
        """
        Attach the first invoice's PaymentIntent to a subscription purchase.

        The checkout earning of a subscription has no charge reference until
        this point, since the session itself carries no PaymentIntent.
        """
        now = timezone.now()
        purchase = Purchase.objects.filter(external_subscription_ref=subscription_ref).first()
        if purchase is None:
            return False

        updated = Purchase.objects.filter(
            id=purchase.id, external_payment_ref__isnull=True
        ).update(external_payment_ref=payment_ref, updated_at=now)
        CreatorEarning.objects.filter(
            purchase=purchase,
            source_ref=purchase.external_charge_ref,
            charge_ref__isnull=True,
        ).update(charge_ref=payment_ref, updated_at=now)
        return updated > 0

    @classmethod
    def mark_status(
        cls,
        ref: str,
        new_status: str,
        expires_at: datetime | None = None,
    ) -> Purchase | None:
        """
        Move a purchase toward new_status.

        Args:
            ref: Subscription ID or Checkout Session ID of the purchase
            new_status: Target PurchaseStatus
            expires_at: New entitlement end, when the provider reports one

        Returns:
            The purchase, or None when ref is unknown
        """
        if new_status not in cls.STATUS_TRANSITIONS:
            raise SettlementValidationError(
                f"Cannot move a purchase to {new_status}",
                details={"new_status": new_status},
            )

        with transaction.atomic():
            purchase = (
                Purchase.objects.select_for_update()
                .filter(Q(external_subscription_ref=ref) | Q(external_charge_ref=ref))
                .first()
            )
            if purchase is None:
                cls.get_logger().warning(
                    "Status change for unknown purchase",
                    extra={"ref": ref, "new_status": new_status},
                )
                return None

            if expires_at is not None:
                purchase.expires_at = expires_at

            if purchase.status != new_status:
                previous = purchase.status
                for name in cls.STATUS_TRANSITIONS[new_status]:
                    method = getattr(purchase, name)
                    if can_proceed(method):
                        method()
                        break
                else:
                    cls.get_logger().info(
                        "Ignoring unreachable purchase status",
                        extra={
                            "purchase_id": str(purchase.id),
                            "current_status": previous,
                            "new_status": new_status,
                        },
                    )
            purchase.save()

        return purchase

    @classmethod
    def mark_refunded(
        cls,
        charge_ref: str,
        payment_ref: str | None = None,
    ) -> RefundMatch | None:
        """
        Mark the purchase paid by a refunded or disputed charge as refunded.

        The charge is matched against recorded earnings first, so a refunded
        renewal reverses only its own earning. Otherwise it is matched
        against the purchase's checkout references.

        Returns:
            RefundMatch, or None when the charge is unknown
        """
        refs = [ref for ref in (charge_ref, payment_ref) if ref]

        with transaction.atomic():
            earning = CreatorEarning.objects.filter(charge_ref__in=refs).first()
            if earning is not None:
                purchase = Purchase.objects.select_for_update().get(id=earning.purchase_id)
            else:
                purchase = (
                    Purchase.objects.select_for_update()
                    .filter(
                        Q(external_payment_ref__in=refs) | Q(external_charge_ref__in=refs)
                    )
                    .first()
                )
            if purchase is None:
                cls.get_logger().warning(
                    "Refund for unknown charge",
                    extra={"charge_ref": charge_ref, "payment_ref": payment_ref},
                )
                return None

            if can_proceed(purchase.refund):
                purchase.refund()
                purchase.save()

        cls.get_logger().info(
            "Purchase refunded",
            extra={"purchase_id": str(purchase.id), "charge_ref": charge_ref},
        )
        return RefundMatch(purchase=purchase, earning=earning)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @classmethod
    def _lock_for_checkout(
        cls, charge_ref: str, subscription_ref: str | None
    ) -> Purchase | None:
        lookup = Q(external_charge_ref=charge_ref)
        if subscription_ref:
            lookup |= Q(external_subscription_ref=subscription_ref)
        return Purchase.objects.select_for_update().filter(lookup).first()

    @classmethod
    def _resolve_creator(cls, creator_id: uuid.UUID | None) -> Creator | None:
        if creator_id is None:
            return None
        creator = Creator.objects.filter(id=creator_id).first()
        if creator is None:
            cls.get_logger().warning(
                "Checkout references unknown creator",
                extra={"creator_id": str(creator_id)},
            )
        return creator

    @classmethod
    def _log_checkout(cls, purchase: Purchase, activated: bool) -> None:
        cls.get_logger().info(
            "Purchase upserted from checkout",
            extra={
                "purchase_id": str(purchase.id),
                "charge_ref": purchase.external_charge_ref,
                "status": purchase.status,
                "activated": activated,
            },
        )
