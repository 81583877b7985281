"""
Purchase model: one buyer's claim on one marketplace item.

Purchases are created pending when checkout starts and activated when the
payment provider confirms the checkout. Subscriptions then follow the
provider's subscription lifecycle.

Usage:
    from settlement.models import Purchase

    purchase.activate()
    purchase.save()

    if can_proceed(purchase.mark_past_due):
        purchase.mark_past_due()
        purchase.save()
"""

from __future__ import annotations

import hashlib

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.state_machines import PurchaseKind, PurchaseStatus


def purchase_fingerprint(tenant_id: str, item_id: str, charge_ref: str) -> str:
    """Short, stable dedupe hash for a purchase."""
    raw = f"{tenant_id}-{item_id}-{charge_ref}"
    return hashlib.sha256(raw.encode()).hexdigest()[:16]


class Purchase(UUIDPrimaryKeyMixin, BaseModel):
    """
    Durable record of a buyer's entitlement to an item.

    State Flow:
        PENDING -> ACTIVE (checkout.session.completed)
        PENDING -> PAYMENT_FAILED / CANCELED
        ACTIVE <-> PAST_DUE
        ACTIVE/PAST_DUE -> CANCELING -> CANCELED
        CANCELING/PAST_DUE -> ACTIVE
        any non-refunded state except PAYMENT_FAILED -> REFUNDED

    Fields:
        tenant_id: Marketplace tenant the sale belongs to
        buyer_id: Buyer identity from the front end
        item_id: Purchased marketplace item
        creator: Creator owed a share of the revenue
        revenue_share_bps: Creator share captured at checkout
        external_customer_ref: Stripe Customer ID (cus_xxx)
        external_charge_ref: Stripe Checkout Session ID
        external_payment_ref: PaymentIntent that paid the checkout
        external_subscription_ref: Stripe Subscription ID (sub_xxx)
        last_invoice_ref: Last renewal invoice applied (in_xxx)
        currency: ISO 4217 currency code (lowercase)
        amount_minor: Checkout amount in minor units
        kind: one_off or subscription
        status: Current FSM state
        starts_at: When the entitlement began
        expires_at: When the entitlement ends (subscriptions)
        fingerprint: Dedupe hash of tenant, item and charge reference

    Note:
        external_charge_ref is unique: a second webhook for the same charge
        upserts, never duplicates.
    """

    # ==========================================================================
    # Ownership
    # ==========================================================================

    tenant_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Marketplace tenant the sale belongs to",
    )

    buyer_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Buyer identity supplied by the checkout flow",
    )

    item_id = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Purchased marketplace item",
    )

    creator = models.ForeignKey(
        "settlement.Creator",
        on_delete=models.PROTECT,
        related_name="purchases",
        null=True,
        blank=True,
        help_text="Creator owed a share of this purchase",
    )

    revenue_share_bps = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Creator share in basis points captured at checkout",
    )

    # ==========================================================================
    # Stripe References
    # ==========================================================================

    external_customer_ref = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Customer ID (cus_xxx)",
    )

    external_charge_ref = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Checkout Session ID (cs_xxx) - idempotency key",
    )

    external_subscription_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Subscription ID (sub_xxx)",
    )

    external_payment_ref = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe PaymentIntent (pi_xxx) that paid the checkout, used to match refunds",
    )

    last_invoice_ref = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Most recent renewal invoice applied (in_xxx)",
    )

    # ==========================================================================
    # Amount & Kind
    # ==========================================================================

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    amount_minor = models.PositiveBigIntegerField(
        help_text="Checkout amount in smallest currency unit",
    )

    kind = models.CharField(
        max_length=20,
        choices=PurchaseKind.choices,
        default=PurchaseKind.ONE_OFF,
        help_text="One-off purchase or subscription",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PurchaseStatus.PENDING,
        choices=PurchaseStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the purchase (managed by FSM)",
    )

    starts_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the entitlement began",
    )

    expires_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the entitlement ends (subscriptions only)",
    )

    fingerprint = models.CharField(
        max_length=16,
        db_index=True,
        help_text="Dedupe hash of tenant, item and charge reference",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Purchase"
        verbose_name_plural = "Purchases"
        indexes = [
            models.Index(fields=["buyer_id", "item_id"], name="purchase_buyer_item_idx"),
            models.Index(fields=["status", "kind"], name="purchase_status_kind_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(revenue_share_bps__lte=10000),
                name="purchase_revenue_share_bps_range",
            ),
        ]

    def __str__(self) -> str:
        return f"Purchase({self.id}, {self.status}, {self.item_id})"

    def save(self, *args, **kwargs):
        if not self.fingerprint:
            self.fingerprint = purchase_fingerprint(
                self.tenant_id, self.item_id, self.external_charge_ref
            )
        super().save(*args, **kwargs)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PurchaseStatus.PENDING,
        target=PurchaseStatus.ACTIVE,
    )
    def activate(self):
        """Checkout confirmed by the provider."""
        if self.starts_at is None:
            self.starts_at = timezone.now()

    @transition(
        field=status,
        source=[PurchaseStatus.PAST_DUE, PurchaseStatus.CANCELING],
        target=PurchaseStatus.ACTIVE,
    )
    def reactivate(self):
        """Payment recovered or scheduled cancellation withdrawn."""
        pass

    @transition(
        field=status,
        source=PurchaseStatus.ACTIVE,
        target=PurchaseStatus.PAST_DUE,
    )
    def mark_past_due(self):
        pass

    @transition(
        field=status,
        source=[PurchaseStatus.ACTIVE, PurchaseStatus.PAST_DUE],
        target=PurchaseStatus.CANCELING,
    )
    def schedule_cancellation(self):
        """Subscription set to cancel at the end of the current period."""
        pass

    @transition(
        field=status,
        source=[
            PurchaseStatus.PENDING,
            PurchaseStatus.ACTIVE,
            PurchaseStatus.PAST_DUE,
            PurchaseStatus.CANCELING,
        ],
        target=PurchaseStatus.CANCELED,
    )
    def cancel(self):
        pass

    @transition(
        field=status,
        source=PurchaseStatus.PENDING,
        target=PurchaseStatus.PAYMENT_FAILED,
    )
    def mark_payment_failed(self):
        pass

    @transition(
        field=status,
        source=[
            PurchaseStatus.PENDING,
            PurchaseStatus.ACTIVE,
            PurchaseStatus.PAST_DUE,
            PurchaseStatus.CANCELING,
            PurchaseStatus.CANCELED,
        ],
        target=PurchaseStatus.REFUNDED,
    )
    def refund(self):
        """Charge refunded or disputed."""
        pass

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_subscription(self) -> bool:
        return self.kind == PurchaseKind.SUBSCRIPTION

    @property
    def is_entitled(self) -> bool:
        """Check if the buyer currently has access to the item."""
        return self.status in [
            PurchaseStatus.ACTIVE,
            PurchaseStatus.PAST_DUE,
            PurchaseStatus.CANCELING,
        ]
