"""
Serializers for the data.object of each supported Stripe event.

They validate the shape of the object only; decoders in events.py turn
validated_data into typed events. Unknown keys are ignored, since Stripe
adds fields between API versions.
"""

from rest_framework import serializers

from settlement.state_machines import PurchaseKind


class StripeRefField(serializers.Field):
    """
    An object id that Stripe sends either bare or as an expanded object.

    "pi_123" and {"id": "pi_123", "object": "payment_intent"} both
    validate to "pi_123". An empty value validates to None.
    """

    default_error_messages = {
        "invalid": "Must be an id or an object with an id.",
    }

    def to_internal_value(self, data):
        if isinstance(data, dict):
            data = data.get("id")
        if data is None or data == "":
            return None
        if not isinstance(data, str):
            self.fail("invalid")
        return data

    def to_representation(self, value):
        return value


class StripeObjectSerializer(serializers.Serializer):
    """Base for every Stripe object: all carry an id."""

    id = serializers.CharField()


class StripeMetadataSerializer(serializers.Serializer):
    """Stripe metadata values are strings; a blank value means unset."""

    def to_internal_value(self, data):
        if isinstance(data, dict):
            data = {key: value for key, value in data.items() if value not in ("", None)}
        return super().to_internal_value(data)


# =============================================================================
# Checkout
# =============================================================================


class CheckoutMetadataSerializer(StripeMetadataSerializer):
    """Marketplace fields set on the session by the checkout flow."""

    tenant_id = serializers.CharField(required=False)
    buyer_id = serializers.CharField(required=False)
    user_id = serializers.CharField(required=False, help_text="Older checkouts use user_id")
    item_id = serializers.CharField(required=False)
    kind = serializers.ChoiceField(choices=PurchaseKind.choices, required=False)
    creator_id = serializers.UUIDField(required=False)
    revenue_share_bps = serializers.IntegerField(required=False)


class CheckoutSessionSerializer(StripeObjectSerializer):
    amount_total = serializers.IntegerField()
    currency = serializers.CharField()
    customer = StripeRefField(required=False, allow_null=True)
    payment_intent = StripeRefField(required=False, allow_null=True)
    subscription = StripeRefField(required=False, allow_null=True)
    metadata = CheckoutMetadataSerializer(required=False, allow_null=True)


# =============================================================================
# Invoices & Subscriptions
# =============================================================================


class SubscriptionDetailsSerializer(serializers.Serializer):
    subscription = StripeRefField(required=False, allow_null=True)


class InvoiceParentSerializer(serializers.Serializer):
    subscription_details = SubscriptionDetailsSerializer(required=False, allow_null=True)


class InvoiceSerializer(StripeObjectSerializer):
    """
    An invoice.

    Newer API versions move the subscription under
    parent.subscription_details.subscription.
    """

    subscription = StripeRefField(required=False, allow_null=True)
    parent = InvoiceParentSerializer(required=False, allow_null=True)


class PaidInvoiceSerializer(InvoiceSerializer):
    amount_paid = serializers.IntegerField()
    currency = serializers.CharField()
    billing_reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    payment_intent = StripeRefField(required=False, allow_null=True)
    charge = StripeRefField(required=False, allow_null=True)


class SubscriptionItemSerializer(serializers.Serializer):
    current_period_end = serializers.IntegerField(required=False, allow_null=True)


class SubscriptionItemListSerializer(serializers.Serializer):
    data = SubscriptionItemSerializer(many=True, required=False)


class SubscriptionSerializer(StripeObjectSerializer):
    """
    A subscription.

    Newer API versions report current_period_end per item rather than on
    the subscription itself.
    """

    status = serializers.CharField()
    cancel_at_period_end = serializers.BooleanField(default=False, allow_null=True)
    current_period_end = serializers.IntegerField(required=False, allow_null=True)
    items = SubscriptionItemListSerializer(required=False, allow_null=True)


# =============================================================================
# Charges
# =============================================================================


class ChargeSerializer(StripeObjectSerializer):
    refunded = serializers.BooleanField(default=False, allow_null=True)
    amount_refunded = serializers.IntegerField(required=False, allow_null=True)
    payment_intent = StripeRefField(required=False, allow_null=True)


class DisputeSerializer(StripeObjectSerializer):
    charge = StripeRefField()
    payment_intent = StripeRefField(required=False, allow_null=True)
    reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)

    def validate_charge(self, value):
        if value is None:
            raise serializers.ValidationError("A dispute must name its charge.")
        return value


# =============================================================================
# Transfers & Accounts
# =============================================================================


class TransferMetadataSerializer(StripeMetadataSerializer):
    payout_id = serializers.UUIDField(required=False)


class TransferSerializer(StripeObjectSerializer):
    amount = serializers.IntegerField(required=False, allow_null=True)
    metadata = TransferMetadataSerializer(required=False, allow_null=True)
    failure_message = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class AccountRequirementsSerializer(serializers.Serializer):
    disabled_reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    currently_due = serializers.ListField(
        child=serializers.CharField(), required=False, allow_null=True
    )
    past_due = serializers.ListField(
        child=serializers.CharField(), required=False, allow_null=True
    )


class AccountSerializer(StripeObjectSerializer):
    payouts_enabled = serializers.BooleanField(default=False, allow_null=True)
    charges_enabled = serializers.BooleanField(default=False, allow_null=True)
    details_submitted = serializers.BooleanField(default=False, allow_null=True)
    requirements = AccountRequirementsSerializer(required=False, allow_null=True)
