"""
Serializers for the settlement read API.

Serializers:
    PurchaseStatusQuerySerializer: Validates buyer_id/item_id query params
    PurchaseStatusSerializer: Purchase status and entitlement window
    PeriodQuerySerializer: Validates period_start/period_end query params
    EarningsSummarySerializer: Per-currency earnings totals
    PayoutSerializer: Payout history entry
"""

from __future__ import annotations

from rest_framework import serializers

from settlement.models import Payout, Purchase


class PurchaseStatusQuerySerializer(serializers.Serializer):
    buyer_id = serializers.CharField(max_length=255)
    item_id = serializers.CharField(max_length=255)


class PurchaseStatusSerializer(serializers.ModelSerializer):
    """Purchase state as seen by the storefront."""

    is_entitled = serializers.BooleanField(read_only=True)

    class Meta:
        model = Purchase
        fields = [
            "id",
            "buyer_id",
            "item_id",
            "kind",
            "status",
            "is_entitled",
            "currency",
            "amount_minor",
            "starts_at",
            "expires_at",
            "created_at",
        ]
        read_only_fields = fields


class PeriodQuerySerializer(serializers.Serializer):
    """
    Inclusive settlement period.

    Validation:
        - period_end must not be before period_start
    """

    period_start = serializers.DateField()
    period_end = serializers.DateField()

    def validate(self, attrs):
        if attrs["period_end"] < attrs["period_start"]:
            raise serializers.ValidationError(
                {"period_end": "period_end must not be before period_start."}
            )
        return attrs


class EarningsSummarySerializer(serializers.Serializer):
    currency = serializers.CharField()
    earnings_count = serializers.IntegerField()
    total_gross_minor = serializers.IntegerField()
    total_fee_minor = serializers.IntegerField()
    total_net_minor = serializers.IntegerField()
    unpaid_net_minor = serializers.IntegerField()
    reserved_net_minor = serializers.IntegerField()
    paid_net_minor = serializers.IntegerField()
    voided_net_minor = serializers.IntegerField()
    clawback_net_minor = serializers.IntegerField()


class PayoutSerializer(serializers.ModelSerializer):
    is_canceled = serializers.BooleanField(read_only=True)

    class Meta:
        model = Payout
        fields = [
            "id",
            "currency",
            "period_start",
            "period_end",
            "gross_minor",
            "net_minor",
            "earnings_count",
            "status",
            "is_canceled",
            "external_transfer_ref",
            "failure_reason",
            "report_url",
            "paid_at",
            "failed_at",
            "created_at",
        ]
        read_only_fields = fields
