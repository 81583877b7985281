"""
Settlement admin configuration.

State changes go through the service layer. The only write action offered
here is canceling a pending payout, which calls SettlementService.
"""

from django.contrib import admin, messages

from settlement.exceptions import InvalidStateTransitionError
from settlement.models import (
    Creator,
    CreatorEarning,
    Payout,
    PayoutLineItem,
    PayoutRun,
    Purchase,
    WebhookEvent,
)
from settlement.services import SettlementService


def _amount(minor: int, currency: str) -> str:
    return f"{minor / 100:.2f} {currency.upper()}"


@admin.register(Creator)
class CreatorAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "display_name",
        "stripe_account_id",
        "verification_status",
        "payouts_enabled",
        "minimum_payout_minor",
        "created_at",
    ]
    list_filter = ["verification_status", "payouts_enabled"]
    search_fields = ["id", "display_name", "email", "stripe_account_id"]
    readonly_fields = ["id", "created_at", "updated_at"]
    ordering = ["-created_at"]


@admin.register(Purchase)
class PurchaseAdmin(admin.ModelAdmin):
    """
    Admin configuration for Purchase.

    Read-only view of the purchase ledger; status is driven by webhooks.
    """

    list_display = [
        "id",
        "buyer_id",
        "item_id",
        "kind",
        "status",
        "amount_display",
        "created_at",
    ]
    list_filter = ["status", "kind", "currency", "created_at"]
    search_fields = [
        "id",
        "buyer_id",
        "item_id",
        "external_charge_ref",
        "external_payment_ref",
        "external_subscription_ref",
    ]
    readonly_fields = [
        "id",
        "status",
        "fingerprint",
        "starts_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Purchase) -> str:
        """Display the amount formatted as currency."""
        return _amount(obj.amount_minor, obj.currency)

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for purchases (audit trail)."""
        return False


@admin.register(CreatorEarning)
class CreatorEarningAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "creator",
        "item_id",
        "net_display",
        "earned_at",
        "payout",
        "paid_out",
        "is_voided",
        "clawback_required",
    ]
    list_filter = ["paid_out", "is_voided", "clawback_required", "currency"]
    search_fields = ["id", "dedupe_key", "charge_ref", "item_id", "creator__display_name"]
    date_hierarchy = "earned_at"
    ordering = ["-earned_at"]

    def net_display(self, obj: CreatorEarning) -> str:
        return _amount(obj.net_minor, obj.currency)

    net_display.short_description = "Net"

    def has_add_permission(self, request) -> bool:
        """Earnings are only recorded from purchase events."""
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        """Earnings are append-only."""
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


class PayoutLineItemInline(admin.TabularInline):
    model = PayoutLineItem
    extra = 0
    can_delete = False
    readonly_fields = ["earning", "item_id", "purchase_id", "net_minor", "currency", "earned_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Provides visibility into payout status and history, and an action to
    cancel pending payouts that have not requested a transfer yet.
    """

    list_display = [
        "id",
        "creator",
        "amount_display",
        "period_start",
        "period_end",
        "status",
        "paid_at",
        "created_at",
    ]
    list_filter = ["status", "currency", "created_at"]
    search_fields = ["id", "external_transfer_ref", "creator__stripe_account_id"]
    readonly_fields = [
        "id",
        "creator",
        "run",
        "currency",
        "period_start",
        "period_end",
        "gross_minor",
        "net_minor",
        "earnings_count",
        "status",
        "external_transfer_ref",
        "transfer_requested_at",
        "failure_reason",
        "report_url",
        "paid_at",
        "failed_at",
        "created_at",
        "updated_at",
    ]
    inlines = [PayoutLineItemInline]
    actions = ["cancel_payouts"]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def amount_display(self, obj: Payout) -> str:
        """Display the amount formatted as currency."""
        return _amount(obj.net_minor, obj.currency)

    amount_display.short_description = "Amount"

    @admin.action(description="Cancel selected pending payouts")
    def cancel_payouts(self, request, queryset):
        canceled = 0
        for payout in queryset:
            try:
                SettlementService.cancel_payout(
                    payout.id, reason=f"by {request.user.get_username()}"
                )
                canceled += 1
            except InvalidStateTransitionError as e:
                self.message_user(
                    request, f"Payout {payout.id}: {e.message}", level=messages.WARNING
                )
        if canceled:
            self.message_user(request, f"Canceled {canceled} payout(s).")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payouts (audit trail)."""
        return False


@admin.register(PayoutRun)
class PayoutRunAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "period_start",
        "period_end",
        "dry_run",
        "status",
        "payouts_created",
        "payouts_paid",
        "payouts_failed",
        "started_at",
    ]
    list_filter = ["status", "dry_run"]
    ordering = ["-started_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_change_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Useful for debugging webhook processing issues.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "created_at",
        "updated_at",
        "processed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        """Webhook events are created by Stripe only."""
        return False
