"""
Initial settlement schema.

Creates:
    - Creator: payee with a connected payout account
    - Purchase: purchase ledger entry keyed by checkout session
    - PayoutRun: one execution of the payout batch
    - Payout: per-(creator, currency, period) transfer
    - CreatorEarning: append-only earning ledger
    - PayoutLineItem: earnings snapshot for a payout report
    - WebhookEvent: idempotent Stripe event log
"""

import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models


def _base_fields():
    return [
        (
            "id",
            models.UUIDField(
                default=uuid.uuid4,
                editable=False,
                help_text="Unique identifier for this record",
                primary_key=True,
                serialize=False,
            ),
        ),
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Creator",
            fields=_base_fields()
            + [
                (
                    "display_name",
                    models.CharField(
                        help_text="Public name of the creator", max_length=255
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        blank=True,
                        help_text="Contact address for payout notices",
                        max_length=254,
                    ),
                ),
                (
                    "stripe_account_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Connected Account ID (acct_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "verification_status",
                    models.CharField(
                        choices=[
                            ("unverified", "Unverified"),
                            ("pending", "Pending Review"),
                            ("verified", "Verified"),
                            ("rejected", "Rejected"),
                        ],
                        db_index=True,
                        default="unverified",
                        help_text="Identity verification status on the payment rail",
                        max_length=20,
                    ),
                ),
                (
                    "payouts_enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether Stripe allows transfers to this account",
                    ),
                ),
                (
                    "charges_enabled",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the account can accept charges",
                    ),
                ),
                (
                    "minimum_payout_minor",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Minimum payout in minor units; falls back to PAYOUT_MINIMUM_MINOR",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Creator",
                "verbose_name_plural": "Creators",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Purchase",
            fields=_base_fields()
            + [
                (
                    "tenant_id",
                    models.CharField(
                        db_index=True,
                        help_text="Marketplace tenant the sale belongs to",
                        max_length=255,
                    ),
                ),
                (
                    "buyer_id",
                    models.CharField(
                        db_index=True,
                        help_text="Buyer identity supplied by the checkout flow",
                        max_length=255,
                    ),
                ),
                (
                    "item_id",
                    models.CharField(
                        db_index=True,
                        help_text="Purchased marketplace item",
                        max_length=255,
                    ),
                ),
                (
                    "creator",
                    models.ForeignKey(
                        blank=True,
                        help_text="Creator owed a share of this purchase",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchases",
                        to="settlement.creator",
                    ),
                ),
                (
                    "revenue_share_bps",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Creator share in basis points captured at checkout",
                        null=True,
                    ),
                ),
                (
                    "external_customer_ref",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Stripe Customer ID (cus_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "external_charge_ref",
                    models.CharField(
                        help_text="Stripe Checkout Session ID (cs_xxx) - idempotency key",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "external_subscription_ref",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Subscription ID (sub_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "external_payment_ref",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe PaymentIntent (pi_xxx) that paid the checkout, used to match refunds",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "last_invoice_ref",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Most recent renewal invoice applied (in_xxx)",
                        max_length=255,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "amount_minor",
                    models.PositiveBigIntegerField(
                        help_text="Checkout amount in smallest currency unit"
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("one_off", "One-off"),
                            ("subscription", "Subscription"),
                        ],
                        default="one_off",
                        help_text="One-off purchase or subscription",
                        max_length=20,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("canceling", "Canceling"),
                            ("canceled", "Canceled"),
                            ("refunded", "Refunded"),
                            ("payment_failed", "Payment Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the purchase (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "starts_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the entitlement began",
                        null=True,
                    ),
                ),
                (
                    "expires_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the entitlement ends (subscriptions only)",
                        null=True,
                    ),
                ),
                (
                    "fingerprint",
                    models.CharField(
                        db_index=True,
                        help_text="Dedupe hash of tenant, item and charge reference",
                        max_length=16,
                    ),
                ),
            ],
            options={
                "verbose_name": "Purchase",
                "verbose_name_plural": "Purchases",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["buyer_id", "item_id"], name="purchase_buyer_item_idx"
                    ),
                    models.Index(
                        fields=["status", "kind"], name="purchase_status_kind_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(revenue_share_bps__lte=10000),
                        name="purchase_revenue_share_bps_range",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutRun",
            fields=_base_fields()
            + [
                ("period_start", models.DateField()),
                ("period_end", models.DateField()),
                ("dry_run", models.BooleanField(default=False)),
                (
                    "creator",
                    models.ForeignKey(
                        blank=True,
                        help_text="Single-creator filter, when the run was a replay",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payout_runs",
                        to="settlement.creator",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("aborted", "Aborted"),
                        ],
                        db_index=True,
                        default="running",
                        max_length=20,
                    ),
                ),
                ("groups_evaluated", models.PositiveIntegerField(default=0)),
                ("groups_below_threshold", models.PositiveIntegerField(default=0)),
                ("reservation_conflicts", models.PositiveIntegerField(default=0)),
                ("payouts_created", models.PositiveIntegerField(default=0)),
                ("payouts_paid", models.PositiveIntegerField(default=0)),
                ("payouts_failed", models.PositiveIntegerField(default=0)),
                ("payouts_pending", models.PositiveIntegerField(default=0)),
                (
                    "totals",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Net amount reserved per currency",
                    ),
                ),
                ("error_message", models.TextField(blank=True, null=True)),
                (
                    "started_at",
                    models.DateTimeField(default=django.utils.timezone.now),
                ),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Payout Run",
                "verbose_name_plural": "Payout Runs",
                "ordering": ["-started_at"],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=_base_fields()
            + [
                (
                    "creator",
                    models.ForeignKey(
                        help_text="Creator receiving the payout",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to="settlement.creator",
                    ),
                ),
                (
                    "run",
                    models.ForeignKey(
                        blank=True,
                        help_text="Batch run that created this payout",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="payouts",
                        to="settlement.payoutrun",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        help_text="ISO 4217 currency code (lowercase)", max_length=3
                    ),
                ),
                (
                    "period_start",
                    models.DateField(help_text="First day of the settled period"),
                ),
                (
                    "period_end",
                    models.DateField(
                        help_text="Last day of the settled period (inclusive)"
                    ),
                ),
                (
                    "gross_minor",
                    models.BigIntegerField(
                        help_text="Sum of gross over reserved earnings"
                    ),
                ),
                (
                    "net_minor",
                    models.BigIntegerField(
                        help_text="Sum of net over reserved earnings - the transferred amount"
                    ),
                ),
                (
                    "earnings_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of earnings reserved by this payout",
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "external_transfer_ref",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Transfer ID (tr_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "transfer_requested_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the transfer call was issued. Blocks cancellation once set.",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True, help_text="Reason the payout failed", null=True
                    ),
                ),
                (
                    "report_url",
                    models.CharField(
                        blank=True,
                        help_text="Retrievable location of the line-item report",
                        max_length=1024,
                        null=True,
                    ),
                ),
                (
                    "paid_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the transfer was confirmed",
                        null=True,
                    ),
                ),
                (
                    "failed_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payout failed", null=True
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["creator", "status"], name="payout_creator_status_idx"
                    ),
                    models.Index(
                        fields=["status", "transfer_requested_at"],
                        name="payout_status_requested_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(net_minor__gt=0),
                        name="payout_net_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="CreatorEarning",
            fields=_base_fields()
            + [
                (
                    "creator",
                    models.ForeignKey(
                        help_text="Creator owed this earning",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings",
                        to="settlement.creator",
                    ),
                ),
                (
                    "purchase",
                    models.ForeignKey(
                        help_text="Purchase that generated the revenue",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings",
                        to="settlement.purchase",
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        blank=True,
                        help_text="Payout reserving this earning. Set only by a batch reservation.",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="earnings",
                        to="settlement.payout",
                    ),
                ),
                (
                    "item_id",
                    models.CharField(
                        db_index=True,
                        help_text="Item that generated the revenue",
                        max_length=255,
                    ),
                ),
                (
                    "gross_minor",
                    models.BigIntegerField(help_text="Gross amount in minor units"),
                ),
                (
                    "fee_minor",
                    models.BigIntegerField(help_text="Platform fee in minor units"),
                ),
                (
                    "net_minor",
                    models.BigIntegerField(help_text="Creator net in minor units"),
                ),
                (
                    "currency",
                    models.CharField(
                        help_text="ISO 4217 currency code (lowercase)", max_length=3
                    ),
                ),
                (
                    "revenue_share_bps",
                    models.PositiveIntegerField(
                        help_text="Creator share in basis points used for the split"
                    ),
                ),
                (
                    "earned_at",
                    models.DateTimeField(
                        db_index=True, help_text="When the revenue was recognised"
                    ),
                ),
                (
                    "dedupe_key",
                    models.CharField(
                        help_text="Purchase id plus charge/invoice reference - one earning per cycle",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "source_ref",
                    models.CharField(
                        help_text="Provider reference the earning was recorded from",
                        max_length=255,
                    ),
                ),
                (
                    "charge_ref",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Provider charge or PaymentIntent reference, used to match refunds",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "paid_out",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="True once the reserving payout is confirmed paid",
                    ),
                ),
                (
                    "is_voided",
                    models.BooleanField(
                        default=False,
                        help_text="Reversed before payout - excluded from batching",
                    ),
                ),
                (
                    "voided_at",
                    models.DateTimeField(
                        blank=True, help_text="When the earning was voided", null=True
                    ),
                ),
                (
                    "clawback_required",
                    models.BooleanField(
                        db_index=True,
                        default=False,
                        help_text="Reversed after it was paid or reserved - needs recovery",
                    ),
                ),
                (
                    "reversed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When a refund or dispute reversed this earning",
                        null=True,
                    ),
                ),
            ],
            options={
                "verbose_name": "Creator Earning",
                "verbose_name_plural": "Creator Earnings",
                "ordering": ["earned_at"],
                "indexes": [
                    models.Index(
                        fields=["creator", "currency", "earned_at"],
                        name="earning_creator_cur_time_idx",
                    ),
                    models.Index(
                        fields=["payout", "paid_out"], name="earning_payout_paid_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            gross_minor=models.F("fee_minor") + models.F("net_minor")
                        ),
                        name="earning_gross_equals_fee_plus_net",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutLineItem",
            fields=_base_fields()
            + [
                (
                    "payout",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="line_items",
                        to="settlement.payout",
                    ),
                ),
                (
                    "earning",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="line_items",
                        to="settlement.creatorearning",
                    ),
                ),
                ("item_id", models.CharField(max_length=255)),
                ("purchase_id", models.UUIDField()),
                ("net_minor", models.BigIntegerField()),
                ("currency", models.CharField(max_length=3)),
                ("earned_at", models.DateTimeField()),
            ],
            options={
                "verbose_name": "Payout Line Item",
                "verbose_name_plural": "Payout Line Items",
                "ordering": ["earned_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=["payout", "earning"],
                        name="payout_line_item_unique_earning",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=_base_fields()
            + [
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe event type (e.g., 'invoice.paid')",
                        max_length=100,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        help_text="Full webhook payload from Stripe (JSON)"
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When event was successfully processed",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if processing failed",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Number of processing attempts"
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="webhook_status_created_idx",
                    ),
                    models.Index(
                        fields=["status", "retry_count"],
                        name="webhook_status_retry_idx",
                    ),
                ],
            },
        ),
    ]
