"""
Report service for payout reports and operator notifications.

Produces:
- One CSV report per terminal payout, saved through default_storage
- One summary email per batch run
- Reconciliation alerts for states that need an operator

Report Layout:
    earning_id,item_id,purchase_id,amount_minor,currency,earned_at
    <one row per line item>
    <blank row>
    summary
    payout_id,<id>
    ...

Report and email failures are logged and never change payout state.
"""

from __future__ import annotations

import csv
import io
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.files.base import ContentFile
from django.core.files.storage import default_storage
from django.core.mail import send_mail
from django.utils import timezone

from core.services import BaseService

from settlement.models import Payout

if TYPE_CHECKING:
    import uuid
    from typing import Any

    from settlement.models import PayoutRun


REPORT_HEADER = [
    "earning_id",
    "item_id",
    "purchase_id",
    "amount_minor",
    "currency",
    "earned_at",
]


class ReportService(BaseService):
    """Builds payout reports and sends operator email."""

    # ==========================================================================
    # Payout Reports
    # ==========================================================================

    @classmethod
    def build_payout_csv(cls, payout: Payout) -> str:
        """Render the CSV report for one payout."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(REPORT_HEADER)

        for line in payout.line_items.order_by("earned_at", "id"):
            writer.writerow(
                [
                    line.earning_id,
                    line.item_id,
                    line.purchase_id,
                    line.net_minor,
                    line.currency,
                    line.earned_at.isoformat(),
                ]
            )

        writer.writerow([])
        writer.writerow(["summary"])
        for key, value in cls._payout_summary(payout):
            writer.writerow([key, value])

        return buffer.getvalue()

    @classmethod
    def emit_payout_report(cls, payout_id: uuid.UUID) -> str | None:
        """
        Write the CSV report for a terminal payout and store its URL.

        Returns:
            The report URL, or None if the report could not be produced
        """
        try:
            payout = Payout.objects.select_related("creator").get(id=payout_id)
            content = cls.build_payout_csv(payout)
            name = (
                f"{settings.SETTLEMENT_REPORT_PREFIX}/"
                f"{payout.id}_{timezone.now():%Y%m%dT%H%M%S}.csv"
            )
            saved_name = default_storage.save(name, ContentFile(content.encode("utf-8")))
            report_url = default_storage.url(saved_name)
            Payout.objects.filter(id=payout.id).update(
                report_url=report_url, updated_at=timezone.now()
            )
        except Exception:
            cls.get_logger().error(
                "Failed to emit payout report",
                extra={"payout_id": str(payout_id)},
                exc_info=True,
            )
            return None

        cls.get_logger().info(
            "Payout report emitted",
            extra={"payout_id": str(payout_id), "report_url": report_url},
        )
        return report_url

    @classmethod
    def _payout_summary(cls, payout: Payout) -> list[tuple[str, Any]]:
        return [
            ("payout_id", payout.id),
            ("creator_id", payout.creator_id),
            ("status", payout.status),
            ("period_start", payout.period_start.isoformat()),
            ("period_end", payout.period_end.isoformat()),
            ("currency", payout.currency),
            ("earnings_count", payout.earnings_count),
            ("gross_minor", payout.gross_minor),
            ("net_minor", payout.net_minor),
            ("external_transfer_ref", payout.external_transfer_ref or ""),
            ("failure_reason", payout.failure_reason or ""),
        ]

    # ==========================================================================
    # Notifications
    # ==========================================================================

    @classmethod
    def send_run_notification(cls, run: PayoutRun) -> bool:
        """
        Email the run summary to the configured recipients.

        Returns:
            True if an email was sent
        """
        subject = (
            f"Payout run {run.period_start.isoformat()} to "
            f"{run.period_end.isoformat()}: {run.status}"
        )
        if run.dry_run:
            subject = f"[DRY RUN] {subject}"

        lines = [
            f"Run: {run.id}",
            f"Period: {run.period_start.isoformat()} to {run.period_end.isoformat()}",
            f"Status: {run.status}",
            f"Groups evaluated: {run.groups_evaluated}",
            f"Below threshold: {run.groups_below_threshold}",
            f"Reservation conflicts: {run.reservation_conflicts}",
            f"Payouts created: {run.payouts_created}",
            f"Payouts paid: {run.payouts_paid}",
            f"Payouts failed: {run.payouts_failed}",
            f"Payouts pending: {run.payouts_pending}",
        ]
        for currency, amount in sorted((run.totals or {}).items()):
            lines.append(f"Total {currency.upper()}: {amount}")
        if run.error_message:
            lines.append(f"Error: {run.error_message}")

        return cls._send(subject, "\n".join(lines), context={"run_id": str(run.id)})

    @classmethod
    def send_reconciliation_alert(
        cls, subject: str, details: dict[str, Any]
    ) -> bool:
        """Log and email a state that needs an operator to reconcile."""
        cls.get_logger().error(f"Reconciliation required: {subject}", extra=details)
        body = "\n".join(f"{key}: {value}" for key, value in details.items())
        return cls._send(f"[Reconciliation] {subject}", body, context=details)

    @classmethod
    def _send(cls, subject: str, body: str, context: dict[str, Any]) -> bool:
        recipients = list(settings.SETTLEMENT_NOTIFICATION_RECIPIENTS)
        if not recipients:
            cls.get_logger().info(
                "No settlement notification recipients configured",
                extra={"subject": subject},
            )
            return False

        try:
            send_mail(
                subject,
                body,
                settings.DEFAULT_FROM_EMAIL,
                recipients,
                fail_silently=False,
            )
        except Exception:
            cls.get_logger().error(
                "Failed to send settlement notification",
                extra={"subject": subject, **context},
                exc_info=True,
            )
            return False
        return True
