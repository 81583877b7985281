"""
Run the payout batch from the command line.

Usage:
    python manage.py run_payouts
    python manage.py run_payouts --period-start 2024-01-01 --period-end 2024-01-31
    python manage.py run_payouts --dry-run --creator 6f1c...
"""

from __future__ import annotations

import uuid

from django.core.management.base import BaseCommand, CommandError

from settlement.exceptions import SettlementValidationError
from settlement.models import Creator
from settlement.periods import parse_period_date, previous_month_period
from settlement.services import SettlementService
from settlement.state_machines import PayoutRunStatus


class Command(BaseCommand):
    help = "Reserve and settle creator payouts for a period (default: previous month)."

    def add_arguments(self, parser):
        parser.add_argument("--period-start", help="Inclusive start date (YYYY-MM-DD)")
        parser.add_argument("--period-end", help="Inclusive end date (YYYY-MM-DD)")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report the groups that would be paid without reserving anything",
        )
        parser.add_argument("--creator", help="Only pay out this creator id")

    def handle(self, *args, **options):
        start_raw = options.get("period_start")
        end_raw = options.get("period_end")

        try:
            if start_raw and end_raw:
                period_start = parse_period_date(start_raw, "period_start")
                period_end = parse_period_date(end_raw, "period_end")
            elif start_raw or end_raw:
                raise CommandError("--period-start and --period-end must be given together")
            else:
                period_start, period_end = previous_month_period()
        except SettlementValidationError as e:
            raise CommandError(e.message) from e

        if period_end < period_start:
            raise CommandError("--period-end must not be before --period-start")

        creator_id = None
        if options.get("creator"):
            try:
                creator_id = uuid.UUID(options["creator"])
            except ValueError as e:
                raise CommandError(f"Invalid creator id: {options['creator']}") from e
            if not Creator.objects.filter(id=creator_id).exists():
                raise CommandError(f"Creator {creator_id} does not exist")

        run = SettlementService.run_batch(
            period_start,
            period_end,
            dry_run=options["dry_run"],
            creator_id=creator_id,
        )

        prefix = "[DRY RUN] " if run.dry_run else ""
        self.stdout.write(
            f"{prefix}Payout run {run.id} for {period_start} to {period_end}: {run.status}"
        )
        self.stdout.write(
            f"  groups evaluated: {run.groups_evaluated}, "
            f"below threshold: {run.groups_below_threshold}, "
            f"conflicts: {run.reservation_conflicts}"
        )
        self.stdout.write(
            f"  payouts created: {run.payouts_created}, paid: {run.payouts_paid}, "
            f"failed: {run.payouts_failed}, pending: {run.payouts_pending}"
        )
        for currency, amount in sorted((run.totals or {}).items()):
            self.stdout.write(f"  total {currency.upper()}: {amount}")

        if run.status == PayoutRunStatus.ABORTED:
            raise CommandError(f"Payout run aborted: {run.error_message}")
        self.stdout.write(self.style.SUCCESS("Done."))
