"""
Tests for the run_payouts management command.

Tests cover:
- Explicit and default periods
- Dry runs and single-creator runs
- Argument validation
- Aborted runs
"""

import uuid
from io import StringIO
from unittest.mock import patch

import pytest
from django.core.management import CommandError, call_command
from freezegun import freeze_time

from settlement.exceptions import PersistenceError
from settlement.models import Payout, PayoutRun
from settlement.services import PayoutBatcher
from settlement.state_machines import PayoutState


def run_command(*args) -> str:
    out = StringIO()
    call_command("run_payouts", *args, stdout=out)
    return out.getvalue()


@pytest.mark.django_db
class TestRunPayoutsCommand:
    def test_explicit_period(self, stripe_adapter, creator, january_earnings):
        output = run_command("--period-start", "2024-01-01", "--period-end", "2024-01-31")

        assert "2024-01-01 to 2024-01-31: completed" in output
        assert "payouts created: 1, paid: 1" in output
        assert "total USD: 21000" in output
        assert output.strip().endswith("Done.")
        assert Payout.objects.get().status == PayoutState.PAID

    @freeze_time("2024-02-15 09:00:00")
    def test_defaults_to_previous_month(self, stripe_adapter, creator, january_earnings):
        output = run_command()

        assert "2024-01-01 to 2024-01-31" in output
        run = PayoutRun.objects.get()
        assert run.period_start.isoformat() == "2024-01-01"

    def test_dry_run(self, stripe_adapter, creator, january_earnings):
        output = run_command(
            "--period-start", "2024-01-01", "--period-end", "2024-01-31", "--dry-run"
        )

        assert output.startswith("[DRY RUN] ")
        assert not Payout.objects.exists()
        stripe_adapter.create_transfer.assert_not_called()

    def test_single_creator(self, stripe_adapter, creator, january_earnings):
        run_command(
            "--period-start",
            "2024-01-01",
            "--period-end",
            "2024-01-31",
            "--creator",
            str(creator.id),
        )

        assert PayoutRun.objects.get().creator_id == creator.id


@pytest.mark.django_db
class TestRunPayoutsValidation:
    def test_lone_period_date(self):
        with pytest.raises(CommandError, match="must be given together"):
            run_command("--period-start", "2024-01-01")

    def test_bad_date(self):
        with pytest.raises(CommandError, match="ISO date"):
            run_command("--period-start", "01/01/2024", "--period-end", "2024-01-31")

    def test_end_before_start(self):
        with pytest.raises(CommandError, match="must not be before"):
            run_command("--period-start", "2024-01-31", "--period-end", "2024-01-01")

        assert not PayoutRun.objects.exists()

    def test_invalid_creator_id(self):
        with pytest.raises(CommandError, match="Invalid creator id"):
            run_command("--creator", "not-a-uuid")

    def test_unknown_creator(self):
        with pytest.raises(CommandError, match="does not exist"):
            run_command("--creator", str(uuid.uuid4()))

    def test_aborted_run_fails_command(self, stripe_adapter, creator):
        with patch.object(
            PayoutBatcher, "iter_groups", side_effect=PersistenceError("database unavailable")
        ):
            with pytest.raises(CommandError, match="database unavailable"):
                run_command("--period-start", "2024-01-01", "--period-end", "2024-01-31")
