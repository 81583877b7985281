"""
Add celery-beat schedules for settlement maintenance tasks.

This migration creates periodic task schedules for:
- The monthly payout batch (previous calendar month)
- Retrying failed or stuck webhook events
- Resuming payouts whose settlement was interrupted
"""

from django.conf import settings
from django.db import migrations

PAYOUT_BATCH_TASK = "Run Monthly Creator Payout Batch"
WEBHOOK_RETRY_TASK = "Retry Failed Settlement Webhooks"
RESUME_PAYOUTS_TASK = "Resume Pending Creator Payouts"


def create_periodic_tasks(apps, schema_editor):
    """Create periodic tasks for the payout batch and recovery jobs."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    # =========================================================================
    # Schedules
    # =========================================================================

    # Monthly, early on the first day of the month (UTC by default)
    monthly, _ = CrontabSchedule.objects.get_or_create(
        minute=settings.PAYOUT_BATCH_CRON_MINUTE,
        hour=settings.PAYOUT_BATCH_CRON_HOUR,
        day_of_week="*",
        day_of_month=settings.PAYOUT_BATCH_CRON_DAY_OF_MONTH,
        month_of_year="*",
    )

    schedule_5min, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )

    schedule_30min, _ = IntervalSchedule.objects.get_or_create(
        every=30,
        period="minutes",
    )

    # =========================================================================
    # Periodic Tasks
    # =========================================================================

    PeriodicTask.objects.get_or_create(
        name=PAYOUT_BATCH_TASK,
        defaults={
            "task": "settlement.tasks.run_payout_batch",
            "crontab": monthly,
            "enabled": True,
            "description": (
                "Reserves unpaid earnings from the previous calendar month and "
                "transfers each creator's net per currency."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name=WEBHOOK_RETRY_TASK,
        defaults={
            "task": "settlement.tasks.retry_failed_webhooks",
            "interval": schedule_5min,
            "enabled": True,
            "description": "Re-queues failed or stuck Stripe webhook events.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name=RESUME_PAYOUTS_TASK,
        defaults={
            "task": "settlement.tasks.resume_pending_payouts",
            "interval": schedule_30min,
            "enabled": True,
            "description": (
                "Re-settles pending payouts whose transfer request was "
                "interrupted, reusing the same idempotency key."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[PAYOUT_BATCH_TASK, WEBHOOK_RETRY_TASK, RESUME_PAYOUTS_TASK],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("settlement", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
