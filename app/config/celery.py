"""
Celery configuration for the settlement service.

Celery runs the asynchronous side of settlement:
- Processing stored Stripe webhook events
- The monthly payout batch and per-payout transfer retries
- Recovery jobs (failed webhooks, interrupted payouts)

Schedules live in the database (django-celery-beat) and are seeded by the
settlement migrations. Redis is both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
