"""
Settlement app configuration.

This app turns marketplace purchase events into a creator earnings ledger
and settles unpaid earnings as periodic Stripe Connect payouts.
"""

from django.apps import AppConfig


class SettlementConfig(AppConfig):
    """Configuration for the settlement application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "settlement"
    verbose_name = "Creator Settlement"
