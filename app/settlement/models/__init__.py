"""
Settlement models.

Usage:
    from settlement.models import Creator, CreatorEarning, Payout, Purchase
"""

from settlement.models.creator import Creator
from settlement.models.earning import CreatorEarning
from settlement.models.payout import Payout
from settlement.models.payout_line_item import PayoutLineItem
from settlement.models.payout_run import PayoutRun
from settlement.models.purchase import Purchase
from settlement.models.webhook_event import WebhookEvent

__all__ = [
    "Creator",
    "CreatorEarning",
    "Payout",
    "PayoutLineItem",
    "PayoutRun",
    "Purchase",
    "WebhookEvent",
]
