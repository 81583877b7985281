"""
Model mixins shared by the domain models.

Mixins are abstract and only contribute fields. List them before BaseModel
in the class bases:

    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Payout(UUIDPrimaryKeyMixin, BaseModel):
        net_minor = models.BigIntegerField()
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID primary key instead of an auto-increment integer.

    UUID keys are generated before insert, which lets a service embed a
    record's id in an outbound request (for example the payout id in Stripe
    transfer metadata) in the same transaction that creates the row.

    Fields:
        id: UUIDField primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
