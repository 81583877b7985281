"""
Creator model: the payee side of the marketplace.

A Creator owns items sold on the marketplace and receives a share of each
sale. Payouts go to the creator's Stripe Connected Account.

Usage:
    from settlement.models import Creator

    creator = Creator.objects.create(
        display_name="Ada",
        email="ada@example.com",
        stripe_account_id="acct_123",
        verification_status=VerificationStatus.VERIFIED,
        payouts_enabled=True,
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from settlement.state_machines import VerificationStatus


class CreatorQuerySet(models.QuerySet):
    def eligible_for_payout(self):
        """Creators with verified identity and a connected account on file."""
        return self.filter(
            verification_status=VerificationStatus.VERIFIED,
            stripe_account_id__isnull=False,
        ).exclude(stripe_account_id="")


class Creator(UUIDPrimaryKeyMixin, BaseModel):
    """
    Payee identity for creator earnings and payouts.

    Fields:
        display_name: Public name of the creator
        email: Contact address for payout notices
        stripe_account_id: Stripe Connected Account ID (acct_xxx)
        verification_status: Identity verification on the payment rail
        payouts_enabled: Whether Stripe allows transfers to the account
        charges_enabled: Whether the account can accept charges
        minimum_payout_minor: Per-creator payout threshold override
    """

    display_name = models.CharField(
        max_length=255,
        help_text="Public name of the creator",
    )

    email = models.EmailField(
        blank=True,
        help_text="Contact address for payout notices",
    )

    # ==========================================================================
    # Payment Rail
    # ==========================================================================

    stripe_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Connected Account ID (acct_xxx)",
    )

    verification_status = models.CharField(
        max_length=20,
        choices=VerificationStatus.choices,
        default=VerificationStatus.UNVERIFIED,
        db_index=True,
        help_text="Identity verification status on the payment rail",
    )

    payouts_enabled = models.BooleanField(
        default=False,
        help_text="Whether Stripe allows transfers to this account",
    )

    charges_enabled = models.BooleanField(
        default=False,
        help_text="Whether the account can accept charges",
    )

    # ==========================================================================
    # Payout Policy
    # ==========================================================================

    minimum_payout_minor = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Minimum payout in minor units; falls back to PAYOUT_MINIMUM_MINOR",
    )

    objects = CreatorQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Creator"
        verbose_name_plural = "Creators"

    def __str__(self) -> str:
        return f"Creator({self.id}, {self.display_name})"

    @property
    def effective_minimum_payout_minor(self) -> int:
        """Payout threshold for this creator, in minor units of any currency."""
        if self.minimum_payout_minor is not None:
            return self.minimum_payout_minor
        return settings.PAYOUT_MINIMUM_MINOR

    @property
    def is_ready_for_payouts(self) -> bool:
        """Check the locally known account state allows transfers."""
        return (
            bool(self.stripe_account_id)
            and self.verification_status == VerificationStatus.VERIFIED
            and self.payouts_enabled
        )
