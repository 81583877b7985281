"""
Creator account state, kept in step with the creator's Stripe Connected Account.
"""

from __future__ import annotations

from django.utils import timezone

from core.services import BaseService

from settlement.adapters import AccountResult
from settlement.models import Creator
from settlement.state_machines import VerificationStatus


class CreatorService(BaseService):
    @classmethod
    def verification_status_for(cls, account: AccountResult) -> str:
        """Derive the local verification status from the provider account."""
        if account.disabled_reason:
            if account.disabled_reason.startswith("rejected"):
                return VerificationStatus.REJECTED
            return VerificationStatus.PENDING
        if account.details_submitted and account.payouts_enabled:
            return VerificationStatus.VERIFIED
        return VerificationStatus.PENDING

    @classmethod
    def sync_account(cls, account: AccountResult) -> Creator | None:
        """
        Copy capability flags and verification from the provider account.

        Returns:
            The updated creator, or None if no creator owns the account
        """
        creator = Creator.objects.filter(stripe_account_id=account.id).first()
        if creator is None:
            cls.get_logger().info(
                "Connected account not linked to a creator",
                extra={"account_id": account.id},
            )
            return None

        status = cls.verification_status_for(account)
        Creator.objects.filter(id=creator.id).update(
            payouts_enabled=account.payouts_enabled,
            charges_enabled=account.charges_enabled,
            verification_status=status,
            updated_at=timezone.now(),
        )
        creator.refresh_from_db()

        cls.get_logger().info(
            "Creator account synced",
            extra={
                "creator_id": str(creator.id),
                "account_id": account.id,
                "payouts_enabled": account.payouts_enabled,
                "verification_status": status,
            },
        )
        return creator
