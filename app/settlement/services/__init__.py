"""
Settlement services.

This module provides:
- PurchaseLedgerService: Purchase records driven by checkout and subscription events
- EarningsService: Append-only creator earnings and their reversal
- PayoutBatcher: Atomic reservation of unpaid earnings into pending payouts
- SettlementService: Transfers, webhook confirmation, failure and cancellation
- ReportService: Payout CSV reports and operator notifications
- CreatorService: Connected account state for creators
- SettlementQueryService: Read-side queries for the API

Usage:
    from settlement.services import SettlementService

    run = SettlementService.run_batch(period_start, period_end)

    from settlement.services import EarningsService

    EarningsService.record_earning(
        creator_id=creator.id,
        purchase_id=purchase.id,
        item_id=purchase.item_id,
        source_ref="pi_123",
        gross_minor=2900,
        currency="usd",
        revenue_share_bps=7000,
    )
"""

from settlement.services.creator_service import CreatorService
from settlement.services.earnings_service import EarningsService, earning_dedupe_key
from settlement.services.payout_batcher import GroupOutcome, PayoutBatcher
from settlement.services.purchase_ledger import PurchaseLedgerService
from settlement.services.query_service import SettlementQueryService
from settlement.services.report_service import ReportService
from settlement.services.settlement_service import SettlementService

__all__ = [
    "CreatorService",
    "EarningsService",
    "GroupOutcome",
    "PayoutBatcher",
    "PurchaseLedgerService",
    "ReportService",
    "SettlementQueryService",
    "SettlementService",
    "earning_dedupe_key",
]
