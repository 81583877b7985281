"""
Settlement app for creator revenue and Stripe Connect payouts.

This app handles:
- Purchase ledger driven by Stripe checkout/subscription webhooks
- Append-only creator earnings with platform fee split
- Periodic payout batching with atomic earning reservation
- Transfer settlement through Stripe Connect
- Per-payout CSV reports and run summary notifications

Usage:
    from settlement.services import PayoutBatcher, SettlementService

    result = SettlementService.run_batch(period_start, period_end)
"""
