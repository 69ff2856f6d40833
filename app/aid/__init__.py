"""
Aid app for the scholarship fund ledger and disbursement pipeline.

This app handles:
- Budget envelopes per budget type and school year
- Partner school sub-ledgers, withdrawals and fund requests
- Grant processing through a hosted checkout provider (PayMongo)
- Payment transaction state, webhooks and expiry sweeps
- Disbursement finalization, reversal and receipts

Usage:
    from aid.services.grant_service import GrantService

    result = GrantService.process_grant(application_id, user)
    if result.success:
        checkout_url = result.data.checkout_url
"""
