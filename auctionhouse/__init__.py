"""
Auction House

An in-process auction engine for NFT-backed sales:
- English (first-price ascending) auctions with synchronous refunds
- Second-price (Vickrey) auctions with escrowed bids
- Shared auction registry and escrow ledger
- Pluggable NFT custody, payout and clock collaborators
"""
