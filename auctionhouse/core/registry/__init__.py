"""
Auction Registry Module.

Auction records, the auction store, and creation-time validation.
"""

from auctionhouse.core.registry.auction_registry import (
    Auction,
    AuctionStore,
    AuctionRegistry,
)

__all__ = [
    "Auction",
    "AuctionStore",
    "AuctionRegistry",
]
