"""
Auction Engines Module.

This module provides the two auction variants:
- English (first-price ascending) with synchronous refunds
- Second-price (Vickrey) with escrowed bids

Both implement the AuctionEngine protocol over a shared registry and
escrow ledger design.
"""

from typing import Optional

from auctionhouse.core.auction.base import (
    AuctionEngine,
    EngineContext,
    ReentrancyGuard,
    check_bid_allowed,
    check_end_allowed,
    normalize_account,
)
from auctionhouse.core.auction.english import EnglishAuctionEngine
from auctionhouse.core.auction.second_price import SecondPriceAuctionEngine
from auctionhouse.core.config import EngineConfig

ENGINE_VARIANTS = {
    EnglishAuctionEngine.variant: EnglishAuctionEngine,
    SecondPriceAuctionEngine.variant: SecondPriceAuctionEngine,
}


def create_engine(
    variant: str,
    context: Optional[EngineContext] = None,
    config: Optional[EngineConfig] = None,
) -> AuctionEngine:
    """
    Build an engine by variant name ("english" or "second_price").

    Args:
        variant: Engine variant; "second-price" is accepted as well
        context: Shared collaborators (fresh defaults if None)
        config: Engine configuration (module default if None)
    """
    key = variant.replace("-", "_").lower()
    engine_cls = ENGINE_VARIANTS.get(key)
    if engine_cls is None:
        raise ValueError(f"Unknown auction variant: {variant}")
    return engine_cls(context=context, config=config)


__all__ = [
    "AuctionEngine",
    "EngineContext",
    "ReentrancyGuard",
    "EnglishAuctionEngine",
    "SecondPriceAuctionEngine",
    "ENGINE_VARIANTS",
    "create_engine",
    "check_bid_allowed",
    "check_end_allowed",
    "normalize_account",
]
