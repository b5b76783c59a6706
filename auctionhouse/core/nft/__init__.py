"""
NFT Custody Module.

Interface and in-memory implementation of the token contracts that
auctions escrow against.
"""

from auctionhouse.core.nft.adapter import (
    NFTAdapter,
    InMemoryNFT,
    NFTDirectory,
    contract_address,
)

__all__ = [
    "NFTAdapter",
    "InMemoryNFT",
    "NFTDirectory",
    "contract_address",
]
