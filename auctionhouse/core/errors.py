"""
Auction error taxonomy.

Every failed operation raises exactly one of these, after leaving the
auction state untouched. The `code` attribute is a stable identifier that
outer layers (CLI, API handlers) can map without matching on messages.
"""

from typing import Optional


class AuctionError(Exception):
    """Base class for auction-specific errors."""

    code = "auction_error"

    def __init__(self, message: str = "", auction_id: Optional[int] = None):
        super().__init__(message or self.__class__.__doc__)
        self.auction_id = auction_id


# Registration

class AuctionNotFound(AuctionError):
    """Auction does not exist."""
    code = "auction_not_found"


class DuplicateAuction(AuctionError):
    """Auction ID already exists."""
    code = "duplicate_auction"


class InvalidParameters(AuctionError, ValueError):
    """Invalid auction parameters."""
    code = "invalid_parameters"


class NotTokenOwner(AuctionError):
    """Not the NFT owner."""
    code = "not_token_owner"


class NotApproved(AuctionError):
    """Auction engine is not approved to transfer the NFT."""
    code = "not_approved"


# Bidding

class AuctionExpired(AuctionError):
    """Auction has already ended."""
    code = "auction_expired"


class SelfBid(AuctionError):
    """Creator cannot bid on their own auction."""
    code = "self_bid"


class AlreadyHighestBidder(AuctionError):
    """You are already the highest bidder."""
    code = "already_highest_bidder"


class BidTooLow(AuctionError):
    """Bid must be higher than current bid plus the minimum increment."""
    code = "bid_too_low"


class BidIncrementTooLow(BidTooLow):
    """Bid must be higher than current highest bid by at least the increment."""
    code = "bid_increment_too_low"


# Settlement

class NotCreator(AuctionError):
    """Only the auction creator can perform this action."""
    code = "not_creator"


class AuctionStillActive(AuctionError):
    """Auction has not ended yet."""
    code = "auction_still_active"


class AlreadyEnded(AuctionError):
    """Auction already ended."""
    code = "already_ended"


class AuctionNotEnded(AuctionError):
    """Auction must be ended before withdrawal."""
    code = "auction_not_ended"


class AlreadyWithdrawn(AuctionError):
    """Funds already withdrawn."""
    code = "already_withdrawn"


class TransferFailed(AuctionError):
    """Payout or NFT transfer failed."""
    code = "transfer_failed"


class ReentrantCall(AuctionError):
    """Auction is already mid-operation (reentrant call rejected)."""
    code = "reentrant_call"


__all__ = [
    "AuctionError",
    "AuctionNotFound",
    "DuplicateAuction",
    "InvalidParameters",
    "NotTokenOwner",
    "NotApproved",
    "AuctionExpired",
    "SelfBid",
    "AlreadyHighestBidder",
    "BidTooLow",
    "BidIncrementTooLow",
    "NotCreator",
    "AuctionStillActive",
    "AlreadyEnded",
    "AuctionNotEnded",
    "AlreadyWithdrawn",
    "TransferFailed",
    "ReentrantCall",
]
