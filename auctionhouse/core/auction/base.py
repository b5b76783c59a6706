"""
Auction Engine capability shared by both variants.

This module provides:
- AuctionEngine: the protocol every variant implements
  (create / bid / end / withdraw plus read accessors)
- EngineContext: the external collaborators an engine is wired to
- Guards shared by the variants (deadline, self-bid, settlement checks)
- ReentrancyGuard: rejects nested bid/end calls on an auction while one
  of its external calls is in flight

Variants compose an AuctionRegistry and an EscrowLedger rather than
inheriting from a common base class.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Protocol, Set, runtime_checkable

from auctionhouse.core.clock import Clock, SystemClock, TimeUnit
from auctionhouse.core.errors import (
    AlreadyEnded,
    AuctionExpired,
    AuctionStillActive,
    InvalidParameters,
    NotCreator,
    ReentrantCall,
    SelfBid,
    TransferFailed,
)
from auctionhouse.core.escrow import AccountBook, PayoutGateway
from auctionhouse.core.events import EventLog
from auctionhouse.core.nft import NFTDirectory
from auctionhouse.core.registry import Auction
from auctionhouse.crypto import to_checksum_address
from auctionhouse.utils.validation import MAX_AMOUNT, validate_address, validate_integer


@runtime_checkable
class AuctionEngine(Protocol):
    """Protocol for auction variants."""
    variant: str
    address: str

    def create_auction(
        self,
        auction_id: int,
        nft_contract: str,
        token_id: int,
        duration: Optional[int],
        min_bid_increment: Optional[int],
        starting_price: int,
        creator: str,
    ) -> Auction:
        ...

    def bid(self, auction_id: int, bidder: str, value: int) -> Auction:
        ...

    def end_auction(self, auction_id: int, caller: str) -> Auction:
        ...

    def withdraw(self, auction_id: int, caller: str) -> int:
        ...

    def get_auction(self, auction_id: int) -> Auction:
        ...

    def get_auction_ids(self) -> List[int]:
        ...


@dataclass
class EngineContext:
    """
    External collaborators of an engine.

    Attributes:
        clock: Time source deadlines are compared against
        nft_directory: Token contracts auctions may list
        gateway: Where payouts are sent
        events: Observation sink
    """
    clock: Clock = field(default_factory=SystemClock)
    nft_directory: NFTDirectory = field(default_factory=NFTDirectory)
    gateway: PayoutGateway = field(default_factory=AccountBook)
    events: EventLog = field(default_factory=EventLog)


def check_time_unit(config, clock: Clock) -> None:
    """An engine compares deadlines in exactly one unit of time."""
    expected = TimeUnit.BLOCK if config.time_unit == "block" else TimeUnit.TIMESTAMP
    if clock.unit != expected:
        raise ValueError(
            f"Clock measures {clock.unit.name.lower()} but engine is configured for {config.time_unit}"
        )


# =============================================================================
# Input normalization
# =============================================================================


def normalize_account(address, name: str) -> str:
    """Validate an account address and return its checksummed form."""
    is_valid, error = validate_address(address, name)
    if not is_valid:
        raise InvalidParameters(error)
    return to_checksum_address(address)


def check_bid_value(value) -> int:
    """Bids must carry a positive integer amount of wei."""
    is_valid, error = validate_integer(value, "value", 1, MAX_AMOUNT)
    if not is_valid:
        raise InvalidParameters(error)
    return value


# =============================================================================
# Guards
# =============================================================================


def check_bid_allowed(auction: Auction, bidder: str, now: int) -> None:
    """
    Checks common to every bid.

    The deadline is re-checked on every call; the ended flag alone is
    not trusted.
    """
    if auction.is_expired(now):
        raise AuctionExpired(f"Auction {auction.auction_id} has already ended", auction.auction_id)
    if bidder == auction.creator:
        raise SelfBid("Creator cannot bid on their own auction", auction.auction_id)


def check_end_allowed(auction: Auction, caller: str, now: int) -> None:
    """Only the creator, only after the deadline, only once."""
    if caller != auction.creator:
        raise NotCreator("Only the auction creator can end the auction", auction.auction_id)
    if now < auction.auction_end_time:
        raise AuctionStillActive(f"Auction {auction.auction_id} has not ended yet", auction.auction_id)
    if auction.auction_ended:
        raise AlreadyEnded(f"Auction {auction.auction_id} already ended", auction.auction_id)


def transfer_nft(context: EngineContext, operator: str, auction: Auction, winner: str) -> None:
    """
    Move the auctioned token from the creator to the winner.

    Any adapter failure surfaces as TransferFailed.
    """
    nft = context.nft_directory.get(auction.nft_contract)
    try:
        nft.transfer_from(operator, auction.creator, winner, auction.token_id)
    except TransferFailed:
        raise
    except Exception as exc:
        raise TransferFailed(f"NFT transfer failed: {exc}", auction.auction_id) from exc


class ReentrancyGuard:
    """Per-auction in-flight marker for ranking and settlement calls."""

    def __init__(self):
        self._active: Set[int] = set()
        self._lock = threading.Lock()

    @contextmanager
    def enter(self, auction_id: int) -> Iterator[None]:
        with self._lock:
            if auction_id in self._active:
                raise ReentrantCall(f"Auction {auction_id} is mid-operation", auction_id)
            self._active.add(auction_id)
        try:
            yield
        finally:
            with self._lock:
                self._active.discard(auction_id)


class ValueCounter:
    """Thread-safe running total of value received by an engine."""

    def __init__(self):
        self.total = 0
        self._lock = threading.Lock()

    def add(self, amount: int) -> None:
        with self._lock:
            self.total += amount
