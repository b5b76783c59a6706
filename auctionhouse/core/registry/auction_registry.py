"""
Auction Registry - Creation, storage and lookup of auctions.

This module provides:
- The Auction record shared by both auction variants
- AuctionStore, an explicit repository keyed by auction_id that owns
  one re-entrant lock per auction
- AuctionRegistry, which validates creation parameters and NFT
  ownership/approval before inserting a record

The registry is variant-agnostic; engines own one and configure whether
the second-highest bid is tracked and whether NFT approval is required.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace, fields
from typing import Dict, Iterator, List, Optional

from auctionhouse.core.clock import Clock, TimeUnit
from auctionhouse.core.errors import (
    AuctionNotFound,
    DuplicateAuction,
    InvalidParameters,
    NotApproved,
    NotTokenOwner,
)
from auctionhouse.core.events import AuctionCreated, EventLog
from auctionhouse.core.nft import NFTDirectory
from auctionhouse.crypto import to_checksum_address
from auctionhouse.utils.logger import get_logger
from auctionhouse.utils.validation import (
    MAX_AMOUNT,
    MAX_TOKEN_ID,
    validate_address,
    validate_all,
    validate_amount,
    validate_auction_id,
    validate_integer,
)

logger = get_logger("registry")


# =============================================================================
# Data Structures
# =============================================================================


@dataclass
class Auction:
    """
    A timed sale of one NFT.

    Attributes:
        auction_id: Caller-chosen identifier, unique per engine
        creator: Account that listed the NFT (immutable)
        nft_contract: Address of the token contract (immutable)
        token_id: Token being sold (immutable)
        starting_price: Reserve; seeds highest_bid
        min_bid_increment: Minimum step over the current highest bid
        auction_end_time: Deadline, in the engine clock's unit (immutable)
        highest_bid: Current leading bid (starting_price before any bid)
        highest_bidder: Owner of the leading bid, None before any bid
        second_highest_bid: Settlement price basis (second-price only)
        auction_ended: Set once by end_auction
        withdrawn: Seller proceeds paid out (English)
        created_at: Creation time, in the engine clock's unit
        bid_count: Number of accepted bids
    """
    auction_id: int
    creator: str
    nft_contract: str
    token_id: int
    starting_price: int
    min_bid_increment: int
    auction_end_time: int
    highest_bid: int
    highest_bidder: Optional[str] = None
    second_highest_bid: int = 0
    auction_ended: bool = False
    withdrawn: bool = False
    created_at: int = 0
    bid_count: int = 0

    @property
    def has_bids(self) -> bool:
        return self.highest_bidder is not None

    def is_expired(self, now: int) -> bool:
        """Deadline reached or auction explicitly ended."""
        return self.auction_ended or now >= self.auction_end_time

    def minimum_next_bid(self) -> int:
        return self.highest_bid + self.min_bid_increment

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


# =============================================================================
# Auction Store
# =============================================================================


class AuctionStore:
    """
    Repository of auction records.

    Mutating operations on one auction serialize through that auction's
    lock. Reads hand out detached copies so callers never observe a
    half-applied operation.
    """

    def __init__(self):
        self._auctions: Dict[int, Auction] = {}
        self._locks: Dict[int, threading.RLock] = {}
        self._order: List[int] = []
        self._lock = threading.RLock()

    def insert(self, auction: Auction) -> None:
        with self._lock:
            if auction.auction_id in self._auctions:
                raise DuplicateAuction(f"Auction ID {auction.auction_id} already exists", auction.auction_id)
            self._auctions[auction.auction_id] = auction
            self._locks[auction.auction_id] = threading.RLock()
            self._order.append(auction.auction_id)

    def require(self, auction_id: int) -> Auction:
        """Live record; raises AuctionNotFound."""
        auction = self._auctions.get(auction_id)
        if auction is None:
            raise AuctionNotFound(f"Auction {auction_id} does not exist", auction_id)
        return auction

    def snapshot(self, auction_id: int) -> Auction:
        """Detached copy of a record taken under its lock."""
        with self.locked(auction_id) as auction:
            return replace(auction)

    @contextmanager
    def locked(self, auction_id: int) -> Iterator[Auction]:
        """Hold the auction's lock and yield the live record."""
        self.require(auction_id)
        with self._locks[auction_id]:
            yield self._auctions[auction_id]

    @contextmanager
    def transaction(self, auction_id: int) -> Iterator[Auction]:
        """
        Serialized, all-or-nothing mutation of one record.

        If the block raises, every field of the record is restored to its
        value at entry before the exception propagates.
        """
        with self.locked(auction_id) as auction:
            before = replace(auction)
            try:
                yield auction
            except BaseException:
                for f in fields(Auction):
                    setattr(auction, f.name, getattr(before, f.name))
                raise

    def exclusive(self) -> threading.RLock:
        """Store-wide lock serializing inserts."""
        return self._lock

    def ids(self) -> List[int]:
        with self._lock:
            return list(self._order)

    def __contains__(self, auction_id: int) -> bool:
        return auction_id in self._auctions

    def __len__(self) -> int:
        return len(self._auctions)


# =============================================================================
# Auction Registry
# =============================================================================


class AuctionRegistry:
    """
    Validates and stores new auctions.

    Guards identifier uniqueness and checks that the creator controls the
    listed NFT and has approved the engine (`operator`) to move it.
    """

    def __init__(
        self,
        operator: str,
        clock: Clock,
        nft_directory: NFTDirectory,
        events: EventLog,
        store: Optional[AuctionStore] = None,
        requires_approval: bool = True,
        tracks_second_highest: bool = False,
        max_duration: Optional[int] = None,
        default_duration: Optional[int] = None,
        default_min_bid_increment: Optional[int] = None,
    ):
        """
        Initialize the registry.

        Args:
            operator: Engine address that will move NFTs at settlement
            clock: Time source for deadlines
            nft_directory: Resolves nft_contract addresses to adapters
            events: Sink for AuctionCreated
            store: Auction repository (a fresh one if None)
            requires_approval: Reject creation unless operator is approved
            tracks_second_highest: Seed second_highest_bid with the reserve
            max_duration: Upper bound on duration, None for unbounded
            default_duration: Used when create_auction gets duration=None
            default_min_bid_increment: Used when create_auction gets
                min_bid_increment=None
        """
        self.operator = to_checksum_address(operator)
        self.clock = clock
        self.nft_directory = nft_directory
        self.events = events
        self.store = store if store is not None else AuctionStore()
        self.requires_approval = requires_approval
        self.tracks_second_highest = tracks_second_highest
        self.max_duration = max_duration
        self.default_duration = default_duration
        self.default_min_bid_increment = default_min_bid_increment

    # =========================================================================
    # Creation
    # =========================================================================

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
        """
        Register a new auction.

        Args:
            auction_id: Caller-chosen unique identifier
            nft_contract: Token contract address
            token_id: Token being sold
            duration: Length of the auction in clock units (> 0); None
                takes the registry default
            min_bid_increment: Minimum bid step in wei (>= 0); None takes
                the registry default
            starting_price: Reserve price in wei (>= 0)
            creator: Account listing the token

        Returns:
            Snapshot of the stored auction

        Raises:
            DuplicateAuction, InvalidParameters, NotTokenOwner, NotApproved
        """
        if duration is None:
            duration = self.default_duration
        if min_bid_increment is None:
            min_bid_increment = self.default_min_bid_increment

        with self.store.exclusive():
            if auction_id in self.store:
                raise DuplicateAuction(f"Auction ID {auction_id} already exists", auction_id)

            self._validate_parameters(
                auction_id, nft_contract, token_id, duration,
                min_bid_increment, starting_price, creator,
            )
            creator = to_checksum_address(creator)
            nft = self.nft_directory.get(nft_contract)

            owner = nft.owner_of(token_id)
            if owner is None or to_checksum_address(owner) != creator:
                raise NotTokenOwner(f"Not the NFT owner of token {token_id}", auction_id)

            if self.requires_approval and not nft.is_approved(self.operator, token_id):
                raise NotApproved(
                    f"Engine {self.operator[:10]}... not approved for token {token_id}",
                    auction_id,
                )

            now = self.clock.now()
            auction = Auction(
                auction_id=auction_id,
                creator=creator,
                nft_contract=nft.address,
                token_id=token_id,
                starting_price=starting_price,
                min_bid_increment=min_bid_increment,
                auction_end_time=now + duration,
                highest_bid=starting_price,
                second_highest_bid=starting_price if self.tracks_second_highest else 0,
                created_at=now,
            )
            self.store.insert(auction)

        logger.info(
            f"Created auction {auction_id} by {creator[:10]}... "
            f"token {token_id}, reserve {starting_price}, ends at {auction.auction_end_time}"
        )
        self.events.emit(AuctionCreated(
            auction_id=auction_id,
            engine=self.operator,
            creator=creator,
            min_bid_increment=min_bid_increment,
            starting_price=starting_price,
            auction_end_time=auction.auction_end_time,
        ))
        return replace(auction)

    def _validate_parameters(
        self,
        auction_id,
        nft_contract,
        token_id,
        duration,
        min_bid_increment,
        starting_price,
        creator,
    ) -> None:
        max_duration = self.max_duration if self.max_duration is not None else MAX_AMOUNT
        is_valid, error = validate_all(
            validate_auction_id(auction_id),
            validate_address(nft_contract, "nft_contract"),
            validate_integer(token_id, "token_id", 0, MAX_TOKEN_ID),
            validate_integer(duration, "duration", 1, max_duration),
            validate_amount(min_bid_increment, "min_bid_increment"),
            validate_amount(starting_price, "starting_price"),
            validate_address(creator, "creator"),
        )
        if not is_valid:
            raise InvalidParameters(error, auction_id if isinstance(auction_id, int) else None)

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_auction(self, auction_id: int) -> Auction:
        """Snapshot of an auction (getAuctionDetails)."""
        return self.store.snapshot(auction_id)

    def get_auction_ids(self) -> List[int]:
        """All auction ids in creation order (getAuctionIds)."""
        return self.store.ids()

    def has_auction(self, auction_id: int) -> bool:
        return auction_id in self.store

    def remaining_time(self, auction_id: int) -> int:
        """Clock units until the deadline, never negative."""
        auction = self.store.require(auction_id)
        return max(0, auction.auction_end_time - self.clock.now())

    def is_open(self, auction_id: int) -> bool:
        """Whether bids are currently accepted."""
        auction = self.store.require(auction_id)
        return not auction.is_expired(self.clock.now())

    @property
    def time_unit(self) -> TimeUnit:
        return self.clock.unit

    def stats(self) -> dict:
        """Get registry statistics."""
        now = self.clock.now()
        auctions = [self.store.require(i) for i in self.store.ids()]
        return {
            "total_auctions": len(auctions),
            "open_auctions": sum(1 for a in auctions if not a.is_expired(now)),
            "ended_auctions": sum(1 for a in auctions if a.auction_ended),
            "total_bids": sum(a.bid_count for a in auctions),
        }
