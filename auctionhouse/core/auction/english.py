"""
English Auction - First-price ascending auction with immediate refunds.

Lifecycle: OPEN -> ENDED (terminal)

1. Creator lists an NFT (ownership and approval checked)
2. Bidders outbid each other by at least min_bid_increment; the outbid
   party is refunded synchronously
3. After the deadline the creator ends the auction: the NFT moves to the
   highest bidder and the winning bid is credited to the creator
4. The creator withdraws the proceeds, exactly once

Refund ordering:
---------------
The previous highest bidder is refunded *before* the ranking is replaced.
The refund is paid through the escrow ledger for exactly the outbid
amount, and a failed refund aborts the new bid with no state change.
Nested bid/end calls issued from inside the refund are rejected.
"""

from dataclasses import replace
from typing import List, Optional

from auctionhouse.core.auction.base import (
    EngineContext,
    ReentrancyGuard,
    ValueCounter,
    check_bid_allowed,
    check_bid_value,
    check_end_allowed,
    check_time_unit,
    normalize_account,
    transfer_nft,
)
from auctionhouse.core.config import EngineConfig, config as default_config
from auctionhouse.core.errors import (
    AlreadyHighestBidder,
    AlreadyWithdrawn,
    AuctionNotEnded,
    BidTooLow,
    NotCreator,
)
from auctionhouse.core.escrow import EscrowLedger
from auctionhouse.core.events import AuctionEnded, FundsWithdrawn, NewBidPlaced
from auctionhouse.core.nft import contract_address
from auctionhouse.core.registry import Auction, AuctionRegistry, AuctionStore
from auctionhouse.crypto import to_checksum_address
from auctionhouse.utils.logger import get_logger

logger = get_logger("english")

VARIANT = "english"


class EnglishAuctionEngine:
    """
    Multi-auction English auction engine.

    Attributes:
        address: Engine account; must be approved on listed tokens
        registry: Auction records and creation checks
        ledger: Pending balances (refunds in flight, seller proceeds)
        received: Total value ever attached to accepted bids
    """

    variant = VARIANT

    def __init__(
        self,
        context: Optional[EngineContext] = None,
        address: Optional[str] = None,
        ledger: Optional[EscrowLedger] = None,
        store: Optional[AuctionStore] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.context = context if context is not None else EngineContext()
        self.config = config if config is not None else default_config
        check_time_unit(self.config, self.context.clock)
        self.address = to_checksum_address(address or contract_address("EnglishAuction", "ATK"))
        self.ledger = ledger if ledger is not None else EscrowLedger()
        self.registry = AuctionRegistry(
            operator=self.address,
            clock=self.context.clock,
            nft_directory=self.context.nft_directory,
            events=self.context.events,
            store=store,
            requires_approval=True,
            tracks_second_highest=False,
            max_duration=self.config.max_duration,
            default_duration=self.config.default_duration,
            default_min_bid_increment=self.config.default_min_bid_increment,
        )
        self.received = ValueCounter()
        self._guard = ReentrancyGuard()

        logger.info(f"EnglishAuctionEngine initialized at {self.address}")

    @property
    def store(self) -> AuctionStore:
        return self.registry.store

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
        """Register a new auction. See AuctionRegistry.create_auction."""
        return self.registry.create_auction(
            auction_id, nft_contract, token_id, duration,
            min_bid_increment, starting_price, creator,
        )

    # =========================================================================
    # Bidding
    # =========================================================================

    def place_bid(self, auction_id: int, bidder: str, value: int) -> Auction:
        """
        Place a bid carrying `value` wei.

        Args:
            auction_id: Auction to bid on
            bidder: Bidding account
            value: Bid amount in wei

        Returns:
            Snapshot of the auction after the bid

        Raises:
            AuctionNotFound, AuctionExpired, SelfBid, AlreadyHighestBidder,
            BidTooLow, TransferFailed (refund of the outbid party failed)
        """
        bidder = normalize_account(bidder, "bidder")
        value = check_bid_value(value)

        with self.store.transaction(auction_id) as auction, self._guard.enter(auction_id):
            check_bid_allowed(auction, bidder, self.context.clock.now())

            if bidder == auction.highest_bidder:
                raise AlreadyHighestBidder("You are already the highest bidder", auction_id)

            required = auction.minimum_next_bid()
            if value < required:
                raise BidTooLow(
                    f"Bid must be higher than current bid plus the minimum increment "
                    f"({value} < {required})",
                    auction_id,
                )

            previous_bidder = auction.highest_bidder
            previous_bid = auction.highest_bid

            # Refund first; a failure here propagates before any mutation
            if previous_bidder is not None:
                self.ledger.pay_now(
                    auction_id, previous_bidder, previous_bid, self.context.gateway, engine=self.address,
                )
                logger.debug(f"Refunded {previous_bid} to {previous_bidder[:10]}... on auction {auction_id}")

            auction.highest_bid = value
            auction.highest_bidder = bidder
            auction.bid_count += 1
            self.received.add(value)
            result = replace(auction)

        logger.debug(f"Auction {auction_id}: new highest bid {value} from {bidder[:10]}...")
        self.context.events.emit(NewBidPlaced(
            auction_id=auction_id, engine=self.address, bidder=bidder, amount=value))
        return result

    bid = place_bid

    # =========================================================================
    # Settlement
    # =========================================================================

    def end_auction(self, auction_id: int, caller: str) -> Auction:
        """
        End an auction after its deadline.

        Transfers the NFT to the highest bidder and credits the winning bid
        to the creator (paid out by withdraw). With no bids the NFT stays
        with the creator and nothing is credited.

        Raises:
            AuctionNotFound, NotCreator, AuctionStillActive, AlreadyEnded,
            TransferFailed (NFT could not be moved; nothing changes)
        """
        caller = normalize_account(caller, "caller")

        with self.store.transaction(auction_id) as auction, self._guard.enter(auction_id):
            check_end_allowed(auction, caller, self.context.clock.now())

            auction.auction_ended = True
            winner = auction.highest_bidder
            amount = auction.highest_bid if winner is not None else 0

            if winner is not None:
                self.ledger.credit(auction_id, auction.creator, amount, engine=self.address)
                try:
                    transfer_nft(self.context, self.address, auction, winner)
                except Exception:
                    self.ledger.revert_credit(auction_id, auction.creator, amount, engine=self.address)
                    logger.warning(f"Auction {auction_id}: settlement aborted, NFT transfer failed")
                    raise
            result = replace(auction)

        if winner is None:
            logger.info(f"Auction {auction_id} ended without bids; token stays with creator")
        else:
            logger.info(f"Auction {auction_id} ended: winner {winner[:10]}... paid {amount}")
        self.context.events.emit(AuctionEnded(
            auction_id=auction_id, engine=self.address, winner=winner, amount=amount))
        return result

    def withdraw(self, auction_id: int, caller: str) -> int:
        """
        Pay the creator's proceeds. Allowed once per auction.

        Returns:
            Amount paid (0 for an auction that closed without bids)

        Raises:
            AuctionNotFound, NotCreator, AuctionNotEnded, AlreadyWithdrawn,
            TransferFailed (payout refused; auction stays un-withdrawn)
        """
        caller = normalize_account(caller, "caller")

        with self.store.transaction(auction_id) as auction:
            if caller != auction.creator:
                raise NotCreator("Only the auction creator can withdraw", auction_id)
            if not auction.auction_ended:
                raise AuctionNotEnded("Auction must be ended before withdrawal", auction_id)
            if auction.withdrawn:
                raise AlreadyWithdrawn("Funds already withdrawn", auction_id)

            auction.withdrawn = True
            amount = self.ledger.withdraw(auction_id, caller, self.context.gateway, engine=self.address)

        logger.info(f"Auction {auction_id}: creator withdrew {amount}")
        self.context.events.emit(FundsWithdrawn(
            auction_id=auction_id, engine=self.address, recipient=caller, amount=amount))
        return amount

    # =========================================================================
    # Queries
    # =========================================================================

    def get_auction(self, auction_id: int) -> Auction:
        return self.registry.get_auction(auction_id)

    def get_auction_ids(self) -> List[int]:
        return self.registry.get_auction_ids()

    def pending_returns(self, auction_id: int, party: str) -> int:
        return self.ledger.balance_of(auction_id, normalize_account(party, "party"), engine=self.address)

    def held_value(self) -> int:
        """Value currently in the engine's custody."""
        return self.received.total - self.ledger.paid_out_by(self.address)

    def stats(self) -> dict:
        """Get engine statistics."""
        stats = self.registry.stats()
        stats.update({
            "variant": self.variant,
            "total_received": self.received.total,
            "total_paid_out": self.ledger.paid_out_by(self.address),
            "held_value": self.held_value(),
        })
        return stats
