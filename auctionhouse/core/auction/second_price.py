"""
Second-Price Auction - Vickrey-style auction with escrowed bids.

Lifecycle: OPEN -> ENDED (terminal)

Ranking:
-------
Every bid must reach highest_bid + min_bid_increment.

- value > highest_bid: the old highest bid becomes second_highest_bid
  (single-slot promotion, not a sorted list) and moves into its owner's
  pending returns
- value == highest_bid (zero increment only): a tie. The first bidder at
  that value keeps precedence; second_highest_bid rises to the tied value
  and the tying bid is escrowed for its owner

Settlement:
----------
The winner pays second_highest_bid. The creator is credited that amount,
the winner's overpayment (highest_bid - second_highest_bid) goes to the
winner's pending returns, and the NFT moves to the winner.

Withdrawals pay a party's whole pending balance and are safe to repeat:
an empty balance is a successful no-op.
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
from auctionhouse.core.errors import BidIncrementTooLow
from auctionhouse.core.escrow import EscrowLedger
from auctionhouse.core.events import AuctionEnded, FundsWithdrawn, NewBidPlaced
from auctionhouse.core.nft import contract_address
from auctionhouse.core.registry import Auction, AuctionRegistry, AuctionStore
from auctionhouse.crypto import to_checksum_address
from auctionhouse.utils.logger import get_logger

logger = get_logger("second_price")

VARIANT = "second_price"


class SecondPriceAuctionEngine:
    """
    Multi-auction second-price engine.

    All bid value stays in escrow until withdrawn; nothing is refunded
    synchronously during bidding.
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
        self.address = to_checksum_address(address or contract_address("SecondPriceAuction", "SPA"))
        self.ledger = ledger if ledger is not None else EscrowLedger()
        self.registry = AuctionRegistry(
            operator=self.address,
            clock=self.context.clock,
            nft_directory=self.context.nft_directory,
            events=self.context.events,
            store=store,
            requires_approval=True,
            tracks_second_highest=True,
            max_duration=self.config.max_duration,
            default_duration=self.config.default_duration,
            default_min_bid_increment=self.config.default_min_bid_increment,
        )
        self.received = ValueCounter()
        self._guard = ReentrancyGuard()

        logger.info(f"SecondPriceAuctionEngine initialized at {self.address}")

    @property
    def store(self) -> AuctionStore:
        return self.registry.store

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

    def submit_bid(self, auction_id: int, bidder: str, value: int) -> Auction:
        """
        Submit an escrowed bid.

        Returns:
            Snapshot of the auction after the bid

        Raises:
            AuctionNotFound, AuctionExpired, SelfBid, BidIncrementTooLow
        """
        bidder = normalize_account(bidder, "bidder")
        value = check_bid_value(value)

        with self.store.transaction(auction_id) as auction, self._guard.enter(auction_id):
            check_bid_allowed(auction, bidder, self.context.clock.now())

            required = auction.minimum_next_bid()
            if value < required:
                raise BidIncrementTooLow(
                    f"Bid must be higher than current highest bid by at least the increment "
                    f"({value} < {required})",
                    auction_id,
                )

            if auction.highest_bidder is None or value > auction.highest_bid:
                if auction.highest_bidder is not None:
                    self.ledger.credit(
                        auction_id, auction.highest_bidder, auction.highest_bid, engine=self.address,
                    )
                auction.second_highest_bid = auction.highest_bid
                auction.highest_bid = value
                auction.highest_bidder = bidder
            else:
                # Tie: ranking unchanged, first bidder keeps precedence
                auction.second_highest_bid = value
                self.ledger.credit(auction_id, bidder, value, engine=self.address)
                logger.debug(f"Auction {auction_id}: tie at {value}, {bidder[:10]}... escrowed")

            auction.bid_count += 1
            self.received.add(value)
            result = replace(auction)

        logger.debug(
            f"Auction {auction_id}: bid {value} from {bidder[:10]}..., "
            f"highest={result.highest_bid} second={result.second_highest_bid}"
        )
        self.context.events.emit(NewBidPlaced(
            auction_id=auction_id, engine=self.address, bidder=bidder, amount=value))
        return result

    bid = submit_bid

    # =========================================================================
    # Settlement
    # =========================================================================

    def end_auction(self, auction_id: int, caller: str) -> Auction:
        """
        End an auction and settle at the second-highest bid.

        Raises:
            AuctionNotFound, NotCreator, AuctionStillActive, AlreadyEnded,
            TransferFailed (NFT could not be moved; nothing changes)
        """
        caller = normalize_account(caller, "caller")

        with self.store.transaction(auction_id) as auction, self._guard.enter(auction_id):
            check_end_allowed(auction, caller, self.context.clock.now())

            auction.auction_ended = True
            winner = auction.highest_bidder
            price = auction.second_highest_bid if winner is not None else 0

            if winner is not None:
                overpayment = auction.highest_bid - price
                self.ledger.credit(auction_id, auction.creator, price, engine=self.address)
                self.ledger.credit(auction_id, winner, overpayment, engine=self.address)
                try:
                    transfer_nft(self.context, self.address, auction, winner)
                except Exception:
                    self.ledger.revert_credit(auction_id, winner, overpayment, engine=self.address)
                    self.ledger.revert_credit(auction_id, auction.creator, price, engine=self.address)
                    logger.warning(f"Auction {auction_id}: settlement aborted, NFT transfer failed")
                    raise
            result = replace(auction)

        if winner is None:
            logger.info(f"Auction {auction_id} ended without bids; token stays with creator")
        else:
            logger.info(
                f"Auction {auction_id} ended: winner {winner[:10]}... pays {price} "
                f"(bid {result.highest_bid})"
            )
        self.context.events.emit(AuctionEnded(
            auction_id=auction_id, engine=self.address, winner=winner, amount=price))
        return result

    def withdraw(self, auction_id: int, caller: str) -> int:
        """
        Pay out the caller's pending returns for one auction.

        Callable any number of times; returns 0 when nothing is pending.

        Raises:
            AuctionNotFound, TransferFailed (payout refused; balance kept)
        """
        caller = normalize_account(caller, "caller")

        with self.store.locked(auction_id):
            amount = self.ledger.withdraw(auction_id, caller, self.context.gateway, engine=self.address)

        if amount:
            logger.info(f"Auction {auction_id}: {caller[:10]}... withdrew {amount}")
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
