"""
Tests for the English auction engine.

Tests cover:
1. Bid acceptance, increments and refunds
2. Bid rejections (self-bid, repeat bid, deadline)
3. Settlement and NFT transfer
4. Creator withdrawal
5. Failure atomicity and reentrancy
"""

import pytest

from auctionhouse.core.auction import EngineContext, EnglishAuctionEngine
from auctionhouse.core.clock import ManualClock
from auctionhouse.core.errors import (
    AlreadyEnded,
    AlreadyHighestBidder,
    AlreadyWithdrawn,
    AuctionExpired,
    AuctionNotEnded,
    AuctionNotFound,
    AuctionStillActive,
    BidTooLow,
    InvalidParameters,
    NotCreator,
    ReentrantCall,
    SelfBid,
    TransferFailed,
)
from auctionhouse.core.escrow import AccountBook
from auctionhouse.core.events import AuctionEnded, FundsWithdrawn, NewBidPlaced
from auctionhouse.core.nft import InMemoryNFT, NFTDirectory

from auctionhouse.crypto import generate_accounts

CREATOR, ALICE, BOB, CAROL = generate_accounts(4)
ETHER = 10**18
DURATION = 3600
INCREMENT = ETHER // 100
START = ETHER // 2


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def nft():
    return InMemoryNFT(name="AuctionToken", symbol="ATK")


@pytest.fixture
def book():
    return AccountBook()


@pytest.fixture
def engine(clock, nft, book):
    context = EngineContext(clock=clock, nft_directory=NFTDirectory([nft]), gateway=book)
    return EnglishAuctionEngine(context=context)


@pytest.fixture
def auction(engine, nft):
    nft.mint(CREATOR, 1)
    nft.approve(CREATOR, engine.address, 1)
    return engine.create_auction(1, nft.address, 1, DURATION, INCREMENT, START, CREATOR)


class TestPlaceBid:
    """Tests for accepted bids."""

    def test_first_bid(self, engine, auction):
        """A bid of starting price plus increment takes the lead."""
        result = engine.place_bid(1, ALICE, START + INCREMENT)

        assert result.highest_bid == START + INCREMENT
        assert result.highest_bidder == ALICE
        assert result.bid_count == 1
        assert engine.received.total == START + INCREMENT

    def test_emits_new_bid(self, engine, auction):
        engine.bid(1, ALICE, ETHER)

        assert engine.context.events.history[-1] == NewBidPlaced(
            auction_id=1, engine=engine.address, bidder=ALICE, amount=ETHER,
        )

    def test_outbid_refunds_previous(self, engine, auction, book):
        """The outbid party is paid back immediately."""
        engine.place_bid(1, ALICE, ETHER)
        engine.place_bid(1, BOB, 2 * ETHER)

        assert book.balance_of(ALICE) == ETHER
        assert engine.pending_returns(1, ALICE) == 0
        assert engine.get_auction(1).highest_bidder == BOB

    def test_exact_increment_boundary(self, engine, auction):
        """highest + increment is accepted; one wei less is not."""
        engine.place_bid(1, ALICE, ETHER)

        with pytest.raises(BidTooLow, match="Bid must be higher than current bid plus the minimum increment"):
            engine.place_bid(1, BOB, ETHER + INCREMENT - 1)

        result = engine.place_bid(1, BOB, ETHER + INCREMENT)
        assert result.highest_bidder == BOB

    def test_bid_at_starting_price_rejected(self, engine, auction):
        """The reserve itself is not a valid bid when an increment is set."""
        with pytest.raises(BidTooLow):
            engine.place_bid(1, ALICE, START)

    def test_highest_bid_monotonic(self, engine, auction):
        """Rejected bids never lower the standing bid."""
        seen = []
        for bidder, amount in [(ALICE, ETHER), (BOB, ETHER // 2), (CAROL, 3 * ETHER), (ALICE, 2 * ETHER)]:
            try:
                engine.place_bid(1, bidder, amount)
            except BidTooLow:
                pass
            seen.append(engine.get_auction(1).highest_bid)

        assert seen == sorted(seen)
        assert seen[-1] == 3 * ETHER

    def test_lowercase_bidder_normalized(self, engine, auction):
        result = engine.place_bid(1, ALICE.lower(), ETHER)

        assert result.highest_bidder == ALICE


class TestBidRejections:
    """Tests for rejected bids."""

    def test_self_bid(self, engine, auction):
        with pytest.raises(SelfBid):
            engine.place_bid(1, CREATOR, ETHER)

    def test_already_highest_bidder(self, engine, auction):
        engine.place_bid(1, ALICE, ETHER)

        with pytest.raises(AlreadyHighestBidder):
            engine.place_bid(1, ALICE, 2 * ETHER)

        assert engine.get_auction(1).highest_bid == ETHER

    def test_bid_at_deadline(self, engine, auction, clock):
        """The deadline instant is already closed."""
        clock.advance(DURATION - 1)
        engine.place_bid(1, ALICE, ETHER)

        clock.advance(1)
        with pytest.raises(AuctionExpired):
            engine.place_bid(1, BOB, 2 * ETHER)

    def test_unknown_auction(self, engine):
        with pytest.raises(AuctionNotFound):
            engine.place_bid(7, ALICE, ETHER)

    @pytest.mark.parametrize("value", [0, -1, True, "1"])
    def test_invalid_value(self, engine, auction, value):
        with pytest.raises(InvalidParameters):
            engine.place_bid(1, ALICE, value)

    def test_refund_failure_rejects_bid(self, engine, auction, book):
        """A refused refund aborts the new bid with no state change."""
        engine.place_bid(1, ALICE, ETHER)
        book.reject(ALICE)
        events_before = len(engine.context.events)

        with pytest.raises(TransferFailed):
            engine.place_bid(1, BOB, 2 * ETHER)

        auction = engine.get_auction(1)
        assert auction.highest_bidder == ALICE
        assert auction.highest_bid == ETHER
        assert auction.bid_count == 1
        assert book.balance_of(ALICE) == 0
        assert engine.ledger.total_escrowed() == 0
        assert engine.received.total == ETHER
        assert len(engine.context.events) == events_before

        book.reject(ALICE, False)
        engine.place_bid(1, BOB, 2 * ETHER)
        assert book.balance_of(ALICE) == ETHER


class TestEndAuction:
    """Tests for settlement."""

    def test_transfers_nft_and_credits_creator(self, engine, auction, clock, nft):
        engine.place_bid(1, ALICE, ETHER)
        engine.place_bid(1, BOB, 2 * ETHER)
        clock.advance(DURATION)

        result = engine.end_auction(1, CREATOR)

        assert result.auction_ended
        assert nft.owner_of(1) == BOB
        assert engine.pending_returns(1, CREATOR) == 2 * ETHER
        assert engine.context.events.history[-1] == AuctionEnded(
            auction_id=1, engine=engine.address, winner=BOB, amount=2 * ETHER,
        )

    def test_no_bids(self, engine, auction, clock, nft):
        """Without bids the token stays with the creator."""
        clock.advance(DURATION)

        engine.end_auction(1, CREATOR)

        assert nft.owner_of(1) == CREATOR
        assert engine.context.events.history[-1] == AuctionEnded(
            auction_id=1, engine=engine.address, winner=None, amount=0,
        )

    def test_before_deadline(self, engine, auction, clock):
        clock.advance(DURATION - 1)

        with pytest.raises(AuctionStillActive):
            engine.end_auction(1, CREATOR)

    def test_not_creator(self, engine, auction, clock):
        clock.advance(DURATION)

        with pytest.raises(NotCreator):
            engine.end_auction(1, ALICE)

    def test_twice(self, engine, auction, clock):
        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)

        with pytest.raises(AlreadyEnded):
            engine.end_auction(1, CREATOR)

    def test_bid_after_end(self, engine, auction, clock):
        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)

        with pytest.raises(AuctionExpired):
            engine.place_bid(1, ALICE, ETHER)

    def test_failed_nft_transfer_rolls_back(self, engine, auction, clock, nft):
        """A frozen token aborts settlement; the auction can be ended later."""
        engine.place_bid(1, ALICE, ETHER)
        clock.advance(DURATION)
        nft.frozen.add(1)

        with pytest.raises(TransferFailed):
            engine.end_auction(1, CREATOR)

        assert not engine.get_auction(1).auction_ended
        assert engine.ledger.total_escrowed() == 0
        assert nft.owner_of(1) == CREATOR

        nft.frozen.discard(1)
        engine.end_auction(1, CREATOR)
        assert nft.owner_of(1) == ALICE


class TestWithdraw:
    """Tests for creator withdrawal."""

    def test_pays_creator_once(self, engine, auction, clock, book):
        engine.place_bid(1, ALICE, ETHER)
        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)

        assert engine.withdraw(1, CREATOR) == ETHER
        assert book.balance_of(CREATOR) == ETHER
        assert engine.get_auction(1).withdrawn
        assert engine.context.events.history[-1] == FundsWithdrawn(
            auction_id=1, engine=engine.address, recipient=CREATOR, amount=ETHER,
        )

        with pytest.raises(AlreadyWithdrawn):
            engine.withdraw(1, CREATOR)
        assert book.balance_of(CREATOR) == ETHER

    def test_before_end(self, engine, auction):
        engine.place_bid(1, ALICE, ETHER)

        with pytest.raises(AuctionNotEnded):
            engine.withdraw(1, CREATOR)

    def test_not_creator(self, engine, auction, clock):
        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)

        with pytest.raises(NotCreator):
            engine.withdraw(1, ALICE)

    def test_no_bids_withdraws_zero(self, engine, auction, clock):
        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)

        assert engine.withdraw(1, CREATOR) == 0
        with pytest.raises(AlreadyWithdrawn):
            engine.withdraw(1, CREATOR)

    def test_refused_payout_can_retry(self, engine, auction, clock, book):
        """A failed payout leaves the auction un-withdrawn."""
        engine.place_bid(1, ALICE, ETHER)
        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)
        book.reject(CREATOR)

        with pytest.raises(TransferFailed):
            engine.withdraw(1, CREATOR)

        assert not engine.get_auction(1).withdrawn
        assert engine.pending_returns(1, CREATOR) == ETHER

        book.reject(CREATOR, False)
        assert engine.withdraw(1, CREATOR) == ETHER


class TestReentrancy:
    """Tests for calls issued from inside a refund."""

    def test_reentrant_bid_rejected(self, engine, auction, book):
        """An outbid party cannot bid again from its refund hook."""
        errors = []

        def hook(amount):
            try:
                engine.place_bid(1, ALICE, 5 * ETHER)
            except ReentrantCall as e:
                errors.append(e)

        engine.place_bid(1, ALICE, ETHER)
        book.on_receive(ALICE, hook)
        engine.place_bid(1, BOB, 2 * ETHER)

        assert len(errors) == 1
        assert engine.get_auction(1).highest_bidder == BOB
        assert engine.get_auction(1).highest_bid == 2 * ETHER
        assert book.balance_of(ALICE) == ETHER

    def test_reverting_hook_rejects_bid(self, engine, auction, book):
        """A refund hook that raises makes the refund, and the bid, fail."""
        def hook(amount):
            raise RuntimeError("no thanks")

        engine.place_bid(1, ALICE, ETHER)
        book.on_receive(ALICE, hook)

        with pytest.raises(TransferFailed):
            engine.place_bid(1, BOB, 2 * ETHER)

        assert engine.get_auction(1).highest_bidder == ALICE
        assert book.balance_of(ALICE) == 0


class TestAccounting:
    """Tests for value held by the engine."""

    def test_held_value(self, engine, auction, clock):
        engine.place_bid(1, ALICE, ETHER)
        engine.place_bid(1, BOB, 2 * ETHER)

        assert engine.held_value() == 2 * ETHER

        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)
        engine.withdraw(1, CREATOR)

        assert engine.held_value() == 0
        stats = engine.stats()
        assert stats["variant"] == "english"
        assert stats["total_received"] == 3 * ETHER
        assert stats["total_paid_out"] == 3 * ETHER
        assert stats["ended_auctions"] == 1
