"""
Tests for the second-price auction engine.

Tests cover:
1. Ranking (promotion, ties, increments)
2. Settlement at the second-highest bid
3. Escrow withdrawals (any party, repeatable)
4. Failure atomicity and reentrant withdrawals
"""

import pytest

from auctionhouse.core.auction import EngineContext, SecondPriceAuctionEngine
from auctionhouse.core.clock import ManualClock
from auctionhouse.core.errors import (
    AlreadyEnded,
    AuctionExpired,
    AuctionNotFound,
    AuctionStillActive,
    BidIncrementTooLow,
    BidTooLow,
    NotCreator,
    SelfBid,
    TransferFailed,
)
from auctionhouse.core.escrow import AccountBook
from auctionhouse.core.events import AuctionEnded, FundsWithdrawn
from auctionhouse.core.nft import InMemoryNFT, NFTDirectory
from auctionhouse.crypto import generate_accounts
from auctionhouse.utils.units import to_wei

CREATOR, ALICE, BOB, CAROL = generate_accounts(4)
DURATION = 3600


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def nft():
    token = InMemoryNFT(name="AuctionToken", symbol="ATK")
    token.mint(CREATOR, 1)
    return token


@pytest.fixture
def book():
    return AccountBook()


@pytest.fixture
def engine(clock, nft, book):
    context = EngineContext(clock=clock, nft_directory=NFTDirectory([nft]), gateway=book)
    engine = SecondPriceAuctionEngine(context=context)
    nft.approve(CREATOR, engine.address, 1)
    return engine


def list_token(engine, nft, starting_price="0.5", increment="0.1"):
    return engine.create_auction(
        1, nft.address, 1, DURATION, to_wei(increment), to_wei(starting_price), CREATOR,
    )


class TestRanking:
    """Tests for bid ranking."""

    def test_first_bid_promotes_reserve(self, engine, nft):
        """The reserve becomes the second-highest bid after the first bid."""
        list_token(engine, nft)

        result = engine.submit_bid(1, ALICE, to_wei("1"))

        assert result.highest_bid == to_wei("1")
        assert result.highest_bidder == ALICE
        assert result.second_highest_bid == to_wei("0.5")
        assert engine.pending_returns(1, ALICE) == 0

    def test_outbid_moves_to_escrow(self, engine, nft):
        """The old highest bid becomes second and is escrowed for its owner."""
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))

        result = engine.submit_bid(1, BOB, to_wei("2"))

        assert result.highest_bid == to_wei("2")
        assert result.highest_bidder == BOB
        assert result.second_highest_bid == to_wei("1")
        assert engine.pending_returns(1, ALICE) == to_wei("1")

    def test_increment_enforced(self, engine, nft):
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))

        with pytest.raises(BidIncrementTooLow, match="at least the increment"):
            engine.submit_bid(1, BOB, to_wei("1.09"))

        with pytest.raises(BidTooLow):
            engine.submit_bid(1, BOB, to_wei("1.09"))

        assert engine.submit_bid(1, BOB, to_wei("1.1")).highest_bidder == BOB

    def test_tie_keeps_first_bidder(self, engine, nft):
        """With a zero increment an equal bid raises the price, not the rank."""
        list_token(engine, nft, increment="0")
        engine.submit_bid(1, ALICE, to_wei("1"))

        result = engine.submit_bid(1, BOB, to_wei("1"))

        assert result.highest_bid == to_wei("1")
        assert result.second_highest_bid == to_wei("1")
        assert result.highest_bidder == ALICE
        assert engine.pending_returns(1, BOB) == to_wei("1")

    def test_below_highest_with_zero_increment(self, engine, nft):
        list_token(engine, nft, increment="0")
        engine.submit_bid(1, ALICE, to_wei("1"))

        with pytest.raises(BidIncrementTooLow):
            engine.submit_bid(1, BOB, to_wei("0.9"))

    def test_leader_may_raise(self, engine, nft):
        """The highest bidder can outbid itself; the earlier bid is escrowed."""
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))

        result = engine.submit_bid(1, ALICE, to_wei("2"))

        assert result.highest_bidder == ALICE
        assert result.second_highest_bid == to_wei("1")
        assert engine.pending_returns(1, ALICE) == to_wei("1")

    def test_self_bid(self, engine, nft):
        list_token(engine, nft)

        with pytest.raises(SelfBid):
            engine.submit_bid(1, CREATOR, to_wei("1"))

    def test_after_deadline(self, engine, nft, clock):
        list_token(engine, nft)
        clock.advance(DURATION)

        with pytest.raises(AuctionExpired):
            engine.submit_bid(1, ALICE, to_wei("1"))

    def test_unknown_auction(self, engine):
        with pytest.raises(AuctionNotFound):
            engine.submit_bid(3, ALICE, to_wei("1"))


class TestSettlement:
    """Tests for end_auction."""

    def test_winner_pays_second_price(self, engine, nft, clock):
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        engine.submit_bid(1, BOB, to_wei("2"))
        clock.advance(DURATION)

        engine.end_auction(1, CREATOR)

        assert nft.owner_of(1) == BOB
        assert engine.pending_returns(1, CREATOR) == to_wei("1")
        assert engine.pending_returns(1, BOB) == to_wei("1")
        assert engine.pending_returns(1, ALICE) == to_wei("1")
        assert engine.context.events.history[-1] == AuctionEnded(
            auction_id=1, engine=engine.address, winner=BOB, amount=to_wei("1"),
        )

    def test_single_bid_pays_reserve(self, engine, nft, clock):
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        clock.advance(DURATION)

        engine.end_auction(1, CREATOR)

        assert engine.pending_returns(1, CREATOR) == to_wei("0.5")
        assert engine.pending_returns(1, ALICE) == to_wei("0.5")

    def test_no_bids(self, engine, nft, clock):
        list_token(engine, nft)
        clock.advance(DURATION)

        engine.end_auction(1, CREATOR)

        assert nft.owner_of(1) == CREATOR
        assert engine.ledger.total_escrowed() == 0
        assert engine.context.events.history[-1] == AuctionEnded(
            auction_id=1, engine=engine.address, winner=None, amount=0,
        )

    def test_guards(self, engine, nft, clock):
        list_token(engine, nft)

        with pytest.raises(AuctionStillActive):
            engine.end_auction(1, CREATOR)

        clock.advance(DURATION)
        with pytest.raises(NotCreator):
            engine.end_auction(1, ALICE)

        engine.end_auction(1, CREATOR)
        with pytest.raises(AlreadyEnded):
            engine.end_auction(1, CREATOR)

    def test_failed_nft_transfer_rolls_back(self, engine, nft, clock):
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        engine.submit_bid(1, BOB, to_wei("2"))
        clock.advance(DURATION)
        nft.frozen.add(1)

        with pytest.raises(TransferFailed):
            engine.end_auction(1, CREATOR)

        assert not engine.get_auction(1).auction_ended
        assert engine.ledger.balances_for(1, engine=engine.address) == {ALICE: to_wei("1")}


class TestWithdraw:
    """Tests for escrow withdrawals."""

    def test_outbid_withdraws_during_auction(self, engine, nft, book):
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        engine.submit_bid(1, BOB, to_wei("2"))

        assert engine.withdraw(1, ALICE) == to_wei("1")
        assert book.balance_of(ALICE) == to_wei("1")
        assert engine.context.events.history[-1] == FundsWithdrawn(
            auction_id=1, engine=engine.address, recipient=ALICE, amount=to_wei("1"),
        )

    def test_repeat_is_noop(self, engine, nft, book):
        """An empty balance withdraws zero and emits nothing."""
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        engine.submit_bid(1, BOB, to_wei("2"))
        engine.withdraw(1, ALICE)
        events_before = len(engine.context.events)

        assert engine.withdraw(1, ALICE) == 0
        assert engine.withdraw(1, CAROL) == 0
        assert len(engine.context.events) == events_before
        assert book.balance_of(ALICE) == to_wei("1")

    def test_unknown_auction(self, engine):
        with pytest.raises(AuctionNotFound):
            engine.withdraw(9, ALICE)

    def test_refused_payout_keeps_balance(self, engine, nft, book):
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        engine.submit_bid(1, BOB, to_wei("2"))
        book.reject(ALICE)

        with pytest.raises(TransferFailed):
            engine.withdraw(1, ALICE)

        assert engine.pending_returns(1, ALICE) == to_wei("1")
        assert engine.ledger.paid_out == 0

    def test_reentrant_withdraw_pays_once(self, engine, nft, book):
        """A withdraw issued from the receive hook finds an empty balance."""
        nested = []
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        engine.submit_bid(1, BOB, to_wei("2"))
        book.on_receive(ALICE, lambda amount: nested.append(engine.withdraw(1, ALICE)))

        assert engine.withdraw(1, ALICE) == to_wei("1")

        assert nested == [0]
        assert book.balance_of(ALICE) == to_wei("1")
        assert engine.ledger.paid_out == to_wei("1")


class TestAccounting:
    """Tests for conservation of value."""

    def test_everything_paid_out(self, engine, nft, clock, book):
        list_token(engine, nft)
        engine.submit_bid(1, ALICE, to_wei("1"))
        engine.submit_bid(1, BOB, to_wei("2"))
        engine.submit_bid(1, CAROL, to_wei("3"))
        clock.advance(DURATION)
        engine.end_auction(1, CREATOR)

        for party in (CREATOR, ALICE, BOB, CAROL):
            engine.withdraw(1, party)

        assert engine.held_value() == 0
        assert engine.ledger.total_escrowed() == 0
        assert book.balance_of(CREATOR) == to_wei("2")
        assert book.balance_of(CAROL) == to_wei("1")
        assert sum(book.balance_of(p) for p in (CREATOR, ALICE, BOB, CAROL)) == to_wei("6")
        assert engine.stats()["variant"] == "second_price"
