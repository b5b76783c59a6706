"""
Events - Observations emitted by the auction engines.

These mirror the contract events that off-chain consumers (metadata
caches, UI pollers) subscribe to:

- AuctionCreated(auction_id, engine, creator, min_bid_increment, starting_price, auction_end_time)
- NewBidPlaced(auction_id, engine, bidder, amount)
- AuctionEnded(auction_id, engine, winner, amount)
- FundsWithdrawn(auction_id, engine, recipient, amount)

Auction ids are unique per engine only; `engine` (the emitting engine's
address) tells apart auctions that share an id on one EventLog.

Delivery is fire-and-forget. A failing subscriber is logged and skipped;
it can never abort or alter an engine operation.
"""

import threading
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Type

from auctionhouse.utils.logger import get_logger

logger = get_logger("events")


@dataclass(frozen=True)
class AuctionEvent:
    """Base for all auction observations."""
    auction_id: int
    engine: str

    @property
    def name(self) -> str:
        return type(self).__name__


@dataclass(frozen=True)
class AuctionCreated(AuctionEvent):
    creator: str
    min_bid_increment: int
    starting_price: int
    auction_end_time: int


@dataclass(frozen=True)
class NewBidPlaced(AuctionEvent):
    bidder: str
    amount: int


@dataclass(frozen=True)
class AuctionEnded(AuctionEvent):
    winner: Optional[str]  # None when the auction closed without bids
    amount: int


@dataclass(frozen=True)
class FundsWithdrawn(AuctionEvent):
    recipient: str
    amount: int


Subscriber = Callable[[AuctionEvent], None]


@dataclass
class EventLog:
    """
    Event history with synchronous subscribers.

    Attributes:
        history: Events emitted, in emission order. Unbounded unless
            max_history is set, in which case the oldest entries are
            dropped first
        subscribers: Callbacks invoked for each new event
        max_history: Cap on retained history, None to keep everything
    """
    history: List[AuctionEvent] = field(default_factory=list)
    subscribers: List[Subscriber] = field(default_factory=list)
    max_history: Optional[int] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def emit(self, event: AuctionEvent) -> None:
        """Record an event and notify subscribers."""
        with self._lock:
            self.history.append(event)
            if self.max_history is not None and len(self.history) > self.max_history:
                del self.history[:len(self.history) - self.max_history]
            subscribers = list(self.subscribers)

        logger.debug(f"{event.name} auction={event.auction_id} engine={event.engine[:10]}...")

        for callback in subscribers:
            try:
                callback(event)
            except Exception:
                logger.exception(f"Subscriber {callback!r} failed on {event.name}")

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """
        Register a callback.

        Returns:
            A function that removes the subscription
        """
        with self._lock:
            self.subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        with self._lock:
            if callback in self.subscribers:
                self.subscribers.remove(callback)

    def past_events(
        self,
        event_type: Optional[Type[AuctionEvent]] = None,
        auction_id: Optional[int] = None,
        engine: Optional[str] = None,
    ) -> List[AuctionEvent]:
        """
        Query past events, like getPastEvents on a contract.

        Args:
            event_type: Only events of this class (all if None)
            auction_id: Only events for this auction (all if None)
            engine: Only events emitted by this engine address (all if None)
        """
        with self._lock:
            events = list(self.history)
        return [
            e for e in events
            if (event_type is None or isinstance(e, event_type))
            and (auction_id is None or e.auction_id == auction_id)
            and (engine is None or e.engine == engine)
        ]

    def __len__(self) -> int:
        return len(self.history)
