"""
Clock - Time sources for auction deadlines.

An engine compares `clock.now()` against `auction_end_time` lazily, on
every bid and settlement call; there is no background timer. Deployments
pick exactly one unit of time:

- TIMESTAMP: unix seconds (SystemClock, ManualClock)
- BLOCK: block index (BlockClock)

Mixing units inside one engine is refused at construction time.
"""

import threading
import time
from enum import IntEnum
from typing import Protocol, runtime_checkable


class TimeUnit(IntEnum):
    """Unit in which auction durations and deadlines are expressed."""
    TIMESTAMP = 0  # Seconds since epoch
    BLOCK = 1      # Block numbers


@runtime_checkable
class Clock(Protocol):
    """Protocol for time sources."""
    unit: TimeUnit

    def now(self) -> int:
        ...


class SystemClock:
    """Wall-clock time in whole seconds."""

    unit = TimeUnit.TIMESTAMP

    def now(self) -> int:
        return int(time.time())


class ManualClock:
    """
    Settable timestamp clock.

    Used by tests and the demo to fast-forward past deadlines, the way
    evm_increaseTime does on a development chain.
    """

    unit = TimeUnit.TIMESTAMP

    def __init__(self, start: int = 1_700_000_000):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move time forward and return the new time."""
        if seconds < 0:
            raise ValueError("Cannot move clock backwards")
        with self._lock:
            self._now += seconds
            return self._now

    def set(self, timestamp: int) -> None:
        if timestamp < self._now:
            raise ValueError("Cannot move clock backwards")
        self._now = timestamp


class BlockClock:
    """Block-height clock; deadlines are block numbers."""

    unit = TimeUnit.BLOCK

    def __init__(self, start_block: int = 0):
        self._height = start_block
        self._lock = threading.Lock()

    def now(self) -> int:
        return self._height

    def mine(self, blocks: int = 1) -> int:
        """Advance the chain by `blocks` blocks and return the new height."""
        if blocks < 0:
            raise ValueError("Cannot un-mine blocks")
        with self._lock:
            self._height += blocks
            return self._height


def clock_for_unit(unit: str) -> Clock:
    """Build the default clock for a configured time unit."""
    if unit == "timestamp":
        return SystemClock()
    if unit == "block":
        return BlockClock()
    raise ValueError(f"Unknown time unit: {unit}")
