"""
Escrow Ledger - Per-auction, per-party pending balances.

Conceptual Background:
---------------------
Both auction variants hold value on behalf of participants:

1. **English**: outbid parties are refunded immediately; the ledger pays
   exactly the outbid amount and records it against the engine
2. **Second-price**: every non-winning bid and the winner's overpayment
   stay here until the owner withdraws
3. **Seller proceeds**: credited to the creator at settlement

Payout Ordering (checks-effects-interactions):
---------------------------------------------
1. Read and zero the slot
2. Call the payout gateway
3. On failure, restore the slot and re-raise TransferFailed

A reentrant withdraw issued from inside the payout call (a receive hook
calling back into the engine) finds a zero balance and pays nothing.
"""

import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Set, Tuple, runtime_checkable

from auctionhouse.core.errors import TransferFailed
from auctionhouse.crypto import to_checksum_address
from auctionhouse.utils.logger import get_logger

logger = get_logger("escrow")


# =============================================================================
# Payout Gateway
# =============================================================================


@runtime_checkable
class PayoutGateway(Protocol):
    """Outbound value transfers. Raises TransferFailed on refusal."""

    def send(self, recipient: str, amount: int) -> None:
        ...


class AccountBook:
    """
    In-memory native balances acting as the payout gateway.

    Stands in for the chain's ether balances:
    - fund/charge model value entering the engine with a bid
    - send models the engine paying out
    - reject/on_receive model recipient contracts that revert or
      call back into the engine while receiving
    """

    def __init__(self):
        self._balances: Dict[str, int] = {}
        self._rejecting: Set[str] = set()
        self._hooks: Dict[str, Callable[[int], None]] = {}
        self._lock = threading.RLock()
        self.sent_count = 0

    def balance_of(self, address: str) -> int:
        return self._balances.get(to_checksum_address(address), 0)

    def fund(self, address: str, amount: int) -> None:
        """Give an account spendable balance."""
        if amount < 0:
            raise ValueError("Amount must be non-negative")
        address = to_checksum_address(address)
        with self._lock:
            self._balances[address] = self._balances.get(address, 0) + amount

    def charge(self, address: str, amount: int) -> None:
        """
        Take `amount` from an account (value attached to a bid).

        Raises:
            ValueError: insufficient balance
        """
        address = to_checksum_address(address)
        with self._lock:
            balance = self._balances.get(address, 0)
            if balance < amount:
                raise ValueError(f"Insufficient balance: {balance} < {amount}")
            self._balances[address] = balance - amount

    def reject(self, address: str, rejecting: bool = True) -> None:
        """Make payouts to `address` fail (a contract without receive())."""
        address = to_checksum_address(address)
        with self._lock:
            if rejecting:
                self._rejecting.add(address)
            else:
                self._rejecting.discard(address)

    def on_receive(self, address: str, hook: Optional[Callable[[int], None]]) -> None:
        """Install a callback run whenever `address` receives a payout."""
        address = to_checksum_address(address)
        with self._lock:
            if hook is None:
                self._hooks.pop(address, None)
            else:
                self._hooks[address] = hook

    def send(self, recipient: str, amount: int) -> None:
        """
        Pay `amount` to `recipient`.

        The receive hook runs after the balance is credited; if the hook
        raises, the credit is undone and the payout fails as a whole.
        """
        recipient = to_checksum_address(recipient)
        with self._lock:
            if recipient in self._rejecting:
                raise TransferFailed(f"Payout of {amount} to {recipient} rejected")
            self._balances[recipient] = self._balances.get(recipient, 0) + amount
            self.sent_count += 1
            hook = self._hooks.get(recipient)

        if hook is not None:
            try:
                hook(amount)
            except Exception as exc:
                with self._lock:
                    self._balances[recipient] -= amount
                    self.sent_count -= 1
                raise TransferFailed(f"Receive hook of {recipient} reverted: {exc}") from exc


# =============================================================================
# Escrow Ledger
# =============================================================================


@dataclass(frozen=True)
class EscrowEntry:
    """A single pending balance."""
    auction_id: int
    party: str
    amount: int
    engine: str = ""


class EscrowLedger:
    """
    Pending-returns ledger shared by the auction engines.

    Auction ids are only unique within one engine, so every slot is keyed
    by (engine, auction_id, party). Engines pass their own address as
    `engine`; direct callers may leave it empty.
    """

    def __init__(self):
        self._balances: Dict[Tuple[str, int, str], int] = {}
        self._paid_out: Dict[str, int] = {}
        self._lock = threading.RLock()

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def paid_out(self) -> int:
        """Total value paid through this ledger, all engines together."""
        with self._lock:
            return sum(self._paid_out.values())

    def paid_out_by(self, engine: str) -> int:
        """Value paid through this ledger on behalf of one engine."""
        return self._paid_out.get(engine, 0)

    def balance_of(self, auction_id: int, party: str, engine: str = "") -> int:
        return self._balances.get((engine, auction_id, party), 0)

    def balances_for(self, auction_id: int, engine: str = "") -> Dict[str, int]:
        """Non-zero balances held for one auction of one engine."""
        with self._lock:
            return {
                party: amount
                for (owner, aid, party), amount in self._balances.items()
                if owner == engine and aid == auction_id and amount > 0
            }

    def total_escrowed(self, auction_id: Optional[int] = None, engine: Optional[str] = None) -> int:
        """Sum of pending balances; None for either filter matches everything."""
        with self._lock:
            return sum(
                amount
                for (owner, aid, _), amount in self._balances.items()
                if (auction_id is None or aid == auction_id)
                and (engine is None or owner == engine)
            )

    def entries(self) -> List[EscrowEntry]:
        with self._lock:
            return [
                EscrowEntry(aid, party, amount, owner)
                for (owner, aid, party), amount in self._balances.items()
                if amount > 0
            ]

    # =========================================================================
    # Mutation
    # =========================================================================

    def credit(self, auction_id: int, party: str, amount: int, engine: str = "") -> None:
        """Add `amount` to a party's pending balance."""
        if amount < 0:
            raise ValueError("Credit amount must be non-negative")
        if amount == 0:
            return
        with self._lock:
            key = (engine, auction_id, party)
            self._balances[key] = self._balances.get(key, 0) + amount
        logger.debug(f"Credited {amount} to {party[:10]}... on auction {auction_id}")

    def debit_all(self, auction_id: int, party: str, engine: str = "") -> int:
        """Zero a party's pending balance and return what it held."""
        with self._lock:
            return self._balances.pop((engine, auction_id, party), 0)

    def revert_credit(self, auction_id: int, party: str, amount: int, engine: str = "") -> None:
        """Undo a credit made earlier in the same (aborted) operation."""
        with self._lock:
            key = (engine, auction_id, party)
            remaining = self._balances.get(key, 0) - amount
            if remaining < 0:
                raise RuntimeError(f"Escrow underflow reverting credit on auction {auction_id}")
            if remaining:
                self._balances[key] = remaining
            else:
                self._balances.pop(key, None)

    # =========================================================================
    # Payouts
    # =========================================================================

    def withdraw(self, auction_id: int, party: str, gateway: PayoutGateway, engine: str = "") -> int:
        """
        Pay out a party's whole pending balance.

        Returns:
            Amount paid (0 when nothing was pending)

        Raises:
            TransferFailed: the gateway refused; the balance is restored
        """
        amount = self.debit_all(auction_id, party, engine)
        if amount == 0:
            return 0

        try:
            self._send(auction_id, party, amount, gateway, engine)
        except TransferFailed:
            self.credit(auction_id, party, amount, engine)
            raise
        return amount

    def pay_now(self, auction_id: int, party: str, amount: int, gateway: PayoutGateway,
                engine: str = "") -> int:
        """
        Pay exactly `amount` to `party` without passing through a slot
        (synchronous refund).

        Pending balances, the party's own included, are never touched, so
        a failed payout leaves the ledger exactly as it was.
        """
        if amount < 0:
            raise ValueError("Payout amount must be non-negative")
        if amount == 0:
            return 0
        self._send(auction_id, party, amount, gateway, engine)
        return amount

    def _send(self, auction_id: int, party: str, amount: int, gateway: PayoutGateway,
              engine: str) -> None:
        try:
            gateway.send(party, amount)
        except Exception as exc:
            logger.warning(f"Payout of {amount} to {party[:10]}... on auction {auction_id} failed: {exc}")
            if isinstance(exc, TransferFailed):
                raise
            raise TransferFailed(str(exc), auction_id=auction_id) from exc

        with self._lock:
            self._paid_out[engine] = self._paid_out.get(engine, 0) + amount
