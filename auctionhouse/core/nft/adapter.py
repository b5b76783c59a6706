"""
NFT Adapter - Custody interface to external ERC-721 style token contracts.

The engine never owns token logic. It asks an adapter who owns a token,
whether the engine may move it, and to move it. Any adapter failure
raises TransferFailed and aborts the engine operation that triggered it.

This module provides:
- NFTAdapter: the protocol the engines call
- InMemoryNFT: an ERC-721 style token contract for tests, demos and
  service deployments that keep token ownership in-process
- NFTDirectory: resolves an nft_contract address to its adapter
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Set, runtime_checkable

from auctionhouse.core.errors import InvalidParameters, TransferFailed
from auctionhouse.crypto import keccak256, to_checksum_address
from auctionhouse.utils.logger import get_logger

logger = get_logger("nft")


@runtime_checkable
class NFTAdapter(Protocol):
    """Protocol for token contracts the engines can escrow against."""
    address: str

    def owner_of(self, token_id: int) -> Optional[str]:
        ...

    def is_approved(self, spender: str, token_id: int) -> bool:
        ...

    def approve(self, owner: str, spender: str, token_id: int) -> None:
        ...

    def transfer_from(self, operator: str, from_addr: str, to: str, token_id: int) -> None:
        ...


def contract_address(name: str, symbol: str) -> str:
    """Deterministic contract address for an in-memory collection."""
    digest = keccak256(f"{name}:{symbol}".encode())
    return to_checksum_address("0x" + digest[-20:].hex())


@dataclass
class InMemoryNFT:
    """
    ERC-721 style token contract held in memory.

    Implements the subset of ERC-721 the auctions rely on, plus the
    mint and tokens_of_owner helpers used by tests and demos.

    Attributes:
        name: Collection name
        symbol: Collection symbol
        owners: token_id -> owner address
        token_approvals: token_id -> approved spender
        operator_approvals: owner -> set of approved operators
        frozen: token ids whose transfers are refused (paused tokens)
    """
    name: str
    symbol: str
    address: str = ""
    owners: Dict[int, str] = field(default_factory=dict)
    token_approvals: Dict[int, str] = field(default_factory=dict)
    operator_approvals: Dict[str, Set[str]] = field(default_factory=lambda: defaultdict(set))
    frozen: Set[int] = field(default_factory=set)
    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def __post_init__(self):
        if not self.address:
            self.address = contract_address(self.name, self.symbol)
        else:
            self.address = to_checksum_address(self.address)

    # =========================================================================
    # Minting & Queries
    # =========================================================================

    def mint(self, to: str, token_id: int) -> None:
        """Create token_id owned by `to`."""
        with self._lock:
            if token_id in self.owners:
                raise ValueError(f"Token {token_id} already minted")
            self.owners[token_id] = to_checksum_address(to)
        logger.debug(f"{self.symbol}: minted token {token_id} to {to}")

    def owner_of(self, token_id: int) -> Optional[str]:
        """Owner of token_id, or None if it was never minted."""
        return self.owners.get(token_id)

    def balance_of(self, owner: str) -> int:
        owner = to_checksum_address(owner)
        return sum(1 for o in self.owners.values() if o == owner)

    def tokens_of_owner(self, owner: str) -> List[int]:
        """All token ids held by owner, ascending (fetchTokensByOwner)."""
        owner = to_checksum_address(owner)
        return sorted(t for t, o in self.owners.items() if o == owner)

    # =========================================================================
    # Approvals
    # =========================================================================

    def approve(self, owner: str, spender: str, token_id: int) -> None:
        """
        Approve `spender` to move a single token.

        Args:
            owner: Caller; must own the token or be an approved operator
            spender: Address being approved
            token_id: Token being approved
        """
        owner = to_checksum_address(owner)
        with self._lock:
            current = self.owners.get(token_id)
            if current is None:
                raise ValueError(f"Token {token_id} does not exist")
            if owner != current and owner not in self.operator_approvals[current]:
                raise ValueError(f"{owner} is not owner nor approved for all")
            self.token_approvals[token_id] = to_checksum_address(spender)

    def set_approval_for_all(self, owner: str, operator: str, approved: bool = True) -> None:
        """Grant or revoke `operator` rights over all of owner's tokens."""
        owner = to_checksum_address(owner)
        operator = to_checksum_address(operator)
        with self._lock:
            if approved:
                self.operator_approvals[owner].add(operator)
            else:
                self.operator_approvals[owner].discard(operator)

    def get_approved(self, token_id: int) -> Optional[str]:
        return self.token_approvals.get(token_id)

    def is_approved(self, spender: str, token_id: int) -> bool:
        """Whether spender may move token_id (token or operator approval)."""
        spender = to_checksum_address(spender)
        owner = self.owners.get(token_id)
        if owner is None:
            return False
        return (
            spender == owner
            or self.token_approvals.get(token_id) == spender
            or spender in self.operator_approvals[owner]
        )

    # =========================================================================
    # Transfers
    # =========================================================================

    def transfer_from(self, operator: str, from_addr: str, to: str, token_id: int) -> None:
        """
        Move token_id from `from_addr` to `to` on behalf of `operator`.

        Raises:
            TransferFailed: unknown token, wrong owner, missing approval,
                or frozen token
        """
        operator = to_checksum_address(operator)
        from_addr = to_checksum_address(from_addr)
        to = to_checksum_address(to)

        with self._lock:
            owner = self.owners.get(token_id)
            if owner is None:
                raise TransferFailed(f"{self.symbol}: token {token_id} does not exist")
            if owner != from_addr:
                raise TransferFailed(f"{self.symbol}: token {token_id} not owned by {from_addr}")
            if not self.is_approved(operator, token_id):
                raise TransferFailed(f"{self.symbol}: {operator} not approved for token {token_id}")
            if token_id in self.frozen:
                raise TransferFailed(f"{self.symbol}: token {token_id} is frozen")

            self.owners[token_id] = to
            # Approval is cleared on transfer, as in ERC-721
            self.token_approvals.pop(token_id, None)

        logger.info(f"{self.symbol}: token {token_id} transferred {from_addr[:10]}... -> {to[:10]}...")


class NFTDirectory:
    """
    Resolves nft_contract addresses to adapters.

    The engines only receive contract addresses from callers; this
    directory is the single place that maps them to live adapters.
    """

    def __init__(self, adapters: Optional[List[NFTAdapter]] = None):
        self._adapters: Dict[str, NFTAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: NFTAdapter) -> NFTAdapter:
        self._adapters[to_checksum_address(adapter.address)] = adapter
        return adapter

    def get(self, nft_contract: str) -> NFTAdapter:
        """
        Look up an adapter.

        Raises:
            InvalidParameters: the contract is not known to this engine
        """
        try:
            key = to_checksum_address(nft_contract)
        except (TypeError, ValueError):
            raise InvalidParameters(f"Invalid NFT contract address: {nft_contract!r}") from None
        adapter = self._adapters.get(key)
        if adapter is None:
            raise InvalidParameters(f"Unknown NFT contract: {nft_contract}")
        return adapter

    def __contains__(self, nft_contract: str) -> bool:
        try:
            return to_checksum_address(nft_contract) in self._adapters
        except (TypeError, ValueError):
            return False

    def __len__(self) -> int:
        return len(self._adapters)
