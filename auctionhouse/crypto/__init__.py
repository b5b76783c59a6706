"""
Account identity primitives.

This module provides:
- Keccak-256 hashing (Ethereum-style)
- secp256k1 key generation
- Address derivation (EIP-55 checksumming and address checks come
  from eth_utils)

Auction participants are identified by 20-byte Ethereum-style addresses,
carried around as 0x-prefixed hex strings. The engine compares addresses
in normalized (checksummed) form, so "0xabc..." and "0xABC..." name the
same account.
"""

import secrets
from dataclasses import dataclass
from typing import Optional

from Crypto.Hash import keccak
from eth_utils import is_address, to_checksum_address
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


# =============================================================================
# Hashing
# =============================================================================


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: address derivation and NFT contract addresses.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Addresses
# =============================================================================


def address_from_public_key(public_key: bytes) -> str:
    """
    Derive a checksummed address from a 64-byte public key.

    Address = last 20 bytes of keccak256(public_key).
    """
    if len(public_key) != 64:
        raise ValueError("Public key must be 64 bytes")
    return to_checksum_address("0x" + keccak256(public_key)[-20:].hex())


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes
    public_key: bytes

    @property
    def address(self) -> str:
        """Checksummed account address for this keypair."""
        return address_from_public_key(self.public_key)


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    x, y = secp256k1.privtopub(private_key)
    return x.to_bytes(32, byteorder="big") + y.to_bytes(32, byteorder="big")


def generate_keypair(seed: Optional[int] = None) -> KeyPair:
    """
    Generate a new keypair.

    Args:
        seed: Optional deterministic secret (test accounts); random otherwise
    """
    if seed is None:
        private_key_int = secrets.randbelow(SECP256K1_ORDER - 1) + 1
    else:
        private_key_int = seed % (SECP256K1_ORDER - 1) + 1

    private_key = private_key_int.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def generate_accounts(count: int, offset: int = 1) -> list:
    """
    Derive a list of deterministic account addresses.

    Mirrors the numbered test accounts of a local development chain.
    """
    return [generate_keypair(seed=offset + i).address for i in range(count)]


__all__ = [
    "keccak256",
    "is_address",
    "to_checksum_address",
    "address_from_public_key",
    "KeyPair",
    "generate_keypair",
    "generate_accounts",
    "private_key_to_public_key",
    "ZERO_ADDRESS",
    "SECP256K1_ORDER",
]
