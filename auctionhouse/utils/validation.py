"""
Input Validation - Sanitization of externally supplied auction parameters.

Provides validation for caller inputs to prevent:
- Negative or non-integer amounts
- Integer overflow beyond uint256
- Malformed account addresses
"""

from typing import Any, Tuple

from auctionhouse.crypto import is_address, ZERO_ADDRESS

# =============================================================================
# Constants
# =============================================================================

# Field bounds (Solidity uint256)
MIN_AMOUNT = 0
MAX_AMOUNT = 2**256 - 1
MAX_TOKEN_ID = 2**256 - 1


# =============================================================================
# Validation Functions
# =============================================================================


def validate_integer(
    value: Any,
    name: str,
    min_val: int = MIN_AMOUNT,
    max_val: int = MAX_AMOUNT,
) -> Tuple[bool, str]:
    """
    Validate integer within bounds.

    Args:
        value: Value to validate
        name: Field name for errors
        min_val: Minimum allowed value
        max_val: Maximum allowed value

    Returns:
        (is_valid, error_message)
    """
    # bool is an int subclass, reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        return False, f"{name} must be int, got {type(value).__name__}"

    if value < min_val:
        return False, f"{name} must be >= {min_val}, got {value}"

    if value > max_val:
        return False, f"{name} must be <= {max_val}, got {value}"

    return True, ""


def validate_amount(value: Any, name: str = "amount") -> Tuple[bool, str]:
    """Validate a wei amount."""
    return validate_integer(value, name, MIN_AMOUNT, MAX_AMOUNT)


def validate_address(address: Any, name: str = "address") -> Tuple[bool, str]:
    """Validate a 0x-prefixed account address (zero address rejected)."""
    if not isinstance(address, str) or not address.startswith("0x") or not is_address(address):
        return False, f"{name} must be a 0x-prefixed 20-byte hex address, got {address!r}"

    if address.lower() == ZERO_ADDRESS:
        return False, f"{name} must not be the zero address"

    return True, ""


def validate_auction_id(auction_id: Any) -> Tuple[bool, str]:
    """Auction ids are caller-chosen uint256 values."""
    return validate_integer(auction_id, "auction_id", 0, MAX_AMOUNT)


def validate_all(*results: Tuple[bool, str]) -> Tuple[bool, str]:
    """
    Combine validation results, returning the first failure.

    Returns:
        (is_valid, error_message)
    """
    for is_valid, error in results:
        if not is_valid:
            return False, error
    return True, ""
