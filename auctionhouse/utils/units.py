"""
Ether unit conversion.

Amounts inside the engine are always integer wei. Conversion is done by
eth_utils (exact across the full uint256 range); these wrappers default
the unit to ether, refuse floats and render results as plain strings for
display.
"""

from decimal import Decimal, InvalidOperation
from typing import Union

import eth_utils

WEI_PER_ETHER = 10**18


def to_wei(value: Union[str, int, Decimal], unit: str = "ether") -> int:
    """
    Convert an amount in `unit` to integer wei.

    Raises:
        ValueError: unknown unit, unparsable or out-of-range value, or
            fractional wei
    """
    if isinstance(value, float):
        raise ValueError("Pass amounts as str or Decimal, not float")

    try:
        wei = eth_utils.to_wei(value, unit)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid amount: {value!r}") from None

    # eth_utils truncates sub-wei remainders
    if eth_utils.from_wei(wei, unit) != Decimal(str(value)):
        raise ValueError(f"{value} {unit} is not a whole number of wei")
    return wei


def from_wei(amount: int, unit: str = "ether") -> str:
    """Render integer wei in `unit` without exponent or trailing zeros (e.g. '1.5')."""
    value = eth_utils.from_wei(amount, unit)
    if isinstance(value, Decimal):
        return format(value, "f")
    return str(value)
