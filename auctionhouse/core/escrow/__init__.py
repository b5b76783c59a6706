"""
Escrow Module.

Pending-returns ledger and the payout gateway it pays through.
"""

from auctionhouse.core.escrow.ledger import (
    EscrowLedger,
    EscrowEntry,
    PayoutGateway,
    AccountBook,
)

__all__ = [
    "EscrowLedger",
    "EscrowEntry",
    "PayoutGateway",
    "AccountBook",
]
