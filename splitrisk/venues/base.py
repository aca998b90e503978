"""Uniform venue interface consumed by the investment and divestment engines."""

from __future__ import annotations

from enum import Enum
from typing import Protocol


class VenueSlot(Enum):
    """The two venue positions of a deployment."""
    X = "x"
    Y = "y"


class YieldVenue(Protocol):
    """What the protocol needs from a yield venue.

    All amounts are measured from the pool account's point of view:
    ``deposit`` returns the receipt-token balance delta and ``withdraw`` the
    base-asset balance delta, so fee-on-transfer tokens and venue rounding
    are reflected in what the protocol records.
    """

    name: str

    def receipt_balance(self) -> int:
        ...

    def deposit(self, amount: int) -> int:
        ...

    def withdraw(self, amount: int) -> int:
        ...

    def transfer_receipt(self, to: str, amount: int) -> None:
        ...


def distribute_pro_rata(balances: dict, delta: int) -> dict:
    """Split ``delta`` across holders proportionally to ``balances``.

    Floors every share and gives the rounding remainder to the largest holder
    (ties broken by account name), so the shares always sum to ``delta``.
    """
    total = sum(balances.values())
    if total <= 0 or delta == 0:
        return {}
    shares = {acct: delta * bal // total for acct, bal in balances.items()}
    remainder = delta - sum(shares.values())
    if remainder:
        largest = sorted(balances.items(), key=lambda kv: (-kv[1], kv[0]))[0][0]
        shares[largest] += remainder
    return shares
