"""Token ledgers consumed by the protocol.

Two collaborators live here:

- ``TokenLedger``: a fungible token with balances, allowances and an optional
  fee-on-transfer, used for the base asset and for venue receipt tokens.
- ``ClaimLedger``: the two claim classes (senior "A", junior "B"), each a
  ``TokenLedger`` the protocol mints and burns through.

Neither carries protocol logic. The protocol depends only on the
``BaseAsset`` and ``ClaimTokens`` protocols below, so deployments can
substitute their own implementations.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Protocol, Tuple

from splitrisk.hardening import InsufficientBalance, InvalidAmount


class TrancheClass(Enum):
    """Claim classes, in order of seniority."""
    SENIOR = "A"
    JUNIOR = "B"

    @property
    def label(self) -> str:
        return self.name.lower()


class BaseAsset(Protocol):
    """Base-asset interface the protocol consumes."""

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, to: str, amount: int) -> None:
        ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        ...

    def approve(self, owner: str, spender: str, amount: int) -> None:
        ...

    def allowance(self, owner: str, spender: str) -> int:
        ...


class ClaimTokens(Protocol):
    """Claim-token interface the protocol consumes."""

    def mint(self, tranche: TrancheClass, account: str, amount: int) -> None:
        ...

    def burn(self, tranche: TrancheClass, account: str, amount: int) -> None:
        ...

    def balance_of(self, tranche: TrancheClass, account: str) -> int:
        ...

    def total_supply(self, tranche: TrancheClass) -> int:
        ...


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise InvalidAmount("amount", "must be a non-negative integer", amount)


class TokenLedger:
    """In-memory fungible token.

    ``fee_bps`` models fee-on-transfer tokens: that share of every
    ``transfer``/``transfer_from`` is burned, so the recipient receives less
    than the sender sent. Mint and burn are fee-free.
    """

    def __init__(self, symbol: str, decimals: int = 18, fee_bps: int = 0):
        if not 0 <= fee_bps < 10_000:
            raise ValueError(f"fee_bps must be in [0, 10000), got {fee_bps}")
        self.symbol = symbol
        self.decimals = decimals
        self.fee_bps = fee_bps
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"TokenLedger({self.symbol!r}, supply={self._total_supply})"

    def balance_of(self, account: str) -> int:
        with self._lock:
            return self._balances.get(account, 0)

    def total_supply(self) -> int:
        with self._lock:
            return self._total_supply

    def allowance(self, owner: str, spender: str) -> int:
        with self._lock:
            return self._allowances.get((owner, spender), 0)

    def holders(self) -> Dict[str, int]:
        """Snapshot of all non-zero balances."""
        with self._lock:
            return {a: b for a, b in self._balances.items() if b}

    def mint(self, account: str, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            self._balances[account] = self._balances.get(account, 0) + amount
            self._total_supply += amount

    def burn(self, account: str, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            held = self._balances.get(account, 0)
            if held < amount:
                raise InsufficientBalance(f"{self.symbol} balance of {account}", held, amount)
            self._balances[account] = held - amount
            self._total_supply -= amount

    def approve(self, owner: str, spender: str, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            self._allowances[(owner, spender)] = amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            self._move(sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        _check_amount(amount)
        with self._lock:
            allowed = self._allowances.get((owner, spender), 0)
            if allowed < amount:
                raise InsufficientBalance(f"{self.symbol} allowance of {spender} from {owner}", allowed, amount)
            self._move(owner, to, amount)
            self._allowances[(owner, spender)] = allowed - amount

    def _move(self, sender: str, to: str, amount: int) -> None:
        held = self._balances.get(sender, 0)
        if held < amount:
            raise InsufficientBalance(f"{self.symbol} balance of {sender}", held, amount)
        fee = amount * self.fee_bps // 10_000
        self._balances[sender] = held - amount
        self._balances[to] = self._balances.get(to, 0) + amount - fee
        self._total_supply -= fee


@dataclass
class ClaimLedger:
    """Senior and junior claim tokens.

    The protocol only ever mints both classes in equal amounts; the ledger
    itself does not enforce that.
    """
    senior: TokenLedger
    junior: TokenLedger

    @classmethod
    def create(cls, prefix: str = "SPLIT") -> "ClaimLedger":
        return cls(
            senior=TokenLedger(f"{prefix}-A"),
            junior=TokenLedger(f"{prefix}-B"),
        )

    def token(self, tranche: TrancheClass) -> TokenLedger:
        return self.senior if tranche is TrancheClass.SENIOR else self.junior

    def mint(self, tranche: TrancheClass, account: str, amount: int) -> None:
        self.token(tranche).mint(account, amount)

    def burn(self, tranche: TrancheClass, account: str, amount: int) -> None:
        self.token(tranche).burn(account, amount)

    def balance_of(self, tranche: TrancheClass, account: str) -> int:
        return self.token(tranche).balance_of(account)

    def total_supply(self, tranche: TrancheClass) -> int:
        return self.token(tranche).total_supply()
