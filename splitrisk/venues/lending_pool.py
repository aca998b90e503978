"""Lending-pool venue (deposit/withdraw convention).

The client deposits base asset on behalf of an account, which receives
rebasing receipt tokens 1:1, and withdraws by receipt amount. ``withdraw``
returns the amount of base asset sent back. Failures are raised as
``LendingPoolError``; the adapter translates them into
``VenueOperationFailed`` so the protocol sees one error type per concern.

``caller`` on the client methods is the account on whose authority the call
is made.
"""

from __future__ import annotations

from typing import Dict, Optional, Protocol

from splitrisk.hardening import InsufficientBalance, VenueOperationFailed
from splitrisk.ledger import BaseAsset, TokenLedger
from splitrisk.venues.base import distribute_pro_rata

# Sentinel amount meaning "the caller's full receipt balance"
WITHDRAW_ALL = 2 ** 256 - 1


class LendingPoolError(Exception):
    """Raised by lending-pool clients when an operation cannot be performed."""


class LendingPoolClient(Protocol):
    """Abstract client interface for a deposit/withdraw venue."""

    address: str
    receipt_token: TokenLedger

    def deposit(self, asset: str, amount: int, on_behalf_of: str, *, caller: str) -> None:
        ...

    def withdraw(self, asset: str, amount: int, to: str, *, caller: str) -> int:
        ...


class InMemoryLendingPool:
    """Reference lending pool holding its reserve on a shared base-asset ledger.

    ``accrue(delta)`` moves the reserve by ``delta`` base units (positive for
    interest, negative for a loss) and rebases every receipt balance pro rata,
    keeping receipt supply equal to the reserve.
    """

    def __init__(self, asset: TokenLedger, address: str = "venue.lending_pool", receipt_symbol: str = ""):
        self.asset = asset
        self.address = address
        self.receipt_token = TokenLedger(receipt_symbol or f"a{asset.symbol}")
        self._failures: Dict[str, str] = {}

    def fail_next(self, operation: str, detail: str = "injected failure") -> None:
        """Make the next ``deposit`` or ``withdraw`` raise."""
        if operation not in ("deposit", "withdraw"):
            raise ValueError(f"unknown lending pool operation: {operation}")
        self._failures[operation] = detail

    def _maybe_fail(self, operation: str) -> None:
        detail = self._failures.pop(operation, None)
        if detail is not None:
            raise LendingPoolError(detail)

    def _check_asset(self, asset: str) -> None:
        if asset != self.asset.symbol:
            raise LendingPoolError(f"unsupported asset {asset!r}")

    def reserve(self) -> int:
        return self.asset.balance_of(self.address)

    def deposit(self, asset: str, amount: int, on_behalf_of: str, *, caller: str) -> None:
        self._check_asset(asset)
        self._maybe_fail("deposit")
        if amount <= 0:
            raise LendingPoolError("deposit amount must be positive")
        before = self.reserve()
        try:
            self.asset.transfer_from(self.address, caller, self.address, amount)
        except InsufficientBalance as e:
            raise LendingPoolError(str(e)) from e
        self.receipt_token.mint(on_behalf_of, self.reserve() - before)

    def withdraw(self, asset: str, amount: int, to: str, *, caller: str) -> int:
        self._check_asset(asset)
        self._maybe_fail("withdraw")
        held = self.receipt_token.balance_of(caller)
        if amount == WITHDRAW_ALL:
            amount = held
        if amount > held:
            raise LendingPoolError(f"withdraw of {amount} exceeds receipt balance {held}")
        if amount > self.reserve():
            raise LendingPoolError(f"withdraw of {amount} exceeds reserve {self.reserve()}")
        self.receipt_token.burn(caller, amount)
        self.asset.transfer(self.address, to, amount)
        return amount

    def accrue(self, delta: int) -> None:
        """Apply interest (``delta > 0``) or a loss (``delta < 0``) to the reserve."""
        if delta < 0 and -delta > self.reserve():
            raise ValueError(f"loss of {-delta} exceeds reserve {self.reserve()}")
        if delta > 0:
            self.asset.mint(self.address, delta)
        elif delta < 0:
            self.asset.burn(self.address, -delta)
        for account, share in distribute_pro_rata(self.receipt_token.holders(), delta).items():
            if share > 0:
                self.receipt_token.mint(account, share)
            elif share < 0:
                self.receipt_token.burn(account, -share)


class LendingPoolAdapter:
    """``YieldVenue`` over a deposit/withdraw client."""

    def __init__(
        self,
        client: LendingPoolClient,
        asset: BaseAsset,
        account: str,
        *,
        name: str = "lending_pool",
        asset_id: Optional[str] = None,
    ):
        self._client = client
        self._asset = asset
        self._account = account
        self.name = name
        self._asset_id = asset_id or getattr(asset, "symbol", "")

    @property
    def client(self) -> LendingPoolClient:
        return self._client

    def receipt_balance(self) -> int:
        return self._client.receipt_token.balance_of(self._account)

    def deposit(self, amount: int) -> int:
        self._asset.approve(self._account, self._client.address, amount)
        before = self.receipt_balance()
        try:
            self._client.deposit(self._asset_id, amount, self._account, caller=self._account)
        except LendingPoolError as e:
            self._asset.approve(self._account, self._client.address, 0)
            raise VenueOperationFailed(self.name, "deposit", str(e)) from e
        return self.receipt_balance() - before

    def withdraw(self, amount: int) -> int:
        before = self._asset.balance_of(self._account)
        try:
            self._client.withdraw(self._asset_id, amount, self._account, caller=self._account)
        except LendingPoolError as e:
            raise VenueOperationFailed(self.name, "withdraw", str(e)) from e
        return self._asset.balance_of(self._account) - before

    def transfer_receipt(self, to: str, amount: int) -> None:
        try:
            self._client.receipt_token.transfer(self._account, to, amount)
        except InsufficientBalance as e:
            raise VenueOperationFailed(self.name, "transfer", str(e)) from e
