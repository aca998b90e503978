"""Money-market venue (mint/redeem convention with status codes).

Depositing mints receipt tokens at the market's current exchange rate and
redeeming burns them for base asset. Neither call raises: both return a
status code where zero means success. The adapter must check the code
explicitly; a nonzero redeem status is fatal to divestment.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Dict, Protocol

from splitrisk.hardening import InsufficientBalance, VenueOperationFailed, VenueRedeemFailed
from splitrisk.ledger import BaseAsset, TokenLedger

# Exchange rates are base units per receipt unit, scaled by this factor
EXCHANGE_RATE_SCALE = 10 ** 18


class MarketStatus(IntEnum):
    """Status codes returned by money-market calls."""
    NO_ERROR = 0
    INSUFFICIENT_ALLOWANCE = 1
    INSUFFICIENT_BALANCE = 2
    INSUFFICIENT_CASH = 3
    MARKET_PAUSED = 4


class MoneyMarketClient(Protocol):
    """Abstract client interface for a mint/redeem venue."""

    address: str

    def mint(self, amount: int, *, caller: str) -> int:
        ...

    def redeem(self, amount: int, *, caller: str) -> int:
        ...

    def balance_of(self, account: str) -> int:
        ...

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        ...


class InMemoryMoneyMarket:
    """Reference money market over a shared base-asset ledger.

    ``accrue(delta)`` moves the market's cash by ``delta`` base units and
    reprices the receipt token, so every holder gains or loses pro rata.
    """

    def __init__(
        self,
        asset: TokenLedger,
        address: str = "venue.money_market",
        initial_exchange_rate: int = EXCHANGE_RATE_SCALE,
        receipt_symbol: str = "",
    ):
        if initial_exchange_rate <= 0:
            raise ValueError("initial_exchange_rate must be positive")
        self.asset = asset
        self.address = address
        self.exchange_rate = initial_exchange_rate
        self.receipt_token = TokenLedger(receipt_symbol or f"c{asset.symbol}", decimals=8)
        self._failures: Dict[str, int] = {}

    def fail_next(self, operation: str, status: int = MarketStatus.MARKET_PAUSED) -> None:
        """Make the next ``mint`` or ``redeem`` return ``status``."""
        if operation not in ("mint", "redeem"):
            raise ValueError(f"unknown money market operation: {operation}")
        if status == MarketStatus.NO_ERROR:
            raise ValueError("injected status must be nonzero")
        self._failures[operation] = int(status)

    def cash(self) -> int:
        return self.asset.balance_of(self.address)

    def balance_of(self, account: str) -> int:
        return self.receipt_token.balance_of(account)

    def mint(self, amount: int, *, caller: str) -> int:
        if "mint" in self._failures:
            return self._failures.pop("mint")
        if self.asset.allowance(caller, self.address) < amount:
            return MarketStatus.INSUFFICIENT_ALLOWANCE
        if self.asset.balance_of(caller) < amount:
            return MarketStatus.INSUFFICIENT_BALANCE
        before = self.cash()
        self.asset.transfer_from(self.address, caller, self.address, amount)
        received = self.cash() - before
        self.receipt_token.mint(caller, received * EXCHANGE_RATE_SCALE // self.exchange_rate)
        return MarketStatus.NO_ERROR

    def redeem(self, amount: int, *, caller: str) -> int:
        if "redeem" in self._failures:
            return self._failures.pop("redeem")
        if self.receipt_token.balance_of(caller) < amount:
            return MarketStatus.INSUFFICIENT_BALANCE
        payout = amount * self.exchange_rate // EXCHANGE_RATE_SCALE
        if payout > self.cash():
            return MarketStatus.INSUFFICIENT_CASH
        self.receipt_token.burn(caller, amount)
        self.asset.transfer(self.address, caller, payout)
        return MarketStatus.NO_ERROR

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        try:
            self.receipt_token.transfer(sender, to, amount)
        except InsufficientBalance:
            return False
        return True

    def accrue(self, delta: int) -> None:
        """Apply interest (``delta > 0``) or a loss (``delta < 0``) to market cash."""
        if delta < 0 and -delta > self.cash():
            raise ValueError(f"loss of {-delta} exceeds cash {self.cash()}")
        if delta > 0:
            self.asset.mint(self.address, delta)
        elif delta < 0:
            self.asset.burn(self.address, -delta)
        supply = self.receipt_token.total_supply()
        if supply:
            self.exchange_rate = max(1, self.cash() * EXCHANGE_RATE_SCALE // supply)


class MoneyMarketAdapter:
    """``YieldVenue`` over a status-code mint/redeem client."""

    def __init__(self, client: MoneyMarketClient, asset: BaseAsset, account: str, *, name: str = "money_market"):
        self._client = client
        self._asset = asset
        self._account = account
        self.name = name

    @property
    def client(self) -> MoneyMarketClient:
        return self._client

    def receipt_balance(self) -> int:
        return self._client.balance_of(self._account)

    def deposit(self, amount: int) -> int:
        self._asset.approve(self._account, self._client.address, amount)
        before = self.receipt_balance()
        status = self._client.mint(amount, caller=self._account)
        if status != MarketStatus.NO_ERROR:
            self._asset.approve(self._account, self._client.address, 0)
            raise VenueOperationFailed(self.name, "mint", status=int(status))
        return self.receipt_balance() - before

    def withdraw(self, amount: int) -> int:
        before = self._asset.balance_of(self._account)
        status = self._client.redeem(amount, caller=self._account)
        if status != MarketStatus.NO_ERROR:
            raise VenueRedeemFailed(self.name, "redeem", status=int(status))
        return self._asset.balance_of(self._account) - before

    def transfer_receipt(self, to: str, amount: int) -> None:
        if not self._client.transfer(self._account, to, amount):
            raise VenueOperationFailed(self.name, "transfer", f"could not move {amount} receipt tokens to {to}")
