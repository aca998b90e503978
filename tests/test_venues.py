"""In-memory venues and the adapters the protocol drives them through."""

import pytest

from splitrisk.hardening import VenueOperationFailed, VenueRedeemFailed
from splitrisk.ledger import TokenLedger
from splitrisk.venues.base import distribute_pro_rata
from splitrisk.venues.lending_pool import (
    WITHDRAW_ALL,
    InMemoryLendingPool,
    LendingPoolAdapter,
    LendingPoolError,
)
from splitrisk.venues.money_market import (
    EXCHANGE_RATE_SCALE,
    InMemoryMoneyMarket,
    MarketStatus,
    MoneyMarketAdapter,
)


@pytest.fixture
def dai():
    token = TokenLedger("DAI")
    token.mint("alice", 1_000)
    token.mint("bob", 1_000)
    return token


def test_distribute_pro_rata_sums_to_delta():
    assert distribute_pro_rata({"a": 300, "b": 100}, 40) == {"a": 30, "b": 10}
    shares = distribute_pro_rata({"a": 330, "b": 110}, -1)
    assert sum(shares.values()) == -1
    assert shares == {"a": 0, "b": -1}
    assert distribute_pro_rata({}, 10) == {}
    assert distribute_pro_rata({"a": 1}, 0) == {}


class TestLendingPool:

    def test_deposit_mints_receipts_one_to_one(self, dai):
        pool = InMemoryLendingPool(dai)
        adapter = LendingPoolAdapter(pool, dai, "alice")
        assert adapter.deposit(300) == 300
        assert adapter.receipt_balance() == 300
        assert dai.balance_of(pool.address) == 300
        assert dai.balance_of("alice") == 700

    def test_accrue_rebases_pro_rata(self, dai):
        pool = InMemoryLendingPool(dai)
        alice = LendingPoolAdapter(pool, dai, "alice")
        bob = LendingPoolAdapter(pool, dai, "bob")
        alice.deposit(300)
        bob.deposit(100)
        pool.accrue(40)
        assert alice.receipt_balance() == 330
        assert bob.receipt_balance() == 110
        assert pool.receipt_token.total_supply() == pool.reserve() == 440
        assert alice.withdraw(330) == 330
        assert dai.balance_of("alice") == 1_030

    def test_loss_cannot_exceed_reserve(self, dai):
        pool = InMemoryLendingPool(dai)
        LendingPoolAdapter(pool, dai, "alice").deposit(10)
        with pytest.raises(ValueError):
            pool.accrue(-11)

    def test_injected_deposit_failure(self, dai):
        pool = InMemoryLendingPool(dai)
        adapter = LendingPoolAdapter(pool, dai, "alice")
        pool.fail_next("deposit", "reserve frozen")
        with pytest.raises(VenueOperationFailed) as exc:
            adapter.deposit(100)
        assert exc.value.action == "deposit"
        assert "reserve frozen" in str(exc.value)
        assert dai.balance_of("alice") == 1_000
        assert dai.allowance("alice", pool.address) == 0
        assert adapter.deposit(100) == 100

    def test_withdraw_beyond_receipts(self, dai):
        pool = InMemoryLendingPool(dai)
        adapter = LendingPoolAdapter(pool, dai, "alice")
        adapter.deposit(100)
        with pytest.raises(VenueOperationFailed):
            adapter.withdraw(101)

    def test_withdraw_all_sentinel(self, dai):
        pool = InMemoryLendingPool(dai)
        LendingPoolAdapter(pool, dai, "alice").deposit(100)
        assert pool.withdraw("DAI", WITHDRAW_ALL, "alice", caller="alice") == 100
        assert pool.receipt_token.balance_of("alice") == 0

    def test_rejects_other_assets(self, dai):
        pool = InMemoryLendingPool(dai)
        with pytest.raises(LendingPoolError):
            pool.deposit("USDC", 1, "alice", caller="alice")

    def test_transfer_receipt(self, dai):
        pool = InMemoryLendingPool(dai)
        adapter = LendingPoolAdapter(pool, dai, "alice")
        adapter.deposit(100)
        adapter.transfer_receipt("bob", 40)
        assert pool.receipt_token.balance_of("bob") == 40
        with pytest.raises(VenueOperationFailed):
            adapter.transfer_receipt("bob", 61)


class TestMoneyMarket:

    def test_mint_at_exchange_rate(self, dai):
        market = InMemoryMoneyMarket(dai, initial_exchange_rate=EXCHANGE_RATE_SCALE // 5)
        adapter = MoneyMarketAdapter(market, dai, "alice")
        assert adapter.deposit(500) == 2_500
        assert adapter.withdraw(2_500) == 500

    def test_loss_reprices_receipts(self, dai):
        market = InMemoryMoneyMarket(dai)
        adapter = MoneyMarketAdapter(market, dai, "alice")
        adapter.deposit(500)
        market.accrue(-200)
        assert market.exchange_rate == 6 * 10 ** 17
        assert adapter.withdraw(500) == 300
        assert adapter.receipt_balance() == 0

    def test_redeem_status_is_checked(self, dai):
        market = InMemoryMoneyMarket(dai)
        adapter = MoneyMarketAdapter(market, dai, "alice")
        adapter.deposit(500)
        market.fail_next("redeem", MarketStatus.INSUFFICIENT_CASH)
        with pytest.raises(VenueRedeemFailed) as exc:
            adapter.withdraw(500)
        assert exc.value.status == MarketStatus.INSUFFICIENT_CASH
        assert adapter.receipt_balance() == 500

    def test_mint_status_is_checked(self, dai):
        market = InMemoryMoneyMarket(dai)
        adapter = MoneyMarketAdapter(market, dai, "alice")
        market.fail_next("mint")
        with pytest.raises(VenueOperationFailed) as exc:
            adapter.deposit(100)
        assert not isinstance(exc.value, VenueRedeemFailed)
        assert exc.value.status == MarketStatus.MARKET_PAUSED
        assert dai.balance_of("alice") == 1_000

    def test_status_codes_instead_of_exceptions(self, dai):
        market = InMemoryMoneyMarket(dai)
        assert market.mint(10, caller="carol") == MarketStatus.INSUFFICIENT_ALLOWANCE
        assert market.redeem(10, caller="carol") == MarketStatus.INSUFFICIENT_BALANCE
        assert market.transfer("carol", "dave", 1) is False

    def test_fail_next_requires_nonzero_status(self, dai):
        market = InMemoryMoneyMarket(dai)
        with pytest.raises(ValueError):
            market.fail_next("redeem", MarketStatus.NO_ERROR)
