"""One-shot allocation into both venues."""

import pytest

from conftest import ISSUANCE_END, INSURANCE_END, deposit
from splitrisk.events import Invested
from splitrisk.hardening import AlreadyPerformed, InsufficientBalance, PhaseViolation, VenueOperationFailed
from splitrisk.ledger import TokenLedger
from splitrisk.protocol import SplitRiskProtocol
from splitrisk.venues.base import VenueSlot
from splitrisk.venues.money_market import MarketStatus


def test_invest_splits_pool_in_half(funded, clock, asset, lending_pool, money_market):
    clock.set(ISSUANCE_END)
    event = funded.invest()
    assert isinstance(event, Invested)
    assert event.pool_amount == 1_000
    assert event.venue_x_receipt == 500
    assert event.venue_y_receipt == 500
    assert event.total_tranches == 1_000
    assert funded.state.invested
    assert funded.state.total_tranches == 1_000
    assert asset.balance_of(funded.pool_account) == 0
    assert lending_pool.reserve() == 500
    assert money_market.cash() == 500


def test_odd_pool_leaves_one_idle_unit(protocol, clock, asset):
    deposit(protocol, "alice", 600)
    # Direct donation makes the pool odd
    asset.mint(protocol.pool_account, 1)
    clock.set(ISSUANCE_END)
    event = protocol.invest()
    assert event.pool_amount == 601
    assert event.venue_x_receipt == 300
    assert event.venue_y_receipt == 300
    assert asset.balance_of(protocol.pool_account) == 1


def test_invest_twice(invested):
    with pytest.raises(AlreadyPerformed):
        invested.invest()


def test_invest_outside_insurance(funded, clock):
    with pytest.raises(PhaseViolation):
        funded.invest()
    clock.set(INSURANCE_END)
    with pytest.raises(PhaseViolation):
        funded.invest()
    assert not funded.state.invested


def test_invest_empty_pool(protocol, clock):
    clock.set(ISSUANCE_END)
    with pytest.raises(InsufficientBalance):
        protocol.invest()


def test_second_deposit_failure_unwinds_first(funded, clock, asset, lending_pool, money_market):
    clock.set(ISSUANCE_END)
    money_market.fail_next("mint", MarketStatus.MARKET_PAUSED)
    with pytest.raises(VenueOperationFailed) as exc:
        funded.invest()
    assert exc.value.status == MarketStatus.MARKET_PAUSED
    assert not funded.state.invested
    assert funded.state.total_tranches == 0
    assert asset.balance_of(funded.pool_account) == 1_000
    assert lending_pool.receipt_token.balance_of(funded.pool_account) == 0
    assert funded.events(Invested) == []

    # A fresh attempt succeeds once the venue recovers
    funded.invest()
    assert funded.state.invested


def test_first_deposit_failure(funded, clock, asset, lending_pool):
    clock.set(ISSUANCE_END)
    lending_pool.fail_next("deposit")
    with pytest.raises(VenueOperationFailed):
        funded.invest()
    assert asset.balance_of(funded.pool_account) == 1_000
    assert not funded.state.invested


def test_receipts_measured_under_fee_on_transfer(clock):
    asset = TokenLedger("FEE", fee_bps=100)
    protocol = SplitRiskProtocol.in_memory(asset, clock=clock, deployed_at=0)
    deposit(protocol, "alice", 1_000)
    assert asset.balance_of(protocol.pool_account) == 990
    clock.set(ISSUANCE_END)
    event = protocol.invest()
    # 495 sent to each venue, 1% fee burned in transit
    assert event.venue_x_receipt == 491
    assert event.venue_y_receipt == 491
    assert event.total_tranches == 1_000
    assert protocol.venue(VenueSlot.X).receipt_balance() == 491
