"""
SplitRisk protocol facade.

Wires the phase clock, claim ledger, venues and operation handlers around a
single ``ProtocolState`` and exposes the caller-facing operations:

    ┌──────────────────────────── SplitRiskProtocol ────────────────────────────┐
    │ split_risk   invest   divest   claim   claim_all   claim_senior/junior    │
    │     │          │        │        └──────────┬──────────────┘              │
    │ RiskSplitter  Investment  Divestment    ClaimProcessor                    │
    │                Manager     Engine                                         │
    │     └──────────┴────────┴─────────┬────────┘                              │
    │                          ProtocolContext (state, clock, asset, claims,    │
    │                                           venues, event sink)             │
    └───────────────────────────────────────────────────────────────────────────┘

Every public operation runs under one re-entrant lock, so operations are
totally ordered and never interleave. Each operation also runs under its own
correlation ID, carried by every event and log line it produces. Emitted
events go to an ``EventBus`` and are appended to an ``EventStore`` stream.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Dict, List, Optional

from splitrisk.claims import ClaimProcessor
from splitrisk.clock import Phase, PhaseClock, Schedule
from splitrisk.config import SplitRiskConfig, get_config
from splitrisk.core import now_unix
from splitrisk.divestment import DivestmentEngine
from splitrisk.events import Claimed, Divested, Event, EventBus, EventStore, Invested
from splitrisk.hardening import atomic
from splitrisk.investment import InvestmentManager
from splitrisk.ledger import ClaimLedger, ClaimTokens, TokenLedger, TrancheClass
from splitrisk.observability import ProtocolLayer, correlated, get_correlation_id, get_logger
from splitrisk.splitter import RiskSplitter
from splitrisk.state import ProtocolContext, ProtocolState
from splitrisk.venues.base import VenueSlot, YieldVenue
from splitrisk.venues.lending_pool import InMemoryLendingPool, LendingPoolAdapter
from splitrisk.venues.money_market import EXCHANGE_RATE_SCALE, InMemoryMoneyMarket, MoneyMarketAdapter

STREAM_ID = "splitrisk.protocol"


class SplitRiskProtocol:
    """A deployed SplitRisk pool."""

    def __init__(
        self,
        ctx: ProtocolContext,
        *,
        min_deposit: int = 2,
        event_bus: Optional[EventBus] = None,
        event_store: Optional[EventStore] = None,
    ):
        self._lock = threading.RLock()
        self.ctx = ctx
        self.event_bus = event_bus or EventBus()
        self.event_store = event_store or EventStore()
        self.logger = get_logger("protocol", ProtocolLayer.PROTOCOL)
        ctx.emit = self._emit

        self.splitter = RiskSplitter(ctx, min_deposit=min_deposit)
        self.investment = InvestmentManager(ctx)
        self.divestment = DivestmentEngine(ctx)
        self.claim_processor = ClaimProcessor(ctx)

    @classmethod
    def deploy(
        cls,
        asset: TokenLedger,
        venue_x: YieldVenue,
        venue_y: YieldVenue,
        *,
        clock: Callable[[], int] = now_unix,
        config: Optional[SplitRiskConfig] = None,
        claims: Optional[ClaimTokens] = None,
        deployed_at: Optional[int] = None,
        event_bus: Optional[EventBus] = None,
        event_store: Optional[EventStore] = None,
    ) -> "SplitRiskProtocol":
        """Create a pool whose schedule starts at ``deployed_at`` (default: now).

        The venue adapters must already act for the configured pool account.
        """
        config = config or get_config()
        durations = config.schedule.durations_seconds()
        start = clock() if deployed_at is None else deployed_at
        schedule = Schedule.from_durations(
            start,
            issuance=durations["issuance_period"],
            insurance=durations["insurance_period"],
            pending=durations["divest_period"],
            a_window=durations["a_claim_period"],
        )
        ctx = ProtocolContext(
            state=ProtocolState(schedule=schedule),
            clock=PhaseClock(schedule, now=clock),
            asset=asset,
            claims=claims or ClaimLedger.create(),
            venues={VenueSlot.X: venue_x, VenueSlot.Y: venue_y},
            pool_account=config.protocol.pool_account.get(),
            scale=config.protocol.fixed_point_scale.get(),
        )
        protocol = cls(
            ctx,
            min_deposit=config.protocol.min_deposit.get(),
            event_bus=event_bus,
            event_store=event_store,
        )
        protocol.logger.info(
            "Protocol deployed",
            pool_account=ctx.pool_account,
            venue_x=venue_x.name,
            venue_y=venue_y.name,
            **schedule.to_dict(),
        )
        return protocol

    @classmethod
    def in_memory(
        cls,
        asset: Optional[TokenLedger] = None,
        *,
        clock: Callable[[], int] = now_unix,
        config: Optional[SplitRiskConfig] = None,
        deployed_at: Optional[int] = None,
        exchange_rate: int = EXCHANGE_RATE_SCALE,
    ) -> "SplitRiskProtocol":
        """Deploy against an in-memory lending pool (X) and money market (Y)."""
        config = config or get_config()
        asset = asset or TokenLedger("DAI")
        pool_account = config.protocol.pool_account.get()
        lending_pool = InMemoryLendingPool(asset)
        money_market = InMemoryMoneyMarket(asset, initial_exchange_rate=exchange_rate)
        return cls.deploy(
            asset,
            LendingPoolAdapter(lending_pool, asset, pool_account),
            MoneyMarketAdapter(money_market, asset, pool_account),
            clock=clock,
            config=config,
            deployed_at=deployed_at,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────

    @correlated
    @atomic
    def split_risk(self, caller: str, amount: int) -> int:
        return self.splitter.split_risk(caller, amount)

    @correlated
    @atomic
    def invest(self) -> Invested:
        return self.investment.invest()

    @correlated
    @atomic
    def divest(self) -> Divested:
        return self.divestment.divest()

    @correlated
    @atomic
    def claim(self, caller: str, amount_senior: int, amount_junior: int) -> Claimed:
        return self.claim_processor.claim(caller, amount_senior, amount_junior)

    @correlated
    @atomic
    def claim_all(self, caller: str) -> Claimed:
        return self.claim_processor.claim_all(caller)

    @correlated
    @atomic
    def claim_senior(self, caller: str, to_venue_x: int, to_venue_y: int) -> Claimed:
        return self.claim_processor.claim_senior(caller, to_venue_x, to_venue_y)

    @correlated
    @atomic
    def claim_junior(self, caller: str, to_venue_x: int, to_venue_y: int) -> Claimed:
        return self.claim_processor.claim_junior(caller, to_venue_x, to_venue_y)

    # ─────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> ProtocolState:
        return self.ctx.state

    @property
    def schedule(self) -> Schedule:
        return self.ctx.state.schedule

    @property
    def pool_account(self) -> str:
        return self.ctx.pool_account

    def venue(self, slot: VenueSlot) -> YieldVenue:
        return self.ctx.venues[slot]

    def phase(self) -> Phase:
        return self.ctx.clock.phase()

    def events(self, event_type: Optional[type] = None) -> List[Event]:
        return self.event_store.read_all(event_type=event_type)

    @atomic
    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time view of state, balances and supplies."""
        ctx = self.ctx
        return {
            "time": ctx.clock.now(),
            "phase": self.phase().value,
            "state": ctx.state.to_dict(),
            "pool_balance": ctx.pool_balance(),
            "supply": {
                tranche.label: ctx.claims.total_supply(tranche) for tranche in TrancheClass
            },
            "venue_receipts": {
                slot.value: venue.receipt_balance() for slot, venue in ctx.venues.items()
            },
            "event_count": len(self.event_store),
        }

    def _emit(self, event: Event) -> None:
        event.correlation_id = get_correlation_id()
        self.event_store.append(STREAM_ID, event)
        self.event_bus.publish(event)
