"""
Protocol state and the context every operation handler receives.

``ProtocolState`` is the single mutable record of a deployment. One-shot
fields are written through the ``record_*``/``freeze_*`` methods, which
refuse a second write; nothing else in the package assigns them directly.

``ProtocolContext`` bundles the state with the collaborators (clock, base
asset, claim ledger, venues, event sink) so handlers stay free of ambient
globals.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from splitrisk.clock import PhaseClock, Schedule
from splitrisk.events import Event
from splitrisk.hardening import InvariantChecker, InvariantViolation
from splitrisk.ledger import BaseAsset, ClaimTokens, TrancheClass
from splitrisk.venues.base import VenueSlot, YieldVenue


@dataclass
class ProtocolState:
    """Mutable protocol record with write-once guards."""
    schedule: Schedule
    invested: bool = False
    divested: bool = False
    liquid_mode: bool = False
    total_tranches: int = 0
    interest: int = 0
    senior_payout_ratio: Optional[int] = None
    junior_payout_ratio: Optional[int] = None
    venue_payout_ratios: Dict[VenueSlot, Optional[int]] = field(
        default_factory=lambda: {VenueSlot.X: None, VenueSlot.Y: None}
    )

    def record_investment(self, total_tranches: int) -> None:
        if self.invested:
            raise InvariantViolation("invested is write-once and already set")
        InvariantChecker.check_write_once("total_tranches", self.total_tranches, unset=0)
        InvariantChecker.check_non_negative("total_tranches", total_tranches)
        self.total_tranches = total_tranches
        self.invested = True

    def record_divestment(self, interest: int) -> None:
        if self.divested:
            raise InvariantViolation("divested is write-once and already set")
        InvariantChecker.check_non_negative("interest", interest)
        self.interest = interest
        self.divested = True

    def activate_liquid_mode(self, senior_ratio: int, junior_ratio: int, total_tranches: Optional[int] = None) -> None:
        """Enter liquid mode with fixed class ratios.

        ``total_tranches`` is only given by the fallback-to-liquid path, which
        snapshots supply itself because no investment took it.
        """
        if self.liquid_mode:
            raise InvariantViolation("liquid_mode is already active")
        InvariantChecker.check_write_once("senior_payout_ratio", self.senior_payout_ratio)
        InvariantChecker.check_write_once("junior_payout_ratio", self.junior_payout_ratio)
        if total_tranches is not None:
            InvariantChecker.check_write_once("total_tranches", self.total_tranches, unset=0)
            self.total_tranches = total_tranches
        self.senior_payout_ratio = senior_ratio
        self.junior_payout_ratio = junior_ratio
        self.liquid_mode = True

    def freeze_venue_ratio(self, slot: VenueSlot, ratio: int) -> None:
        InvariantChecker.check_write_once(f"venue_payout_ratios[{slot.value}]", self.venue_payout_ratios[slot])
        self.venue_payout_ratios[slot] = ratio

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schedule": self.schedule.to_dict(),
            "invested": self.invested,
            "divested": self.divested,
            "liquid_mode": self.liquid_mode,
            "total_tranches": self.total_tranches,
            "interest": self.interest,
            "senior_payout_ratio": self.senior_payout_ratio,
            "junior_payout_ratio": self.junior_payout_ratio,
            "venue_payout_ratios": {slot.value: r for slot, r in self.venue_payout_ratios.items()},
        }


@dataclass
class ProtocolContext:
    """Everything an operation handler needs, passed explicitly."""
    state: ProtocolState
    clock: PhaseClock
    asset: BaseAsset
    claims: ClaimTokens
    venues: Dict[VenueSlot, YieldVenue]
    pool_account: str
    scale: int
    emit: Callable[[Event], None] = lambda event: None

    def pool_balance(self) -> int:
        return self.asset.balance_of(self.pool_account)

    def senior_supply(self) -> int:
        return self.claims.total_supply(TrancheClass.SENIOR)

    def stamp(self, event: Event) -> Event:
        """Set protocol time on an event and hand it to the sink."""
        event.protocol_time = self.clock.now()
        self.emit(event)
        return event
