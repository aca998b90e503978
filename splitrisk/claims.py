"""
Redemption of claim tokens.

Two mutually exclusive paths, chosen by ``liquid_mode``:

    Liquid    claim / claim_all                 base asset at the class ratios
              claim_senior / claim_junior       same, for one class
    Fallback  claim_senior (from T2)            venue receipt tokens at
              claim_junior (from T3)            per-venue ratios

Fallback-to-liquid: when the pool was never invested and the insurance
deadline has passed, the first claim of any kind switches the protocol into
liquid mode. ``total_tranches`` is snapshotted then and the waterfall runs
with zero interest against the raw pool balance. With no deposits at all the
ratios are par and ``total_tranches`` stays zero.

Fallback venue ratios are frozen by the first claim that routes a positive
amount to that venue, as ``receipt_balance * SCALE // total_tranches // 2``.
Whichever class claims a venue first therefore fixes that venue's ratio for
both classes, using its live balance at that moment. Uneven venue losses are
not rebalanced between classes.

Every check runs before any burn, transfer or ratio freeze; a failed claim
leaves state as it was, including a pending fallback-to-liquid activation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from splitrisk.clock import Phase
from splitrisk.events import Claimed, LiquidModeActivated
from splitrisk.hardening import (
    DivestNotYetCalled,
    InvariantChecker,
    PhaseViolation,
    StillInInsurancePeriod,
    UseClassSpecificClaim,
    Validators,
)
from splitrisk.ledger import TrancheClass
from splitrisk.observability import ProtocolLayer, get_logger, timed_operation
from splitrisk.state import ProtocolContext
from splitrisk.venues.base import VenueSlot
from splitrisk.waterfall import PayoutRatios, compute_payout_ratios


@dataclass(frozen=True)
class _LiquidActivation:
    """Fallback-to-liquid ratios computed but not yet committed."""
    ratios: PayoutRatios
    total_tranches: int
    pool_balance: int


class ClaimProcessor:
    """Liquid and fallback redemption."""

    def __init__(self, ctx: ProtocolContext):
        self.ctx = ctx
        self.logger = get_logger("claims", ProtocolLayer.CLAIMS)

    # ─────────────────────────────────────────────────────────────────────
    # Liquid mode
    # ─────────────────────────────────────────────────────────────────────

    @timed_operation("claim")
    def claim(self, caller: str, amount_senior: int, amount_junior: int) -> Claimed:
        """Burn both class amounts and pay base asset in one transfer."""
        activation = self._liquid_or_raise("claim")
        return self._redeem_liquid(caller, amount_senior, amount_junior, activation)

    @timed_operation("claim_all")
    def claim_all(self, caller: str) -> Claimed:
        activation = self._liquid_or_raise("claim_all")
        claims = self.ctx.claims
        return self._redeem_liquid(
            caller,
            claims.balance_of(TrancheClass.SENIOR, caller),
            claims.balance_of(TrancheClass.JUNIOR, caller),
            activation,
        )

    def _pending_activation(self) -> Optional[_LiquidActivation]:
        """Fallback-to-liquid ratios if the rule applies right now, else None."""
        ctx = self.ctx
        state = ctx.state
        if state.liquid_mode or state.invested:
            return None
        if ctx.clock.now() < state.schedule.insurance_deadline:
            return None
        total_tranches = 2 * ctx.senior_supply()
        balance = ctx.pool_balance()
        ratios = compute_payout_ratios(balance, total_tranches, 0, ctx.scale)
        return _LiquidActivation(ratios, total_tranches, balance)

    def _is_liquid(self) -> Tuple[bool, Optional[_LiquidActivation]]:
        """(liquid, pending activation) for the current time."""
        if self.ctx.state.liquid_mode:
            return True, None
        activation = self._pending_activation()
        return activation is not None, activation

    def _liquid_or_raise(self, operation: str) -> Optional[_LiquidActivation]:
        liquid, activation = self._is_liquid()
        if liquid:
            return activation

        # Not liquid past T1 means the pool was invested and not yet divested
        now = self.ctx.clock.now()
        schedule = self.ctx.state.schedule
        phase = self.ctx.clock.phase()
        if now < schedule.insurance_deadline:
            raise StillInInsurancePeriod(
                operation, phase, f"{operation} is not available before the insurance deadline")
        if now < schedule.a_claim_open:
            raise DivestNotYetCalled(
                operation, phase, f"{operation} is not available until divest() has run")
        raise UseClassSpecificClaim(
            operation, phase, "pool was never divested; use claim_senior or claim_junior")

    def _redeem_liquid(
        self,
        caller: str,
        amount_senior: int,
        amount_junior: int,
        activation: Optional[_LiquidActivation],
    ) -> Claimed:
        ctx = self.ctx
        Validators.validate_redemption(
            amount_senior, amount_junior, ("amount_senior", "amount_junior")).raise_if_invalid()
        for tranche, amount in ((TrancheClass.SENIOR, amount_senior), (TrancheClass.JUNIOR, amount_junior)):
            InvariantChecker.check_balance_sufficient(
                ctx.claims.balance_of(tranche, caller), amount, f"{tranche.label} claim balance of {caller}")

        if activation is not None:
            senior_ratio, junior_ratio = activation.ratios.senior, activation.ratios.junior
        else:
            senior_ratio, junior_ratio = ctx.state.senior_payout_ratio, ctx.state.junior_payout_ratio
        payout = amount_senior * senior_ratio // ctx.scale + amount_junior * junior_ratio // ctx.scale
        InvariantChecker.check_balance_sufficient(ctx.pool_balance(), payout, "pool base asset balance")

        if activation is not None:
            self._commit_activation(activation)
        if amount_senior:
            ctx.claims.burn(TrancheClass.SENIOR, caller, amount_senior)
        if amount_junior:
            ctx.claims.burn(TrancheClass.JUNIOR, caller, amount_junior)
        if payout:
            ctx.asset.transfer(ctx.pool_account, caller, payout)

        event = ctx.stamp(Claimed(
            caller=caller,
            senior_amount=amount_senior,
            junior_amount=amount_junior,
            base_payout=payout,
            mode="liquid",
        ))
        self.logger.info(
            "Liquid claim",
            caller=caller,
            senior_amount=amount_senior,
            junior_amount=amount_junior,
            base_payout=payout,
        )
        return event

    def _commit_activation(self, activation: _LiquidActivation) -> None:
        ctx = self.ctx
        ctx.state.activate_liquid_mode(
            activation.ratios.senior,
            activation.ratios.junior,
            total_tranches=activation.total_tranches or None,
        )
        ctx.stamp(LiquidModeActivated(
            pool_balance=activation.pool_balance,
            total_tranches=activation.total_tranches,
            senior_payout_ratio=activation.ratios.senior,
            junior_payout_ratio=activation.ratios.junior,
        ))
        self.logger.warning(
            "Pool was never invested; liquid mode activated",
            pool_balance=activation.pool_balance,
            total_tranches=activation.total_tranches,
        )

    # ─────────────────────────────────────────────────────────────────────
    # Class-specific claims
    # ─────────────────────────────────────────────────────────────────────

    @timed_operation("claim_senior")
    def claim_senior(self, caller: str, to_venue_x: int, to_venue_y: int) -> Claimed:
        return self._claim_class(TrancheClass.SENIOR, caller, to_venue_x, to_venue_y)

    @timed_operation("claim_junior")
    def claim_junior(self, caller: str, to_venue_x: int, to_venue_y: int) -> Claimed:
        return self._claim_class(TrancheClass.JUNIOR, caller, to_venue_x, to_venue_y)

    def _claim_class(self, tranche: TrancheClass, caller: str, to_venue_x: int, to_venue_y: int) -> Claimed:
        operation = f"claim_{tranche.label}"
        liquid, activation = self._is_liquid()
        if liquid:
            Validators.validate_redemption(
                to_venue_x, to_venue_y, ("to_venue_x", "to_venue_y")).raise_if_invalid()
            amount = to_venue_x + to_venue_y
            if tranche is TrancheClass.SENIOR:
                return self._redeem_liquid(caller, amount, 0, activation)
            return self._redeem_liquid(caller, 0, amount, activation)

        window = Phase.A_CLAIM_WINDOW if tranche is TrancheClass.SENIOR else Phase.B_CLAIM_WINDOW
        if not self.ctx.clock.at_or_after(window):
            raise PhaseViolation(
                operation,
                self.ctx.clock.phase(),
                f"{operation} opens at {window.value} ({self.ctx.state.schedule.boundary(window)})",
            )
        return self._redeem_fallback(tranche, caller, to_venue_x, to_venue_y)

    def _redeem_fallback(self, tranche: TrancheClass, caller: str, to_venue_x: int, to_venue_y: int) -> Claimed:
        ctx = self.ctx
        state = ctx.state
        Validators.validate_redemption(
            to_venue_x, to_venue_y, ("to_venue_x", "to_venue_y")).raise_if_invalid()
        amount = to_venue_x + to_venue_y
        InvariantChecker.check_balance_sufficient(
            ctx.claims.balance_of(tranche, caller), amount, f"{tranche.label} claim balance of {caller}")

        to_freeze: Dict[VenueSlot, int] = {}
        payouts: Dict[VenueSlot, int] = {VenueSlot.X: 0, VenueSlot.Y: 0}
        for slot, routed in ((VenueSlot.X, to_venue_x), (VenueSlot.Y, to_venue_y)):
            if routed == 0:
                continue
            venue = ctx.venues[slot]
            ratio = state.venue_payout_ratios[slot]
            if ratio is None:
                ratio = venue.receipt_balance() * ctx.scale // state.total_tranches // 2
                to_freeze[slot] = ratio
            payouts[slot] = routed * ratio // ctx.scale
            InvariantChecker.check_balance_sufficient(
                venue.receipt_balance(), payouts[slot], f"{venue.name} receipt balance of pool")

        for slot, ratio in to_freeze.items():
            state.freeze_venue_ratio(slot, ratio)
            self.logger.info("Venue payout ratio frozen", venue=ctx.venues[slot].name, ratio=ratio)
        ctx.claims.burn(tranche, caller, amount)
        for slot, payout in payouts.items():
            if payout:
                ctx.venues[slot].transfer_receipt(caller, payout)

        event = ctx.stamp(Claimed(
            caller=caller,
            senior_amount=amount if tranche is TrancheClass.SENIOR else 0,
            junior_amount=amount if tranche is TrancheClass.JUNIOR else 0,
            venue_x_payout=payouts[VenueSlot.X],
            venue_y_payout=payouts[VenueSlot.Y],
            mode="fallback",
        ))
        self.logger.info(
            "Fallback claim",
            caller=caller,
            tranche=tranche.value,
            amount=amount,
            venue_x_payout=payouts[VenueSlot.X],
            venue_y_payout=payouts[VenueSlot.Y],
        )
        return event
