"""
Divestment: unwind both venues once and fix the class payout ratios.

Sequence:

    1. pre = pool balance
    2. withdraw all of venue X        → withdrawn_x, interest += excess over TT/2
    3. redeem all of venue Y          → withdrawn_y, interest += excess over TT/2
       (nonzero status → VenueRedeemFailed)
    4. both receipt balances must be zero (IncompleteRedemption otherwise)
    5. waterfall over the final pool balance → senior/junior ratios
    6. commit divested + liquid mode, emit Divested

A failure in steps 3 or 4 re-deposits what was already withdrawn so the
pool keeps its venue positions and the call can be retried within the
window. Shortfalls are not tracked per venue; they show up as a lower final
balance.
"""

from __future__ import annotations

from typing import List, Tuple

from splitrisk.clock import Phase
from splitrisk.events import Divested
from splitrisk.hardening import AlreadyPerformed, IncompleteRedemption, PhaseViolation, ProtocolError
from splitrisk.observability import ProtocolLayer, get_logger, timed_operation
from splitrisk.state import ProtocolContext
from splitrisk.venues.base import VenueSlot, YieldVenue
from splitrisk.waterfall import compute_payout_ratios


class DivestmentEngine:
    """One-shot unwind of both venue positions."""

    def __init__(self, ctx: ProtocolContext):
        self.ctx = ctx
        self.logger = get_logger("divestment", ProtocolLayer.DIVESTMENT)

    @timed_operation("divest")
    def divest(self) -> Divested:
        ctx = self.ctx
        state = ctx.state
        if state.divested:
            raise AlreadyPerformed("divest")
        phase = ctx.clock.require(Phase.PENDING_DIVEST, operation="divest")
        if not state.invested:
            raise PhaseViolation("divest", phase, "divest requires a completed investment")

        principal_share = state.total_tranches // 2
        pre = ctx.pool_balance()
        withdrawn: List[Tuple[YieldVenue, int]] = []
        receipts = {}
        interest = 0

        try:
            for slot in (VenueSlot.X, VenueSlot.Y):
                venue = ctx.venues[slot]
                receipts[slot] = venue.receipt_balance()
                amount = venue.withdraw(receipts[slot])
                withdrawn.append((venue, amount))
                if amount > principal_share:
                    interest += amount - principal_share
                self.logger.debug("Venue withdrawn", venue=venue.name, receipt=receipts[slot], withdrawn=amount)

            for slot in (VenueSlot.X, VenueSlot.Y):
                remaining = ctx.venues[slot].receipt_balance()
                if remaining:
                    raise IncompleteRedemption(ctx.venues[slot].name, remaining)
        except ProtocolError as e:
            self._compensate(withdrawn, e)
            raise

        final_balance = ctx.pool_balance()
        ratios = compute_payout_ratios(final_balance, state.total_tranches, interest, ctx.scale)

        state.record_divestment(interest)
        state.activate_liquid_mode(ratios.senior, ratios.junior)

        event = ctx.stamp(Divested(
            final_balance=final_balance,
            pre_balance=pre,
            venue_x_receipt=receipts[VenueSlot.X],
            venue_y_receipt=receipts[VenueSlot.Y],
            interest=interest,
            regime=ratios.regime.value,
            senior_payout_ratio=ratios.senior,
            junior_payout_ratio=ratios.junior,
        ))
        self.logger.info(
            "Pool divested",
            final_balance=final_balance,
            total_tranches=state.total_tranches,
            interest=interest,
            regime=ratios.regime.value,
            senior_payout_ratio=ratios.senior,
            junior_payout_ratio=ratios.junior,
        )
        return event

    def _compensate(self, withdrawn: List[Tuple[YieldVenue, int]], cause: ProtocolError) -> None:
        """Re-deposit withdrawals made before ``cause`` aborted the unwind."""
        for venue, amount in reversed(withdrawn):
            if amount <= 0:
                continue
            self.logger.warning(
                "Divestment aborted, re-depositing withdrawal",
                venue=venue.name,
                amount=amount,
                cause=cause.error_code,
            )
            try:
                venue.deposit(amount)
            except ProtocolError as comp_error:
                self.logger.critical(
                    "Compensation failed; withdrawn funds remain idle in the pool",
                    error_code=comp_error.error_code,
                    venue=venue.name,
                    amount=amount,
                )
                raise cause from comp_error
