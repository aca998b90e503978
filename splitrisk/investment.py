"""
Investment: the single allocation of the pool into both venues.

    pool balance B ──┬── B // 2 ──▶ venue X
                     ├── B // 2 ──▶ venue Y
                     └── B % 2  (stays idle in the pool)

The allocation is all-or-nothing. If the venue Y deposit fails after venue X
accepted funds, the X position is withdrawn again before the failure is
reported, so a failed ``invest()`` leaves state untouched and can be retried.
"""

from __future__ import annotations

from splitrisk.clock import Phase
from splitrisk.events import Invested
from splitrisk.hardening import AlreadyPerformed, InsufficientBalance, ProtocolError
from splitrisk.observability import ProtocolLayer, get_logger, timed_operation
from splitrisk.state import ProtocolContext
from splitrisk.venues.base import VenueSlot


class InvestmentManager:
    """One-shot allocator splitting the pool 50/50 across the venues."""

    def __init__(self, ctx: ProtocolContext):
        self.ctx = ctx
        self.logger = get_logger("investment", ProtocolLayer.INVESTMENT)

    @timed_operation("invest")
    def invest(self) -> Invested:
        ctx = self.ctx
        if ctx.state.invested:
            raise AlreadyPerformed("invest")
        ctx.clock.require(Phase.INSURANCE, operation="invest")

        balance = ctx.pool_balance()
        half = balance // 2
        if half == 0:
            raise InsufficientBalance("pool base asset balance", balance, 2)
        total_tranches = 2 * ctx.senior_supply()

        venue_x = ctx.venues[VenueSlot.X]
        venue_y = ctx.venues[VenueSlot.Y]

        receipt_x = venue_x.deposit(half)
        try:
            receipt_y = venue_y.deposit(half)
        except ProtocolError as e:
            self._compensate(venue_x, receipt_x, e)
            raise

        ctx.state.record_investment(total_tranches)
        event = ctx.stamp(Invested(
            pool_amount=balance,
            venue_x_receipt=receipt_x,
            venue_y_receipt=receipt_y,
            total_tranches=total_tranches,
        ))
        self.logger.info(
            "Pool invested",
            pool_amount=balance,
            idle=balance - 2 * half,
            venue_x_receipt=receipt_x,
            venue_y_receipt=receipt_y,
            total_tranches=total_tranches,
        )
        return event

    def _compensate(self, venue, receipt: int, cause: ProtocolError) -> None:
        """Unwind the first deposit after the second one failed."""
        self.logger.warning(
            "Second venue deposit failed, withdrawing first deposit",
            venue=venue.name,
            receipt=receipt,
            cause=cause.error_code,
        )
        try:
            recovered = venue.withdraw(receipt)
        except ProtocolError as comp_error:
            self.logger.critical(
                "Compensation failed; funds remain in venue",
                error_code=comp_error.error_code,
                venue=venue.name,
                receipt=receipt,
            )
            raise cause from comp_error
        self.logger.info("Compensated first deposit", venue=venue.name, recovered=recovered)
