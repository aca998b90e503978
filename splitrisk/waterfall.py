"""
Loss waterfall.

Maps the base asset recovered at divestment onto per-unit payout ratios for
the two claim classes. ``TT`` is the total tranche count (full principal),
``H = TT // 2`` the senior principal:

    final ≥ TT            FULL      senior = junior = final / TT
    H < final < TT        PARTIAL   senior = 1 + interest / H
                                    junior = (final - H - interest) / H
    final ≤ H             SEVERE    senior = final / H,  junior = 0

Ratios are integers scaled by ``scale``; every division floors, so the sum of
payouts over the whole supply never exceeds ``final``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from splitrisk.hardening import InvariantViolation


class LossRegime(Enum):
    """Which branch of the waterfall applied."""
    FULL = "full_coverage"
    PARTIAL = "partial_coverage"
    SEVERE = "severe_loss"


@dataclass(frozen=True)
class PayoutRatios:
    senior: int
    junior: int
    regime: LossRegime

    def as_decimal(self, scale: int) -> tuple:
        """Ratios as human-readable strings (for reports; never used in payout math)."""
        from decimal import Decimal
        return (str(Decimal(self.senior) / Decimal(scale)), str(Decimal(self.junior) / Decimal(scale)))


def classify(final_balance: int, total_tranches: int) -> LossRegime:
    half = total_tranches // 2
    if final_balance >= total_tranches:
        return LossRegime.FULL
    if final_balance > half:
        return LossRegime.PARTIAL
    return LossRegime.SEVERE


def compute_payout_ratios(final_balance: int, total_tranches: int, interest: int, scale: int) -> PayoutRatios:
    """Compute fixed-point senior/junior ratios for a recovered balance.

    ``interest`` is the venue gain over principal measured during divestment;
    it only matters in the partial regime, where it is paid to seniors on top
    of their principal.
    """
    if total_tranches < 0 or final_balance < 0 or interest < 0:
        raise InvariantViolation("waterfall inputs cannot be negative")
    if total_tranches == 0:
        # No claims outstanding, so the ratio never pays anything; report par
        return PayoutRatios(scale, scale, LossRegime.FULL)
    if total_tranches % 2:
        raise InvariantViolation(f"total_tranches must be even, got {total_tranches}")

    half = total_tranches // 2
    regime = classify(final_balance, total_tranches)

    if regime is LossRegime.FULL:
        ratio = final_balance * scale // total_tranches
        return PayoutRatios(ratio, ratio, regime)

    if regime is LossRegime.PARTIAL:
        residual = final_balance - half - interest
        if residual < 0:
            # Interest larger than what is left above senior principal; seniors take everything
            return PayoutRatios(final_balance * scale // half, 0, regime)
        return PayoutRatios(scale + interest * scale // half, residual * scale // half, regime)

    return PayoutRatios(final_balance * scale // half, 0, regime)
