"""
Phase clock.

The protocol lifecycle is a pure function of time and four immutable
timestamps fixed at deployment:

    deployed_at        S                T1               T2               T3
        │  ISSUANCE    │   INSURANCE    │ PENDING_DIVEST │ A_CLAIM_WINDOW │ B_CLAIM_WINDOW ...
        └──────────────┴────────────────┴────────────────┴────────────────┴──────────────────▶ t

Every operation declares the phases it is legal in and asks the clock to
enforce them. Time comes from an injected callable so simulations and tests
can drive it explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from splitrisk.core import now_unix
from splitrisk.hardening import PhaseViolation

DAY = 86400


class Phase(Enum):
    """Protocol phases, in chronological order."""
    ISSUANCE = "issuance"
    INSURANCE = "insurance"
    PENDING_DIVEST = "pending_divest"
    A_CLAIM_WINDOW = "a_claim_window"
    B_CLAIM_WINDOW = "b_claim_window"


@dataclass(frozen=True)
class Schedule:
    """The four phase boundaries, in unix seconds."""
    issuance_deadline: int
    insurance_deadline: int
    a_claim_open: int
    b_claim_open: int

    def __post_init__(self) -> None:
        if not (self.issuance_deadline < self.insurance_deadline < self.a_claim_open < self.b_claim_open):
            raise ValueError(
                "schedule must be strictly increasing: "
                f"S={self.issuance_deadline} T1={self.insurance_deadline} "
                f"T2={self.a_claim_open} T3={self.b_claim_open}"
            )

    @classmethod
    def from_durations(
        cls,
        deployed_at: int,
        issuance: int = 7 * DAY,
        insurance: int = 28 * DAY,
        pending: int = 1 * DAY,
        a_window: int = 3 * DAY,
    ) -> "Schedule":
        """Build a schedule from phase lengths measured from deployment."""
        s = deployed_at + issuance
        t1 = s + insurance
        t2 = t1 + pending
        return cls(s, t1, t2, t2 + a_window)

    def boundary(self, phase: Phase) -> Optional[int]:
        """Time at which ``phase`` begins (None for issuance, which starts at deployment)."""
        return {
            Phase.ISSUANCE: None,
            Phase.INSURANCE: self.issuance_deadline,
            Phase.PENDING_DIVEST: self.insurance_deadline,
            Phase.A_CLAIM_WINDOW: self.a_claim_open,
            Phase.B_CLAIM_WINDOW: self.b_claim_open,
        }[phase]

    def to_dict(self) -> Dict[str, int]:
        return {
            "issuance_deadline": self.issuance_deadline,
            "insurance_deadline": self.insurance_deadline,
            "a_claim_open": self.a_claim_open,
            "b_claim_open": self.b_claim_open,
        }


def phase_at(t: int, schedule: Schedule) -> Phase:
    """Map a point in time to its phase."""
    if t < schedule.issuance_deadline:
        return Phase.ISSUANCE
    if t < schedule.insurance_deadline:
        return Phase.INSURANCE
    if t < schedule.a_claim_open:
        return Phase.PENDING_DIVEST
    if t < schedule.b_claim_open:
        return Phase.A_CLAIM_WINDOW
    return Phase.B_CLAIM_WINDOW


class ManualClock:
    """Settable time source for simulations and tests."""

    def __init__(self, start: int = 0):
        self._now = int(start)

    def __call__(self) -> int:
        return self._now

    def set(self, t: int) -> None:
        if t < self._now:
            raise ValueError(f"clock cannot move backwards ({t} < {self._now})")
        self._now = int(t)

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("cannot advance by a negative duration")
        self._now += int(seconds)
        return self._now


class PhaseClock:
    """Phase lookups and enforcement against a schedule and a time source."""

    def __init__(self, schedule: Schedule, now: Callable[[], int] = now_unix):
        self.schedule = schedule
        self._now = now

    def now(self) -> int:
        return int(self._now())

    def phase(self) -> Phase:
        return phase_at(self.now(), self.schedule)

    def require(self, *phases: Phase, operation: str) -> Phase:
        """Return the current phase, or raise ``PhaseViolation`` if it is not one of ``phases``."""
        current = self.phase()
        if current not in phases:
            allowed = ", ".join(p.value for p in phases)
            raise PhaseViolation(
                operation,
                current,
                f"{operation} is only allowed in {allowed} (current phase: {current.value})",
            )
        return current

    def at_or_after(self, phase: Phase) -> bool:
        """Whether the current time is at or past the start of ``phase``."""
        start = self.schedule.boundary(phase)
        return start is None or self.now() >= start
