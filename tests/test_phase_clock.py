"""Phase schedule construction, lookup and enforcement."""

import pytest

from splitrisk.clock import DAY, ManualClock, Phase, PhaseClock, Schedule, phase_at
from splitrisk.hardening import PhaseViolation


@pytest.fixture
def schedule():
    return Schedule(issuance_deadline=100, insurance_deadline=200, a_claim_open=300, b_claim_open=400)


@pytest.mark.parametrize("t,expected", [
    (0, Phase.ISSUANCE),
    (99, Phase.ISSUANCE),
    (100, Phase.INSURANCE),
    (199, Phase.INSURANCE),
    (200, Phase.PENDING_DIVEST),
    (299, Phase.PENDING_DIVEST),
    (300, Phase.A_CLAIM_WINDOW),
    (399, Phase.A_CLAIM_WINDOW),
    (400, Phase.B_CLAIM_WINDOW),
    (10 ** 12, Phase.B_CLAIM_WINDOW),
])
def test_phase_boundaries(schedule, t, expected):
    assert phase_at(t, schedule) is expected


def test_schedule_must_be_strictly_increasing():
    with pytest.raises(ValueError):
        Schedule(100, 100, 300, 400)
    with pytest.raises(ValueError):
        Schedule(100, 200, 150, 400)


def test_from_durations_defaults():
    s = Schedule.from_durations(1_000)
    assert s.issuance_deadline == 1_000 + 7 * DAY
    assert s.insurance_deadline == s.issuance_deadline + 28 * DAY
    assert s.a_claim_open == s.insurance_deadline + DAY
    assert s.b_claim_open == s.a_claim_open + 3 * DAY


def test_boundary_lookup(schedule):
    assert schedule.boundary(Phase.ISSUANCE) is None
    assert schedule.boundary(Phase.PENDING_DIVEST) == 200
    assert schedule.boundary(Phase.B_CLAIM_WINDOW) == 400


class TestPhaseClock:

    def test_tracks_injected_time(self, schedule):
        clock = ManualClock(0)
        phases = PhaseClock(schedule, now=clock)
        assert phases.phase() is Phase.ISSUANCE
        clock.set(250)
        assert phases.phase() is Phase.PENDING_DIVEST

    def test_require_returns_current_phase(self, schedule):
        phases = PhaseClock(schedule, now=ManualClock(150))
        assert phases.require(Phase.INSURANCE, operation="invest") is Phase.INSURANCE

    def test_require_raises_outside_window(self, schedule):
        phases = PhaseClock(schedule, now=ManualClock(50))
        with pytest.raises(PhaseViolation) as exc:
            phases.require(Phase.INSURANCE, operation="invest")
        assert exc.value.operation == "invest"
        assert exc.value.phase is Phase.ISSUANCE
        assert exc.value.error_code == "PhaseViolation"

    def test_at_or_after(self, schedule):
        phases = PhaseClock(schedule, now=ManualClock(300))
        assert phases.at_or_after(Phase.A_CLAIM_WINDOW)
        assert not phases.at_or_after(Phase.B_CLAIM_WINDOW)
        assert phases.at_or_after(Phase.ISSUANCE)


class TestManualClock:

    def test_advance(self):
        clock = ManualClock(10)
        assert clock.advance(5) == 15
        assert clock() == 15

    def test_cannot_move_backwards(self):
        clock = ManualClock(10)
        with pytest.raises(ValueError):
            clock.set(9)
        with pytest.raises(ValueError):
            clock.advance(-1)
