"""
SplitRisk: tranche-based capital pooling

Depositors contribute a base asset during issuance and receive equal
amounts of two claim classes: senior "A" and junior "B". The pool is
invested 50/50 into two yield venues and unwound once before the claim
windows open. Losses hit the junior class first; interest goes to the
senior class first.

Architecture
────────────

    ┌─────────────────────────────────────────────────────────────────────────┐
    │  protocol.py     Facade: deploy, operations, snapshot, events           │
    │                                                                          │
    │  splitter.py     Issuance deposits, 1:1 claim minting                   │
    │  investment.py   One-shot 50/50 allocation across venues                │
    │  divestment.py   One-shot unwind and payout ratios                      │
    │  waterfall.py    Pure loss waterfall (full / partial / severe)          │
    │  claims.py       Liquid and fallback redemption                         │
    │                                                                          │
    │  clock.py        Phase schedule and enforcement                          │
    │  state.py        Protocol state struct and handler context              │
    │  ledger.py       Base asset and claim-token ledgers                     │
    │  venues/         Lending pool and money market adapters                 │
    │                                                                          │
    │  hardening.py    Errors, validators, invariants, atomic guard           │
    │  config.py       YAML / env configuration                               │
    │  observability.py  Structured logging                                   │
    │  events.py       Event bus and store                                    │
    │  simulation.py   Scenario runner        cli.py   Command line           │
    └─────────────────────────────────────────────────────────────────────────┘

Lifecycle
─────────

    issuance ──▶ insurance ──▶ pending_divest ──▶ a_claim_window ──▶ b_claim_window
    split_risk    invest        divest             claim_senior       claim_junior
                                                   claim / claim_all (liquid mode)
"""

__version__ = "0.3.0"


# Lazy imports keep `import splitrisk` cheap and avoid import cycles
def __getattr__(name):
    """Lazy import SplitRisk components on first access."""

    if name in ("SplitRiskProtocol",):
        from splitrisk import protocol
        return getattr(protocol, name)

    if name in ("Phase", "Schedule", "PhaseClock", "ManualClock", "phase_at"):
        from splitrisk import clock
        return getattr(clock, name)

    if name in ("LossRegime", "PayoutRatios", "compute_payout_ratios"):
        from splitrisk import waterfall
        return getattr(waterfall, name)

    if name in ("TokenLedger", "ClaimLedger", "TrancheClass"):
        from splitrisk import ledger
        return getattr(ledger, name)

    if name in ("ProtocolError", "PhaseViolation", "StillInInsurancePeriod",
                "DivestNotYetCalled", "UseClassSpecificClaim", "AlreadyPerformed",
                "InsufficientBalance", "VenueOperationFailed", "VenueRedeemFailed",
                "IncompleteRedemption", "InvalidAmount", "InvariantViolation"):
        from splitrisk import hardening
        return getattr(hardening, name)

    if name in ("Scenario", "ScenarioRunner", "run_scenario"):
        from splitrisk import simulation
        return getattr(simulation, name)

    raise AttributeError(f"module 'splitrisk' has no attribute '{name}'")
