"""
Scenario simulation.

A scenario is a YAML or JSON document describing funded accounts and a
timeline of steps, run against an in-memory deployment with a manual clock:

    name: partial-loss
    accounts: {alice: 1000, bob: 500}
    steps:
      - {action: split, account: alice, amount: 1000}
      - {action: advance, to_phase: insurance}
      - {action: invest}
      - {action: yield, venue: y, delta: -200}
      - {action: advance, to_phase: pending_divest}
      - {action: divest}
      - {action: claim_all, account: alice}

Steps that declare ``expect_error`` record the protocol error instead of
aborting the run; an undeclared error aborts with ``ScenarioError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from splitrisk.clock import ManualClock, Phase
from splitrisk.config import ConfigError, SplitRiskConfig, apply_config_dict, get_config
from splitrisk.core import load_document
from splitrisk.hardening import ProtocolError
from splitrisk.ledger import TokenLedger, TrancheClass
from splitrisk.observability import ProtocolLayer, get_logger
from splitrisk.protocol import SplitRiskProtocol
from splitrisk.schema import SCENARIO_SCHEMA, validate_against_schema
from splitrisk.venues.base import VenueSlot
from splitrisk.venues.money_market import MarketStatus


class ScenarioError(Exception):
    """Invalid scenario document or unexpected failure while running one."""


@dataclass
class Scenario:
    """A validated scenario document."""
    name: str
    accounts: Dict[str, int]
    steps: List[Dict[str, Any]]
    deployed_at: int = 0
    description: str = ""
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "Scenario":
        errors = validate_against_schema(data, SCENARIO_SCHEMA)
        if errors:
            raise ScenarioError("Invalid scenario: " + "; ".join(errors))
        return cls(
            name=data["name"],
            accounts=dict(data["accounts"]),
            steps=list(data["steps"]),
            deployed_at=data.get("deployed_at", 0),
            description=data.get("description", ""),
            config=data.get("config", {}),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Scenario":
        path = Path(path)
        if not path.exists():
            raise ScenarioError(f"Scenario file not found: {path}")
        return cls.from_dict(load_document(path))

    def build_config(self) -> SplitRiskConfig:
        """Copy of the active configuration with the scenario's overrides applied."""
        config = SplitRiskConfig()
        try:
            apply_config_dict(config, get_config().to_dict())
            apply_config_dict(config, self.config)
        except ConfigError as e:
            raise ScenarioError(f"Invalid scenario config: {e}") from e
        return config


@dataclass
class StepOutcome:
    """What one step did."""
    index: int
    action: str
    time: int
    ok: bool
    result: Dict[str, Any] = field(default_factory=dict)
    error: str = ""
    message: str = ""
    expect_error: str = ""
    note: str = ""

    @property
    def matched(self) -> bool:
        if self.expect_error:
            return self.error == self.expect_error
        return self.ok

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "index": self.index,
            "action": self.action,
            "time": self.time,
            "ok": self.ok,
            "matched": self.matched,
            "result": self.result,
        }
        if self.error:
            d["error"] = self.error
            d["message"] = self.message
        if self.expect_error:
            d["expect_error"] = self.expect_error
        if self.note:
            d["note"] = self.note
        return d


@dataclass
class SimulationReport:
    name: str
    outcomes: List[StepOutcome]
    events: List[Dict[str, Any]]
    final: Dict[str, Any]
    balances: Dict[str, Dict[str, int]]

    @property
    def passed(self) -> bool:
        return all(o.matched for o in self.outcomes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "passed": self.passed,
            "steps": [o.to_dict() for o in self.outcomes],
            "events": self.events,
            "final": self.final,
            "balances": self.balances,
        }


class ScenarioRunner:
    """Runs a scenario against a fresh in-memory deployment."""

    def __init__(self, scenario: Scenario, asset_symbol: str = "DAI"):
        self.scenario = scenario
        self.logger = get_logger("runner", ProtocolLayer.SIMULATION)
        self.clock = ManualClock(scenario.deployed_at)
        self.asset = TokenLedger(asset_symbol)
        self.protocol = SplitRiskProtocol.in_memory(
            self.asset,
            clock=self.clock,
            config=scenario.build_config(),
            deployed_at=scenario.deployed_at,
        )
        for account, amount in scenario.accounts.items():
            self.asset.mint(account, amount)

    def run(self) -> SimulationReport:
        self.logger.info("Running scenario", scenario=self.scenario.name, steps=len(self.scenario.steps))
        outcomes = [self._run_step(i, step) for i, step in enumerate(self.scenario.steps)]
        report = SimulationReport(
            name=self.scenario.name,
            outcomes=outcomes,
            events=[e.to_dict() for e in self.protocol.events()],
            final=self.protocol.snapshot(),
            balances=self._balances(),
        )
        self.logger.info("Scenario finished", scenario=self.scenario.name, passed=report.passed)
        return report

    def _run_step(self, index: int, step: Dict[str, Any]) -> StepOutcome:
        action = step["action"]
        outcome = StepOutcome(
            index=index,
            action=action,
            time=self.clock(),
            ok=True,
            expect_error=step.get("expect_error", ""),
            note=step.get("note", ""),
        )
        handler = getattr(self, f"_step_{action}")
        try:
            outcome.result = handler(step)
        except ProtocolError as e:
            outcome.ok = False
            outcome.error = e.error_code
            outcome.message = str(e)
            if not outcome.expect_error:
                raise ScenarioError(f"step {index} ({action}) failed: {e.error_code}: {e}") from e
        if not outcome.matched:
            self.logger.warning(
                "Step did not match expectation",
                step=index,
                action=action,
                expected=outcome.expect_error or "success",
                got=outcome.error or "success",
            )
        return outcome

    # Step handlers

    def _step_advance(self, step: Dict[str, Any]) -> Dict[str, Any]:
        if "to_phase" in step:
            start = self.protocol.schedule.boundary(Phase(step["to_phase"]))
            if start is not None and start > self.clock():
                self.clock.set(start)
        else:
            self.clock.advance(step["seconds"])
        return {"time": self.clock(), "phase": self.protocol.phase().value}

    def _step_split(self, step: Dict[str, Any]) -> Dict[str, Any]:
        account, amount = step["account"], step["amount"]
        self.asset.approve(account, self.protocol.pool_account, amount)
        return {"deposit": self.protocol.split_risk(account, amount)}

    def _step_invest(self, step: Dict[str, Any]) -> Dict[str, Any]:
        return self.protocol.invest().payload()

    def _step_divest(self, step: Dict[str, Any]) -> Dict[str, Any]:
        return self.protocol.divest().payload()

    def _step_yield(self, step: Dict[str, Any]) -> Dict[str, Any]:
        client = self._client(step["venue"])
        try:
            client.accrue(step["delta"])
        except ValueError as e:
            raise ScenarioError(f"yield step: {e}") from e
        return {"venue": step["venue"], "delta": step["delta"]}

    def _step_fail_venue(self, step: Dict[str, Any]) -> Dict[str, Any]:
        venue, operation = step["venue"], step["operation"]
        client = self._client(venue)
        if venue == VenueSlot.X.value:
            client.fail_next(operation, step.get("note") or "scenario failure")
        else:
            market_op = {"deposit": "mint", "withdraw": "redeem"}[operation]
            client.fail_next(market_op, step.get("status", MarketStatus.MARKET_PAUSED))
        return {"venue": venue, "operation": operation}

    def _step_claim(self, step: Dict[str, Any]) -> Dict[str, Any]:
        return self.protocol.claim(step["account"], step.get("senior", 0), step.get("junior", 0)).payload()

    def _step_claim_all(self, step: Dict[str, Any]) -> Dict[str, Any]:
        return self.protocol.claim_all(step["account"]).payload()

    def _step_claim_senior(self, step: Dict[str, Any]) -> Dict[str, Any]:
        return self.protocol.claim_senior(
            step["account"], step.get("to_venue_x", 0), step.get("to_venue_y", 0)).payload()

    def _step_claim_junior(self, step: Dict[str, Any]) -> Dict[str, Any]:
        return self.protocol.claim_junior(
            step["account"], step.get("to_venue_x", 0), step.get("to_venue_y", 0)).payload()

    def _client(self, venue: str) -> Any:
        return self.protocol.venue(VenueSlot(venue)).client

    def _balances(self) -> Dict[str, Dict[str, int]]:
        claims = self.protocol.ctx.claims
        lending_pool = self._client(VenueSlot.X.value)
        money_market = self._client(VenueSlot.Y.value)
        return {
            account: {
                "base": self.asset.balance_of(account),
                "senior": claims.balance_of(TrancheClass.SENIOR, account),
                "junior": claims.balance_of(TrancheClass.JUNIOR, account),
                "venue_x_receipt": lending_pool.receipt_token.balance_of(account),
                "venue_y_receipt": money_market.balance_of(account),
            }
            for account in self.scenario.accounts
        }


def run_scenario(source: Union[str, Path, Dict[str, Any]], asset_symbol: Optional[str] = None) -> SimulationReport:
    """Load (if needed) and run a scenario."""
    scenario = Scenario.from_dict(source) if isinstance(source, dict) else Scenario.load(source)
    return ScenarioRunner(scenario, asset_symbol or "DAI").run()
