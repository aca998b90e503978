"""Issuance: turn deposits into equal senior and junior claims."""

from __future__ import annotations

from splitrisk.clock import Phase
from splitrisk.events import RiskSplit
from splitrisk.hardening import InvariantChecker, Validators
from splitrisk.ledger import TrancheClass
from splitrisk.observability import ProtocolLayer, get_logger, timed_operation
from splitrisk.state import ProtocolContext


class RiskSplitter:
    """Accepts deposits during issuance and mints claims 1:1 per class.

    Odd deposits lose their last unit before anything moves: the caller is
    charged and credited for ``amount - 1``. Every mint issues the same
    amount of both classes, which keeps senior and junior supply equal.
    """

    def __init__(self, ctx: ProtocolContext, min_deposit: int = 2):
        self.ctx = ctx
        self.min_deposit = max(2, min_deposit)
        self.logger = get_logger("splitter", ProtocolLayer.SPLITTER)

    @timed_operation("split_risk")
    def split_risk(self, caller: str, amount: int) -> int:
        """Deposit ``amount`` of base asset; returns the amount actually taken."""
        ctx = self.ctx
        ctx.clock.require(Phase.ISSUANCE, operation="split_risk")
        Validators.validate_amount(amount, "amount", min_value=self.min_deposit).raise_if_invalid()

        deposit = amount - amount % 2
        if deposit != amount:
            self.logger.debug("Truncated odd deposit", caller=caller, requested=amount, deposit=deposit)

        InvariantChecker.check_balance_sufficient(
            ctx.asset.balance_of(caller), deposit, f"base asset balance of {caller}")
        InvariantChecker.check_balance_sufficient(
            ctx.asset.allowance(caller, ctx.pool_account), deposit, f"base asset allowance of {caller}")

        ctx.asset.transfer_from(ctx.pool_account, caller, ctx.pool_account, deposit)
        half = deposit // 2
        ctx.claims.mint(TrancheClass.SENIOR, caller, half)
        ctx.claims.mint(TrancheClass.JUNIOR, caller, half)

        ctx.stamp(RiskSplit(caller=caller, amount=deposit))
        self.logger.info("Risk split", caller=caller, amount=deposit, minted_per_class=half)
        return deposit
