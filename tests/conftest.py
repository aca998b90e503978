import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import splitrisk`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from splitrisk.clock import DAY, ManualClock  # noqa: E402
from splitrisk.config import ConfigManager  # noqa: E402
from splitrisk.ledger import TokenLedger  # noqa: E402
from splitrisk.protocol import SplitRiskProtocol  # noqa: E402
from splitrisk.venues.base import VenueSlot  # noqa: E402

SCENARIOS_DIR = _REPO_ROOT / "scenarios"

# Default schedule measured from deployment at t=0
ISSUANCE_END = 7 * DAY
INSURANCE_END = ISSUANCE_END + 28 * DAY
A_CLAIM_OPEN = INSURANCE_END + 1 * DAY
B_CLAIM_OPEN = A_CLAIM_OPEN + 3 * DAY


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless SPLITRISK_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('SPLITRISK_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set SPLITRISK_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _pristine_config(monkeypatch):
    """Every test starts from default configuration with no SPLITRISK_* overrides."""
    for key in list(os.environ):
        if key.startswith("SPLITRISK_") and key != "SPLITRISK_RUN_SLOW":
            monkeypatch.delenv(key, raising=False)
    ConfigManager().reset()
    yield
    ConfigManager().reset()


@pytest.fixture
def clock():
    return ManualClock(0)


@pytest.fixture
def asset():
    return TokenLedger("DAI")


@pytest.fixture
def protocol(asset, clock):
    return SplitRiskProtocol.in_memory(asset, clock=clock, deployed_at=0)


@pytest.fixture
def lending_pool(protocol):
    return protocol.venue(VenueSlot.X).client


@pytest.fixture
def money_market(protocol):
    return protocol.venue(VenueSlot.Y).client


def deposit(protocol, account, amount):
    """Fund ``account`` and split ``amount`` during issuance."""
    asset = protocol.ctx.asset
    asset.mint(account, amount)
    asset.approve(account, protocol.pool_account, amount)
    return protocol.split_risk(account, amount)


@pytest.fixture
def funded(protocol):
    """Alice deposits 600 and Bob 400: total_tranches will be 1000."""
    deposit(protocol, "alice", 600)
    deposit(protocol, "bob", 400)
    return protocol


@pytest.fixture
def invested(funded, clock):
    clock.set(ISSUANCE_END)
    funded.invest()
    return funded
