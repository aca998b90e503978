import json

import pytest
import yaml

from conftest import INSURANCE_END, SCENARIOS_DIR
from splitrisk.cli import OutputFormat, SplitRiskCLI, format_output


@pytest.fixture(autouse=True)
def _isolated_config_files(tmp_path, monkeypatch):
    """Keep config files from the real home or working directory out of CLI runs."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)


def run_cli(capsys, *args):
    code = SplitRiskCLI().run(list(args))
    out, err = capsys.readouterr()
    return code, out, err


def test_waterfall_partial(capsys):
    code, out, _ = run_cli(capsys, "waterfall", "-t", "1000", "-b", "850", "-i", "50")
    assert code == 0
    result = json.loads(out)
    assert result["regime"] == "partial_coverage"
    assert result["senior"] == "1.1"
    assert result["junior"] == "0.6"
    assert result["senior_payout_ratio"] == str(11 * 10 ** 26)


def test_waterfall_severe(capsys):
    code, out, _ = run_cli(capsys, "waterfall", "--total-tranches", "1000", "--final-balance", "400")
    assert code == 0
    result = json.loads(out)
    assert (result["regime"], result["senior"], result["junior"]) == ("severe_loss", "0.8", "0")


def test_waterfall_odd_total_is_an_error(capsys):
    code, out, err = run_cli(capsys, "waterfall", "-t", "1001", "-b", "1001")
    assert code == 1
    assert out == ""
    assert err.startswith("Error:")


def test_phase(capsys):
    code, out, _ = run_cli(capsys, "phase", "-d", "0", "--at", str(INSURANCE_END))
    assert code == 0
    result = json.loads(out)
    assert result["phase"] == "pending_divest"
    assert result["schedule"]["insurance_deadline"] == INSURANCE_END
    assert result["at_iso"].startswith("1970-02-05")


def test_config_get(capsys):
    code, out, _ = run_cli(capsys, "config", "get", "schedule.insurance_period")
    assert code == 0
    assert json.loads(out) == {"path": "schedule.insurance_period", "value": "28d"}


def test_config_get_unknown_path(capsys):
    code, _, err = run_cli(capsys, "--quiet", "config", "get", "schedule.nope")
    assert code == 1
    assert err == ""


def test_config_file_applies_before_command(capsys, tmp_path):
    path = tmp_path / "splitrisk.yaml"
    path.write_text("schedule:\n  insurance_period: 10d\n", encoding="utf-8")
    code, out, _ = run_cli(capsys, "--config", str(path), "config", "get", "schedule.insurance_period")
    assert code == 0
    assert json.loads(out)["value"] == "10d"


def test_project_config_file_is_read(capsys, tmp_path):
    (tmp_path / "splitrisk.yaml").write_text("schedule:\n  issuance_period: 2d\n", encoding="utf-8")
    code, out, _ = run_cli(capsys, "config", "get", "schedule.issuance_period")
    assert code == 0
    assert json.loads(out)["value"] == "2d"


def test_explicit_config_file_wins_over_project_file(capsys, tmp_path):
    (tmp_path / "splitrisk.yaml").write_text("schedule:\n  issuance_period: 2d\n", encoding="utf-8")
    explicit = tmp_path / "override.yaml"
    explicit.write_text("schedule:\n  issuance_period: 3d\n", encoding="utf-8")
    code, out, _ = run_cli(capsys, "-c", str(explicit), "config", "get", "schedule.issuance_period")
    assert json.loads(out)["value"] == "3d"


def test_config_validate_and_show(capsys):
    code, out, _ = run_cli(capsys, "config", "validate")
    assert json.loads(out) == {"valid": True, "errors": []}
    code, out, _ = run_cli(capsys, "-f", "yaml", "config", "show")
    assert code == 0
    assert yaml.safe_load(out)["protocol"]["min_deposit"] == 2


def test_config_schema(capsys):
    code, out, _ = run_cli(capsys, "config", "schema")
    assert json.loads(out)["properties"]["protocol"]["min_deposit"]["type"] == "int"


def test_simulate(capsys):
    code, out, _ = run_cli(capsys, "simulate", str(SCENARIOS_DIR / "full_coverage.yaml"))
    assert code == 0
    report = json.loads(out)
    assert report["passed"]
    assert "events" not in report
    assert report["balances"]["alice"]["base"] == 660


def test_simulate_honours_config_file(capsys, tmp_path):
    path = tmp_path / "short.yaml"
    path.write_text("schedule:\n  issuance_period: 1d\n", encoding="utf-8")
    code, out, _ = run_cli(capsys, "-c", str(path), "simulate", str(SCENARIOS_DIR / "full_coverage.yaml"))
    assert code == 0
    report = json.loads(out)
    assert report["passed"]
    assert report["final"]["state"]["schedule"]["issuance_deadline"] == 86_400


def test_scenario_config_overrides_config_file(capsys, tmp_path):
    path = tmp_path / "long.yaml"
    path.write_text("schedule:\n  insurance_period: 40d\n", encoding="utf-8")
    code, out, _ = run_cli(capsys, "-c", str(path), "simulate", str(SCENARIOS_DIR / "venue_failure.yaml"))
    assert code == 0
    schedule = json.loads(out)["final"]["state"]["schedule"]
    assert schedule["insurance_deadline"] == 21 * 86_400


def test_simulate_with_events(capsys):
    code, out, _ = run_cli(capsys, "simulate", "--events", str(SCENARIOS_DIR / "never_invested.yaml"))
    assert code == 0
    assert "LiquidModeActivated" in {e["event_type"] for e in json.loads(out)["events"]}


def test_simulate_failing_scenario_exits_nonzero(capsys, tmp_path):
    path = tmp_path / "s.yaml"
    path.write_text(
        "name: wrong\n"
        "accounts: {alice: 10}\n"
        "steps:\n"
        "  - {action: split, account: alice, amount: 10, expect_error: PhaseViolation}\n",
        encoding="utf-8",
    )
    code, out, _ = run_cli(capsys, "simulate", str(path))
    assert code == 1
    assert json.loads(out)["passed"] is False


def test_simulate_missing_file(capsys):
    code, _, err = run_cli(capsys, "simulate", "/nonexistent.yaml")
    assert code == 1
    assert "not found" in err


def test_no_command_prints_help(capsys):
    code, out, _ = run_cli(capsys)
    assert code == 0
    assert "usage: splitrisk" in out


def test_version(capsys):
    with pytest.raises(SystemExit) as exc:
        SplitRiskCLI().run(["--version"])
    assert exc.value.code == 0
    assert capsys.readouterr().out.startswith("splitrisk ")


def test_format_output_table():
    rows = [{"account": "alice", "base": 660}, {"account": "bob", "base": 440}]
    lines = format_output(rows, OutputFormat.TABLE).splitlines()
    assert lines[0] == "account | base"
    assert lines[2] == "alice   | 660 "
