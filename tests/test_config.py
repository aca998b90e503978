import pytest

from conftest import deposit
from splitrisk.clock import DAY, ManualClock
from splitrisk.config import (
    ConfigError,
    ConfigManager,
    SplitRiskConfig,
    ValidationError,
    apply_config_dict,
    get_config,
    get_config_manager,
)
from splitrisk.protocol import SplitRiskProtocol


def test_defaults():
    config = get_config()
    assert config.schedule.durations_seconds() == {
        "issuance_period": 7 * DAY,
        "insurance_period": 28 * DAY,
        "divest_period": 1 * DAY,
        "a_claim_period": 3 * DAY,
    }
    assert config.protocol.fixed_point_scale.get() == 10 ** 27
    assert config.protocol.min_deposit.get() == 2
    assert config.protocol.pool_account.get() == "splitrisk.pool"
    assert get_config_manager().validate() == []


def test_manager_is_singleton():
    assert ConfigManager() is get_config_manager()


def test_environment_overrides_runtime_value(monkeypatch):
    mgr = get_config_manager()
    mgr.set("schedule.insurance_period", "14d")
    monkeypatch.setenv("SPLITRISK_INSURANCE_PERIOD", "21d")
    assert mgr.get("schedule.insurance_period") == "21d"
    monkeypatch.delenv("SPLITRISK_INSURANCE_PERIOD")
    assert mgr.get("schedule.insurance_period") == "14d"


def test_environment_values_are_coerced(monkeypatch):
    monkeypatch.setenv("SPLITRISK_MIN_DEPOSIT", "10")
    assert get_config().protocol.min_deposit.get() == 10


def test_invalid_environment_value_reported_by_validate(monkeypatch):
    monkeypatch.setenv("SPLITRISK_DIVEST_PERIOD", "0d")
    errors = get_config_manager().validate()
    assert len(errors) == 1
    assert errors[0].startswith("schedule.divest_period")


def test_set_validates():
    mgr = get_config_manager()
    mgr.set("protocol.min_deposit", "6")
    assert mgr.get("protocol.min_deposit") == 6
    with pytest.raises(ValidationError):
        mgr.set("protocol.min_deposit", 1)
    with pytest.raises(ValidationError):
        mgr.set("schedule.issuance_period", "soon")
    with pytest.raises(ConfigError):
        mgr.set("schedule.nonexistent", "1d")


def test_get_rejects_sections_and_unknown_paths():
    mgr = get_config_manager()
    with pytest.raises(ConfigError):
        mgr.get("schedule")
    with pytest.raises(ConfigError):
        mgr.get("schedule.bogus")


def test_load_from_file(tmp_path):
    path = tmp_path / "splitrisk.yaml"
    path.write_text(
        "schedule:\n"
        "  issuance_period: 2d\n"
        "  insurance_period: P10D\n"
        "protocol:\n"
        "  min_deposit: 4\n",
        encoding="utf-8",
    )
    mgr = get_config_manager()
    mgr.load_from_file(path)
    assert mgr.get("schedule.issuance_period") == "2d"
    assert get_config().schedule.durations_seconds()["insurance_period"] == 10 * DAY
    assert mgr.get("protocol.min_deposit") == 4


def test_load_from_file_rejects_unknown_keys(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("schedule:\n  grace_period: 1d\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        get_config_manager().load_from_file(path)


def test_load_from_file_rejects_bad_duration(tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("schedule:\n  issuance_period: a week\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        get_config_manager().load_from_file(path)


def test_load_missing_file():
    with pytest.raises(ConfigError):
        get_config_manager().load_from_file("/nonexistent/splitrisk.yaml")


def test_load_defaults_prefers_project_files(tmp_path, monkeypatch):
    home = tmp_path / "home"
    (home / ".splitrisk").mkdir(parents=True)
    (home / ".splitrisk" / "config.yaml").write_text(
        "schedule:\n  issuance_period: 5d\n  divest_period: 2d\n", encoding="utf-8")
    project = tmp_path / "project"
    (project / "config").mkdir(parents=True)
    (project / "config" / "splitrisk.yaml").write_text(
        "schedule:\n  issuance_period: 4d\n  a_claim_period: 6d\n", encoding="utf-8")
    (project / "splitrisk.yaml").write_text("schedule:\n  issuance_period: 2d\n", encoding="utf-8")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(project)

    mgr = get_config_manager()
    assert len(mgr.load_defaults()) == 3
    assert mgr.get("schedule.issuance_period") == "2d"
    assert mgr.get("schedule.a_claim_period") == "6d"
    assert mgr.get("schedule.divest_period") == "2d"


def test_load_defaults_without_files(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    assert get_config_manager().load_defaults() == []
    assert get_config_manager().get("schedule.issuance_period") == "7d"


def test_apply_config_dict_errors():
    config = SplitRiskConfig()
    with pytest.raises(ConfigError):
        apply_config_dict(config, {"protocol": {"venue": "x"}})
    with pytest.raises(ConfigError):
        apply_config_dict(config, {"protocol": 5})


def test_export_schema_lists_env_vars():
    schema = get_config_manager().export_schema()
    insurance = schema["properties"]["schedule"]["insurance_period"]
    assert insurance["default"] == "28d"
    assert insurance["env_var"] == "SPLITRISK_INSURANCE_PERIOD"


def test_to_yaml_round_trips_values():
    import yaml

    data = yaml.safe_load(get_config().to_yaml())
    assert data["schedule"]["a_claim_period"] == "3d"
    assert data["protocol"]["pool_account"] == "splitrisk.pool"


def test_deploy_uses_configured_schedule():
    config = SplitRiskConfig()
    apply_config_dict(config, {"schedule": {"issuance_period": "1d", "insurance_period": "2d"}})
    protocol = SplitRiskProtocol.in_memory(clock=ManualClock(100), config=config)
    schedule = protocol.schedule
    assert schedule.issuance_deadline == 100 + DAY
    assert schedule.insurance_deadline == 100 + 3 * DAY
    assert schedule.a_claim_open == 100 + 4 * DAY
    assert schedule.b_claim_open == 100 + 7 * DAY


def test_deploy_uses_configured_pool_account_and_minimum():
    config = SplitRiskConfig()
    apply_config_dict(config, {"protocol": {"pool_account": "vault", "min_deposit": 10}})
    protocol = SplitRiskProtocol.in_memory(clock=ManualClock(0), config=config)
    assert protocol.pool_account == "vault"
    deposit(protocol, "alice", 10)
    assert protocol.ctx.asset.balance_of("vault") == 10
