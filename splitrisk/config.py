"""
SplitRisk Configuration System

Configuration management with YAML files, environment variables,
validation, and runtime overrides.

Configuration Sources (in order of precedence):
    1. Environment variables (SPLITRISK_*)
    2. Runtime overrides and explicitly loaded files (last write wins)
    3. Project config files (./splitrisk.yaml, then ./config/splitrisk.yaml)
    4. User config file (~/.splitrisk/config.yaml)
    5. Default values
"""

from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar, Union

import yaml

from splitrisk.core import parse_duration_seconds

T = TypeVar("T")


class ConfigError(Exception):
    """Configuration error."""
    pass


class ValidationError(ConfigError):
    """Configuration validation error."""
    pass


@dataclass
class ConfigValue(Generic[T]):
    """
    A single configuration value with metadata.

    Supports default values, environment variable binding
    and validation.
    """
    default: T
    env_var: Optional[str] = None
    description: str = ""
    validator: Optional[Callable[[T], bool]] = None
    _value: Optional[T] = field(default=None, repr=False)

    def get(self) -> T:
        """Get the current value."""
        if self.env_var and self.env_var in os.environ:
            return self._coerce(os.environ[self.env_var])
        return self._value if self._value is not None else self.default

    def set(self, value: Any) -> None:
        """Set the value with validation."""
        if isinstance(value, str) and not isinstance(self.default, str):
            value = self._coerce(value)
        if self.validator and not self.validator(value):
            raise ValidationError(f"Invalid value for config: {value!r}")
        self._value = value

    def reset(self) -> None:
        """Drop any runtime override."""
        self._value = None

    def _coerce(self, value: str) -> T:
        """Coerce string value to target type."""
        target_type = type(self.default)

        if target_type == bool:
            return value.lower() in ("true", "1", "yes", "on")  # type: ignore
        elif target_type == int:
            return int(value)  # type: ignore
        else:
            return value  # type: ignore


def _positive_duration(value: str) -> bool:
    return parse_duration_seconds(value) > 0


@dataclass
class ScheduleConfig:
    """Phase durations, measured from deployment."""
    issuance_period: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="7d",
        env_var="SPLITRISK_ISSUANCE_PERIOD",
        description="Issuance window length (deployment to S)",
        validator=_positive_duration,
    ))
    insurance_period: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="28d",
        env_var="SPLITRISK_INSURANCE_PERIOD",
        description="Insurance window length (S to T1)",
        validator=_positive_duration,
    ))
    divest_period: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="1d",
        env_var="SPLITRISK_DIVEST_PERIOD",
        description="Divestment window length (T1 to T2)",
        validator=_positive_duration,
    ))
    a_claim_period: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="3d",
        env_var="SPLITRISK_A_CLAIM_PERIOD",
        description="Senior-only claim window length (T2 to T3)",
        validator=_positive_duration,
    ))

    def durations_seconds(self) -> Dict[str, int]:
        """Resolved durations in seconds, keyed by field name."""
        return {
            name: parse_duration_seconds(getattr(self, name).get())
            for name in self.__dataclass_fields__
        }


@dataclass
class ProtocolSettings:
    """Arithmetic and custody settings."""
    fixed_point_scale: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=10 ** 27,
        env_var="SPLITRISK_FIXED_POINT_SCALE",
        description="Scale factor for fixed-point payout ratios",
        validator=lambda x: x >= 10 ** 6,
    ))
    min_deposit: ConfigValue[int] = field(default_factory=lambda: ConfigValue(
        default=2,
        env_var="SPLITRISK_MIN_DEPOSIT",
        description="Smallest accepted split_risk amount (before dust truncation)",
        validator=lambda x: x >= 2,
    ))
    pool_account: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="splitrisk.pool",
        env_var="SPLITRISK_POOL_ACCOUNT",
        description="Account that custodies pooled base asset and receipt tokens",
        validator=lambda x: bool(x and x.strip()),
    ))


@dataclass
class ObservabilityConfig:
    """Configuration for Observability."""
    log_level: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="info",
        env_var="SPLITRISK_LOG_LEVEL",
        description="Log level (debug, info, warning, error)",
        validator=lambda x: x in ("debug", "info", "warning", "error", "critical"),
    ))
    log_format: ConfigValue[str] = field(default_factory=lambda: ConfigValue(
        default="json",
        env_var="SPLITRISK_LOG_FORMAT",
        description="Log format (json, text)",
        validator=lambda x: x in ("json", "text"),
    ))


@dataclass
class SplitRiskConfig:
    """
    Root configuration for SplitRisk.

    Aggregates all component configurations and provides
    loading/saving functionality.
    """
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    protocol: ProtocolSettings = field(default_factory=ProtocolSettings)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        def extract_values(obj: Any) -> Any:
            if isinstance(obj, ConfigValue):
                return obj.get()
            elif hasattr(obj, "__dataclass_fields__"):
                return {k: extract_values(getattr(obj, k)) for k in obj.__dataclass_fields__}
            return obj

        return extract_values(self)

    def to_yaml(self) -> str:
        """Convert to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False)


def apply_config_dict(config: SplitRiskConfig, data: Dict[str, Any]) -> None:
    """Apply a nested dictionary of values onto a config tree.

    Unknown keys raise ``ConfigError`` so typos in config files surface.
    """
    def apply_to_config(config_obj: Any, values: Dict[str, Any], path: str) -> None:
        for key, value in values.items():
            key_path = f"{path}.{key}" if path else key
            if not hasattr(config_obj, key):
                raise ConfigError(f"Unknown config key: {key_path}")
            attr = getattr(config_obj, key)
            if isinstance(attr, ConfigValue):
                attr.set(value)
            elif hasattr(attr, "__dataclass_fields__") and isinstance(value, dict):
                apply_to_config(attr, value, key_path)
            else:
                raise ConfigError(f"Invalid config section: {key_path}")

    apply_to_config(config, data, "")


class ConfigManager:
    """
    Configuration manager with file loading and environment binding.

    Thread-safe singleton that manages configuration lifecycle.
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "ConfigManager":
        with cls._lock:
            if cls._instance is None:
                cls._instance = super().__new__(cls)
                cls._instance._initialized = False
            return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._config = SplitRiskConfig()
        self._initialized = True

    @property
    def config(self) -> SplitRiskConfig:
        """Get the current configuration."""
        return self._config

    def load_from_file(self, path: Union[str, Path]) -> None:
        """Load configuration from a YAML file, validated against the config schema."""
        from splitrisk.schema import CONFIG_SCHEMA, validate_against_schema

        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if data:
            errors = validate_against_schema(data, CONFIG_SCHEMA)
            if errors:
                raise ValidationError(f"Invalid configuration file {path}: {errors[0]}")
            apply_config_dict(self._config, data)

    def load_defaults(self) -> List[Path]:
        """Load default configuration files if they exist.

        Returns the files that were applied. A broken default file is an
        error: silently running with a half-applied schedule is worse.
        """
        default_paths = [
            Path("splitrisk.yaml"),
            Path("config/splitrisk.yaml"),
            Path.home() / ".splitrisk" / "config.yaml",
        ]

        loaded: List[Path] = []
        for path in reversed(default_paths):
            if path.exists():
                self.load_from_file(path)
                loaded.append(path)
        return loaded

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value by path.

        Example: config.set("schedule.insurance_period", "14d")
        """
        parts = path.split(".")
        obj: Any = self._config

        for part in parts[:-1]:
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        attr = getattr(obj, parts[-1], None)
        if isinstance(attr, ConfigValue):
            attr.set(value)
        else:
            raise ConfigError(f"Invalid config path: {path}")

    def get(self, path: str) -> Any:
        """
        Get a configuration value by path.

        Example: config.get("protocol.fixed_point_scale")
        """
        obj: Any = self._config

        for part in path.split("."):
            if not hasattr(obj, part):
                raise ConfigError(f"Invalid config path: {path}")
            obj = getattr(obj, part)

        if isinstance(obj, ConfigValue):
            return obj.get()
        raise ConfigError(f"Config path is a section, not a value: {path}")

    def reset(self) -> None:
        """Return to pristine defaults (used between tests and CLI runs)."""
        self._config = SplitRiskConfig()

    def validate(self) -> List[str]:
        """
        Validate all configuration values.

        Returns list of validation errors.
        """
        errors: List[str] = []

        def validate_config(obj: Any, path: str = "") -> None:
            if isinstance(obj, ConfigValue):
                try:
                    value = obj.get()
                    if obj.validator and not obj.validator(value):
                        errors.append(f"{path}: validation failed for value {value}")
                except (TypeError, ValueError) as e:
                    errors.append(f"{path}: {e}")
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    field_path = f"{path}.{field_name}" if path else field_name
                    validate_config(getattr(obj, field_name), field_path)

        validate_config(self._config)
        return errors

    def export_schema(self) -> Dict[str, Any]:
        """Export configuration schema for documentation."""
        schema: Dict[str, Any] = {"properties": {}}

        def extract_schema(obj: Any, properties: Dict[str, Any]) -> None:
            if isinstance(obj, ConfigValue):
                properties["type"] = type(obj.default).__name__
                properties["default"] = str(obj.default)
                properties["description"] = obj.description
                if obj.env_var:
                    properties["env_var"] = obj.env_var
            elif hasattr(obj, "__dataclass_fields__"):
                for field_name in obj.__dataclass_fields__:
                    properties[field_name] = {}
                    extract_schema(getattr(obj, field_name), properties[field_name])

        extract_schema(self._config, schema["properties"])
        return schema


def get_config() -> SplitRiskConfig:
    """Get the current SplitRisk configuration."""
    return ConfigManager().config


def get_config_manager() -> ConfigManager:
    """Get the configuration manager instance."""
    return ConfigManager()
