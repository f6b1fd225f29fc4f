"""
Configuration loading and management for the Net Worth Aggregation Engine.

This module handles loading engine configuration from YAML files, applying
environment overrides (.env file and process environment), and validating
configuration parameters.
"""

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import dotenv_values


# Default paths for configuration files
PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_ENV_FILE = PROJECT_ROOT / ".env"
DEFAULT_CONFIG_FILE = PROJECT_ROOT / "config" / "networth.yaml"

# Environment variable -> EngineConfig field
ENV_OVERRIDES = {
    "NETWORTH_DATABASE_URL": "database_url",
    "NETWORTH_BASE_CURRENCY": "base_currency",
    "NETWORTH_LOCK_TIMEOUT": "lock_timeout_seconds",
}

MISSING_RATE_POLICIES = ("fallback", "degrade")


class ConfigurationError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""
    pass


@dataclass(frozen=True)
class FaceValueConfig:
    """
    Rules for recognising face-value instruments (short-term government bills).

    Every holding matching any rule is merged into `canonical_id`.
    """
    canonical_id: str = "US_TBILL"
    display_name: str = "US Treasury Bills Aggregate"
    asset_classes: tuple[str, ...] = ("bond", "govt")
    description_markers: tuple[str, ...] = (
        "treasury",
        "t-bill",
        "t bill",
        "government bond",
        "govt bond",
    )
    code_sentinels: tuple[str, ...] = ("US_TBill",)
    code_prefixes: tuple[str, ...] = ("TF Float",)
    code_markers: tuple[str, ...] = ("Treasury",)


@dataclass(frozen=True)
class EngineConfig:
    """
    Engine configuration loaded from YAML.

    Attributes:
        database_url: SQLAlchemy URL of the portfolio store
        base_currency: Currency all figures are converted into
        lock_name: Name of the advisory lock guarding recompute runs
        lock_timeout_seconds: Lease duration before a stale lock is reclaimed
        output_dir: Directory for exported files
        decision_log_path: JSONL decision log location
        other_asset_missing_rate_policy: "fallback" (rate 1.0, flagged) or
            "degrade" (category contributes 0)
        face_value: Face-value instrument recognition rules
    """
    database_url: str = "sqlite:///data/networth.db"
    base_currency: str = "CNY"
    lock_name: str = "portfolio-recompute"
    lock_timeout_seconds: int = 300
    output_dir: str = "output"
    decision_log_path: str = "output/decision_log.jsonl"
    other_asset_missing_rate_policy: str = "fallback"
    face_value: FaceValueConfig = field(default_factory=FaceValueConfig)


def load_engine_config(
    config_path: Optional[str | Path] = None,
    env_file: Optional[str | Path] = None,
    environ: Optional[dict[str, str]] = None,
) -> EngineConfig:
    """
    Load engine configuration with environment overrides.

    Sources are applied in this order (later sources override earlier):
    1. YAML configuration file (defaults if not given and absent)
    2. .env file in project root
    3. Environment variables

    Args:
        config_path: Path to YAML config (defaults to config/networth.yaml)
        env_file: Path to .env file (defaults to project root .env)
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated EngineConfig

    Raises:
        ConfigurationError: If the file cannot be loaded or is invalid
    """
    raw: dict[str, Any] = {}

    yaml_path = Path(config_path) if config_path else DEFAULT_CONFIG_FILE
    if config_path and not yaml_path.exists():
        raise ConfigurationError(f"Configuration file not found: {yaml_path}")

    if yaml_path.exists():
        try:
            with open(yaml_path, "r") as f:
                raw = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {e}")
        if not isinstance(raw, dict):
            raise ConfigurationError("Configuration root must be a mapping")

    env_path = Path(env_file) if env_file else DEFAULT_ENV_FILE
    if env_path.exists():
        for key, value in dotenv_values(env_path).items():
            if key in ENV_OVERRIDES and value:
                raw[ENV_OVERRIDES[key]] = value

    environ = os.environ if environ is None else environ
    for key, target in ENV_OVERRIDES.items():
        if environ.get(key):
            raw[target] = environ[key]

    return _parse_engine_config(raw)


def _parse_engine_config(raw: dict[str, Any]) -> EngineConfig:
    """
    Parse and validate a raw configuration dictionary into EngineConfig.

    Raises:
        ConfigurationError: If a field is missing or invalid
    """
    defaults = EngineConfig()

    database_url = str(raw.get("database_url", defaults.database_url)).strip()
    if not database_url:
        raise ConfigurationError("database_url cannot be empty")

    base_currency = _parse_currency(
        raw.get("base_currency", defaults.base_currency), "base_currency"
    )

    lock_name = str(raw.get("lock_name", defaults.lock_name)).strip()
    if not lock_name:
        raise ConfigurationError("lock_name cannot be empty")

    lock_timeout = _parse_positive_int(
        raw.get("lock_timeout_seconds", defaults.lock_timeout_seconds),
        "lock_timeout_seconds",
    )

    policy = str(
        raw.get(
            "other_asset_missing_rate_policy",
            defaults.other_asset_missing_rate_policy,
        )
    ).strip().lower()
    if policy not in MISSING_RATE_POLICIES:
        raise ConfigurationError(
            f"other_asset_missing_rate_policy must be one of "
            f"{MISSING_RATE_POLICIES}, got {policy!r}"
        )

    return EngineConfig(
        database_url=database_url,
        base_currency=base_currency,
        lock_name=lock_name,
        lock_timeout_seconds=lock_timeout,
        output_dir=str(raw.get("output_dir", defaults.output_dir)),
        decision_log_path=str(
            raw.get("decision_log_path", defaults.decision_log_path)
        ),
        other_asset_missing_rate_policy=policy,
        face_value=_parse_face_value(raw.get("face_value") or {}),
    )


def _parse_face_value(raw: Any) -> FaceValueConfig:
    """Parse the optional face_value block; unspecified lists keep defaults."""
    if not isinstance(raw, dict):
        raise ConfigurationError("face_value must be a mapping")

    defaults = FaceValueConfig()
    overrides: dict[str, Any] = {}

    for key in ("canonical_id", "display_name"):
        if key in raw:
            value = str(raw[key]).strip()
            if not value:
                raise ConfigurationError(f"face_value.{key} cannot be empty")
            overrides[key] = value

    for key in (
        "asset_classes",
        "description_markers",
        "code_sentinels",
        "code_prefixes",
        "code_markers",
    ):
        if key in raw:
            values = raw[key]
            if values is None:
                values = []
            if not isinstance(values, list):
                raise ConfigurationError(f"face_value.{key} must be a list")
            overrides[key] = tuple(str(v) for v in values if str(v).strip())

    return replace(defaults, **overrides)


def _parse_currency(value: Any, field_name: str) -> str:
    """Currencies are three-letter codes, stored uppercase."""
    currency = str(value or "").strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ConfigurationError(
            f"Invalid currency for {field_name}: {value!r}. Expected e.g. USD"
        )
    return currency


def _parse_positive_int(value: Any, field_name: str) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid integer value for {field_name}: {value}")
    if result <= 0:
        raise ConfigurationError(f"{field_name} must be positive, got {result}")
    return result


def write_config(config: EngineConfig, output_path: str | Path) -> None:
    """
    Write an EngineConfig to a YAML file.

    Args:
        config: The configuration to write
        output_path: Path to write the YAML file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fv = config.face_value
    config_dict = {
        "database_url": config.database_url,
        "base_currency": config.base_currency,
        "lock_name": config.lock_name,
        "lock_timeout_seconds": config.lock_timeout_seconds,
        "output_dir": config.output_dir,
        "decision_log_path": config.decision_log_path,
        "other_asset_missing_rate_policy": config.other_asset_missing_rate_policy,
        "face_value": {
            "canonical_id": fv.canonical_id,
            "display_name": fv.display_name,
            "asset_classes": list(fv.asset_classes),
            "description_markers": list(fv.description_markers),
            "code_sentinels": list(fv.code_sentinels),
            "code_prefixes": list(fv.code_prefixes),
            "code_markers": list(fv.code_markers),
        },
    }

    with open(output_path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
