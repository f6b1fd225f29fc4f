"""
Tests for configuration loading.
"""

from pathlib import Path

import pytest

from networth.config import (
    ConfigurationError,
    EngineConfig,
    load_engine_config,
    write_config,
)


@pytest.fixture
def no_env(tmp_path: Path) -> Path:
    """Path of a .env file that does not exist."""
    return tmp_path / "missing.env"


def _write(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


class TestLoadEngineConfig:
    """Tests for load_engine_config."""

    def test_defaults_without_file(self, tmp_path, no_env):
        config = load_engine_config(env_file=no_env, environ={})
        assert config == EngineConfig()

    def test_yaml_values(self, tmp_path, no_env):
        path = _write(
            tmp_path / "networth.yaml",
            "database_url: sqlite:///x.db\n"
            "base_currency: usd\n"
            "lock_timeout_seconds: 30\n"
            "other_asset_missing_rate_policy: DEGRADE\n",
        )
        config = load_engine_config(path, env_file=no_env, environ={})

        assert config.database_url == "sqlite:///x.db"
        assert config.base_currency == "USD"
        assert config.lock_timeout_seconds == 30
        assert config.other_asset_missing_rate_policy == "degrade"

    def test_env_file_overrides_yaml(self, tmp_path):
        path = _write(tmp_path / "networth.yaml", "base_currency: USD\n")
        env = _write(tmp_path / ".env", "NETWORTH_BASE_CURRENCY=HKD\n")

        config = load_engine_config(path, env_file=env, environ={})
        assert config.base_currency == "HKD"

    def test_environment_overrides_env_file(self, tmp_path):
        path = _write(tmp_path / "networth.yaml", "base_currency: USD\n")
        env = _write(
            tmp_path / ".env",
            "NETWORTH_BASE_CURRENCY=HKD\nNETWORTH_LOCK_TIMEOUT=45\n",
        )

        config = load_engine_config(
            path,
            env_file=env,
            environ={"NETWORTH_BASE_CURRENCY": "EUR", "NETWORTH_DATABASE_URL": "sqlite://"},
        )

        assert config.base_currency == "EUR"
        assert config.lock_timeout_seconds == 45
        assert config.database_url == "sqlite://"

    def test_face_value_block(self, tmp_path, no_env):
        path = _write(
            tmp_path / "networth.yaml",
            "face_value:\n"
            "  canonical_id: CN_BILL\n"
            "  code_sentinels: [GC001, GC007]\n"
            "  code_markers:\n",
        )
        config = load_engine_config(path, env_file=no_env, environ={})

        assert config.face_value.canonical_id == "CN_BILL"
        assert config.face_value.code_sentinels == ("GC001", "GC007")
        assert config.face_value.code_markers == ()
        assert config.face_value.asset_classes == ("bond", "govt")

    def test_missing_file(self, tmp_path, no_env):
        with pytest.raises(ConfigurationError, match="not found"):
            load_engine_config(tmp_path / "nope.yaml", env_file=no_env, environ={})

    def test_invalid_yaml(self, tmp_path, no_env):
        path = _write(tmp_path / "bad.yaml", "base_currency: [unclosed\n")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_engine_config(path, env_file=no_env, environ={})

    @pytest.mark.parametrize(
        "text,message",
        [
            ("base_currency: dollars\n", "Invalid currency"),
            ("lock_timeout_seconds: 0\n", "must be positive"),
            ("lock_timeout_seconds: soon\n", "Invalid integer"),
            ("other_asset_missing_rate_policy: ignore\n", "missing_rate_policy"),
            ("database_url: ''\n", "database_url"),
            ("face_value: [1, 2]\n", "face_value must be a mapping"),
            ("face_value:\n  code_prefixes: TF\n", "must be a list"),
            ("- just\n- a list\n", "mapping"),
        ],
    )
    def test_invalid_values(self, tmp_path, no_env, text, message):
        path = _write(tmp_path / "networth.yaml", text)
        with pytest.raises(ConfigurationError, match=message):
            load_engine_config(path, env_file=no_env, environ={})


class TestWriteConfig:
    """Tests for write_config."""

    def test_round_trip(self, tmp_path, no_env):
        original = load_engine_config(env_file=no_env, environ={"NETWORTH_BASE_CURRENCY": "GBP"})
        path = tmp_path / "out" / "networth.yaml"

        write_config(original, path)

        assert load_engine_config(path, env_file=no_env, environ={}) == original
