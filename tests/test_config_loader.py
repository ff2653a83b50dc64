"""Tests for the config loader module."""

import os
from pathlib import Path

import pytest
import yaml

from kimi_router.config_loader import (
    DEFAULT_CONFIG_PATH,
    _substitute_env_vars,
    load_config,
    resolve_config_path,
    resolve_env_path,
)
from kimi_router.core import ConfigurationError


def _write_yaml(path: Path, data) -> Path:
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


class TestLoadConfig:
    """Tests for loading configuration from YAML files."""

    def test_loads_simple_config(self, tmp_path):
        config_file = _write_yaml(
            tmp_path / "config.yaml",
            {"bridge_settings": {"server": {"port": 4000}}},
        )
        result = load_config(str(config_file))
        assert result["bridge_settings"]["server"]["port"] == 4000

    def test_raises_error_for_missing_config(self):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config("/nonexistent/path/config.yaml")

    def test_invalid_yaml_is_configuration_error(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("bridge_settings: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            load_config(str(config_file))

    def test_non_mapping_root_is_rejected(self, tmp_path):
        config_file = _write_yaml(tmp_path / "config.yaml", ["a", "b"])
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_config(str(config_file))

    def test_config_path_from_environment(self, tmp_path, monkeypatch):
        config_file = _write_yaml(tmp_path / "bridge.yaml", {"bridge_settings": {"server": {"port": 5}}})
        monkeypatch.setenv("KIMI_ROUTER_CONFIG", str(config_file))
        assert load_config()["bridge_settings"]["server"]["port"] == 5

    def test_empty_file_is_empty_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("", encoding="utf-8")
        assert load_config(str(config_file)) == {}

    def test_substitutes_process_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KIMI_TEST_BASE", "http://backend.test/v1")
        config_file = _write_yaml(
            tmp_path / "config.yaml",
            {"bridge_settings": {"backend": {"base_url": "${KIMI_TEST_BASE}"}}},
        )
        result = load_config(str(config_file))
        assert result["bridge_settings"]["backend"]["base_url"] == "http://backend.test/v1"

    def test_paired_env_file_wins_without_touching_environ(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KIMI_TEST_TITLE", "from-process")
        (tmp_path / ".env_local").write_text("KIMI_TEST_TITLE=from-file\n", encoding="utf-8")
        config_file = _write_yaml(
            tmp_path / "config_local.yaml",
            {"bridge_settings": {"backend": {"title": "$KIMI_TEST_TITLE"}}},
        )

        result = load_config(str(config_file))

        assert result["bridge_settings"]["backend"]["title"] == "from-file"
        assert os.environ["KIMI_TEST_TITLE"] == "from-process"

    def test_substitution_can_be_disabled(self, tmp_path):
        config_file = _write_yaml(tmp_path / "config.yaml", {"value": "${ANYTHING}"})
        assert load_config(str(config_file), substitute_env=False) == {"value": "${ANYTHING}"}

    def test_default_config_is_valid(self):
        config = load_config(DEFAULT_CONFIG_PATH, substitute_env=False)
        assert config["bridge_settings"]["models"]["default"] == "moonshotai/kimi-k2"


class TestSubstituteEnvVars:
    def test_nested_structures(self):
        data = {"a": ["$X", {"b": "pre-${X}-post"}], "n": 3}
        assert _substitute_env_vars(data, {"X": "v"}) == {"a": ["v", {"b": "pre-v-post"}], "n": 3}

    def test_unknown_variable_keeps_placeholder(self, caplog, monkeypatch):
        monkeypatch.delenv("KIMI_TEST_MISSING", raising=False)
        with caplog.at_level("WARNING", logger="kimi-router"):
            result = _substitute_env_vars("${KIMI_TEST_MISSING}", {})
        assert result == "${KIMI_TEST_MISSING}"
        assert "KIMI_TEST_MISSING" in caplog.text


class TestPathResolution:
    def test_absolute_path_is_kept(self, tmp_path):
        assert resolve_config_path(str(tmp_path)) == tmp_path

    def test_relative_path_is_project_relative(self):
        resolved = resolve_config_path(DEFAULT_CONFIG_PATH)
        assert resolved.is_absolute()
        assert resolved.name == "config_default.yaml"

    def test_env_file_pairing(self, tmp_path):
        assert resolve_env_path(tmp_path / "config_prod.yaml") == tmp_path / ".env_prod"
        assert resolve_env_path(tmp_path / "bridge.yaml") == tmp_path / ".env"
