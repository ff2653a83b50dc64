"""Tests for typed settings built from the config dict."""

from kimi_router.settings import (
    DEFAULT_MODEL,
    DEFAULT_MODEL_ALIASES,
    BackendSettings,
    BridgeSettings,
)


def test_defaults_without_config():
    settings = BridgeSettings.from_config(None, environ={})

    assert settings.server.host == "127.0.0.1"
    assert settings.server.port == 3000
    assert settings.backend.base_url == "https://openrouter.ai/api/v1"
    assert settings.models.default_model == DEFAULT_MODEL
    assert settings.models.aliases == DEFAULT_MODEL_ALIASES
    assert settings.models.auto_select is True
    assert settings.inflight.enabled is False


def test_reads_bridge_settings_block():
    config = {
        "bridge_settings": {
            "server": {"host": "0.0.0.0", "port": "8080"},
            "backend": {"base_url": "http://llm.local/v1", "request_timeout": "30"},
            "models": {
                "auto_select": "false",
                "default": "acme/text",
                "vision": "acme/vision",
                "aliases": {"Sonnet": "acme/sonnet"},
                "premium_markers": "acme",
            },
            "inflight": {"enabled": "yes"},
        }
    }
    settings = BridgeSettings.from_config(config, environ={})

    assert settings.server.host == "0.0.0.0"
    assert settings.server.port == 8080
    assert settings.backend.base_url == "http://llm.local/v1"
    assert settings.backend.timeout == 30.0
    assert settings.models.auto_select is False
    assert settings.models.default_model == "acme/text"
    assert settings.models.vision_model == "acme/vision"
    assert settings.models.aliases == {"sonnet": "acme/sonnet"}
    assert settings.models.premium_markers == ("acme",)
    assert settings.inflight.enabled is True


def test_environment_overrides_config():
    config = {"bridge_settings": {"models": {"vision": "acme/vision"}, "server": {"port": 1}}}
    environ = {
        "ANTHROPIC_VISION_MODEL": "env/vision",
        "KIMI_ROUTER_DEFAULT_MODEL": "env/text",
        "KIMI_ROUTER_PORT": "9999",
        "OPENROUTER_BASE_URL": "http://env.local/v1",
    }
    settings = BridgeSettings.from_config(config, environ=environ)

    assert settings.models.vision_model == "env/vision"
    assert settings.models.default_model == "env/text"
    assert settings.server.port == 9999
    assert settings.backend.base_url == "http://env.local/v1"


def test_malformed_values_fall_back_to_defaults():
    config = {
        "bridge_settings": {
            "server": {"port": "not-a-port"},
            "backend": {"base_url": "${UNSET_BASE_URL}", "request_timeout": "soon"},
            "models": {"auto_select": "maybe", "aliases": []},
        }
    }
    settings = BridgeSettings.from_config(config, environ={})

    assert settings.server.port == 3000
    assert settings.backend.base_url == "https://openrouter.ai/api/v1"
    assert settings.backend.timeout == 600.0
    assert settings.models.auto_select is True
    assert settings.models.aliases == DEFAULT_MODEL_ALIASES


def test_backend_build_url():
    backend = BackendSettings(base_url="http://llm.local/v1/")
    assert backend.build_url("/chat/completions") == "http://llm.local/v1/chat/completions"
    assert backend.build_url("chat/completions") == "http://llm.local/v1/chat/completions"
