"""Typed settings built from the loaded configuration dict.

Environment variables take priority over the config file, which takes
priority over the built-in defaults. Missing or malformed values fall back
to the defaults rather than failing startup.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

logger = logging.getLogger("kimi-router")

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_MODEL = "moonshotai/kimi-k2"
DEFAULT_VISION_MODEL = "anthropic/claude-3.5-sonnet"
DEFAULT_MODEL_ALIASES = {
    "haiku": "anthropic/claude-3.5-haiku",
    "sonnet": "anthropic/claude-sonnet-4",
    "opus": "anthropic/claude-opus-4",
}
DEFAULT_PREMIUM_MARKERS = ("claude",)
DEFAULT_TIMEOUT = 600.0
DEFAULT_USER_AGENT = "Kimi-Router/1.0"
DEFAULT_REFERER = "https://claude.ab2web.dev"
DEFAULT_TITLE = "Kimi Router"


def _get(cfg: Mapping[str, Any], *keys: str):
    cur: Any = cfg
    for key in keys:
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(key)
    return cur


def _to_int(value) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _to_float(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_str(value) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    # An unresolved ${VAR} placeholder counts as unset
    if not text or text.startswith("$"):
        return None
    return text


def _to_bool(value) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return None


@dataclass(frozen=True)
class ServerSettings:
    host: str = "127.0.0.1"
    port: int = 3000


@dataclass(frozen=True)
class BackendSettings:
    """The single OpenAI-compatible backend requests are forwarded to."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    referer: str = DEFAULT_REFERER
    title: str = DEFAULT_TITLE

    def build_url(self, path: str) -> str:
        base = self.base_url.rstrip("/")
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{base}{path}"


@dataclass(frozen=True)
class ModelSettings:
    """Model selection knobs.

    Attributes:
        default_model: Economical model used for text-only conversations.
        vision_model: Model used when the conversation carries images.
        aliases: Substring -> fully-qualified id, checked in order.
        premium_markers: Substrings marking models that accept cache hints.
        auto_select: Replace short caller model names with the default or
            vision model. When off, short names only go through aliases.
    """

    default_model: str = DEFAULT_MODEL
    vision_model: str = DEFAULT_VISION_MODEL
    aliases: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODEL_ALIASES))
    premium_markers: tuple[str, ...] = DEFAULT_PREMIUM_MARKERS
    auto_select: bool = True


@dataclass(frozen=True)
class InFlightSettings:
    enabled: bool = False


@dataclass(frozen=True)
class BridgeSettings:
    server: ServerSettings = field(default_factory=ServerSettings)
    backend: BackendSettings = field(default_factory=BackendSettings)
    models: ModelSettings = field(default_factory=ModelSettings)
    inflight: InFlightSettings = field(default_factory=InFlightSettings)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any] | None,
        environ: Mapping[str, str] | None = None,
    ) -> "BridgeSettings":
        cfg = config or {}
        env = os.environ if environ is None else environ
        root = _get(cfg, "bridge_settings") or {}

        server = ServerSettings(
            host=_to_str(env.get("KIMI_ROUTER_HOST"))
            or _to_str(_get(root, "server", "host"))
            or ServerSettings.host,
            port=_to_int(env.get("KIMI_ROUTER_PORT"))
            or _to_int(_get(root, "server", "port"))
            or ServerSettings.port,
        )

        backend = BackendSettings(
            base_url=_to_str(env.get("OPENROUTER_BASE_URL"))
            or _to_str(_get(root, "backend", "base_url"))
            or DEFAULT_BASE_URL,
            timeout=_to_float(_get(root, "backend", "request_timeout")) or DEFAULT_TIMEOUT,
            user_agent=_to_str(_get(root, "backend", "user_agent")) or DEFAULT_USER_AGENT,
            referer=_to_str(_get(root, "backend", "referer")) or DEFAULT_REFERER,
            title=_to_str(_get(root, "backend", "title")) or DEFAULT_TITLE,
        )

        raw_aliases = _get(root, "models", "aliases")
        if isinstance(raw_aliases, Mapping) and raw_aliases:
            aliases = {
                str(key).lower(): str(value)
                for key, value in raw_aliases.items()
                if key and value
            }
        else:
            aliases = dict(DEFAULT_MODEL_ALIASES)

        raw_markers = _get(root, "models", "premium_markers")
        if isinstance(raw_markers, str):
            raw_markers = [raw_markers]
        if isinstance(raw_markers, (list, tuple)) and raw_markers:
            markers = tuple(str(m).lower() for m in raw_markers if m)
        else:
            markers = DEFAULT_PREMIUM_MARKERS

        auto_select = _to_bool(_get(root, "models", "auto_select"))
        models = ModelSettings(
            default_model=_to_str(env.get("KIMI_ROUTER_DEFAULT_MODEL"))
            or _to_str(_get(root, "models", "default"))
            or DEFAULT_MODEL,
            vision_model=_to_str(env.get("ANTHROPIC_VISION_MODEL"))
            or _to_str(_get(root, "models", "vision"))
            or DEFAULT_VISION_MODEL,
            aliases=aliases,
            premium_markers=markers,
            auto_select=True if auto_select is None else auto_select,
        )

        inflight = InFlightSettings(enabled=bool(_to_bool(_get(root, "inflight", "enabled"))))

        return cls(server=server, backend=backend, models=models, inflight=inflight)
