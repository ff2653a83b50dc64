"""Backend model selection.

A caller model that already names a provider (``provider/model``) is always
passed through untouched. Short names such as ``claude-3-5-sonnet-latest``
are replaced by the configured default or vision model, then run through
the alias table.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from ..settings import ModelSettings

logger = logging.getLogger("kimi-router")

NAMESPACE_SEPARATOR = "/"


def is_fully_qualified(model: str) -> bool:
    return NAMESPACE_SEPARATOR in model


def has_image_content(messages: Iterable[Mapping[str, Any]]) -> bool:
    """Return True when any structured message carries an image part."""
    for message in messages or []:
        content = message.get("content") if isinstance(message, Mapping) else None
        if not isinstance(content, list):
            continue
        for part in content:
            if isinstance(part, Mapping) and part.get("type") == "image":
                return True
    return False


def select_model(
    model: str,
    messages: Iterable[Mapping[str, Any]],
    settings: Optional[ModelSettings] = None,
) -> str:
    """Pick the backend model from the caller hint and the conversation content."""
    settings = settings or ModelSettings()
    if is_fully_qualified(model):
        return model
    if not settings.auto_select:
        return model
    if has_image_content(messages):
        return settings.vision_model
    return settings.default_model


def map_model_alias(model: str, settings: Optional[ModelSettings] = None) -> str:
    """Rewrite a short family name (haiku/sonnet/opus) to a backend id."""
    settings = settings or ModelSettings()
    if is_fully_qualified(model):
        return model
    lowered = model.lower()
    for alias, target in settings.aliases.items():
        if alias in lowered:
            return target
    return model


def resolve_model(
    model: str,
    messages: Iterable[Mapping[str, Any]],
    settings: Optional[ModelSettings] = None,
) -> str:
    """Select then alias-map the model, logging any switch."""
    settings = settings or ModelSettings()
    messages = list(messages or [])
    selected = select_model(model, messages, settings)
    resolved = map_model_alias(selected, settings)
    if resolved != model:
        reason = "images detected" if has_image_content(messages) else "text only"
        logger.info(f"Model selection: {model} -> {resolved} ({reason})")
    else:
        logger.debug(f"Model selection: keeping {model}")
    return resolved


def is_premium_model(model: str, settings: Optional[ModelSettings] = None) -> bool:
    """True when the model belongs to a family that accepts cache hints."""
    settings = settings or ModelSettings()
    lowered = model.lower()
    return any(marker in lowered for marker in settings.premium_markers)
