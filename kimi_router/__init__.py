"""kimi-router - Anthropic Messages API bridge for OpenAI-compatible backends

Lets an Anthropic-speaking coding assistant talk to an OpenAI-compatible
model aggregator (OpenRouter by default).

This module provides:
- Request translation with automatic model selection
- Tool call / tool result pairing repair
- Non-streaming and streaming response translation

Example:
    >>> from kimi_router.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="127.0.0.1", port=3000)
"""

from .config_loader import load_config
from .logging import logger, setup_logging
from .settings import BridgeSettings

__all__ = [
    "BridgeSettings",
    "load_config",
    "logger",
    "setup_logging",
]
