"""API module for the bridge."""

from .routes import count_tokens_endpoint, health_endpoint, messages_endpoint

__all__ = [
    "count_tokens_endpoint",
    "health_endpoint",
    "messages_endpoint",
]
