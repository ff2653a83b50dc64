"""API routes for the bridge."""

from .messages import count_tokens_endpoint, health_endpoint, messages_endpoint

__all__ = [
    "count_tokens_endpoint",
    "health_endpoint",
    "messages_endpoint",
]
