"""Pytest configuration and fixtures for testing."""

from __future__ import annotations

from typing import Any, Generator

import httpx
import pytest

from kimi_router.core.upstream_transport import (
    clear_upstream_transports,
    register_upstream_transport,
)
from kimi_router.testing import FakeUpstream, ProxyHarness

UPSTREAM_BASE_URL = "http://upstream.local/v1"


# =============================================================================
# Transport Registry Fixtures
# =============================================================================


@pytest.fixture
def clear_transport_registry() -> Generator[None, None, None]:
    """Clear upstream transport registry after test.

    Use this fixture in tests that register fake transports.
    """
    yield
    clear_upstream_transports()


# =============================================================================
# Harness Configuration Builders
# =============================================================================


def build_bridge_config(
    base_url: str = UPSTREAM_BASE_URL,
    *,
    default_model: str = "moonshotai/kimi-k2",
    vision_model: str = "anthropic/claude-3.5-sonnet",
    auto_select: bool = True,
    inflight: bool = False,
) -> dict[str, Any]:
    """Build a config dict for bridge testing."""
    return {
        "bridge_settings": {
            "backend": {
                "base_url": base_url,
                "request_timeout": 10,
                "user_agent": "Kimi-Router/test",
                "referer": "https://bridge.test",
                "title": "Kimi Router Test",
            },
            "models": {
                "auto_select": auto_select,
                "default": default_model,
                "vision": vision_model,
            },
            "inflight": {"enabled": inflight},
        }
    }


def register_fake_upstream(upstream: FakeUpstream, base_url: str = UPSTREAM_BASE_URL) -> None:
    """Route requests for ``base_url``'s host to the FakeUpstream app."""
    register_upstream_transport(base_url, httpx.ASGITransport(app=upstream.app))


# =============================================================================
# Harness Fixtures
# =============================================================================


@pytest.fixture
def messages_harness(
    clear_transport_registry: None,
) -> Generator[tuple[FakeUpstream, ProxyHarness], None, None]:
    """Create a harness configured for messages endpoint testing.

    Returns:
        Tuple of (FakeUpstream, ProxyHarness)

    Usage:
        async def test_messages(messages_harness):
            upstream, harness = messages_harness
            upstream.enqueue_openai_chat_response("Hello")
            # ... test code ...
    """
    upstream = FakeUpstream()
    register_fake_upstream(upstream)

    harness = ProxyHarness(build_bridge_config())
    try:
        yield upstream, harness
    finally:
        harness.close()
