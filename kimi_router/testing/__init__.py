"""Testing utilities for in-process bridge simulations."""

from .assertions import (
    assert_anthropic_message_valid,
    assert_anthropic_sse_valid,
    parse_sse_events,
)
from .fake_upstream import FakeUpstream, UpstreamResponse, encode_sse_data
from .proxy_harness import ProxyHarness
from .response_builders import (
    build_anthropic_request,
    build_openai_chat_response,
    build_openai_stream_chunks,
)

__all__ = [
    # Core simulation classes
    "FakeUpstream",
    "UpstreamResponse",
    "ProxyHarness",
    "encode_sse_data",
    # Builders
    "build_anthropic_request",
    "build_openai_chat_response",
    "build_openai_stream_chunks",
    # Assertions
    "assert_anthropic_message_valid",
    "assert_anthropic_sse_valid",
    "parse_sse_events",
]
