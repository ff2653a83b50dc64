"""Core module initialization."""

from .backend import (
    build_outbound_headers,
    extract_credential,
    filter_response_headers,
    format_httpx_error,
)
from .exceptions import (
    BackendError,
    ConfigurationError,
    InvalidRequestError,
    ProxyError,
    TranslationError,
)
from .inflight import InFlightRegistry, NullInFlightRegistry, compute_fingerprint
from .registry import get_router, set_router
from .router import BackendStream, BridgeRouter
from .sse import SSELineDecoder, detect_sse_stream_error

__all__ = [
    "BackendError",
    "BackendStream",
    "BridgeRouter",
    "ConfigurationError",
    "InFlightRegistry",
    "InvalidRequestError",
    "NullInFlightRegistry",
    "ProxyError",
    "SSELineDecoder",
    "TranslationError",
    "build_outbound_headers",
    "compute_fingerprint",
    "detect_sse_stream_error",
    "extract_credential",
    "filter_response_headers",
    "format_httpx_error",
    "get_router",
    "set_router",
]
