"""Backend request helpers: credentials, outbound headers and error text."""

import logging
from typing import Any, Mapping, Optional

import httpx

from ..settings import BackendSettings

logger = logging.getLogger("kimi-router")

CHAT_COMPLETIONS_PATH = "/chat/completions"

HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}


def extract_credential(headers: Mapping[str, str]) -> Optional[str]:
    """Return the caller's credential from x-api-key or a Bearer Authorization header."""
    api_key = headers.get("x-api-key")
    if api_key and api_key.strip():
        return api_key.strip()

    authorization = headers.get("authorization") or ""
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return None


def build_outbound_headers(
    credential: Optional[str],
    settings: BackendSettings,
    client_host: Optional[str] = None,
) -> dict[str, str]:
    """Build headers for the outbound chat completions request.

    The credential is forwarded opaquely as a Bearer token.
    """
    headers = {
        "Content-Type": "application/json",
        "User-Agent": settings.user_agent,
        "HTTP-Referer": settings.referer,
        "X-Title": settings.title,
        # Explicitly request uncompressed responses
        "Accept-Encoding": "identity",
    }
    if credential:
        headers["Authorization"] = f"Bearer {credential}"
    if client_host:
        headers["X-Forwarded-For"] = client_host
    return headers


def format_httpx_error(exc: Any, settings: BackendSettings, url: Optional[str] = None) -> str:
    """Produce a detailed, user-facing description of an httpx error."""
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)

    try:
        request = getattr(exc, "request", None)
    except RuntimeError:
        # httpx raises when the request attribute was never set
        request = None
    if request is not None:
        parts.append(f"request={request.method} {request.url}")
    elif url:
        parts.append(f"url={url}")

    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={settings.timeout}s")

    return "; ".join(parts)


def filter_response_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Filter response headers, removing hop-by-hop headers."""
    filtered: dict[str, str] = {}
    for key, value in headers.items():
        key_lower = key.lower()
        # Drop headers FastAPI will recompute or that no longer match the payload
        if key_lower in HOP_BY_HOP_HEADERS or key_lower in {
            "content-length",
            "transfer-encoding",
            "content-encoding",
        }:
            continue
        filtered[key] = value
    return filtered
