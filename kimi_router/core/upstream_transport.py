"""Per-host HTTPX transports, used to point the backend at an in-process app."""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("kimi-router")

_TRANSPORTS: dict[str, httpx.AsyncBaseTransport] = {}


def _host_key(host: str) -> str:
    return host.strip().lower()


def register_upstream_transport(url: str, transport: httpx.AsyncBaseTransport) -> None:
    """Route every request for the URL's netloc through ``transport``."""
    host = urlparse(url).netloc
    if not host:
        raise ValueError(f"URL has no host: {url!r}")
    _TRANSPORTS[_host_key(host)] = transport
    logger.debug("Registered upstream transport for host '%s'", host)


def clear_upstream_transports() -> None:
    _TRANSPORTS.clear()


def get_upstream_transport(url: str) -> Optional[httpx.AsyncBaseTransport]:
    """Return a registered transport for the URL's netloc (if any)."""
    host = urlparse(url).netloc if url else ""
    if not host:
        return None
    return _TRANSPORTS.get(_host_key(host))
