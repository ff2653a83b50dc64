"""Forwarding of translated requests to the chat completions backend."""

import json
import logging
from typing import Any, AsyncIterator, Mapping, Optional, Union

import httpx

from ..settings import BridgeSettings
from .backend import (
    CHAT_COMPLETIONS_PATH,
    build_outbound_headers,
    filter_response_headers,
)
from .exceptions import BackendError, TranslationError
from .inflight import InFlightRegistry, NullInFlightRegistry, compute_fingerprint
from .upstream_transport import get_upstream_transport

logger = logging.getLogger("kimi-router")


def _safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        key: ("***" if key.lower() in {"authorization", "x-api-key"} else value)
        for key, value in headers.items()
    }


class BackendStream:
    """An open streaming backend response; close it when done reading."""

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient) -> None:
        self.response = response
        self._client = client
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        # Decoded bytes so content-encoding doesn't leak compressed data
        try:
            async for chunk in self.response.aiter_bytes():
                if chunk:
                    yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing stream for {self.response.request.url}")
        await self.response.aclose()
        await self._client.aclose()


class BridgeRouter:
    """Sends translated requests to the single configured backend.

    There are no retries: a failure is reported to the caller as is.
    """

    def __init__(
        self,
        settings: BridgeSettings,
        inflight: Optional[Union[InFlightRegistry, NullInFlightRegistry]] = None,
    ) -> None:
        self.settings = settings
        self.backend = settings.backend
        if inflight is None:
            inflight = InFlightRegistry() if settings.inflight.enabled else NullInFlightRegistry()
        self.inflight = inflight

    @property
    def url(self) -> str:
        return self.backend.build_url(CHAT_COMPLETIONS_PATH)

    async def forward_request(
        self,
        payload: Mapping[str, Any],
        credential: Optional[str],
        *,
        client_host: Optional[str] = None,
        stream: bool = False,
    ) -> Union[dict[str, Any], BackendStream]:
        """Send a chat completions request.

        Returns the parsed JSON body, or an open ``BackendStream`` when
        ``stream`` is set.

        Raises:
            BackendError: The backend answered with a non-2xx status.
            TranslationError: A non-streaming body was not valid JSON.
            httpx.HTTPError: The backend could not be reached.
        """
        logger.info(
            f"Forwarding request for model: {payload.get('model')}, stream: {stream}"
        )
        headers = build_outbound_headers(credential, self.backend, client_host)
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")

        if stream:
            return await self._streaming_request(headers, body)

        fingerprint = compute_fingerprint(credential, payload)
        return await self.inflight.run(
            fingerprint, lambda: self._json_request(headers, body)
        )

    async def _json_request(self, headers: dict[str, str], body: bytes) -> dict[str, Any]:
        url = self.url
        logger.debug(f"Initiating non-streaming request to {url}")
        transport = get_upstream_transport(url)

        async with httpx.AsyncClient(
            timeout=self.backend.timeout, transport=transport, follow_redirects=True
        ) as client:
            resp = await client.post(url, headers=headers, content=body)

        logger.debug(f"Received response from {url}: status {resp.status_code}")

        if not resp.is_success:
            logger.warning(f"Backend {url} returned error status {resp.status_code}")
            raise BackendError(
                resp.status_code, resp.content, filter_response_headers(resp.headers)
            )

        try:
            parsed = resp.json()
        except ValueError as exc:
            raise TranslationError(f"Backend returned invalid JSON: {exc}") from exc
        if not isinstance(parsed, dict):
            raise TranslationError("Backend response is not a JSON object")
        return parsed

    async def _streaming_request(self, headers: dict[str, str], body: bytes) -> BackendStream:
        url = self.url
        timeout = self.backend.timeout
        logger.debug(f"Setting up streaming client for {url}")
        stream_timeout = httpx.Timeout(
            connect=timeout, read=None, write=timeout, pool=timeout
        )
        transport = get_upstream_transport(url)
        client = httpx.AsyncClient(timeout=stream_timeout, transport=transport, follow_redirects=True)
        try:
            request = client.build_request("POST", url, headers=headers, content=body)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug("Request headers: %s", _safe_headers_for_log(request.headers))
            resp = await client.send(request, stream=True)
        except Exception as exc:
            logger.error(f"Failed to send streaming request to {url}: {exc} (type: {exc.__class__.__name__})")
            await client.aclose()
            raise

        if not resp.is_success:
            logger.warning(
                f"Streaming request to {url} returned error status {resp.status_code}"
            )
            try:
                data = await resp.aread()
            finally:
                await resp.aclose()
                await client.aclose()
            raise BackendError(resp.status_code, data, filter_response_headers(resp.headers))

        return BackendStream(resp, client)
