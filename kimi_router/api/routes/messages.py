"""Anthropic-compatible Messages API endpoint."""

import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Mapping, Optional

import httpx
from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...core import (
    BackendError,
    InvalidRequestError,
    TranslationError,
    extract_credential,
    format_httpx_error,
)
from ...core.registry import get_router
from ...messages import (
    ChatToMessagesStreamAdapter,
    chat_completion_to_messages,
    messages_to_chat_completions,
)

logger = logging.getLogger("kimi-router")

CHARS_PER_TOKEN = 4

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _anthropic_error_response(
    message: str,
    *,
    error_type: str = "invalid_request_error",
    status_code: int = 400,
    error_code: Optional[str] = None,
    param: Optional[str] = None,
) -> JSONResponse:
    error: dict[str, Any] = {"type": error_type, "message": message}
    if error_code:
        error["code"] = error_code
    if param:
        error["param"] = param
    payload = {"type": "error", "error": error}
    return JSONResponse(payload, status_code=status_code)


def _backend_error_response(exc: BackendError) -> Response:
    """Forward a backend error reply verbatim."""
    headers = {
        key: value for key, value in exc.headers.items() if key.lower() == "content-type"
    }
    return Response(content=exc.body, status_code=exc.status_code, headers=headers)


async def _read_json_body(request: Request, req_id: str) -> tuple[Optional[Any], Optional[Response]]:
    """Return (payload, None) or (None, error response)."""
    try:
        body = await request.body()
    except ClientDisconnect:
        logger.warning(f"[{req_id}] ClientDisconnect while reading request body")
        return None, Response(status_code=499)  # Client Closed Request

    try:
        return json.loads(body or b"{}"), None
    except json.JSONDecodeError as exc:
        logger.warning(f"[{req_id}] Invalid JSON payload: {exc}")
        return None, _anthropic_error_response(
            "Invalid JSON payload",
            error_code="invalid_json",
        )


async def messages_endpoint(request: Request) -> Response:
    """POST /v1/messages - Anthropic Messages API compatible endpoint."""
    # Generate request ID for log correlation
    req_id = uuid.uuid4().hex[:8]
    start_time = time.perf_counter()

    client_host = request.client.host if request.client else None
    logger.info(
        f"[{req_id}] Messages API request from {client_host or 'unknown'}, "
        f"Content-Length: {request.headers.get('content-length', 'not-set')}"
    )

    payload, error_response = await _read_json_body(request, req_id)
    if error_response is not None:
        return error_response

    router = get_router()

    # Translate Anthropic Messages request to OpenAI Chat Completions
    try:
        openai_payload = messages_to_chat_completions(payload, router.settings.models)
    except InvalidRequestError as exc:
        logger.warning(f"[{req_id}] Rejected messages request: {exc.message}")
        return _anthropic_error_response(exc.message, error_code=exc.code)

    model_name = openai_payload["model"]
    is_stream = openai_payload["stream"]
    credential = extract_credential(request.headers)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"[{req_id}] Translated to OpenAI format: model={model_name}, "
            f"messages_count={len(openai_payload['messages'])}, stream={is_stream}"
        )

    # Generate message ID for the response
    message_id = f"msg_{uuid.uuid4().hex[:24]}"

    try:
        result = await router.forward_request(
            openai_payload,
            credential,
            client_host=client_host,
            stream=is_stream,
        )
    except BackendError as exc:
        logger.warning(f"[{req_id}] Backend returned status {exc.status_code} for {model_name}")
        return _backend_error_response(exc)
    except httpx.HTTPError as exc:
        elapsed = time.perf_counter() - start_time
        detail = format_httpx_error(exc, router.backend, router.url)
        logger.error(f"[{req_id}] Backend error after {elapsed:.3f}s: {detail}")
        return _anthropic_error_response(
            detail,
            error_type="api_error",
            status_code=502,
            error_code="backend_error",
        )
    except TranslationError as exc:
        logger.error(f"[{req_id}] Failed to read backend response: {exc.message}")
        return _anthropic_error_response(
            f"Failed to translate response: {exc.message}",
            error_type="api_error",
            status_code=500,
            error_code="translation_error",
        )

    if is_stream:
        elapsed = time.perf_counter() - start_time
        logger.info(
            f"[{req_id}] Starting translated streaming response for {model_name}, "
            f"setup took {elapsed:.3f}s"
        )
        adapter = ChatToMessagesStreamAdapter(message_id, model_name)

        async def adapted_stream() -> AsyncIterator[bytes]:
            """Wrap the OpenAI stream and convert to Anthropic format."""
            try:
                async for event in adapter.adapt_stream(result.iter_bytes()):
                    yield event
            except httpx.HTTPError as exc:
                logger.warning(
                    f"[{req_id}] Backend stream broke off: "
                    f"{format_httpx_error(exc, router.backend, router.url)}"
                )
                for event in adapter.finish():
                    yield event
            except Exception:
                logger.exception(f"[{req_id}] Stream translation failed; closing message")
                for event in adapter.finish():
                    yield event
            finally:
                await result.aclose()
                logger.info(
                    f"[{req_id}] Finished streaming response for {model_name}, "
                    f"took {time.perf_counter() - start_time:.3f}s"
                )

        return StreamingResponse(
            adapted_stream(),
            status_code=200,
            headers=STREAM_HEADERS,
            media_type="text/event-stream",
        )

    # Handle non-streaming response - translate the response body
    try:
        anthropic_response = chat_completion_to_messages(result, model_name, message_id)
    except BackendError as exc:
        logger.warning(f"[{req_id}] Backend reported an error for {model_name}")
        return _backend_error_response(exc)
    except TranslationError as exc:
        logger.error(f"[{req_id}] Failed to translate response: {exc.message}")
        return _anthropic_error_response(
            f"Failed to translate response: {exc.message}",
            error_type="api_error",
            status_code=500,
            error_code="translation_error",
        )

    elapsed = time.perf_counter() - start_time
    logger.info(
        f"[{req_id}] Completed translated non-streaming response for {model_name}, "
        f"stop_reason={anthropic_response['stop_reason']}, took {elapsed:.3f}s"
    )
    return JSONResponse(anthropic_response)


def _count_text(value: Any) -> int:
    if isinstance(value, str):
        return len(value)
    if isinstance(value, Mapping):
        return sum(_count_text(v) for v in value.values())
    if isinstance(value, list):
        return sum(_count_text(v) for v in value)
    return 0


def estimate_tokens(payload: Mapping[str, Any]) -> int:
    """Rough token estimate: four characters per token, at least one."""
    chars = (
        _count_text(payload.get("system"))
        + _count_text(payload.get("messages"))
        + _count_text(payload.get("tools"))
    )
    return max(1, chars // CHARS_PER_TOKEN)


async def count_tokens_endpoint(request: Request) -> Response:
    """POST /v1/messages/count_tokens - approximate input token count."""
    req_id = uuid.uuid4().hex[:8]
    payload, error_response = await _read_json_body(request, req_id)
    if error_response is not None:
        return error_response
    if not isinstance(payload, Mapping):
        return _anthropic_error_response(
            "Request body must be a JSON object",
            error_code="invalid_json_shape",
        )
    if not isinstance(payload.get("messages"), list):
        return _anthropic_error_response(
            "messages must be a list",
            error_code="missing_parameter",
            param="messages",
        )

    input_tokens = estimate_tokens(payload)
    logger.debug(f"[{req_id}] Estimated {input_tokens} input tokens")
    return JSONResponse({"input_tokens": input_tokens})


async def health_endpoint() -> dict[str, str]:
    """GET /health - liveness check."""
    return {"status": "ok"}
