"""SSE (Server-Sent Events) stream utilities and error detection."""

import codecs
import json
from typing import Any, Optional

DONE_SENTINEL = "[DONE]"


class SSELineDecoder:
    """Split an arbitrarily chunked byte stream into complete text lines.

    Only the trailing partial line is carried over between chunks, so memory
    stays bounded by the longest single line.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes) -> list[str]:
        if not chunk:
            return []
        text = self._decoder.decode(chunk)
        text = self._pending + text.replace("\r\n", "\n").replace("\r", "\n")
        lines = text.split("\n")
        self._pending = lines.pop()
        return lines

    def flush(self) -> list[str]:
        """Return whatever is left after the stream ended without a newline."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        if not tail:
            return []
        return [tail]


def parse_data_line(line: str) -> Optional[str]:
    """Return the payload of a ``data:`` line, or None for any other line."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


def format_sse_event(event_type: str, data: dict[str, Any]) -> bytes:
    """Format one named SSE event."""
    return f"event: {event_type}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n".encode("utf-8")


def detect_sse_stream_error(parsed: Any) -> Optional[str]:
    """
    Check a decoded stream chunk for an in-band error object.

    Returns an error message if an error is detected, None otherwise.

    Detects patterns like:
    - data: {"type":"error","error":{...}}
    - data: {"error":{...}}
    """
    if not isinstance(parsed, dict):
        return None

    if parsed.get("type") == "error":
        error_obj = parsed.get("error") or {}
        if isinstance(error_obj, dict):
            error_msg = error_obj.get("message") or str(error_obj)
            http_code = error_obj.get("http_code", error_obj.get("code", "unknown"))
        else:
            error_msg = str(error_obj) or "unknown error"
            http_code = "unknown"
        return f"SSE stream error: {error_msg} (http_code={http_code})"

    error_obj = parsed.get("error")
    if isinstance(error_obj, dict):
        error_msg = error_obj.get("message") or str(error_obj)
        error_type = error_obj.get("type", error_obj.get("code", "unknown"))
        return f"SSE stream error: {error_msg} (type={error_type})"

    return None
