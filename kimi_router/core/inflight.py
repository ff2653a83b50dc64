"""Best-effort suppression of identical concurrent non-streaming requests.

While a request is in flight, a second request with the same fingerprint
awaits the first one's result instead of calling the backend again. Nothing
is cached once the first request finishes.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, TypeVar

logger = logging.getLogger("kimi-router")

T = TypeVar("T")

FINGERPRINT_LENGTH = 16


def compute_fingerprint(credential: Optional[str], payload: Mapping[str, Any]) -> str:
    """Hash the credential and the whole outbound request body.

    Every field that can change the reply takes part (model, messages,
    tools, sampling parameters); only the ``stream`` flag is left out. The
    digest, not the content, is truncated.
    """
    credential_digest = hashlib.sha256((credential or "").encode("utf-8")).hexdigest()
    body = {key: value for key, value in payload.items() if key != "stream"}
    serialized = json.dumps(body, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    material = f"{credential_digest}\n{serialized}"
    return hashlib.sha256(material.encode("utf-8")).hexdigest()[:FINGERPRINT_LENGTH]


def _consume_outcome(task: asyncio.Future) -> None:
    # Mark the exception retrieved when no caller was left to receive it
    if not task.cancelled():
        task.exception()


class _InFlightCall:
    __slots__ = ("task", "waiters")

    def __init__(self, task: asyncio.Future) -> None:
        self.task = task
        self.waiters = 0


class InFlightRegistry:
    """Shares the outcome of a running call with identical concurrent calls.

    The backend call runs as a task owned by the registry. Callers await it
    through ``asyncio.shield``, so one caller going away does not cancel the
    call for the others; the task is cancelled only when its last caller
    is cancelled.
    """

    def __init__(self) -> None:
        self._pending: dict[str, _InFlightCall] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def _forget(self, fingerprint: str, call: _InFlightCall) -> None:
        if self._pending.get(fingerprint) is call:
            del self._pending[fingerprint]

    async def run(self, fingerprint: str, factory: Callable[[], Awaitable[T]]) -> T:
        call = self._pending.get(fingerprint)
        if call is None:
            call = _InFlightCall(asyncio.ensure_future(factory()))
            call.task.add_done_callback(lambda _task: self._forget(fingerprint, call))
            call.task.add_done_callback(_consume_outcome)
            self._pending[fingerprint] = call
        else:
            logger.info(f"Joining in-flight request {fingerprint}")

        call.waiters += 1
        try:
            return await asyncio.shield(call.task)
        except asyncio.CancelledError:
            if call.waiters == 1 and not call.task.done():
                logger.info(f"Last caller left in-flight request {fingerprint}; cancelling it")
                call.task.cancel()
            raise
        finally:
            call.waiters -= 1


class NullInFlightRegistry:
    """Registry that never joins requests."""

    def __len__(self) -> int:
        return 0

    async def run(self, fingerprint: str, factory: Callable[[], Awaitable[T]]) -> T:
        return await factory()
