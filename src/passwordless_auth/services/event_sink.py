"""Event sinks — fire-and-forget delivery of authentication audit events.

Every event carries the identity it concerns and a ``timestamp``; some add
extra keys (``reason`` for validation failures, ``session_duration_seconds``
for logouts).  A sink must never block or fail the code that emits to it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

import httpx

from passwordless_auth.config import Settings, settings

logger = logging.getLogger(__name__)

# ── Event names ──────────────────────────────────────────
OTP_GENERATED = "otp_generated"
OTP_VALIDATION_SUCCESS = "otp_validation_success"
OTP_VALIDATION_FAILURE = "otp_validation_failure"
LOGOUT = "logout"


class EventSink(Protocol):
    """Receives audit events; implementations must return promptly."""

    def emit(self, event_name: str, payload: dict[str, Any]) -> None: ...

    async def aclose(self) -> None: ...


class LoggingEventSink:
    """Writes every event to the application log."""

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        logger.info("Event %s: %s", event_name, payload)

    async def aclose(self) -> None:
        return None


class HttpEventSink:
    """POSTs events as JSON to an analytics collector.

    Each event is delivered from its own background task so :meth:`emit`
    returns immediately.  Delivery failures are logged and dropped.
    """

    def __init__(
        self,
        url: str,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._transport = transport
        self._timeout = timeout if timeout is not None else settings.event_sink_timeout_seconds
        self._pending: set[asyncio.Task[None]] = set()

    def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        logger.debug("Event %s: %s", event_name, payload)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop — event %s dropped", event_name)
            return

        task = loop.create_task(self._post({"event": event_name, **payload}))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def aclose(self) -> None:
        """Wait for in-flight deliveries to finish."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def _post(self, body: dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(self._url, json=body)
            if resp.status_code >= 400:
                logger.error(
                    "Event delivery failed: %s %s", resp.status_code, resp.text
                )
        except httpx.HTTPError as exc:
            logger.exception("Event delivery request error: %s", exc)


def build_event_sink(config: Settings | None = None) -> LoggingEventSink | HttpEventSink:
    """Pick the sink configured by *config* (defaults to the global settings)."""
    config = config or settings
    if config.event_sink_url:
        logger.info("Delivering events to %s", config.event_sink_url)
        return HttpEventSink(config.event_sink_url, timeout=config.event_sink_timeout_seconds)
    return LoggingEventSink()
