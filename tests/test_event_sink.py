"""Tests for the event sinks."""

from __future__ import annotations

import json
import logging

import httpx
import pytest

from passwordless_auth.services.event_sink import (
    OTP_GENERATED,
    HttpEventSink,
    LoggingEventSink,
    build_event_sink,
)


@pytest.mark.asyncio
async def test_http_sink_posts_event_json():
    received: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(json.loads(request.content))
        return httpx.Response(202)

    sink = HttpEventSink("http://collector.test/events", transport=httpx.MockTransport(handler))
    sink.emit(OTP_GENERATED, {"identity": "u@x.com", "timestamp": 1.5})
    await sink.aclose()

    assert received == [{"event": OTP_GENERATED, "identity": "u@x.com", "timestamp": 1.5}]


@pytest.mark.asyncio
async def test_http_sink_swallows_transport_errors(caplog):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    sink = HttpEventSink("http://collector.test/events", transport=httpx.MockTransport(handler))
    with caplog.at_level(logging.ERROR):
        sink.emit(OTP_GENERATED, {"identity": "u@x.com", "timestamp": 0.0})
        await sink.aclose()

    assert "Event delivery request error" in caplog.text


@pytest.mark.asyncio
async def test_http_sink_logs_error_status(caplog):
    sink = HttpEventSink(
        "http://collector.test/events",
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
    )
    with caplog.at_level(logging.ERROR):
        sink.emit(OTP_GENERATED, {"identity": "u@x.com", "timestamp": 0.0})
        await sink.aclose()

    assert "Event delivery failed: 500" in caplog.text


def test_http_sink_without_loop_drops_event(caplog):
    sink = HttpEventSink("http://collector.test/events")
    with caplog.at_level(logging.WARNING):
        sink.emit(OTP_GENERATED, {"identity": "u@x.com", "timestamp": 0.0})

    assert "dropped" in caplog.text


def test_logging_sink_logs_event(caplog):
    with caplog.at_level(logging.INFO):
        LoggingEventSink().emit("logout", {"identity": "u@x.com", "session_duration_seconds": 3})

    assert "logout" in caplog.text
    assert "u@x.com" in caplog.text


def test_build_event_sink_picks_by_url(settings_factory):
    assert isinstance(build_event_sink(settings_factory()), LoggingEventSink)
    assert isinstance(
        build_event_sink(settings_factory(event_sink_url="http://collector.test/events")),
        HttpEventSink,
    )
