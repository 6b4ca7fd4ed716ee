"""
Test Configuration
==================

Pytest fixtures and in-memory fakes for the realtime client.

The WebSocket transport and the HTTP session are replaced with fakes so
tests never touch the network:
    - FakeWebSocket / FakeConnector stand in for `websockets.connect`
    - FakeHTTPSession / FakeResponse stand in for `requests.Session`
"""

import asyncio
import json
import time

import pytest
from websockets.exceptions import ConnectionClosedOK

from glm_realtime.config import (
    CompletionConfig,
    ConnectionConfig,
    Settings,
    VideoConfig,
)
from glm_realtime.models.events import Event, EventType


# =============================================================================
# Transport fakes
# =============================================================================

class FakeWebSocket:
    """In-memory duplex connection; tests push inbound messages."""

    def __init__(self) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[str] = []
        self.close_calls: int = 0
        self.send_error: BaseException | None = None

    def push(self, message) -> None:
        """Queue an inbound message (Event, str, or exception to raise)."""
        if isinstance(message, Event):
            message = message.to_json()
        self.incoming.put_nowait(message)

    async def send(self, data: str) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(data)

    async def recv(self) -> str:
        item = await self.incoming.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self.incoming.put_nowait(ConnectionClosedOK(None, None))


class FakeConnector:
    """Records dial attempts and hands out a FakeWebSocket."""

    def __init__(self, websocket: FakeWebSocket, error: BaseException | None = None) -> None:
        self.websocket = websocket
        self.error = error
        self.calls: list[tuple] = []

    async def __call__(self, url: str, headers: dict, open_timeout: float) -> FakeWebSocket:
        self.calls.append((url, headers, open_timeout))
        if self.error is not None:
            raise self.error
        return self.websocket


# =============================================================================
# HTTP fakes
# =============================================================================

class FakeResponse:
    """Streaming response yielding pre-recorded SSE lines."""

    def __init__(
        self,
        status_code: int = 200,
        lines=(),
        text: str = "",
        delay: float = 0.0,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self._lines = list(lines)
        self.delay = delay
        self.closed = False

    def iter_lines(self):
        for line in self._lines:
            if self.delay:
                time.sleep(self.delay)
            if isinstance(line, BaseException):
                raise line
            yield line

    def close(self) -> None:
        self.closed = True


class FakeHTTPSession:
    """Records POSTs and returns queued responses in order."""

    def __init__(
        self,
        *responses,
        error: BaseException | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = list(responses)
        self.error = error
        self.delay = delay
        self.requests: list[dict] = []
        self.closed = False

    def post(self, url, data=None, headers=None, stream=False, timeout=None):
        self.requests.append({
            "url": url,
            "body": json.loads(data),
            "headers": headers,
            "stream": stream,
            "timeout": timeout,
        })
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return FakeResponse(lines=sse_lines())

    def close(self) -> None:
        self.closed = True


def sse_chunk(content) -> bytes:
    """One `data:` line carrying a chat completion delta."""
    chunk = {"id": "chatcmpl-1", "choices": [{"index": 0, "delta": {"content": content}}]}
    return f"data: {json.dumps(chunk)}".encode("utf-8")


def sse_lines(*deltas: str, done: bool = True) -> list[bytes]:
    """SSE body: one data line per delta (blank-line separated), then [DONE]."""
    lines: list[bytes] = []
    for delta in deltas:
        lines.append(sse_chunk(delta))
        lines.append(b"")
    if done:
        lines.append(b"data: [DONE]")
    return lines


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def settings():
    """Settings with short timeouts and a test credential."""
    return Settings(
        connection=ConnectionConfig(
            url="ws://realtime.test/api/realtime",
            api_key="test-key",
            read_timeout_seconds=1.0,
            wait_timeout_seconds=1.0,
        ),
        video=VideoConfig(flush_threshold=10),
        completion=CompletionConfig(url="https://vision.test/chat/completions"),
    )


@pytest.fixture
def websocket():
    return FakeWebSocket()


@pytest.fixture
def connector(websocket):
    return FakeConnector(websocket)


@pytest.fixture
def http_session():
    return FakeHTTPSession()


@pytest.fixture
def received():
    """List collecting every event delivered to the callback."""
    return []


@pytest.fixture
def on_received(received):
    async def callback(event: Event) -> None:
        received.append(event)
    return callback


@pytest.fixture
def make_frame_event():
    """Factory for video-frame append events."""
    def factory(payload: bytes = b"\xff\xd8\xff\xe0" + b"\x00" * 4092) -> Event:
        return Event(type=EventType.INPUT_VIDEO_FRAME_APPEND.value, video_frame=payload)
    return factory
