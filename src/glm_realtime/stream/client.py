"""
Realtime Client
===============

Async WebSocket client for the realtime event protocol, with a batch
vision path for video frames.

This client:
    - Connects to the realtime endpoint (bearer credential in the handshake)
    - Sends client events as JSON text frames
    - Runs one background receive loop per connection and forwards every
      event to a registered callback
    - Collects video frames and flushes them in batches to a streaming
      chat completion endpoint, whose output is delivered to the same
      callback as synthesized response.* events

Example:
    from glm_realtime.config import load_config
    from glm_realtime.stream import RealtimeClient

    async def on_event(event):
        print(event.type)

    client = RealtimeClient(load_config(), on_received=on_event)

    async with client:
        await client.send(session_update)
        await client.wait()

Design Rules:
    - No automatic reconnection
    - Connection state and frame buffer use separate locks, never nested
    - A failing receive, parse or callback ends the loop and disconnects
    - A failing send is reported to the caller; the connection stays up
    - Frames are lost if a flush fails (no requeue)
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

import requests
import websockets
from pydantic import ValidationError
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedOK,
    WebSocketException,
)

from glm_realtime.config import Settings
from glm_realtime.models.events import Event, EventType
from glm_realtime.stream.buffer import VideoFrameBuffer
from glm_realtime.stream.completion import (
    StreamingCompletionAdapter,
    build_vision_content,
)


logger = logging.getLogger(__name__)


OnReceived = Callable[[Event], Awaitable[None]]
Connector = Callable[[str, dict, float], Awaitable[Any]]


class RealtimeClientError(Exception):
    """Base class for realtime client errors."""
    pass


class ConnectError(RealtimeClientError):
    """Raised when the WebSocket handshake fails."""
    pass


class NotConnectedError(RealtimeClientError):
    """Raised when sending without a live connection."""
    pass


class FrameValidationError(RealtimeClientError):
    """Raised when a video-frame event is malformed."""
    pass


async def websocket_connector(url: str, headers: dict, open_timeout: float) -> Any:
    """Open a WebSocket connection with the `websockets` asyncio client."""
    return await websockets.connect(
        url,
        additional_headers=headers or None,
        open_timeout=open_timeout,
        max_size=None,
    )


class RealtimeClientMetrics:
    """Metrics for RealtimeClient observability."""

    __slots__ = (
        "events_sent",
        "events_received",
        "parse_errors",
        "callback_errors",
        "frames_collected",
        "flush_count",
        "synthesized_events",
    )

    def __init__(self) -> None:
        self.events_sent: int = 0
        self.events_received: int = 0
        self.parse_errors: int = 0
        self.callback_errors: int = 0
        self.frames_collected: int = 0
        self.flush_count: int = 0
        self.synthesized_events: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "events_sent": self.events_sent,
            "events_received": self.events_received,
            "parse_errors": self.parse_errors,
            "callback_errors": self.callback_errors,
            "frames_collected": self.frames_collected,
            "flush_count": self.flush_count,
            "synthesized_events": self.synthesized_events,
        }


class RealtimeClient:
    """
    Client for one realtime session.

    Attributes:
        url: WebSocket URL of the realtime endpoint
        flush_threshold: Buffered frame count that triggers a flush
        is_connected: Whether a connection is open
        metrics: Operational metrics

    Example:
        client = RealtimeClient(settings, on_received=on_event)
        await client.connect()

        for event in frame_events:
            await client.send_frame_by_video(event)
        await client.flush_video_frames()

        await client.disconnect()
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        on_received: Optional[OnReceived] = None,
        connector: Optional[Connector] = None,
        http_session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the client (disconnected).

        Args:
            settings: Client configuration (defaults if None)
            on_received: Coroutine invoked with every live or synthesized event
            connector: Coroutine opening the transport (WebSocket by default)
            http_session: requests session for the batch completion path
        """
        settings = settings or Settings()
        connection = settings.connection

        self.url = connection.url
        self.flush_threshold = settings.video.flush_threshold
        self._api_key = connection.api_key
        self._open_timeout = connection.open_timeout_seconds
        self._read_timeout = connection.read_timeout_seconds
        self._wait_timeout = connection.wait_timeout_seconds
        self._max_session = connection.max_session_seconds

        self._on_received = on_received
        self._connector = connector or websocket_connector

        # Connection state (guarded by _state_lock)
        self._state_lock = asyncio.Lock()
        self._websocket: Optional[Any] = None
        self._connected: bool = False
        self._receive_task: Optional[asyncio.Task] = None

        # Video batching (buffer has its own lock)
        self._frames = VideoFrameBuffer()
        self._default_instructions = settings.video.default_instructions
        self._instructions = settings.video.default_instructions
        self._completion = StreamingCompletionAdapter(
            api_key=connection.api_key,
            emit_event=self._deliver_synthesized,
            url=settings.completion.url,
            model=settings.completion.model,
            timeout=settings.completion.timeout_seconds,
            session=http_session,
        )

        self.metrics = RealtimeClientMetrics()

    @property
    def is_connected(self) -> bool:
        """Whether a connection is open and its receive loop is active."""
        return self._connected

    @property
    def instructions(self) -> str:
        """Prompt used for the next flush."""
        return self._instructions

    @property
    def buffered_frames(self) -> int:
        """Number of frames waiting for a flush."""
        return self._frames.size

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """
        Open the connection and start the receive loop.

        Returns immediately if already connected.

        Raises:
            ConnectError: If the handshake fails
        """
        async with self._state_lock:
            if self._connected:
                return

            headers = {}
            if self._api_key:
                headers["Authorization"] = f"Bearer {self._api_key}"

            try:
                websocket = await self._connector(self.url, headers, self._open_timeout)
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.error(f"WebSocket dial failed, url: {self.url}, error: {e}")
                raise ConnectError(f"WebSocket dial failed: {e}") from e

            self._websocket = websocket
            self._connected = True
            self._receive_task = asyncio.create_task(
                self._receive_loop(websocket),
                name="glm-realtime-receive",
            )

        logger.info(f"Connected to realtime endpoint: {self.url}")

    async def disconnect(self) -> None:
        """
        Mark the client disconnected and close the transport.

        No-op if not connected. Does not wait for the receive loop.
        """
        async with self._state_lock:
            if not self._connected:
                return
            await self._close_locked()

    async def _disconnect_if_current(self, websocket: Any) -> None:
        async with self._state_lock:
            if self._connected and self._websocket is websocket:
                await self._close_locked()

    async def _close_locked(self) -> None:
        self._connected = False
        websocket = self._websocket
        logger.info("Disconnecting from realtime endpoint")
        await websocket.close()

    async def send(self, event: Event) -> None:
        """
        Send one event.

        Stamps client_timestamp if unset. A write failure is raised to the
        caller but leaves the client marked connected.

        Raises:
            NotConnectedError: If not connected (no I/O attempted)
        """
        async with self._state_lock:
            if not self._connected or self._websocket is None:
                logger.warning(f"Sending {event.type} failed: not connected")
                raise NotConnectedError("not connected")

            event.stamp()
            try:
                await self._websocket.send(event.to_json())
            except (ConnectionClosed, OSError) as e:
                logger.error(f"Send {event.type} failed: {e}")
                raise
            self.metrics.events_sent += 1

    async def wait(self) -> bool:
        """
        Wait for the receive loop to finish, up to the wait timeout.

        The loop is NOT cancelled on timeout and may keep running.

        Returns:
            True if the loop finished, False on timeout.
        """
        task = self._receive_task
        if task is None:
            return True

        logger.info(f"Waiting for exit with timeout {self._wait_timeout:.0f}s ...")
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=self._wait_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Wait timed out after {self._wait_timeout:.0f}s")
            return False

        logger.info("Exited normally")
        return True

    def set_instructions(self, instructions: str) -> None:
        """Set the prompt used by the next flush."""
        self._instructions = instructions
        logger.info(f"Instructions set to: {instructions}")

    # ------------------------------------------------------------------
    # Receive loop
    # ------------------------------------------------------------------

    async def _receive_loop(self, websocket: Any) -> None:
        """
        Read events until the connection ends or something fails.

        Each read waits at most read_timeout; a successful read starts a
        fresh wait. max_session (if set) caps the total loop lifetime.
        """
        loop = asyncio.get_running_loop()
        deadline = None
        if self._max_session is not None:
            deadline = loop.time() + self._max_session

        logger.debug("Receive loop started")
        try:
            while self._connected and self._websocket is websocket:
                timeout = self._read_timeout
                if deadline is not None:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        logger.warning(
                            f"Receive loop reached max session duration "
                            f"of {self._max_session:.0f}s"
                        )
                        break
                    timeout = min(timeout, remaining)

                try:
                    message = await asyncio.wait_for(websocket.recv(), timeout=timeout)
                except asyncio.TimeoutError:
                    logger.warning(f"No message received within {timeout:.1f}s")
                    break
                except ConnectionClosedOK:
                    logger.info("Connection closed normally")
                    break
                except ConnectionClosed as e:
                    logger.warning(f"Connection closed with error: {e}")
                    break
                except OSError as e:
                    logger.error(f"Read failed: {e}")
                    break

                try:
                    event = Event.from_json(message)
                except ValidationError as e:
                    self.metrics.parse_errors += 1
                    logger.error(f"Failed to parse event: {e}")
                    break
                self.metrics.events_received += 1

                if (
                    event.type == EventType.SESSION_UPDATE
                    and event.session is not None
                    and event.session.instructions
                ):
                    self._instructions = event.session.instructions
                    logger.info(f"Updated instructions: {self._instructions}")

                if self._on_received is None:
                    logger.debug("No callback registered, skipping")
                    continue

                try:
                    await self._on_received(event)
                except Exception as e:
                    self.metrics.callback_errors += 1
                    logger.error(f"Callback failed on {event.type}: {e}")
                    break
        finally:
            await self._disconnect_if_current(websocket)
            logger.debug("Receive loop stopped")

    # ------------------------------------------------------------------
    # Video frames
    # ------------------------------------------------------------------

    async def send_frame_by_video(self, event: Event) -> Optional[str]:
        """
        Buffer one video frame, flushing when the threshold is reached.

        The flush runs inline on the caller's task.

        Args:
            event: An input video-frame append event with a non-empty frame

        Returns:
            Full response text if this call flushed, else None.

        Raises:
            FrameValidationError: Wrong event type or empty frame
            CompletionAPIError: If the triggered flush fails
        """
        if event.type != EventType.INPUT_VIDEO_FRAME_APPEND:
            raise FrameValidationError(
                f"event type is not {EventType.INPUT_VIDEO_FRAME_APPEND.value}"
            )
        if not event.video_frame:
            raise FrameValidationError("event video_frame is empty")

        event.stamp()
        frame_count = await self._frames.append(event.video_frame)
        self.metrics.frames_collected += 1
        logger.debug(
            f"Frame collected, total frames: {frame_count}, "
            f"frame size: {len(event.video_frame)} bytes"
        )

        if frame_count >= self.flush_threshold:
            logger.info(f"Auto-flushing {frame_count} frames")
            return await self.flush_video_frames()
        return None

    async def flush_video_frames(self) -> Optional[str]:
        """
        Drain the frame buffer and send it as one batch request.

        Returns:
            Full response text, or None if there was nothing to flush.

        Raises:
            CompletionAPIError: On request failure (drained frames are lost)
        """
        frames = await self._frames.drain()
        if not frames:
            logger.debug("No frames to flush")
            return None

        logger.info(f"Flushing {len(frames)} frames to API")
        content = build_vision_content(
            self._instructions or self._default_instructions,
            frames,
        )
        self.metrics.flush_count += 1
        return await self._completion.complete(content)

    async def _deliver_synthesized(self, event: Event) -> None:
        """Deliver a synthesized event; callback errors are logged only."""
        self.metrics.synthesized_events += 1
        if self._on_received is None:
            return
        try:
            await self._on_received(event)
        except Exception as e:
            self.metrics.callback_errors += 1
            logger.error(f"Failed to deliver synthesized {event.type}: {e}")

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    def get_metrics(self) -> dict:
        """Get client metrics for observability."""
        return {
            **self.metrics.to_dict(),
            "connected": self._connected,
            "buffer": self._frames.metrics(),
            "batch_requests": self._completion.request_count,
        }

    async def __aenter__(self) -> "RealtimeClient":
        """Async context manager entry."""
        await self.connect()
        return self

    async def close(self) -> None:
        """Disconnect and release the batch path's HTTP session."""
        await self.disconnect()
        self._completion.close()

    async def __aexit__(self, *args) -> None:
        """Async context manager exit."""
        await self.close()
