"""
Stream Module
=============

Realtime connection, video frame batching and the batch completion path.

This module provides:
    - RealtimeClient: WebSocket session with a background receive loop
    - VideoFrameBuffer: Lock-protected buffer of pending video frames
    - StreamingCompletionAdapter: SSE chat completion -> realtime events

Example:
    from glm_realtime.stream import RealtimeClient

    client = RealtimeClient(settings, on_received=on_event)

    async with client:
        await client.send(event)
        await client.wait()
"""

from glm_realtime.stream.buffer import VideoFrameBuffer
from glm_realtime.stream.completion import (
    CompletionAPIError,
    StreamingCompletionAdapter,
    build_vision_content,
)
from glm_realtime.stream.client import (
    ConnectError,
    FrameValidationError,
    NotConnectedError,
    RealtimeClient,
    RealtimeClientError,
    RealtimeClientMetrics,
)


__all__ = [
    "RealtimeClient",
    "RealtimeClientMetrics",
    "RealtimeClientError",
    "ConnectError",
    "NotConnectedError",
    "FrameValidationError",
    "VideoFrameBuffer",
    "StreamingCompletionAdapter",
    "CompletionAPIError",
    "build_vision_content",
]
