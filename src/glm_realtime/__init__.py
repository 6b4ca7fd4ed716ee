"""
GLM Realtime
============

Async client for the GLM realtime event protocol.

The client keeps a WebSocket session open to the realtime endpoint and
delivers every server event to a single callback. Video frames can instead
be batched and sent to a vision chat completion endpoint; its streamed
answer reaches the same callback as synthesized response.* events, so
consumers handle both paths the same way.

Components:
    - models: Event schema and event type identifiers
    - stream: RealtimeClient, VideoFrameBuffer, StreamingCompletionAdapter
    - config: Settings loading and logging setup

Example:
    from glm_realtime.config import load_config
    from glm_realtime.stream import RealtimeClient
"""

__version__ = "0.1.0"

from glm_realtime.models.events import Event, EventType
from glm_realtime.stream.client import RealtimeClient

__all__ = [
    "__version__",
    "Event",
    "EventType",
    "RealtimeClient",
]
