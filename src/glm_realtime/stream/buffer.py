"""
Video Frame Buffer
==================

Async-safe ordered buffer for video frames awaiting a batch flush.

This module provides the VideoFrameBuffer class, which sits between the
caller submitting video-frame events and the batch completion path.

Design Rules:
    - Append-only until drained
    - drain() removes exactly the frames present when the lock is taken
    - Frames are opaque bytes (NOT decoded or re-encoded)
    - Does NOT decide when to flush (the client compares sizes)
"""

import asyncio
import logging


logger = logging.getLogger(__name__)


class VideoFrameBuffer:
    """
    Ordered, lock-protected queue of pending frame payloads.

    Unlike a bounded ingestion queue this buffer never drops frames: it
    grows until the owner drains it.

    Example:
        buffer = VideoFrameBuffer()

        # Producer
        size = await buffer.append(jpeg_bytes)

        # Flush
        frames = await buffer.drain()
    """

    def __init__(self) -> None:
        self._frames: list[bytes] = []
        self._lock = asyncio.Lock()
        self._total_appended: int = 0
        self._total_drained: int = 0

    @property
    def size(self) -> int:
        """Current number of buffered frames."""
        return len(self._frames)

    @property
    def total_appended(self) -> int:
        """Total frames ever appended."""
        return self._total_appended

    async def append(self, frame: bytes) -> int:
        """
        Append a frame.

        Args:
            frame: Raw frame bytes

        Returns:
            Buffer length right after this append.
        """
        async with self._lock:
            self._frames.append(frame)
            self._total_appended += 1
            return len(self._frames)

    async def drain(self) -> list[bytes]:
        """
        Remove and return all buffered frames in append order.

        The buffer is empty when this returns.
        """
        async with self._lock:
            frames = self._frames
            self._frames = []
            self._total_drained += len(frames)
            return frames

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, total_appended, total_drained
        """
        return {
            "size": self.size,
            "total_appended": self._total_appended,
            "total_drained": self._total_drained,
        }
