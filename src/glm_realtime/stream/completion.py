"""
Streaming Completion Adapter
============================

Batch vision completion path that speaks the realtime event model.

This adapter:
    - POSTs buffered frames (as image_url parts) to a chat completion endpoint
    - Consumes the server-sent-event response line by line
    - Synthesizes response.* events and emits them through the same
      callback used for live WebSocket events

Event sequence per successful request:
    response.created
    response.output_item.added
    response.text.delta          (one per non-empty increment)
    response.text.done           (full accumulated text)
    response.done

Design Rules:
    - No retry; frames are lost if the request fails
    - One deadline (timeout) covers the whole exchange, POST and stream
    - Malformed SSE lines are skipped silently
    - The blocking HTTP client runs in worker threads, never on the loop
"""

import asyncio
import base64
import json
import logging
import uuid
from typing import Any, Awaitable, Callable, Iterable, Iterator, Optional

import requests

from glm_realtime.config import (
    DEFAULT_COMPLETION_URL,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_VISION_MODEL,
)
from glm_realtime.models.events import Event, EventType


logger = logging.getLogger(__name__)


SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"

EmitEvent = Callable[[Event], Awaitable[None]]


class CompletionAPIError(Exception):
    """Raised when the batch completion request fails."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


# =============================================================================
# Request / Response Helpers
# =============================================================================

def build_vision_content(instructions: str, frames: Iterable[bytes]) -> list[dict]:
    """
    Build the multi-part user message content for a batch of frames.

    One leading text part, then one image_url part per frame (base64 JPEG
    data URL) in the given order. Empty instructions fall back to the
    default prompt.
    """
    content: list[dict] = [
        {"type": "text", "text": instructions or DEFAULT_INSTRUCTIONS},
    ]
    for frame in frames:
        frame_b64 = base64.b64encode(frame).decode("ascii")
        content.append({
            "type": "image_url",
            "image_url": {"url": f"data:image/jpeg;base64,{frame_b64}"},
        })
    return content


def parse_sse_line(line: str) -> Optional[str]:
    """Return the payload of a `data: ` line, or None for any other line."""
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    return line[len(SSE_DATA_PREFIX):]


def extract_delta(chunk: Any) -> Optional[str]:
    """Pull choices[0].delta.content out of a loosely-typed chunk."""
    if not isinstance(chunk, dict):
        return None
    choices = chunk.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    if not isinstance(choice, dict):
        return None
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


# =============================================================================
# Adapter
# =============================================================================

class StreamingCompletionAdapter:
    """
    Turns one streaming chat completion into synthesized realtime events.

    Attributes:
        url: Completion endpoint URL
        model: Vision-capable model name
        timeout: Deadline in seconds for one whole batch exchange

    Example:
        adapter = StreamingCompletionAdapter(
            api_key="...",
            emit_event=on_event,
        )
        text = await adapter.complete(build_vision_content(prompt, frames))
    """

    def __init__(
        self,
        api_key: Optional[str],
        emit_event: EmitEvent,
        url: str = DEFAULT_COMPLETION_URL,
        model: str = DEFAULT_VISION_MODEL,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Initialize the adapter.

        Args:
            api_key: Bearer credential for the completion endpoint
            emit_event: Coroutine receiving each synthesized event
            url: Completion endpoint URL
            model: Model name sent in the request body
            timeout: Deadline in seconds for the whole request and stream
            session: requests session to use (a new one, owned and closed
                by close(), if None)
        """
        self.url = url
        self.model = model
        self.timeout = timeout
        self._api_key = api_key
        self._emit_event = emit_event
        self._owns_session = session is None
        self._session = session or requests.Session()
        self._request_count: int = 0

    @property
    def request_count(self) -> int:
        """Total batch requests issued."""
        return self._request_count

    async def complete(self, content: list[dict]) -> str:
        """
        Send one batch request and stream its result as events.

        Args:
            content: Multi-part user message content

        Returns:
            The full accumulated response text.

        Raises:
            CompletionAPIError: On network failure, a non-200 response, or
                when the whole exchange outlives the timeout
        """
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": content}],
            "stream": True,
        }

        logger.info(f"Sending batch request with {len(content)} content parts to {self.url}")
        self._request_count += 1
        deadline = asyncio.get_running_loop().time() + self.timeout
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._post, body),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Batch request timed out after {self.timeout:g}s")
            raise CompletionAPIError(f"Request timed out after {self.timeout:g}s") from e
        except requests.RequestException as e:
            logger.error(f"Batch request failed: {e}")
            raise CompletionAPIError(f"Request failed: {e}") from e

        try:
            logger.info(f"Got response with status: {response.status_code}")
            if response.status_code != 200:
                error_body = response.text
                logger.error(f"API Error ({response.status_code}): {error_body}")
                raise CompletionAPIError(
                    f"API Error: {error_body}",
                    status_code=response.status_code,
                    body=error_body,
                )
            return await self._consume_stream(response, deadline)
        finally:
            response.close()

    def close(self) -> None:
        """Close the HTTP session if this adapter created it."""
        if self._owns_session:
            self._session.close()

    def _post(self, body: dict) -> requests.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key or ''}",
        }
        return self._session.post(
            self.url,
            data=json.dumps(body),
            headers=headers,
            stream=True,
            timeout=self.timeout,
        )

    async def _read_line(self, lines: Iterator, deadline: float) -> Optional[Any]:
        """Next raw line, or None at end of stream; bounded by the deadline."""
        remaining = deadline - asyncio.get_running_loop().time()
        try:
            if remaining <= 0:
                raise asyncio.TimeoutError
            return await asyncio.wait_for(
                asyncio.to_thread(next, lines, None),
                timeout=remaining,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Response stream exceeded timeout of {self.timeout:g}s")
            raise CompletionAPIError(
                f"Response stream timed out after {self.timeout:g}s"
            ) from e

    async def _consume_stream(self, response: requests.Response, deadline: float) -> str:
        response_id = _new_id("resp")
        item_id = _new_id("item")

        await self._emit(EventType.RESPONSE_CREATED, response_id=response_id)
        await self._emit(
            EventType.RESPONSE_OUTPUT_ITEM_ADDED,
            response_id=response_id,
            item_id=item_id,
        )

        full_text: list[str] = []
        lines = response.iter_lines()
        while True:
            try:
                raw = await self._read_line(lines, deadline)
            except requests.RequestException as e:
                logger.error(f"Error reading response stream: {e}")
                break
            if raw is None:
                break

            if isinstance(raw, bytes):
                raw = raw.decode("utf-8", errors="replace")
            data = parse_sse_line(raw)
            if data is None:
                continue
            if data == SSE_DONE:
                break

            try:
                chunk = json.loads(data)
            except json.JSONDecodeError:
                continue

            delta = extract_delta(chunk)
            if delta is None:
                continue
            full_text.append(delta)
            await self._emit(
                EventType.RESPONSE_TEXT_DELTA,
                response_id=response_id,
                item_id=item_id,
                delta=delta,
            )

        text = "".join(full_text)
        await self._emit(
            EventType.RESPONSE_TEXT_DONE,
            response_id=response_id,
            item_id=item_id,
            text=text,
        )
        await self._emit(EventType.RESPONSE_DONE, response_id=response_id)

        logger.info(f"Batch response {response_id} finished, {len(text)} chars")
        return text

    async def _emit(self, event_type: EventType, **fields: Any) -> None:
        event = Event(event_id=_new_id("event"), type=event_type.value, **fields)
        event.stamp()
        await self._emit_event(event)
