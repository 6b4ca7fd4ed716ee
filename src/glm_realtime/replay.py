"""
Session Replay
==============

Replays recorded client events (one JSON object per line) against the
realtime client, and records what comes back.

Modes:
    live:   Send every event over the WebSocket, pacing them like a
            real-time source, then wait for the receive loop to finish.
    vision: Take instructions from the first session.update, batch every
            video frame through the vision completion path, then flush
            what is left.
    fc:     Like live, but hold each conversation.item.create until the
            server has finished a function call and answer it with that
            call's call_id.

Lines that do not start with "{" are ignored so recordings may carry
comments.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterator, Optional, TextIO

from websockets.exceptions import ConnectionClosed

from glm_realtime.models.events import Event, EventType
from glm_realtime.stream.client import RealtimeClient, RealtimeClientError


logger = logging.getLogger(__name__)


TERMINAL_EVENT_TYPES = frozenset({EventType.RESPONSE_DONE.value, EventType.ERROR.value})
MILESTONE_EVENT_TYPES = frozenset({
    EventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE.value,
    EventType.RESPONSE_DONE.value,
})

PrepareEvent = Callable[[Event], Awaitable[None]]


def read_events(path: Path) -> Iterator[Event]:
    """Yield events from a JSON-lines recording."""
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line.startswith("{"):
                continue
            try:
                yield Event.from_json(line)
            except ValueError as e:
                raise ValueError(f"{path}:{line_no}: invalid event: {e}") from e


class EventRecorder:
    """
    Callback that writes received events (redacted) to a JSON-lines sink.

    Counts milestones (function call arguments done, response done) and
    remembers the latest function call_id. With a client attached it
    disconnects on an error event, or on response.done once at least
    done_after milestones have been seen.
    """

    def __init__(
        self,
        sink: TextIO,
        client: Optional[RealtimeClient] = None,
        done_after: int = 1,
    ) -> None:
        self.sink = sink
        self.client = client
        self.done_after = done_after
        self.received: list[str] = []
        self.milestones: int = 0
        self.call_id: Optional[str] = None

    async def __call__(self, event: Event) -> None:
        line = event.redacted().to_json()
        logger.info(f"Received message: {line}")
        self.sink.write(line + "\n")
        self.received.append(event.type)

        if event.type == EventType.RESPONSE_FUNCTION_CALL_ARGUMENTS_DONE:
            self.call_id = event.call_id
        if event.type in MILESTONE_EVENT_TYPES:
            self.milestones += 1

        if self.client is None or event.type not in TERMINAL_EVENT_TYPES:
            return
        if event.type == EventType.ERROR or self.milestones >= self.done_after:
            logger.info(f"Received event: {event.type}, exiting...")
            await self.client.disconnect()


async def _replay_over_connection(
    client: RealtimeClient,
    events: Iterator[Event],
    pacing_seconds: float,
    prepare: Optional[PrepareEvent] = None,
) -> int:
    await client.connect()
    sent = 0
    try:
        for event in events:
            if prepare is not None:
                await prepare(event)
            try:
                await client.send(event)
            except (RealtimeClientError, ConnectionClosed, OSError) as e:
                logger.error(f"Send failed after {sent} events: {e}")
                break
            sent += 1
            logger.debug(f"Sent message: {event.redacted().to_json()}")
            await asyncio.sleep(pacing_seconds)

        await client.wait()
    finally:
        await client.disconnect()
    return sent


async def replay_live(
    client: RealtimeClient,
    events: Iterator[Event],
    pacing_seconds: float = 0.135,
) -> int:
    """
    Send recorded events over a live connection.

    Stops early on the first send failure.

    Returns:
        Number of events sent.
    """
    return await _replay_over_connection(client, events, pacing_seconds)


async def replay_function_call(
    client: RealtimeClient,
    events: Iterator[Event],
    recorder: EventRecorder,
    pacing_seconds: float = 0.135,
    poll_seconds: float = 1.0,
) -> int:
    """
    Replay a function-calling session.

    Each conversation.item.create waits until the recorder has seen two
    milestones (the function call and its response.done), then carries the
    recorded call_id. Waiting stops early if the client disconnects.

    Returns:
        Number of events sent.
    """
    async def answer_function_call(event: Event) -> None:
        if event.type != EventType.CONVERSATION_ITEM_CREATE:
            return
        while recorder.milestones < 2 and client.is_connected:
            await asyncio.sleep(poll_seconds)
        if event.item is not None:
            event.item.call_id = recorder.call_id

    return await _replay_over_connection(
        client, events, pacing_seconds, answer_function_call
    )


async def replay_vision(client: RealtimeClient, events: Iterator[Event]) -> int:
    """
    Batch recorded video frames through the vision completion path.

    Returns:
        Number of frames submitted.
    """
    frame_count = 0
    instructions_applied = False
    for event in events:
        if (
            not instructions_applied
            and event.type == EventType.SESSION_UPDATE
            and event.session is not None
            and event.session.instructions
        ):
            client.set_instructions(event.session.instructions)
            instructions_applied = True

        if event.type == EventType.INPUT_VIDEO_FRAME_APPEND:
            frame_count += 1
            logger.info(f"Collecting video frame {frame_count}...")
            await client.send_frame_by_video(event)

    logger.info(f"Finished processing {frame_count} frames, flushing remaining frames...")
    await client.flush_video_frames()
    return frame_count


def summarize(client: RealtimeClient) -> str:
    """Render client metrics as a single log-friendly JSON line."""
    return json.dumps(client.get_metrics(), sort_keys=True)
