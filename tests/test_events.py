"""
Event Model Tests
=================

Parsing, serialization and logging helpers of the Event schema.
"""

import base64
import json

import pytest
from pydantic import ValidationError

from glm_realtime.models.events import REDACTED, Event, EventType


class TestEventParsing:
    """Tests for reading events off the wire."""

    def test_parse_server_event(self):
        """Verify a server event parses with nested session fields."""
        raw = json.dumps({
            "event_id": "event_1",
            "type": "session.updated",
            "session": {
                "instructions": "be brief",
                "beta_fields": {"chat_mode": "video_passive", "tts_cloned": {"audio": "AAAA"}},
            },
        })

        event = Event.from_json(raw)

        assert event.type == EventType.SESSION_UPDATED
        assert event.session.instructions == "be brief"
        assert event.session.beta_fields.tts_cloned.audio == "AAAA"

    def test_unknown_fields_survive(self):
        """Verify fields the schema does not name are kept."""
        event = Event.from_json('{"type": "response.created", "response": {"status": "in_progress"}}')

        assert json.loads(event.to_json())["response"] == {"status": "in_progress"}

    def test_unknown_event_type_parses(self):
        """Verify event types outside EventType are accepted."""
        event = Event.from_json('{"type": "rate_limits.updated"}')
        assert event.type == "rate_limits.updated"

    def test_missing_type_rejected(self):
        with pytest.raises(ValidationError):
            Event.from_json('{"event_id": "event_1"}')

    def test_malformed_json_rejected(self):
        with pytest.raises(ValidationError):
            Event.from_json("{not json")


class TestEventSerialization:
    """Tests for writing events to the wire."""

    def test_unset_fields_omitted(self):
        event = Event(type=EventType.INPUT_AUDIO_BUFFER_COMMIT.value, client_timestamp=5)

        assert json.loads(event.to_json()) == {
            "type": "input_audio_buffer.commit",
            "client_timestamp": 5,
        }

    def test_video_frame_is_base64_on_the_wire(self):
        """Verify raw frame bytes are sent as standard base64 and read back as bytes."""
        frame = b"\xff\xd8\xff\xe0\x00\x10JFIF"
        event = Event(type=EventType.INPUT_VIDEO_FRAME_APPEND.value, video_frame=frame)

        wire = json.loads(event.to_json())
        assert wire["video_frame"] == base64.b64encode(frame).decode("ascii")
        assert Event.from_json(event.to_json()).video_frame == frame

    def test_event_type_compares_as_string(self):
        assert EventType.RESPONSE_DONE == "response.done"
        assert str(EventType.RESPONSE_DONE) == "response.done"


class TestEventHelpers:
    """Tests for stamp() and redacted()."""

    def test_stamp_sets_missing_timestamp(self):
        event = Event(type=EventType.RESPONSE_CREATE.value)
        event.stamp()
        assert event.client_timestamp > 1_600_000_000_000

    def test_stamp_keeps_existing_timestamp(self):
        event = Event(type=EventType.RESPONSE_CREATE.value, client_timestamp=1234)
        event.stamp()
        assert event.client_timestamp == 1234

    def test_stamp_replaces_non_positive_timestamp(self):
        event = Event(type=EventType.RESPONSE_CREATE.value, client_timestamp=0)
        event.stamp()
        assert event.client_timestamp > 0

    def test_redacted_strips_payloads(self):
        """Verify bulky payloads are replaced in the copy only."""
        event = Event.from_json(json.dumps({
            "type": "session.update",
            "audio": "UklGRg==",
            "session": {"beta_fields": {"tts_cloned": {"audio": "UklGRg=="}}},
        }))

        copy = event.redacted()

        assert copy.audio == REDACTED
        assert copy.session.beta_fields.tts_cloned.audio == REDACTED
        assert event.audio == "UklGRg=="
        assert event.session.beta_fields.tts_cloned.audio == "UklGRg=="

    def test_redacted_drops_video_frame_and_audio_delta(self):
        frame = Event(type=EventType.INPUT_VIDEO_FRAME_APPEND.value, video_frame=b"\x01\x02")
        audio = Event(type=EventType.RESPONSE_AUDIO_DELTA.value, delta="AAAA")
        text = Event(type=EventType.RESPONSE_TEXT_DELTA.value, delta="hello")

        assert frame.redacted().video_frame is None
        assert audio.redacted().delta == REDACTED
        assert text.redacted().delta == "hello"
