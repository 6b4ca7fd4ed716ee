"""
Data Models
===========

Pydantic models for the realtime protocol.

Models:
    - Event: A live or synthesized protocol event
    - EventType: Event type identifiers
    - SessionConfig, BetaFields, TTSCloned: Session configuration
    - ConversationItem: Conversation item payload
    - ErrorDetail: Error event payload
"""

from glm_realtime.models.events import (
    BetaFields,
    ConversationItem,
    ErrorDetail,
    Event,
    EventType,
    SessionConfig,
    TTSCloned,
)

__all__ = [
    "Event",
    "EventType",
    "SessionConfig",
    "BetaFields",
    "TTSCloned",
    "ConversationItem",
    "ErrorDetail",
]
