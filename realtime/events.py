from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class EventType(str, Enum):
    MATCH_CREATED = "match_created"
    COMMENTARY_ADDED = "commentary_added"
    SCORE_UPDATED = "score_updated"
    STATUS_CHANGED = "status_changed"

    # /ws only
    WELCOME = "welcome"
    PING = "ping"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BroadcastEvent(BaseModel):
    """Envelope pushed to every live subscriber; never stored."""

    type: EventType
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=_utcnow)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str | bytes) -> "BroadcastEvent":
        return cls.model_validate_json(raw)


def match_created(match: dict[str, Any]) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.MATCH_CREATED, data=match)


def commentary_added(entry: dict[str, Any]) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.COMMENTARY_ADDED, data=entry)


def score_updated(match: dict[str, Any]) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.SCORE_UPDATED, data=match)


def status_changed(match: dict[str, Any]) -> BroadcastEvent:
    return BroadcastEvent(type=EventType.STATUS_CHANGED, data=match)
