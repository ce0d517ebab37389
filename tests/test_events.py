import json
from datetime import datetime

import pytest
from pydantic import ValidationError as PayloadValidationError

from realtime import events
from realtime.events import BroadcastEvent, EventType


def test_envelope_wire_shape():
    event = events.match_created({"id": 7, "homeTeam": "Arsenal"})
    wire = json.loads(event.to_json())

    assert set(wire) == {"type", "data", "timestamp"}
    assert wire["type"] == "match_created"
    assert wire["data"] == {"id": 7, "homeTeam": "Arsenal"}
    assert datetime.fromisoformat(wire["timestamp"].replace("Z", "+00:00")).tzinfo is not None


@pytest.mark.parametrize(
    "factory, expected",
    [
        (events.match_created, EventType.MATCH_CREATED),
        (events.commentary_added, EventType.COMMENTARY_ADDED),
        (events.score_updated, EventType.SCORE_UPDATED),
        (events.status_changed, EventType.STATUS_CHANGED),
    ],
)
def test_factories_set_event_type(factory, expected):
    assert factory({}).type is expected


def test_from_json_reads_relay_payload():
    raw = b'{"type": "commentary_added", "data": {"sequence": 3}, "timestamp": "2026-10-18T12:00:00Z"}'
    event = BroadcastEvent.from_json(raw)
    assert event.type is EventType.COMMENTARY_ADDED
    assert event.data["sequence"] == 3


def test_unknown_event_type_is_rejected():
    with pytest.raises(PayloadValidationError):
        BroadcastEvent.from_json('{"type": "goal_scored", "data": {}}')
