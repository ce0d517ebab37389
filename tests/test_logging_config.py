import json
import logging

from core.logging_config import HumanFormatter, JSONFormatter


def _record(**extra):
    record = logging.LogRecord("realtime.hub", logging.WARNING, __file__, 10, "Broadcast delivery failed", (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extra_fields():
    line = JSONFormatter().format(_record(subscription_id="abc", event_type="match_created"))
    entry = json.loads(line)

    assert entry["level"] == "WARNING"
    assert entry["logger"] == "realtime.hub"
    assert entry["message"] == "Broadcast delivery failed"
    assert entry["extra"]["subscription_id"] == "abc"
    assert entry["extra"]["event_type"] == "match_created"


def test_human_formatter_appends_context_without_touching_record():
    record = _record(peer="10.0.0.1:5000")
    line = HumanFormatter(fmt="%(levelname)s %(message)s", use_color=True).format(record)

    assert line.endswith("peer=10.0.0.1:5000")
    assert record.levelname == "WARNING"
