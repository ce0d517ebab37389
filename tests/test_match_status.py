from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import ValidationError
from core.match_status import MatchStatus, resolve_match_status, validate_match_window

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


def test_before_start_is_scheduled():
    start = NOW + timedelta(hours=2)
    assert resolve_match_status(start, start + timedelta(hours=2), NOW) is MatchStatus.SCHEDULED


def test_between_start_and_end_is_live():
    status = resolve_match_status(NOW - timedelta(minutes=45), NOW + timedelta(hours=1), NOW)
    assert status is MatchStatus.LIVE


def test_after_end_is_finished():
    status = resolve_match_status(NOW - timedelta(hours=2), NOW - timedelta(minutes=30), NOW)
    assert status is MatchStatus.FINISHED


def test_start_boundary_is_live():
    assert resolve_match_status(NOW, NOW + timedelta(hours=1), NOW) is MatchStatus.LIVE


def test_end_boundary_is_finished():
    assert resolve_match_status(NOW - timedelta(hours=1), NOW, NOW) is MatchStatus.FINISHED


def test_open_ended_match_stays_live():
    assert resolve_match_status(NOW - timedelta(days=3), None, NOW) is MatchStatus.LIVE


def test_zero_length_match_is_accepted():
    assert resolve_match_status(NOW, NOW, NOW) is MatchStatus.FINISHED
    assert resolve_match_status(NOW, NOW, NOW - timedelta(seconds=1)) is MatchStatus.SCHEDULED


def test_resolution_is_idempotent():
    start, end = NOW - timedelta(minutes=10), NOW + timedelta(minutes=80)
    results = {resolve_match_status(start, end, NOW) for _ in range(5)}
    assert results == {MatchStatus.LIVE}


def test_other_offsets_compare_by_instant():
    ist = timezone(timedelta(hours=5, minutes=30))
    start = (NOW + timedelta(minutes=1)).astimezone(ist)
    assert resolve_match_status(start, None, NOW) is MatchStatus.SCHEDULED


def test_end_before_start_is_rejected():
    with pytest.raises(ValidationError) as exc_info:
        resolve_match_status(NOW, NOW - timedelta(minutes=1), NOW)
    assert exc_info.value.field == "endTime"
    assert exc_info.value.http_status == 422


def test_naive_datetimes_are_rejected():
    with pytest.raises(ValidationError):
        resolve_match_status(datetime(2026, 10, 18, 12, 0), None, NOW)
    with pytest.raises(ValidationError):
        resolve_match_status(NOW, None, datetime(2026, 10, 18, 12, 0))


def test_non_datetime_is_rejected():
    with pytest.raises(ValidationError):
        validate_match_window("2026-10-18T12:00:00Z", None)


def test_status_values_are_wire_identifiers():
    assert [s.value for s in MatchStatus] == ["scheduled", "live", "finished"]
