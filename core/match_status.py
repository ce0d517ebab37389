"""
Match lifecycle status, derived from the clock.

A match's stored ``status`` is only a cache of ``resolve_match_status``;
callers refresh it on read and persist the result.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from core.exceptions import ValidationError


class MatchStatus(str, Enum):
    # Wire and database identifiers; do not rename or reorder
    SCHEDULED = "scheduled"
    LIVE = "live"
    FINISHED = "finished"


def _require_aware(value: object, field: str) -> datetime:
    if not isinstance(value, datetime):
        raise ValidationError(f"{field} must be a datetime, got {type(value).__name__}", field=field)
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        raise ValidationError(f"{field} must be timezone-aware", field=field)
    return value


def validate_match_window(start_time: datetime, end_time: Optional[datetime]) -> None:
    """Reject timestamps the resolver cannot order.

    Raises ValidationError for naive or non-datetime values and when
    ``end_time`` falls before ``start_time``. An equal start and end is a
    zero-length match and is accepted.
    """
    _require_aware(start_time, "startTime")
    if end_time is None:
        return
    _require_aware(end_time, "endTime")
    if end_time < start_time:
        raise ValidationError("endTime must not be before startTime", field="endTime")


def resolve_match_status(
    start_time: datetime,
    end_time: Optional[datetime],
    now: Optional[datetime] = None,
) -> MatchStatus:
    """Return the status a match has at ``now`` (default: current UTC time)."""
    validate_match_window(start_time, end_time)
    if now is None:
        now = datetime.now(timezone.utc)
    else:
        _require_aware(now, "now")

    if now < start_time:
        return MatchStatus.SCHEDULED
    if end_time is not None and now >= end_time:
        return MatchStatus.FINISHED
    return MatchStatus.LIVE
