from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Protocol, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas import (
    CommentaryCreate,
    MatchCreate,
    ScoreUpdate,
    commentary_payload,
    match_payload,
)
from core.exceptions import ConflictException, NotFoundException, RegistryError
from core.match_status import resolve_match_status, validate_match_window
from core.transaction import atomic
from db.models import Commentary, Match
from realtime import events
from realtime.events import BroadcastEvent

logger = logging.getLogger(__name__)


class Broadcaster(Protocol):
    async def broadcast(self, event: BroadcastEvent) -> int: ...


async def publish(broadcaster: Optional[Broadcaster], event: BroadcastEvent) -> None:
    if broadcaster is None:
        return
    try:
        await broadcaster.broadcast(event)
    except RegistryError as exc:
        logger.warning(
            "Broadcast skipped",
            extra={"event_type": event.type.value, "reason": exc.message},
        )
    except Exception:
        logger.exception("Broadcast failed", extra={"event_type": event.type.value})


def refresh_status(match: Match, now: Optional[datetime] = None) -> bool:
    status = resolve_match_status(match.start_time, match.end_time, now)
    if status is match.status:
        return False
    match.status = status
    return True


async def _load_match(session: AsyncSession, match_id: int) -> Match:
    match = await session.get(Match, match_id)
    if match is None:
        raise NotFoundException(f"Match {match_id} not found")
    return match


# ---------------------------------------------------------------------------
# Matches
# ---------------------------------------------------------------------------

async def create_match(
    session: AsyncSession,
    broadcaster: Optional[Broadcaster],
    payload: MatchCreate,
    now: Optional[datetime] = None,
) -> Match:
    validate_match_window(payload.start_time, payload.end_time)
    match = Match(
        sport=payload.sport,
        home_team=payload.home_team,
        away_team=payload.away_team,
        start_time=payload.start_time,
        end_time=payload.end_time,
        home_score=payload.home_score,
        away_score=payload.away_score,
        status=resolve_match_status(payload.start_time, payload.end_time, now),
    )
    async with atomic(session):
        session.add(match)
        await session.flush()

    logger.info(
        "Match created",
        extra={"match_id": match.id, "status": match.status.value, "sport": match.sport},
    )
    await publish(broadcaster, events.match_created(match_payload(match)))
    return match


async def list_matches(
    session: AsyncSession,
    broadcaster: Optional[Broadcaster],
    limit: int = 50,
    now: Optional[datetime] = None,
) -> Sequence[Match]:
    async with atomic(session):
        result = await session.execute(
            select(Match).order_by(Match.created_at.desc(), Match.id.desc()).limit(limit)
        )
        matches = result.scalars().all()
        changed = [m for m in matches if refresh_status(m, now)]

    for match in changed:
        await publish(broadcaster, events.status_changed(match_payload(match)))
    return matches


async def get_match(
    session: AsyncSession,
    broadcaster: Optional[Broadcaster],
    match_id: int,
    now: Optional[datetime] = None,
) -> Match:
    async with atomic(session):
        match = await _load_match(session, match_id)
        changed = refresh_status(match, now)

    if changed:
        await publish(broadcaster, events.status_changed(match_payload(match)))
    return match


async def update_score(
    session: AsyncSession,
    broadcaster: Optional[Broadcaster],
    match_id: int,
    payload: ScoreUpdate,
    now: Optional[datetime] = None,
) -> Match:
    async with atomic(session):
        match = await _load_match(session, match_id)
        match.home_score = payload.home_score
        match.away_score = payload.away_score
        refresh_status(match, now)

    logger.info(
        "Score updated",
        extra={"match_id": match.id, "score": f"{match.home_score}-{match.away_score}"},
    )
    await publish(broadcaster, events.score_updated(match_payload(match)))
    return match


# ---------------------------------------------------------------------------
# Commentary
# ---------------------------------------------------------------------------

async def add_commentary(
    session: AsyncSession,
    broadcaster: Optional[Broadcaster],
    match_id: int,
    payload: CommentaryCreate,
) -> Commentary:
    """Append an entry; ``sequence`` must grow strictly within a match."""
    try:
        async with atomic(session):
            await _load_match(session, match_id)
            current = await session.scalar(
                select(func.max(Commentary.sequence)).where(Commentary.match_id == match_id)
            ) or 0

            sequence = payload.sequence if payload.sequence is not None else current + 1
            if sequence <= current:
                raise ConflictException(
                    f"sequence {sequence} is not after the latest sequence {current} "
                    f"for match {match_id}"
                )

            entry = Commentary(
                match_id=match_id,
                minute=payload.minute,
                sequence=sequence,
                period=payload.period,
                event_type=payload.event_type,
                actor=payload.actor,
                team=payload.team,
                message=payload.message,
                event_metadata=payload.event_metadata,
                tags=list(payload.tags),
            )
            session.add(entry)
            await session.flush()
    except IntegrityError as exc:
        # A concurrent writer took the same sequence number first
        raise ConflictException(f"sequence already used for match {match_id}") from exc

    logger.info(
        "Commentary added",
        extra={"match_id": match_id, "sequence": entry.sequence, "event_type": entry.event_type},
    )
    await publish(broadcaster, events.commentary_added(commentary_payload(entry)))
    return entry


async def list_commentary(
    session: AsyncSession,
    match_id: int,
    limit: int = 100,
) -> Sequence[Commentary]:
    async with atomic(session):
        await _load_match(session, match_id)
        result = await session.execute(
            select(Commentary)
            .where(Commentary.match_id == match_id)
            .order_by(Commentary.sequence.asc())
            .limit(limit)
        )
        return result.scalars().all()
