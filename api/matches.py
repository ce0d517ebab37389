from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas import (
    CommentaryCreate,
    CommentaryList,
    CommentaryRead,
    MatchCreate,
    MatchList,
    MatchRead,
    ScoreUpdate,
)
from db.session import get_session
from services import match_service
from services.match_service import Broadcaster

router = APIRouter()

MAX_LIMIT = 100


def get_broadcaster(request: Request) -> Optional[Broadcaster]:
    return getattr(request.app.state, "broadcaster", None)


@router.get("", response_model=MatchList, summary="List matches, newest first")
async def list_matches(
    limit: int = Query(50, ge=1, le=MAX_LIMIT),
    session: AsyncSession = Depends(get_session),
    broadcaster: Optional[Broadcaster] = Depends(get_broadcaster),
) -> MatchList:
    matches = await match_service.list_matches(session, broadcaster, limit=limit)
    return MatchList(count=len(matches), data=[MatchRead.model_validate(m) for m in matches])


@router.post(
    "",
    response_model=MatchRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a match and announce it to live subscribers",
)
async def create_match(
    body: MatchCreate,
    session: AsyncSession = Depends(get_session),
    broadcaster: Optional[Broadcaster] = Depends(get_broadcaster),
) -> MatchRead:
    match = await match_service.create_match(session, broadcaster, body)
    return MatchRead.model_validate(match)


@router.get("/{match_id}", response_model=MatchRead, summary="Fetch one match")
async def get_match(
    match_id: int,
    session: AsyncSession = Depends(get_session),
    broadcaster: Optional[Broadcaster] = Depends(get_broadcaster),
) -> MatchRead:
    match = await match_service.get_match(session, broadcaster, match_id)
    return MatchRead.model_validate(match)


@router.patch("/{match_id}/score", response_model=MatchRead, summary="Set the current score")
async def update_score(
    match_id: int,
    body: ScoreUpdate,
    session: AsyncSession = Depends(get_session),
    broadcaster: Optional[Broadcaster] = Depends(get_broadcaster),
) -> MatchRead:
    match = await match_service.update_score(session, broadcaster, match_id, body)
    return MatchRead.model_validate(match)


@router.get(
    "/{match_id}/commentary",
    response_model=CommentaryList,
    summary="List commentary in sequence order",
)
async def list_commentary(
    match_id: int,
    limit: int = Query(MAX_LIMIT, ge=1, le=MAX_LIMIT),
    session: AsyncSession = Depends(get_session),
) -> CommentaryList:
    entries = await match_service.list_commentary(session, match_id, limit=limit)
    return CommentaryList(
        match_id=match_id,
        count=len(entries),
        data=[CommentaryRead.model_validate(e) for e in entries],
    )


@router.post(
    "/{match_id}/commentary",
    response_model=CommentaryRead,
    status_code=status.HTTP_201_CREATED,
    summary="Append a commentary entry and announce it",
)
async def add_commentary(
    match_id: int,
    body: CommentaryCreate,
    session: AsyncSession = Depends(get_session),
    broadcaster: Optional[Broadcaster] = Depends(get_broadcaster),
) -> CommentaryRead:
    entry = await match_service.add_commentary(session, broadcaster, match_id, body)
    return CommentaryRead.model_validate(entry)
