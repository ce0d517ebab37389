"""
Pydantic request/response models for the matches API.

JSON keys are camelCase on the wire; snake_case names are accepted on input
as well.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    AwareDatetime,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from core.match_status import MatchStatus

# ORM attribute first: Commentary.metadata is SQLAlchemy's MetaData, not the column
_METADATA_ALIASES = AliasChoices("event_metadata", "metadata")


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ===== MATCH SCHEMAS =====

class MatchCreate(CamelModel):
    sport: str = Field(..., min_length=1, max_length=64)
    home_team: str = Field(..., min_length=1, max_length=128)
    away_team: str = Field(..., min_length=1, max_length=128)
    start_time: AwareDatetime
    end_time: Optional[AwareDatetime] = None
    home_score: int = Field(default=0, ge=0)
    away_score: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_window(self) -> "MatchCreate":
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("endTime must not be before startTime")
        return self


class ScoreUpdate(CamelModel):
    home_score: int = Field(..., ge=0)
    away_score: int = Field(..., ge=0)


class MatchRead(CamelModel):
    id: int
    sport: str
    home_team: str
    away_team: str
    status: MatchStatus
    start_time: datetime
    end_time: Optional[datetime] = None
    home_score: int
    away_score: int
    created_at: datetime


class MatchList(CamelModel):
    count: int
    data: list[MatchRead]


# ===== COMMENTARY SCHEMAS =====

class CommentaryCreate(CamelModel):
    minute: Optional[int] = Field(default=None, ge=0)
    sequence: Optional[int] = Field(default=None, ge=1)
    period: Optional[str] = Field(default=None, max_length=32)
    event_type: str = Field(..., min_length=1, max_length=32)
    actor: Optional[str] = None
    team: Optional[str] = None
    message: str = Field(..., min_length=1, max_length=1000)
    event_metadata: Optional[dict[str, Any]] = Field(
        default=None,
        validation_alias=_METADATA_ALIASES,
        serialization_alias="metadata",
    )
    tags: list[str] = Field(default_factory=list)


class CommentaryRead(CamelModel):
    id: int
    match_id: int
    minute: Optional[int] = None
    sequence: int
    period: Optional[str] = None
    event_type: str
    actor: Optional[str] = None
    team: Optional[str] = None
    message: str
    event_metadata: Optional[dict[str, Any]] = Field(
        default=None,
        validation_alias=_METADATA_ALIASES,
        serialization_alias="metadata",
    )
    tags: list[str] = Field(default_factory=list)
    created_at: datetime

    @field_validator("tags", mode="before")
    @classmethod
    def _null_tags(cls, value: Any) -> Any:
        return [] if value is None else value


class CommentaryList(CamelModel):
    match_id: int
    count: int
    data: list[CommentaryRead]


def match_payload(match: Any) -> dict[str, Any]:
    return MatchRead.model_validate(match).to_wire()


def commentary_payload(entry: Any) -> dict[str, Any]:
    return CommentaryRead.model_validate(entry).to_wire()
