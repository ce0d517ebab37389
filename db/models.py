"""
SQLAlchemy ORM models for matches and their live commentary.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    ARRAY,
    JSON,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Text,
    TypeDecorator,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from core.match_status import MatchStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware timestamps on every backend.

    PostgreSQL keeps the offset itself; SQLite stores naive text, so values
    are normalised to UTC on the way in and tagged as UTC on the way out.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value


JSONPayload = JSON().with_variant(JSONB(), "postgresql")
TagList = JSON().with_variant(ARRAY(Text), "postgresql")


class Base(DeclarativeBase):
    pass


class Match(Base):
    __tablename__ = "matches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sport: Mapped[str] = mapped_column(Text, nullable=False)
    home_team: Mapped[str] = mapped_column(Text, nullable=False)
    away_team: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[MatchStatus] = mapped_column(
        Enum(
            MatchStatus,
            name="match_status",
            values_callable=lambda enum: [member.value for member in enum],
        ),
        nullable=False,
        default=MatchStatus.SCHEDULED,
    )
    start_time: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime)
    home_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    away_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    commentary: Mapped[list["Commentary"]] = relationship(
        back_populates="match",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint("home_score >= 0", name="ck_matches_home_score"),
        CheckConstraint("away_score >= 0", name="ck_matches_away_score"),
    )

    def __repr__(self) -> str:
        return (
            f"<Match(id={self.id}, {self.home_team!r} vs {self.away_team!r}, "
            f"status={self.status.value if self.status else None})>"
        )


class Commentary(Base):
    __tablename__ = "commentary"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("matches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    minute: Mapped[Optional[int]] = mapped_column(Integer)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    period: Mapped[Optional[str]] = mapped_column(Text)  # e.g. '1st Half', 'Q1'
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[Optional[str]] = mapped_column(Text)
    team: Mapped[Optional[str]] = mapped_column(Text)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSONPayload)
    tags: Mapped[Optional[list[str]]] = mapped_column(TagList)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=utcnow, server_default=func.now()
    )

    match: Mapped["Match"] = relationship(back_populates="commentary", lazy="raise")

    __table_args__ = (
        UniqueConstraint("match_id", "sequence", name="uq_commentary_match_sequence"),
    )

    def __repr__(self) -> str:
        return f"<Commentary(match_id={self.match_id}, sequence={self.sequence}, type={self.event_type!r})>"
