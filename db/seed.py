"""
Populate the database with demo matches and commentary.

    python -m db.seed
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete

from config import Settings, get_settings
from core.logging_config import setup_logging
from core.match_status import MatchStatus, resolve_match_status
from core.transaction import atomic
from db.models import Commentary, Match
from db.session import Database

logger = logging.getLogger(__name__)


def demo_matches(now: datetime) -> list[dict]:
    return [
        {
            "sport": "Football",
            "home_team": "Arsenal",
            "away_team": "Manchester City",
            "start_time": now - timedelta(hours=2),
            "end_time": now - timedelta(minutes=30),
            "home_score": 2,
            "away_score": 1,
        },
        {
            "sport": "Football",
            "home_team": "Real Madrid",
            "away_team": "Barcelona",
            "start_time": now - timedelta(minutes=45),
            "end_time": now + timedelta(hours=1),
            "home_score": 0,
            "away_score": 0,
        },
        {
            "sport": "Basketball",
            "home_team": "LA Lakers",
            "away_team": "Golden State Warriors",
            "start_time": now + timedelta(hours=2),
            "end_time": now + timedelta(hours=4),
            "home_score": 0,
            "away_score": 0,
        },
        {
            "sport": "Cricket",
            "home_team": "India",
            "away_team": "Australia",
            "start_time": now - timedelta(hours=5),
            "end_time": now + timedelta(hours=3),
            "home_score": 150,
            "away_score": 120,
        },
    ]


def opening_commentary(match: Match) -> list[Commentary]:
    return [
        Commentary(
            match_id=match.id,
            minute=10,
            sequence=1,
            period="1st Half",
            event_type="kickoff",
            message="The match has started!",
            tags=["start"],
        ),
        Commentary(
            match_id=match.id,
            minute=25,
            sequence=2,
            period="1st Half",
            event_type="commentary",
            message=f"{match.home_team} is dominating possession early on.",
            tags=[],
        ),
    ]


async def seed(database: Database, now: Optional[datetime] = None) -> list[Match]:
    """Replace all matches and commentary with the demo set."""
    now = now or datetime.now(timezone.utc)
    seeded: list[Match] = []

    async with database.session() as session:
        async with atomic(session):
            await session.execute(delete(Commentary))
            await session.execute(delete(Match))

            for values in demo_matches(now):
                match = Match(
                    **values,
                    status=resolve_match_status(values["start_time"], values["end_time"], now),
                )
                session.add(match)
                await session.flush()
                seeded.append(match)
                logger.info("Seeded match: %s vs %s", match.home_team, match.away_team)

                if match.status is not MatchStatus.SCHEDULED:
                    session.add_all(opening_commentary(match))
                    logger.info("Seeded commentary for match ID: %s", match.id)

    return seeded


async def main(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    database = Database(settings.database_url, echo=settings.database_echo)
    await database.connect()
    try:
        await database.create_all()
        matches = await seed(database)
        logger.info("Database seeded with %d matches", len(matches))
    finally:
        await database.disconnect()


def cli() -> None:
    setup_logging(level="INFO")
    asyncio.run(main())


if __name__ == "__main__":
    cli()
