from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from core.match_status import MatchStatus
from db.models import Commentary
from db.seed import seed
from db.session import Database

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def database():
    db = Database("sqlite+aiosqlite:///:memory:")
    await db.connect()
    await db.create_all()
    yield db
    await db.disconnect()


@pytest.mark.asyncio
async def test_seed_derives_statuses(database):
    matches = await seed(database, now=NOW)

    assert [(m.home_team, m.status) for m in matches] == [
        ("Arsenal", MatchStatus.FINISHED),
        ("Real Madrid", MatchStatus.LIVE),
        ("LA Lakers", MatchStatus.SCHEDULED),
        ("India", MatchStatus.LIVE),
    ]


@pytest.mark.asyncio
async def test_seed_adds_commentary_to_started_matches(database):
    await seed(database, now=NOW)

    async with database.session() as session:
        rows = (
            await session.execute(
                select(Commentary.match_id, func.count(), func.max(Commentary.sequence))
                .group_by(Commentary.match_id)
            )
        ).all()

    assert len(rows) == 3
    assert all(count == 2 and last == 2 for _, count, last in rows)


@pytest.mark.asyncio
async def test_seed_replaces_previous_rows(database):
    await seed(database, now=NOW)
    matches = await seed(database, now=NOW)

    async with database.session() as session:
        total = await session.scalar(select(func.count()).select_from(Commentary))

    assert len(matches) == 4
    assert total == 6
