from __future__ import annotations

import logging
from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from db.models import Base

logger = logging.getLogger(__name__)


class Database:
    """One async engine plus its session factory, owned by the app lifespan."""

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._engine

    async def connect(self) -> None:
        if self._engine is not None:
            return

        kwargs: dict = {"echo": self.echo}
        if self.is_sqlite:
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in self.url:
                # One shared connection, otherwise every session sees an empty DB
                kwargs["poolclass"] = StaticPool
        else:
            kwargs["pool_pre_ping"] = True

        self._engine = create_async_engine(self.url, **kwargs)

        if self.is_sqlite:
            @event.listens_for(self._engine.sync_engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        self._sessionmaker = async_sessionmaker(self._engine, expire_on_commit=False)
        logger.info("Database engine ready", extra={"dialect": self._engine.dialect.name})

    async def create_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def ping(self) -> None:
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    def session(self) -> AsyncSession:
        if self._sessionmaker is None:
            raise RuntimeError("Database is not connected. Call connect() first.")
        return self._sessionmaker()

    async def disconnect(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.info("Database engine disposed")


async def get_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one session per request, closed afterwards.

    Writes are committed explicitly by the service layer (see core.transaction)
    so that broadcasts only ever follow a committed row.
    """
    database: Database = request.app.state.db
    session = database.session()
    try:
        yield session
    finally:
        await session.close()
