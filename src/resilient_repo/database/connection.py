"""
Connection factories.

A repository never keeps a connection around: every operation asks its factory for a
fresh connection and releases it before returning. `ConnectionFactory.connection()` is
the scoped way to do that:

    async with factory.connection() as conn:
        await conn.execute(stmt)

The connection is committed when the block exits normally and closed on every exit
path (normal return, exception, task cancellation).
"""
import logging
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from resilient_repo.config.settings import Settings
from resilient_repo.database.session import create_engine_from_settings
from resilient_repo.exceptions.base import RepositoryConnectionError

logger = logging.getLogger(__name__)


class ConnectionFactory(ABC):
    """
    Opens connections to the relational store on demand.
    """

    @abstractmethod
    async def get_connection(self) -> AsyncConnection:
        """
        Open and return a connection.

        Raises:
            RepositoryConnectionError: If the connection could not be opened. The
                original exception is available as `__cause__`.
        """

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[AsyncConnection]:
        """
        Scoped acquisition: open a connection, commit on success, always close.
        """
        conn = await self.get_connection()
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()


class SqlAlchemyConnectionFactory(ConnectionFactory):
    """
    Connection factory backed by a SQLAlchemy AsyncEngine.

    The engine owns the pool (if any); this factory only checks connections out of it.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    @classmethod
    def from_settings(cls, settings: Settings, **engine_kwargs) -> "SqlAlchemyConnectionFactory":
        return cls(create_engine_from_settings(settings, **engine_kwargs))

    async def get_connection(self) -> AsyncConnection:
        start = time.perf_counter()
        conn = self.engine.connect()

        try:
            await conn.start()
        except Exception as exc:
            # WARNING: the store is unreachable; callers get a typed error with the cause attached.
            logger.warning(
                "db.connection.failed",
                extra={
                    "dialect": self.engine.dialect.name,
                    "error_type": type(exc).__name__,
                },
            )
            raise RepositoryConnectionError(f"{exc} (store unavailable)") from exc

        logger.debug(
            "db.connection.opened",
            extra={
                "dialect": self.engine.dialect.name,
                "duration_ms": int((time.perf_counter() - start) * 1000),
            },
        )
        return conn

    async def dispose(self) -> None:
        """Dispose of the engine (and its pool). Call once at process shutdown."""
        await self.engine.dispose()
