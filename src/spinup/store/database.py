"""Async engine creation and the shared transaction discipline.

Every store operation runs in one transaction under a deadline. SQLAlchemy
failures surface as PersistenceError, deadlines as OperationTimeoutError;
either way the transaction is rolled back and no partial row remains.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from spinup.errors import OperationTimeoutError, PersistenceError
from spinup.logging_schema import LogEvent
from spinup.metrics import PERSISTENCE_ERRORS

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; SQLite files get their directory and FK enforcement."""
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(database_url, echo=echo)
    if engine.dialect.name == "sqlite":
        event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)

    logger.info(
        "Database engine created",
        extra={"event": LogEvent.DB_CONNECTED, "backend": url.get_backend_name()},
    )
    return engine


class SQLStore:
    """Base for stores that share the engine and transaction discipline."""

    def __init__(self, engine: AsyncEngine, timeout: float = 3.0) -> None:
        self._engine = engine
        self._timeout = timeout
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def _transaction[T](
        self,
        operation: str,
        fn: Callable[[AsyncSession], Awaitable[T]],
    ) -> T:
        """Run ``fn`` in a single transaction bounded by the store timeout."""

        async def run() -> T:
            async with self._sessions() as session:
                async with session.begin():
                    return await fn(session)

        return await self._guard(operation, run)

    async def _guard[T](self, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await asyncio.wait_for(fn(), timeout=self._timeout)
        except TimeoutError as exc:
            PERSISTENCE_ERRORS.labels(operation=operation).inc()
            logger.warning(
                "Operation timeout",
                extra={
                    "event": LogEvent.OPERATION_TIMEOUT,
                    "operation": operation,
                    "timeout_s": self._timeout,
                },
            )
            raise OperationTimeoutError(operation, self._timeout) from exc
        except SQLAlchemyError as exc:
            PERSISTENCE_ERRORS.labels(operation=operation).inc()
            logger.error(
                "Persistence failed",
                extra={
                    "event": LogEvent.DB_ERROR,
                    "operation": operation,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise PersistenceError(operation, f"{operation} failed: {exc}") from exc
