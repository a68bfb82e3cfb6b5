"""Base for SQL mirror repositories: one transaction per write, transient-error mapping."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import (
    DBAPIError,
    DisconnectionError,
    InterfaceError,
    OperationalError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crossstore.domain.exceptions import TransientStoreException


class SqlMirrorRepository:
    """Base mirror repository. Subclasses implement IMirrorStore.upsert/delete.

    Connection-level failures (dropped connection, pool timeout, server
    shutting down) surface as TransientStoreException so the orchestrator
    retries them; constraint violations and programming errors propagate.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], name: str) -> None:
        self.session_factory = session_factory
        self.name = name

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Session inside BEGIN; commits on success, rolls back on error."""
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    yield session
        except (OperationalError, InterfaceError, DisconnectionError, PoolTimeoutError) as e:
            raise TransientStoreException(self.name, f"{type(e).__name__}: {e}") from e
        except DBAPIError as e:
            if e.connection_invalidated:
                raise TransientStoreException(self.name, f"connection invalidated: {e}") from e
            raise
        except OSError as e:
            raise TransientStoreException(self.name, f"{type(e).__name__}: {e}") from e
