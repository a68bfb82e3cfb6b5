"""Persistence: async engine, session factory, and Base for SQLAlchemy ORM.

Schema is managed by Alembic migrations (migrations/versions). The engine
is built once by the CoreRegistry when DATABASE_URL is set and disposed on
shutdown; nothing here is created at import time.
"""

import logging
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from crossstore.core.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


def build_engine(settings: Settings) -> AsyncEngine | None:
    """Create the async engine, or None when no DATABASE_URL is configured."""
    if not settings.has_relational_store:
        logger.info("DATABASE_URL not set; relational mirror disabled")
        return None
    pool_size = settings.db_pool_size if settings.db_pool_size is not None else 20
    max_overflow = settings.db_max_overflow if settings.db_max_overflow is not None else 30
    command_timeout = (
        settings.db_command_timeout if settings.db_command_timeout is not None else 60
    )
    connect_args: dict[str, Any] = {"command_timeout": command_timeout}
    return create_async_engine(
        settings.database_url,
        echo=settings.database_echo,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_recycle=3600,
        connect_args=connect_args,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )
