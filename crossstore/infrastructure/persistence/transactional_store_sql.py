"""SQLAlchemy AsyncSession as a TransactionalStore."""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class SqlAlchemyTransactionalStore:
    """begin() opens a session inside BEGIN; the callback gets the session."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        name: str = "postgres",
    ) -> None:
        self.session_factory = session_factory
        self.name = name

    async def begin(self) -> AsyncSession:
        session = self.session_factory()
        try:
            await session.begin()
        except BaseException:
            await session.close()
            raise
        return session

    async def commit(self, handle: AsyncSession) -> None:
        await handle.commit()

    async def rollback(self, handle: AsyncSession) -> None:
        await handle.rollback()

    async def release(self, handle: AsyncSession) -> None:
        await handle.close()
