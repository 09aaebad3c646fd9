from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from printzone.config import settings

engine = create_async_engine(settings.DATABASE_URL_ASYNC, pool_pre_ping=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


async def init_models() -> None:
    from printzone.db.base import Base
    import printzone.db.models  # noqa: F401  регистрирует таблицы в metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
