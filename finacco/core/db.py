from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from finacco.core.config import settings

# Declarative base shared by every ORM model
Base = declarative_base()

engine = create_async_engine(settings.database_url, future=True, echo=settings.database_echo)

SessionLocal = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def init_db(bind=None) -> None:
    """Create all tables (development and tests; production uses alembic)."""
    import finacco.db.models  # noqa: F401  registers the models on Base.metadata

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
