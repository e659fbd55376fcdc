"""Async SQLAlchemy engine and session setup for the job history table."""
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from mediajobs.config import settings

Base = declarative_base()

engine = create_async_engine(settings.DATABASE_URL, echo=False)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def init_db(db_engine: AsyncEngine = engine):
    """Create tables."""
    # Register models on Base.metadata
    from mediajobs.models import job_record  # noqa: F401

    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
