from pathlib import Path

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool
from transition_ai.config import get_settings
from transition_ai.utils.logger import logger

settings = get_settings()


def _engine_options(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        # make sure the directory for a file-backed database exists
        db_path = database_url.split("///", 1)[-1]
        if db_path and db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        # connections are not shared between event loops (tests, background tasks)
        return {"poolclass": NullPool}
    return {
        "pool_pre_ping": True,  # Detect and recycle stale/broken connections
        "pool_recycle": 300,  # Recycle connections every 5 minutes
    }


# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    future=True,
    **_engine_options(settings.database_url),
)

# Create session factory
AsyncSessionLocal = sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False
)

# Base class for models
Base = declarative_base()


# Dependency for FastAPI routes
async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# Initialize database (create tables)
async def init_db():
    """Create all database tables"""
    # Import models to register them with Base
    from transition_ai.models import transition, scraped_data, skill_gap, plan, insight, role_skill, async_job

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created")


async def drop_db():
    """Drop all tables. Used by the test suite."""
    from transition_ai.models import transition, scraped_data, skill_gap, plan, insight, role_skill, async_job

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
