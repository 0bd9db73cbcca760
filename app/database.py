from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from sqlalchemy.orm import declarative_base
from app.core.config import settings
import logging
from typing import AsyncGenerator

logger = logging.getLogger(__name__)

def build_engine(database_url: str) -> AsyncEngine:
    """Create the async engine, with pool tuning only where the driver supports it"""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            connect_args={"timeout": 30},
            echo=False
        )
    return create_async_engine(
        database_url,
        pool_size=30,
        max_overflow=30,
        pool_timeout=30,
        pool_pre_ping=True,
        pool_recycle=1800,
        echo=False
    )

def build_session_maker(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )

engine = build_engine(settings.DATABASE_URL)
async_session_maker = build_session_maker(engine)

Base = declarative_base()

async def init_db(bind: AsyncEngine = engine):
    """Create all tables"""
    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created")
    except Exception as e:
        logger.error(f"Database initialization failed: {str(e)}")
        raise

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()

# FastAPI dependency
get_db = get_session
