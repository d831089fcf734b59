from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from socialize.core.config import settings


def build_engine(url: str = None):
    url = url or settings.DATABASE_URL
    options = {"echo": settings.DB_ECHO, "pool_pre_ping": True}
    # SQLite gets its default pool; sizing only applies to server databases
    if not url.startswith("sqlite"):
        options.update(pool_size=settings.DB_POOL_SIZE, max_overflow=settings.DB_MAX_OVERFLOW)
    return create_async_engine(url, **options)


engine = build_engine()

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db():
    """Request-scoped session; routes commit explicitly."""
    async with AsyncSessionLocal() as session:
        yield session
