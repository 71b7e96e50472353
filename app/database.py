# FILE: app/database.py
# ==============================================================================
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from .config import DATABASE_URL

# Managed Postgres hands out "postgres://" URLs; the async engine needs the
# asyncpg driver name and no query-string sslmode.
temp_url = DATABASE_URL
if temp_url.startswith("postgres://"):
    temp_url = temp_url.replace("postgres://", "postgresql+asyncpg://", 1)

if temp_url.startswith("postgresql+asyncpg://"):
    ASYNC_DATABASE_URL = temp_url.split("?")[0]
    async_engine = create_async_engine(ASYNC_DATABASE_URL, pool_pre_ping=True)
else:
    ASYNC_DATABASE_URL = temp_url
    async_engine = create_async_engine(ASYNC_DATABASE_URL)

# Create a session maker for async sessions
AsyncSessionLocal = sessionmaker(
    bind=async_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

Base = declarative_base()

async def get_db() -> AsyncSession:
    """
    Dependency function that yields an async database session.
    """
    async with AsyncSessionLocal() as session:
        yield session
