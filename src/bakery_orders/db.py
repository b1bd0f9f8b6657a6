from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from bakery_orders.config import settings


def database_url() -> str:
    if settings.ORDERS_DB_URL:
        return settings.ORDERS_DB_URL
    return (
        f"postgresql+asyncpg://"
        f"{settings.ORDERS_DB_USER}:"
        f"{settings.ORDERS_DB_PASSWORD}"
        f"@{settings.ORDERS_DB_HOST}:"
        f"{settings.ORDERS_DB_PORT}/"
        f"{settings.ORDERS_DB_NAME}"
    )

engine = create_async_engine(
    database_url(),
    echo=settings.ORDERS_DB_ECHO,
    pool_pre_ping=True,
)

AsyncSessionLocal = sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

Base = declarative_base()

async def create_tables() -> None:
    # models register themselves on Base when imported
    import bakery_orders.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        yield session
