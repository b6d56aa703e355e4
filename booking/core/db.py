from collections.abc import AsyncGenerator
from typing import Any
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from booking.core.config import settings


def to_async_url(database_url: str) -> tuple[str, dict[str, Any]]:
    """Return (async_url, engine_kwargs) for the configured database URL.

    asyncpg does not accept psycopg params like sslmode/channel_binding, so the
    scheme is converted and those params are stripped; SSL goes via connect_args.
    """
    parsed = urlparse(database_url)
    if parsed.scheme not in ("postgresql", "postgres"):
        return database_url, {}
    query = parse_qs(parsed.query, keep_blank_values=True)
    sslmode = (query.pop("sslmode", [""])[0] or "").lower()
    query.pop("channel_binding", None)
    new_query = urlencode(query, doseq=True)
    url = urlunparse(
        ("postgresql+asyncpg", parsed.netloc, parsed.path, parsed.params, new_query, parsed.fragment)
    )
    kwargs: dict[str, Any] = {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}
    if sslmode in ("require", "verify-ca", "verify-full"):
        kwargs["connect_args"] = {"ssl": True}
    return url, kwargs


async_database_url, _engine_kwargs = to_async_url(settings.database_url)

engine = create_async_engine(
    async_database_url,
    echo=settings.env == "development",
    **_engine_kwargs,
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One transaction per request: commit on success, roll back on any error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
