import asyncio
import weakref
from datetime import datetime, timezone
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from brickflow.config import settings
import structlog

logger = structlog.get_logger()

# Dialects that honour SELECT ... FOR UPDATE row locks.
ROW_LOCKING_DIALECTS = frozenset({"postgresql", "mysql", "mariadb", "oracle", "mssql"})

# session.info key listing the sequence prefixes whose process mutex is held.
SERIALIZED_PREFIXES = "serialized_sequence_prefixes"

_sequence_mutexes: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, dict[str, asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


class Base(DeclarativeBase):
    pass


def _get_db_url() -> str:
    """Strip sslmode from URL since asyncpg uses connect_args for SSL."""
    url = settings.DATABASE_URL
    url = url.replace("?sslmode=require", "").replace("&sslmode=require", "")
    return url


def build_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=settings.DEBUG)

    kwargs = dict(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=30,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )
    if settings.DB_SSL_REQUIRED:
        kwargs["connect_args"] = {"ssl": "require"}
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine: AsyncEngine = build_engine(_get_db_url())

AsyncSessionLocal = build_session_factory(engine)


async def get_db():
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def supports_row_locks(session: AsyncSession) -> bool:
    return session.get_bind().dialect.name in ROW_LOCKING_DIALECTS


def _sequence_mutex(prefix: str) -> asyncio.Lock:
    locks = _sequence_mutexes.setdefault(asyncio.get_running_loop(), {})
    if prefix not in locks:
        locks[prefix] = asyncio.Lock()
    return locks[prefix]


@asynccontextmanager
async def unit_of_work(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    *,
    serialize: Iterable[str] = (),
) -> AsyncIterator[AsyncSession]:
    """
    Open a session and run the caller's block inside one transaction.

    ``serialize`` names the sequence prefixes the block will draw identifiers
    from. On engines without row locks (SQLite) a process-wide mutex per prefix
    is held from before BEGIN until after COMMIT/ROLLBACK, which stands in for
    the SELECT ... FOR UPDATE on the counter row.
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        async with AsyncExitStack() as stack:
            prefixes = sorted(set(serialize))
            if prefixes and not supports_row_locks(session):
                for prefix in prefixes:
                    await stack.enter_async_context(_sequence_mutex(prefix))
                session.info[SERIALIZED_PREFIXES] = frozenset(prefixes)
            async with session.begin():
                yield session


async def create_schema(bind: AsyncEngine):
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db():
    async with engine.begin() as conn:
        await conn.execute(text("SELECT 1"))
        logger.info("database_connected", dialect=engine.dialect.name)
    if not settings.is_production:
        await create_schema(engine)


async def close_db():
    await engine.dispose()
    logger.info("database_disconnected")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
