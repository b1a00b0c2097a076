"""
数据库配置和连接管理

引擎与会话工厂由启动流程显式创建并注入，模块本身不持有全局连接。
"""
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.engine import make_url
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from infrastructure.models import Base


logger = get_logger(__name__)


def build_async_url(database_url: str) -> str:
    """确保数据库URL使用异步驱动"""
    url = make_url(database_url)
    drivername = url.drivername

    if "+" in drivername:
        return database_url

    driver_map = {
        "postgresql": "postgresql+asyncpg",
        "postgres": "postgresql+asyncpg",
        "sqlite": "sqlite+aiosqlite",
    }

    if drivername not in driver_map:
        raise ValueError(f"不支持的数据库驱动: {drivername}. 请使用 async 驱动或更新DATABASE_URL")

    async_driver = driver_map[drivername]
    return url.set(drivername=async_driver).render_as_string(hide_password=False)


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Process-wide engine; its pool is shared by every call."""
    return create_async_engine(build_async_url(database_url), echo=echo, future=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


async def ensure_database_exists(database_url: str) -> None:
    """Create the target PostgreSQL database if it is missing.

    Connects to the ``postgres`` maintenance database with AUTOCOMMIT since
    CREATE DATABASE cannot run inside a transaction. Other dialects are left
    alone (sqlite creates its file on connect).
    """
    url = make_url(build_async_url(database_url))
    if url.get_backend_name() != "postgresql" or not url.database:
        return

    target = url.database
    admin_engine = create_async_engine(
        url.set(database="postgres"),
        isolation_level="AUTOCOMMIT",
    )
    try:
        async with admin_engine.connect() as conn:
            result = await conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": target},
            )
            if result.scalar() is not None:
                logger.debug("database_exists", database=target)
                return
            # identifiers cannot be bound parameters
            quoted = conn.dialect.identifier_preparer.quote(target)
            await conn.execute(text(f"CREATE DATABASE {quoted}"))
            logger.info("database_created", database=target)
    finally:
        await admin_engine.dispose()


async def wait_for_database(engine: AsyncEngine, *, retries: int = 5) -> None:
    """Block until ``SELECT 1`` succeeds, retrying connection failures with backoff."""
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(retries + 1),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5.0),
        retry=retry_if_exception_type((OperationalError, OSError)),
        reraise=True,
    ):
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.warning("database_connect_retry", attempt=attempt.retry_state.attempt_number)
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))


async def create_tables(engine: AsyncEngine):
    """
    创建所有表（已存在则跳过）
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_tables(engine: AsyncEngine):
    """
    删除所有表

    警告：仅用于测试环境，会删除所有数据！
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
