from collections.abc import AsyncIterator

from psycopg import AsyncConnection
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool

from .config import settings

# Shared async pool used for snapshot persistence.
pool: AsyncConnectionPool | None = None


async def init_db_pool() -> None:
    global pool

    # In-memory mode: state lives only for the lifetime of the process.
    if not settings.database_url:
        return

    pool = AsyncConnectionPool(
        conninfo=settings.database_url,
        open=False,
        min_size=1,
        max_size=10,
        kwargs={"autocommit": True, "row_factory": dict_row},
    )
    await pool.open()


async def close_db_pool() -> None:
    global pool

    if pool is None:
        return

    await pool.close()
    pool = None


async def get_db_connection() -> AsyncIterator[AsyncConnection | None]:
    # Yields None when persistence is disabled; callers skip the snapshot.
    if pool is None:
        yield None
        return

    async with pool.connection() as connection:
        yield connection
