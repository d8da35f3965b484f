import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import database, runtime
from .accounts import router as accounts_router
from .config import settings
from .database import close_db_pool, init_db_pool
from .donations import router as donations_router
from .goals import router as goals_router
from .services.snapshot_service import ensure_schema, load_snapshot
from .vaults import router as vaults_router

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level)
    system = runtime.init_system(settings)
    await init_db_pool()

    if database.pool is not None:
        async with database.pool.connection() as connection:
            await ensure_schema(connection)
            restored = await load_snapshot(connection, system)
        logger.info("snapshot %s", "restored" if restored else "not found; starting fresh")

    yield

    await close_db_pool()
    runtime.reset_system()


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.include_router(goals_router)
app.include_router(vaults_router)
app.include_router(donations_router)
app.include_router(accounts_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
