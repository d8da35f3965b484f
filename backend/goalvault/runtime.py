"""Process-wide goal vault system shared by the HTTP routers."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import psycopg
from fastapi import HTTPException

from goalvault.bootstrap import GoalVaultSystem, build_system
from goalvault.config import Settings
from goalvault.services.snapshot_service import save_snapshot

logger = logging.getLogger(__name__)

system: GoalVaultSystem | None = None
_write_lock: asyncio.Lock | None = None


def init_system(app_settings: Settings) -> GoalVaultSystem:
    global system

    system = build_system(app_settings)
    return system


def reset_system() -> None:
    global system

    system = None


def get_system() -> GoalVaultSystem:
    if system is None:
        raise HTTPException(status_code=500, detail="Goal vault system is not initialized")
    return system


def _lock() -> asyncio.Lock:
    global _write_lock

    if _write_lock is None:
        _write_lock = asyncio.Lock()
    return _write_lock


@asynccontextmanager
async def persisted(connection: Any, current: GoalVaultSystem) -> AsyncIterator[None]:
    """Run one mutation, then save the resulting state.

    Mutations and their saves run one at a time, so snapshots are written in
    the order the changes happened. When the save fails the in-memory state is
    rolled back and the request fails with 503: nothing changed, and the
    client may retry. Without a database the mutation just runs.
    """
    async with _lock():
        if connection is None:
            yield
            return

        before = current.to_state()
        yield
        try:
            await save_snapshot(connection, current)
        except psycopg.Error as exc:
            current.restore_state(before)
            logger.error("snapshot save failed, in-memory change rolled back: %s", exc)
            raise HTTPException(
                status_code=503, detail="State could not be saved; nothing was changed"
            ) from exc
