"""Persist and restore the full goal vault state as a single JSONB row."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from goalvault.bootstrap import GoalVaultSystem

if TYPE_CHECKING:
    from psycopg import AsyncConnection
else:
    AsyncConnection = Any

logger = logging.getLogger(__name__)

SNAPSHOT_NAME = "system"
COMPONENTS = ("ledger", "router", "manager", "reserves", "vaults")


async def ensure_schema(connection: AsyncConnection) -> None:
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            CREATE TABLE IF NOT EXISTS goal_vault_snapshots (
                name TEXT PRIMARY KEY,
                state JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )


async def save_snapshot(connection: AsyncConnection, system: GoalVaultSystem) -> None:
    """Replace the stored state with `system`'s current state.

    Components reference each other (ledger balances back vault shares, vault
    shares back goal positions), so they are written together in one row.
    """
    state = system.to_state()

    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            INSERT INTO goal_vault_snapshots (name, state)
            VALUES (%s, %s::jsonb)
            ON CONFLICT (name)
            DO UPDATE SET state = EXCLUDED.state, updated_at = NOW()
            """,
            (SNAPSHOT_NAME, json.dumps(state)),
        )


async def load_snapshot(connection: AsyncConnection, system: GoalVaultSystem) -> bool:
    """Restore `system` from the stored row; returns False when nothing is stored."""
    async with connection.cursor() as cursor:
        await cursor.execute(
            """
            SELECT state
            FROM goal_vault_snapshots
            WHERE name = %s
            """,
            (SNAPSHOT_NAME,),
        )
        row = await cursor.fetchone()

    if row is None:
        return False

    stored = row["state"]
    missing = [component for component in COMPONENTS if component not in stored]
    if missing:
        raise LookupError(f"Snapshot is incomplete, missing: {', '.join(missing)}")

    system.restore_state(stored)
    logger.info("restored goal vault state from snapshot")
    return True
