"""SurrealDB connection lifecycle and the FastAPI dependencies built on it."""

from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

from fastapi import Depends
from surrealdb import AsyncSurreal

from settings.config import Settings, settings
from users.user_repo import SurrealUserDatabase

logger = logging.getLogger(__name__)

USERS_TABLE = "users"

db: Optional[AsyncSurreal] = None


class DatabaseConnectionError(RuntimeError):
    pass


async def connect(config: Settings = settings) -> AsyncSurreal:
    """Open a signed-in client scoped to the configured namespace and database."""
    logger.info(
        "Connecting to SurrealDB at %s (ns=%s, db=%s)",
        config.SURREALDB_URL, config.SURREALDB_NS, config.SURREALDB_DB,
    )
    client = AsyncSurreal(config.SURREALDB_URL)
    try:
        await client.signin({"username": config.SURREALDB_USER, "password": config.SURREALDB_PASS})
    except Exception as e:
        raise DatabaseConnectionError(f"Error initializing app database connection. Check your login credentials: {e}") from e
    try:
        await client.use(config.SURREALDB_NS, config.SURREALDB_DB)
    except Exception as e:
        raise DatabaseConnectionError(
            f"Could not select {config.SURREALDB_NS}/{config.SURREALDB_DB}: {e}"
        ) from e
    return client


async def init_db() -> None:
    global db
    db = await connect()


async def close_db() -> None:
    global db
    if db is None:
        return
    client, db = db, None
    try:
        await client.close()
    except Exception as e:
        raise DatabaseConnectionError("Error closing app database connection") from e


# --- FastAPI dependencies ---
async def get_db() -> AsyncSurreal:
    """Shared client; connects lazily when the startup hook has not run (scripts, tests)."""
    if db is None:
        await init_db()
    return db  # type: ignore[return-value]


async def get_user_db(db: AsyncSurreal = Depends(get_db)) -> AsyncIterator[SurrealUserDatabase]:
    yield SurrealUserDatabase(db, USERS_TABLE)
