"""SQLite persistence: options, transients and admin sessions.

Note: Uses a single aiosqlite connection for all operations. This serializes
all DB access, which is fine for the small option/transient rows stored here.
Several worker processes on one host share the same file, so read-modify-write
updates take the database write lock with BEGIN IMMEDIATE.
"""
import asyncio
import json
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Callable

import aiosqlite

from agentgate.config import settings
from agentgate.errors import StoreUnavailableError

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"

# Seconds another process may hold the write lock before a statement fails
BUSY_TIMEOUT = 5.0

_db: aiosqlite.Connection | None = None
_lock = asyncio.Lock()
# Writes share one connection; an open BEGIN IMMEDIATE must not be joined
# or committed by another coroutine's statement. Created with the connection
# so it belongs to the loop that opened it.
_write_lock: asyncio.Lock | None = None

# current value (None when missing or expired) -> (new value, ttl seconds)
TransientUpdate = Callable[[Any], tuple[Any, float]]


def run_migrations() -> None:
    """Run Alembic migrations synchronously (called before the async event loop)."""
    from alembic.config import Config
    from alembic import command

    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{settings.db_path}")
    command.upgrade(cfg, "head")


async def get_db() -> aiosqlite.Connection:
    global _db, _write_lock
    if _db is None:
        async with _lock:
            if _db is None:
                _write_lock = asyncio.Lock()
                _db = await aiosqlite.connect(settings.db_path, timeout=BUSY_TIMEOUT)
                _db.row_factory = aiosqlite.Row
                await _db.execute("PRAGMA journal_mode=WAL")
    return _db


async def close_db() -> None:
    global _db
    if _db is not None:
        try:
            await _db.close()
        except Exception as exc:
            logger.warning("Error closing database: %s", exc)
        _db = None


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------

async def get_option(name: str) -> Any:
    """Return the decoded option, or None when it is not set.

    A row that no longer decodes raises StoreUnavailableError: reading it as
    unset would silently change which tokens are accepted.
    """
    db = await get_db()
    async with db.execute("SELECT value FROM options WHERE name = ?", (name,)) as cur:
        row = await cur.fetchone()
    if row is None:
        return None
    try:
        return json.loads(row["value"])
    except ValueError as exc:
        logger.error("Option %s holds invalid JSON", name)
        raise StoreUnavailableError() from exc


async def get_option_list(name: str) -> list[str] | None:
    """Return a list-valued option; a plain string value is returned as one element."""
    value = await get_option(name)
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [str(v) for v in value if isinstance(v, (str, int))]
    return None


async def set_option(name: str, value: Any) -> None:
    db = await get_db()
    async with _write_lock:
        await db.execute(
            """INSERT INTO options (name, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(name) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
            (name, json.dumps(value), int(time.time())),
        )
        await db.commit()


async def delete_option(name: str) -> bool:
    """Delete an option. Returns True if a row was removed."""
    db = await get_db()
    async with _write_lock:
        cursor = await db.execute("DELETE FROM options WHERE name = ?", (name,))
        await db.commit()
    return cursor.rowcount > 0


# ---------------------------------------------------------------------------
# Transients (key/value with expiry)
# ---------------------------------------------------------------------------

async def get_transient(key: str) -> Any:
    """Return the decoded value, or None when missing, expired or undecodable."""
    db = await get_db()
    async with db.execute(
        "SELECT value FROM transients WHERE key = ? AND expires_at > ?",
        (key, time.time()),
    ) as cur:
        row = await cur.fetchone()
    if row is None:
        return None
    try:
        return json.loads(row["value"])
    except ValueError:
        return None


async def update_transient(key: str, fn: TransientUpdate) -> Any:
    """Replace a transient with ``fn(current)`` in one write transaction.

    BEGIN IMMEDIATE takes the file's write lock before the read, so a worker
    process updating the same key waits (up to BUSY_TIMEOUT) instead of
    reading the value this update is about to replace. Returns the new value.
    """
    db = await get_db()
    async with _write_lock:
        try:
            await db.execute("BEGIN IMMEDIATE")
            value, ttl_seconds = fn(await get_transient(key))
            await db.execute(
                """INSERT INTO transients (key, value, expires_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET value = excluded.value, expires_at = excluded.expires_at""",
                (key, json.dumps(value), time.time() + ttl_seconds),
            )
            await db.execute("COMMIT")
        except BaseException:
            # BEGIN itself may have failed, leaving nothing to roll back
            if db.in_transaction:
                await db.execute("ROLLBACK")
            raise
    return value


async def cleanup_expired_transients() -> None:
    db = await get_db()
    async with _write_lock:
        await db.execute("DELETE FROM transients WHERE expires_at <= ?", (time.time(),))
        await db.commit()


# ---------------------------------------------------------------------------
# Admin sessions
# ---------------------------------------------------------------------------

async def create_admin_session(ttl_seconds: int) -> str:
    db = await get_db()
    session_id = uuid.uuid4().hex + uuid.uuid4().hex  # 64-char hex
    now = int(time.time())
    async with _write_lock:
        await db.execute(
            "INSERT INTO admin_sessions (id, created_at, expires_at) VALUES (?, ?, ?)",
            (session_id, now, now + ttl_seconds),
        )
        await db.commit()
    return session_id


async def get_admin_session(session_id: str) -> aiosqlite.Row | None:
    db = await get_db()
    async with db.execute(
        "SELECT * FROM admin_sessions WHERE id = ? AND expires_at > ?",
        (session_id, int(time.time())),
    ) as cur:
        return await cur.fetchone()


async def delete_admin_session(session_id: str) -> None:
    db = await get_db()
    async with _write_lock:
        await db.execute("DELETE FROM admin_sessions WHERE id = ?", (session_id,))
        await db.commit()


async def cleanup_expired_sessions() -> None:
    db = await get_db()
    async with _write_lock:
        await db.execute("DELETE FROM admin_sessions WHERE expires_at < ?", (int(time.time()),))
        await db.commit()
