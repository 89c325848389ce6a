"""
database.py — async SQLite persistence via aiosqlite.

Tables:
  secure_store  — named credential slots (AUTH_TOKEN, GEMINI_API_KEY)
  scans         — local scan records, one row per decision, with sync state
  app_settings  — runtime settings (override .env values)

The DB file is created automatically on first run.
"""
from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import aiosqlite

logger = logging.getLogger(__name__)

# Store the DB in a dedicated data/ directory so a single volume mount
# (./data:/app/data) keeps both the database and the log file.
_DATA_DIR = Path(os.getenv("DATA_DIR", "data"))
_DATA_DIR.mkdir(parents=True, exist_ok=True)

DB_PATH = str(_DATA_DIR / "ecospectre.db")
_lock = asyncio.Lock()          # serialise schema migrations


# ── Schema ────────────────────────────────────────────────────────────────────

_SCHEMA = """
-- Named secret slots. Encryption at rest is provided by the host platform.
CREATE TABLE IF NOT EXISTS secure_store (
    slot       TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

-- Local scan history. context_json / score_json hold the exact dicts
-- pushed to POST /scans so a pending row can be re-sent unchanged.
CREATE TABLE IF NOT EXISTS scans (
    id           TEXT    PRIMARY KEY,
    user_id      TEXT    NOT NULL DEFAULT '',
    timestamp    INTEGER NOT NULL,
    context_json TEXT    NOT NULL,
    score_json   TEXT    NOT NULL,
    score        INTEGER NOT NULL,
    action       TEXT    NOT NULL,
    sync_state   TEXT    NOT NULL DEFAULT 'pending',
    remote_id    TEXT,
    synced_at    TEXT,
    created_at   TEXT    NOT NULL,
    updated_at   TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_scans_ts   ON scans (timestamp);
CREATE INDEX IF NOT EXISTS idx_scans_sync ON scans (sync_state);

-- Settings editable at runtime (override .env values)
CREATE TABLE IF NOT EXISTS app_settings (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

_MIGRATIONS: list[str] = [
    # Additive ALTER TABLE statements go here; each runs once per DB.
]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def init_db() -> None:
    """Create tables if they don't exist. Safe to call multiple times."""
    async with _lock:
        async with aiosqlite.connect(DB_PATH) as db:
            await db.executescript(_SCHEMA)
            # SQLite raises if an ADD COLUMN was already applied.
            for sql in _MIGRATIONS:
                try:
                    await db.execute(sql)
                except aiosqlite.OperationalError:
                    pass
            await db.commit()
    logger.info("Database initialised at %s", DB_PATH)


# ── Secure slots ──────────────────────────────────────────────────────────────

async def get_secret(slot: str) -> Optional[str]:
    """Return the value stored in slot, or None if empty."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            "SELECT value FROM secure_store WHERE slot = ?", (slot,)
        ) as cur:
            row = await cur.fetchone()
            return row[0] if row else None


async def set_secret(slot: str, value: str) -> None:
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """INSERT INTO secure_store (slot, value, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(slot) DO UPDATE SET
                 value=excluded.value,
                 updated_at=excluded.updated_at""",
            (slot, value, _now()),
        )
        await db.commit()


async def delete_secret(slot: str) -> None:
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute("DELETE FROM secure_store WHERE slot = ?", (slot,))
        await db.commit()


# ── Scans ─────────────────────────────────────────────────────────────────────

_SCAN_COLUMNS = (
    "id, user_id, timestamp, context_json, score_json, action, "
    "sync_state, remote_id, synced_at"
)


async def upsert_scan(
    scan_id: str,
    user_id: str,
    timestamp: int,
    context_json: str,
    score_json: str,
    score: int,
    action: str,
) -> None:
    """
    Insert a scan row in the pending state. Re-adding an existing id
    replaces its content and puts it back to pending.
    """
    now = _now()
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """INSERT INTO scans
                 (id, user_id, timestamp, context_json, score_json, score, action,
                  sync_state, remote_id, synced_at, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, 'pending', NULL, NULL, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                 user_id=excluded.user_id,
                 timestamp=excluded.timestamp,
                 context_json=excluded.context_json,
                 score_json=excluded.score_json,
                 score=excluded.score,
                 action=excluded.action,
                 sync_state='pending',
                 remote_id=NULL,
                 synced_at=NULL,
                 updated_at=excluded.updated_at""",
            (scan_id, user_id, timestamp, context_json, score_json, score, action, now, now),
        )
        await db.commit()


async def get_scan(scan_id: str) -> Optional[tuple]:
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            f"SELECT {_SCAN_COLUMNS} FROM scans WHERE id = ?", (scan_id,)
        ) as cur:
            return await cur.fetchone()


async def get_scans(sync_state: Optional[str] = None) -> list[tuple]:
    """Return scan rows newest first, optionally filtered by sync state."""
    sql = f"SELECT {_SCAN_COLUMNS} FROM scans"
    params: tuple = ()
    if sync_state is not None:
        sql += " WHERE sync_state = ?"
        params = (sync_state,)
    sql += " ORDER BY timestamp DESC, created_at DESC"
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(sql, params) as cur:
            return list(await cur.fetchall())


async def mark_scan_synced(scan_id: str, remote_id: Optional[str]) -> bool:
    """
    Move a pending row to synced. Returns False if the row does not exist or
    is not pending (a synced row is never touched again here).
    """
    now = _now()
    async with aiosqlite.connect(DB_PATH) as db:
        cur = await db.execute(
            """UPDATE scans
               SET sync_state = 'synced', remote_id = ?, synced_at = ?, updated_at = ?
               WHERE id = ? AND sync_state = 'pending'""",
            (remote_id, now, now, scan_id),
        )
        await db.commit()
        return cur.rowcount > 0


async def count_scans_by_state() -> dict[str, int]:
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            "SELECT sync_state, COUNT(*) FROM scans GROUP BY sync_state"
        ) as cur:
            rows = await cur.fetchall()
    return {r[0]: r[1] for r in rows}


# ── App settings ──────────────────────────────────────────────────────────────

async def get_setting(key: str) -> Optional[str]:
    """Return DB-stored value for setting key, or None if not set."""
    async with aiosqlite.connect(DB_PATH) as db:
        async with db.execute(
            "SELECT value FROM app_settings WHERE key = ?", (key,)
        ) as cur:
            row = await cur.fetchone()
            return row[0] if row else None


async def set_setting(key: str, value: str) -> None:
    """Insert or replace a setting in the DB."""
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute(
            """INSERT INTO app_settings (key, value, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET
                 value=excluded.value,
                 updated_at=excluded.updated_at""",
            (key, value, _now()),
        )
        await db.commit()


async def delete_setting(key: str) -> None:
    """Remove a setting from DB (falls back to .env / default)."""
    async with aiosqlite.connect(DB_PATH) as db:
        await db.execute("DELETE FROM app_settings WHERE key = ?", (key,))
        await db.commit()
