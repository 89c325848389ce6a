"""
Tests for database.py.

Covers:
  - DB path defaults to data/ subdirectory
  - Schema creation (init_db is idempotent)
  - Secure slots: set, get, overwrite, delete
  - Scans: upsert, get, ordering, filtering by sync state, mark synced,
    re-upsert resets to pending, counts
  - App settings: set, get, delete
"""
from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

import database as db


@pytest_asyncio.fixture(autouse=True)
async def init(tmp_data_dir):
    """Initialise the DB schema before every test."""
    await db.init_db()


async def _add(scan_id: str, ts: int, score: int = 50, action: str = "consumed") -> None:
    await db.upsert_scan(
        scan_id=scan_id,
        user_id="u1",
        timestamp=ts,
        context_json='{"detected_labels": "x", "packaging_type": "can", "material_hints": "aluminum"}',
        score_json="{}",
        score=score,
        action=action,
    )


# ── DB path ────────────────────────────────────────────────────────────────────

class TestDbPath:
    def test_db_path_inside_data_dir(self, tmp_data_dir):
        assert Path(db.DB_PATH).parent == tmp_data_dir


# ── init_db ────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestInitDb:
    async def test_idempotent(self):
        """Calling init_db twice must not raise."""
        await db.init_db()
        await db.init_db()

    async def test_db_file_created(self):
        assert Path(db.DB_PATH).exists()


# ── Secure slots ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSecureStore:
    async def test_missing_slot_is_none(self):
        assert await db.get_secret("AUTH_TOKEN") is None

    async def test_set_and_get(self):
        await db.set_secret("AUTH_TOKEN", "tok-1")
        assert await db.get_secret("AUTH_TOKEN") == "tok-1"

    async def test_overwrite(self):
        await db.set_secret("AUTH_TOKEN", "tok-1")
        await db.set_secret("AUTH_TOKEN", "tok-2")
        assert await db.get_secret("AUTH_TOKEN") == "tok-2"

    async def test_delete(self):
        await db.set_secret("AUTH_TOKEN", "tok-1")
        await db.delete_secret("AUTH_TOKEN")
        assert await db.get_secret("AUTH_TOKEN") is None

    async def test_delete_missing_is_noop(self):
        await db.delete_secret("NOPE")

    async def test_slots_are_independent(self):
        await db.set_secret("AUTH_TOKEN", "tok")
        await db.set_secret("GEMINI_API_KEY", "key")
        await db.delete_secret("AUTH_TOKEN")
        assert await db.get_secret("GEMINI_API_KEY") == "key"


# ── Scans ─────────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestScans:
    async def test_new_scan_is_pending(self):
        await _add("a", 1000)
        row = await db.get_scan("a")
        assert row[0] == "a"
        assert row[6] == "pending"
        assert row[7] is None

    async def test_get_missing_scan_returns_none(self):
        assert await db.get_scan("missing") is None

    async def test_scans_newest_first(self):
        await _add("old", 1000)
        await _add("new", 3000)
        await _add("mid", 2000)
        ids = [r[0] for r in await db.get_scans()]
        assert ids == ["new", "mid", "old"]

    async def test_mark_synced(self):
        await _add("a", 1000)
        assert await db.mark_scan_synced("a", "remote-1") is True
        row = await db.get_scan("a")
        assert row[6] == "synced"
        assert row[7] == "remote-1"
        assert row[8] is not None

    async def test_mark_synced_twice_is_noop(self):
        await _add("a", 1000)
        await db.mark_scan_synced("a", "remote-1")
        assert await db.mark_scan_synced("a", "remote-2") is False
        assert (await db.get_scan("a"))[7] == "remote-1"

    async def test_mark_synced_unknown_returns_false(self):
        assert await db.mark_scan_synced("ghost", None) is False

    async def test_filter_by_state(self):
        await _add("a", 1000)
        await _add("b", 2000)
        await db.mark_scan_synced("a", None)
        pending = [r[0] for r in await db.get_scans(sync_state="pending")]
        synced = [r[0] for r in await db.get_scans(sync_state="synced")]
        assert pending == ["b"]
        assert synced == ["a"]

    async def test_reupsert_resets_to_pending(self):
        await _add("a", 1000)
        await db.mark_scan_synced("a", "remote-1")
        await _add("a", 1500, action="rejected")
        row = await db.get_scan("a")
        assert row[5] == "rejected"
        assert row[6] == "pending"
        assert row[7] is None

    async def test_counts(self):
        await _add("a", 1000)
        await _add("b", 2000)
        await _add("c", 3000)
        await db.mark_scan_synced("c", None)
        assert await db.count_scans_by_state() == {"pending": 2, "synced": 1}


# ── App settings ──────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestAppSettings:
    async def test_get_missing_setting_returns_none(self):
        assert await db.get_setting("gemini_model") is None

    async def test_set_and_get(self):
        await db.set_setting("gemini_model", "gemini-2.5-pro")
        assert await db.get_setting("gemini_model") == "gemini-2.5-pro"

    async def test_update(self):
        await db.set_setting("http_timeout", "10")
        await db.set_setting("http_timeout", "30")
        assert await db.get_setting("http_timeout") == "30"

    async def test_delete(self):
        await db.set_setting("http_timeout", "10")
        await db.delete_setting("http_timeout")
        assert await db.get_setting("http_timeout") is None
