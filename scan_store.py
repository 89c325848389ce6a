"""
Local, durable scan history.

add() is optimistic: the record comes back Pending with an id whether or not
the SQLite write succeeded. A failed write is logged and swallowed; the
user has already made their decision and must never be blocked on local
storage. When the write does succeed it is committed before add() returns,
so the record survives a restart.

Sync state is only ever moved Pending → Synced (by SyncReconciler via
mark_synced). Nothing in here deletes a scan.
"""
from __future__ import annotations

import json
import logging
import uuid
from dataclasses import replace
from typing import Optional

import database as db
from models import Pending, ScanContext, ScanRecord, SustainabilityScore, Synced

logger = logging.getLogger(__name__)


def _row_to_record(row: tuple) -> ScanRecord:
    (scan_id, user_id, timestamp, context_json, score_json, action,
     sync_state, remote_id, synced_at) = row
    state = Synced(remote_id=remote_id, synced_at=synced_at) if sync_state == "synced" else Pending()
    return ScanRecord(
        id=scan_id,
        user_id=user_id,
        timestamp=timestamp,
        context=ScanContext.from_dict(json.loads(context_json)),
        score=SustainabilityScore.from_dict(json.loads(score_json)),
        action=action,
        sync_state=state,
    )


class LocalScanStore:

    async def add(self, record: ScanRecord) -> ScanRecord:
        stored = replace(record, id=record.id or uuid.uuid4().hex, sync_state=Pending())
        try:
            await db.upsert_scan(
                scan_id=stored.id,
                user_id=stored.user_id,
                timestamp=stored.timestamp,
                context_json=json.dumps(stored.context.to_dict()),
                score_json=json.dumps(stored.score.to_dict()),
                score=stored.score.score,
                action=stored.action,
            )
            logger.info("Stored scan %s locally (pending sync)", stored.id)
        except Exception as exc:
            logger.error("Could not persist scan %s locally: %s", stored.id, exc, exc_info=True)
        return stored

    async def list(self) -> list[ScanRecord]:
        """All local scans, newest first."""
        return [_row_to_record(r) for r in await db.get_scans()]

    async def pending(self) -> list[ScanRecord]:
        return [_row_to_record(r) for r in await db.get_scans(sync_state=Pending.kind)]

    async def get(self, scan_id: str) -> Optional[ScanRecord]:
        row = await db.get_scan(scan_id)
        return _row_to_record(row) if row else None

    async def mark_synced(self, scan_id: str, remote_id: Optional[str] = None) -> bool:
        """Pending → Synced. Returns False if the scan is unknown or already synced."""
        changed = await db.mark_scan_synced(scan_id, remote_id)
        if changed:
            logger.info("Scan %s synced (remote id %s)", scan_id, remote_id or "n/a")
        return changed

    async def counts(self) -> dict[str, int]:
        """{'pending': n, 'synced': m} — missing states count as zero."""
        raw = await db.count_scans_by_state()
        return {Pending.kind: raw.get(Pending.kind, 0), Synced.kind: raw.get(Synced.kind, 0)}
