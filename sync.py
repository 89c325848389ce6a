"""
sync.py — push locally stored scans to the remote store, in the background.

Per record:
  Pending --(create_scan OK)-----> Synced
  Pending --(create_scan failed)--> Pending   (logged; no automatic retry)

schedule() runs reconcile() as an asyncio Task that this object owns: the
task is tracked until it finishes, its outcome is logged, and drain() lets
the process wait for (or cancel) outstanding pushes on shutdown instead of
leaving them orphaned.

reconcile_pending() is an explicit, caller-triggered sweep over everything
still Pending: one attempt per record, no backoff.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import config
from api_gateway import ApiGateway, remote_id_of
from models import ScanRecord
from scan_store import LocalScanStore

logger = logging.getLogger(__name__)


class SyncReconciler:

    def __init__(self, gateway: ApiGateway, store: LocalScanStore) -> None:
        self._gateway = gateway
        self._store = store
        self._tasks: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def reconcile(self, record: ScanRecord) -> bool:
        """
        One push attempt for one record. Never raises; returns True when the
        local entry was moved to Synced.
        """
        if record.id is None:
            logger.warning("[sync] Refusing to push a scan without a local id")
            return False
        try:
            doc = await self._gateway.create_scan(record.context, record.score, record.action)
        except Exception as exc:
            logger.warning("[sync] Push failed for scan %s, left pending: %s", record.id, exc)
            return False

        try:
            return await self._store.mark_synced(record.id, remote_id_of(doc))
        except Exception as exc:
            # The remote copy exists; the local flag just didn't flip.
            logger.error("[sync] Pushed scan %s but could not mark it synced: %s", record.id, exc)
            return False

    def schedule(self, record: ScanRecord) -> asyncio.Task:
        """Start reconcile(record) in the background and return immediately."""
        task = asyncio.create_task(self.reconcile(record), name=f"sync-{record.id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("[sync] %s cancelled before completion", task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[sync] %s crashed: %s", task.get_name(), exc)

    async def reconcile_pending(self) -> tuple[int, int]:
        """Push every Pending scan once. Returns (synced, still_pending)."""
        pending = await self._store.pending()
        if not pending:
            return 0, 0
        logger.info("[sync] Reconciling %d pending scan(s)", len(pending))
        synced = 0
        for record in pending:
            if await self.reconcile(record):
                synced += 1
        return synced, len(pending) - synced

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding pushes; cancel whatever is still running after timeout."""
        if not self._tasks:
            return
        timeout = config.SYNC_DRAIN_TIMEOUT if timeout is None else timeout
        tasks = set(self._tasks)
        logger.info("[sync] Waiting for %d outstanding push(es)…", len(tasks))
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
            logger.warning("[sync] Cancelled %d push(es) at shutdown; they stay pending", len(still_running))
