"""
pipeline.py — photo in, scored and recorded decision out.

  analyse()  vision → scoring, strictly in sequence (both rate-limited)
  record()   LocalScanStore.add → schedule background sync → return
  scan()     analyse() + record()

Analysis errors propagate to the caller and nothing is stored. Once record()
has a local entry, no error can reach the caller: the remote push happens
in a background task owned by SyncReconciler.

An in-flight analysis is not cancelled if the caller stops waiting for it.
"""
from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Optional

from analysis.scoring import ScoringClient
from analysis.vision import VisionAnalysisClient
from api_gateway import ApiGateway
from models import ACTIONS, ScanContext, ScanRecord, SustainabilityScore
from scan_store import LocalScanStore
from sync import SyncReconciler

logger = logging.getLogger(__name__)


class ScanPipeline:

    def __init__(
        self,
        vision: Optional[VisionAnalysisClient] = None,
        scorer: Optional[ScoringClient] = None,
        store: Optional[LocalScanStore] = None,
        reconciler: Optional[SyncReconciler] = None,
    ) -> None:
        self.vision = vision or VisionAnalysisClient()
        self.scorer = scorer or ScoringClient()
        self.store = store or LocalScanStore()
        self.reconciler = reconciler or SyncReconciler(ApiGateway(), self.store)

    async def analyse(
        self,
        image_uri: str,
        user_note: Optional[str] = None,
    ) -> tuple[ScanContext, SustainabilityScore]:
        context = await self.vision.analyze(image_uri)
        if user_note:
            context = replace(context, user_note=user_note)

        score = await self.scorer.score(context)

        # Thumbnails aren't generated; history shows the original image.
        context = replace(context, image=image_uri, image_thumb=image_uri)
        return context, score

    async def record(
        self,
        context: ScanContext,
        score: SustainabilityScore,
        action: str,
        user_id: str = "",
    ) -> ScanRecord:
        if action not in ACTIONS:
            raise ValueError(f"action must be one of {ACTIONS}, got {action!r}")
        record = ScanRecord(
            context=context,
            score=score,
            action=action,
            timestamp=int(time.time() * 1000),
            user_id=user_id,
        )
        stored = await self.store.add(record)
        self.reconciler.schedule(stored)
        return stored

    async def scan(
        self,
        image_uri: str,
        action: str = "consumed",
        user_id: str = "",
        user_note: Optional[str] = None,
    ) -> ScanRecord:
        if action not in ACTIONS:
            raise ValueError(f"action must be one of {ACTIONS}, got {action!r}")
        context, score = await self.analyse(image_uri, user_note=user_note)
        return await self.record(context, score, action, user_id=user_id)
