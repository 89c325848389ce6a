"""
Shared pytest fixtures.

Every test gets a clean temporary DATA_DIR via the `tmp_data_dir` fixture so
tests are fully isolated from each other and from the real ecospectre.db.
The process-wide rate limiter is reset too, so one test's last acquisition
never delays the next.
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def tmp_data_dir(tmp_path, monkeypatch):
    """
    Redirect DATA_DIR to a fresh tmp directory for every test.
    This gives each test a clean SQLite file and prevents cross-test pollution.
    """
    data = tmp_path / "data"
    data.mkdir()
    monkeypatch.setenv("DATA_DIR", str(data))
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)

    # Patch the module-level DB_PATH that was already computed at import time
    import database
    monkeypatch.setattr(database, "DB_PATH", str(data / "ecospectre.db"))
    monkeypatch.setattr(database, "_DATA_DIR", data)

    # Also reset the internal lock so tests don't share state
    monkeypatch.setattr(database, "_lock", asyncio.Lock())

    yield data


@pytest.fixture(autouse=True)
def reset_rate_limiter(monkeypatch):
    """Fresh lock and 'never acquired' state on the shared limiter."""
    from rate_limiter import limiter
    monkeypatch.setattr(limiter, "_lock", asyncio.Lock())
    limiter.reset()
    yield limiter
    limiter.reset()


# ── Fake Gemini ───────────────────────────────────────────────────────────────

class FakeGemini:
    """
    Stands in for google.genai.Client. Queue replies (or exceptions) in the
    order the code under test will call generate_content.
    """

    def __init__(self) -> None:
        self.replies: list = []
        self.calls: list[dict] = []
        self.call_times: list[float] = []
        self.api_keys: list[str] = []

    def reply(self, text=None, finish_reason="STOP", block_reason=None) -> "FakeGemini":
        from types import SimpleNamespace
        self.replies.append(SimpleNamespace(
            text=text,
            candidates=[SimpleNamespace(finish_reason=finish_reason)],
            prompt_feedback=SimpleNamespace(block_reason=block_reason),
        ))
        return self

    def reply_json(self, data: dict) -> "FakeGemini":
        import json
        return self.reply(json.dumps(data))

    def fail(self, exc: BaseException) -> "FakeGemini":
        self.replies.append(exc)
        return self

    async def _generate_content(self, **kwargs):
        import time
        self.call_times.append(time.monotonic())
        self.calls.append(kwargs)
        item = self.replies.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    def client(self, api_key=None, **kwargs):
        from unittest.mock import MagicMock
        self.api_keys.append(api_key)
        client = MagicMock()
        client.aio.models.generate_content = self._generate_content
        return client


@pytest.fixture
def gemini(monkeypatch):
    import analysis.base
    fake = FakeGemini()
    monkeypatch.setattr(analysis.base.genai, "Client", fake.client)
    return fake


@pytest.fixture
def fast_rate_limit(monkeypatch):
    """Shrink the shared interval so multi-call tests don't take seconds."""
    import config
    monkeypatch.setattr(config, "RATE_LIMIT_INTERVAL", 0.01)


VISION_OK = {
    "detected_labels": "soda can; aluminum",
    "packaging_type": "can",
    "material_hints": "aluminum",
    "ocr_text": "100% recyclable",
    "brand_text": "Acme",
    "user_note": "",
}

SCORE_OK = {
    "score": 78,
    "breakdown": {"materials": 85, "packaging": 80, "certifications": 70, "category_baseline": 50},
    "top_factors": [
        {"factor": "Aluminum", "impact": "positive", "explanation": "Infinitely recyclable metal."},
        {"factor": "Single use", "impact": "negative", "explanation": "Designed for one serving."},
    ],
    "suggestion": "Choose larger multi-serve containers when possible.",
    "disposal": "Rinse and place in the metals recycling bin.",
}


@pytest.fixture
def image_file(tmp_path):
    """A tiny file with a JPEG signature."""
    path = tmp_path / "photo.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0" + b"\x00" * 64)
    return path


@pytest.fixture
def vision_payload():
    import copy
    return copy.deepcopy(VISION_OK)


@pytest.fixture
def score_payload():
    import copy
    return copy.deepcopy(SCORE_OK)
