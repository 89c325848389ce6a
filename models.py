"""
models.py — canonical home of the scan data model.

  ScanContext          what the vision call saw (labels, packaging, materials, text)
  SustainabilityScore  what the scoring call concluded
  ScanRecord           one scored decision, plus its sync state
  Pending / Synced     tagged sync-state variants
  User / UserSettings  remote-store account document

Everything here is plain data; (de)serialisation helpers mirror the JSON
shapes used by Gemini and by the REST API so the same dicts can be stored
locally in SQLite and pushed to the remote store unchanged.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Optional, Union

ACTIONS = ("consumed", "rejected")
IMPACTS = ("positive", "negative")

# Advisory weighting communicated to the scoring model
SCORE_WEIGHTS: dict[str, float] = {
    "materials": 0.4,
    "packaging": 0.3,
    "certifications": 0.2,
    "category_baseline": 0.1,
}

# The three fields the vision prompt must always fill in
REQUIRED_CONTEXT_FIELDS = ("detected_labels", "packaging_type", "material_hints")
OPTIONAL_CONTEXT_FIELDS = ("ocr_text", "brand_text", "user_note")


# ── Scan context ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScanContext:
    detected_labels: str        # e.g. "soda can; beverage; aluminum"
    packaging_type: str         # can | bottle | box | pouch | …
    material_hints: str         # e.g. "aluminum", "PET plastic"
    ocr_text: Optional[str] = None
    brand_text: Optional[str] = None
    user_note: Optional[str] = None
    image: Optional[str] = None         # local image URI
    image_thumb: Optional[str] = None   # thumbnail URI shown in history

    def text_fields(self) -> "ScanContext":
        """The same context with image references removed (what the scorer sees)."""
        return replace(self, image=None, image_thumb=None)

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "ScanContext":
        return cls(
            detected_labels=data["detected_labels"],
            packaging_type=data["packaging_type"],
            material_hints=data["material_hints"],
            ocr_text=data.get("ocr_text"),
            brand_text=data.get("brand_text"),
            user_note=data.get("user_note"),
            image=data.get("image"),
            image_thumb=data.get("image_thumb"),
        )


# ── Sustainability score ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Breakdown:
    materials: int
    packaging: int
    certifications: int
    category_baseline: int


@dataclass(frozen=True)
class TopFactor:
    factor: str
    impact: str                 # positive | negative
    explanation: str            # ≤ ~20 words


@dataclass(frozen=True)
class SustainabilityScore:
    score: int
    breakdown: Breakdown
    top_factors: list[TopFactor]
    suggestion: str
    disposal: str

    def weighted_score(self) -> float:
        """
        The weighted sum the model is asked to follow. Informational only:
        the model's own `score` is what gets stored and displayed.
        """
        return sum(getattr(self.breakdown, k) * w for k, w in SCORE_WEIGHTS.items())

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "SustainabilityScore":
        b = data["breakdown"]
        return cls(
            score=int(data["score"]),
            breakdown=Breakdown(
                materials=int(b["materials"]),
                packaging=int(b["packaging"]),
                certifications=int(b["certifications"]),
                category_baseline=int(b["category_baseline"]),
            ),
            top_factors=[
                TopFactor(
                    factor=str(f["factor"]),
                    impact=str(f["impact"]),
                    explanation=str(f.get("explanation", "")),
                )
                for f in data["top_factors"]
            ],
            suggestion=str(data["suggestion"]),
            disposal=str(data["disposal"]),
        )


# ── Sync state (tagged variant) ───────────────────────────────────────────────

@dataclass(frozen=True)
class Pending:
    kind = "pending"


@dataclass(frozen=True)
class Synced:
    remote_id: Optional[str] = None     # id assigned by the remote store, if returned
    synced_at: Optional[str] = None     # ISO-8601 UTC
    kind = "synced"


SyncState = Union[Pending, Synced]


# ── Scan record ───────────────────────────────────────────────────────────────

@dataclass
class ScanRecord:
    context: ScanContext
    score: SustainabilityScore
    action: str                         # consumed | rejected
    timestamp: int                      # ms since epoch
    user_id: str = ""
    id: Optional[str] = None
    sync_state: SyncState = field(default_factory=Pending)

    @property
    def is_synced(self) -> bool:
        return isinstance(self.sync_state, Synced)

    @classmethod
    def from_remote(cls, data: dict) -> "ScanRecord":
        """
        Build a record from a `/scans` document. Accepts both the nested shape
        ({context, score: {...}}) and the flat one the backend stores
        (context fields and breakdown at top level, `score` as a number).
        """
        if "context" in data:
            context = ScanContext.from_dict(data["context"])
        else:
            context = ScanContext.from_dict(data)

        raw_score = data["score"]
        if not isinstance(raw_score, dict):
            raw_score = {
                "score": raw_score,
                "breakdown": data["breakdown"],
                "top_factors": data.get("top_factors", []),
                "suggestion": data.get("suggestion", ""),
                "disposal": data.get("disposal", ""),
            }
        remote_id = data.get("id") or data.get("_id")
        return cls(
            id=remote_id,
            user_id=str(data.get("userId", "")),
            timestamp=int(data["timestamp"]),
            context=context,
            score=SustainabilityScore.from_dict(raw_score),
            action=data["action"],
            sync_state=Synced(remote_id=remote_id, synced_at=data.get("updatedAt")),
        )


# ── Remote account ────────────────────────────────────────────────────────────

@dataclass
class UserSettings:
    store_images: bool = True
    notifications: bool = True
    dark_mode: bool = False
    language: str = "en"

    def to_dict(self) -> dict[str, Any]:
        return {
            "storeImages": self.store_images,
            "notifications": self.notifications,
            "darkMode": self.dark_mode,
            "language": self.language,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "UserSettings":
        return cls(
            store_images=bool(data.get("storeImages", True)),
            notifications=bool(data.get("notifications", True)),
            dark_mode=bool(data.get("darkMode", False)),
            language=data.get("language", "en"),
        )


@dataclass
class User:
    id: str
    email: str
    settings: UserSettings
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        return cls(
            id=str(data.get("id") or data.get("_id", "")),
            email=data.get("email", ""),
            settings=UserSettings.from_dict(data.get("settings") or {}),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt", ""),
        )
