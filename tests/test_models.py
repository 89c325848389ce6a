"""Tests for models.py dataclasses and their (de)serialisation helpers."""
from __future__ import annotations

import pytest

from models import (
    Breakdown,
    Pending,
    ScanContext,
    ScanRecord,
    SustainabilityScore,
    Synced,
    TopFactor,
    User,
    UserSettings,
)


def _score(value=78):
    return SustainabilityScore(
        score=value,
        breakdown=Breakdown(85, 80, 70, 50),
        top_factors=[TopFactor("Aluminum", "positive", "Recyclable.")],
        suggestion="Buy bigger packs.",
        disposal="Recycle with metals.",
    )


class TestScanContext:
    def test_to_dict_drops_unset_fields(self):
        ctx = ScanContext("box", "box", "cardboard")
        assert ctx.to_dict() == {
            "detected_labels": "box",
            "packaging_type": "box",
            "material_hints": "cardboard",
        }

    def test_text_fields_strips_images(self):
        ctx = ScanContext("box", "box", "cardboard", ocr_text="FSC", image="a.jpg", image_thumb="a.jpg")
        text = ctx.text_fields()
        assert text.image is None and text.image_thumb is None
        assert text.ocr_text == "FSC"
        assert ctx.image == "a.jpg"

    def test_from_dict_missing_required_raises(self):
        with pytest.raises(KeyError):
            ScanContext.from_dict({"detected_labels": "box"})


class TestSustainabilityScore:
    def test_weighted_score(self):
        assert _score().weighted_score() == pytest.approx(77.0)

    def test_from_dict_coerces_numbers(self):
        data = _score().to_dict()
        data["score"] = "64"
        data["breakdown"]["packaging"] = 70.0
        parsed = SustainabilityScore.from_dict(data)
        assert parsed.score == 64
        assert parsed.breakdown.packaging == 70

    def test_to_dict_nests_breakdown_and_factors(self):
        data = _score().to_dict()
        assert data["breakdown"] == {
            "materials": 85, "packaging": 80, "certifications": 70, "category_baseline": 50,
        }
        assert data["top_factors"] == [
            {"factor": "Aluminum", "impact": "positive", "explanation": "Recyclable."},
        ]


class TestScanRecord:
    def test_new_record_is_pending(self):
        record = ScanRecord(context=ScanContext("a", "b", "c"), score=_score(), action="consumed", timestamp=1)
        assert record.sync_state == Pending()
        assert record.sync_state.kind == "pending"
        assert not record.is_synced

    def test_from_remote_nested_shape(self):
        doc = {
            "id": "r-9",
            "userId": "u-1",
            "timestamp": 1700000000000,
            "context": {"detected_labels": "jar", "packaging_type": "jar", "material_hints": "glass"},
            "score": _score(55).to_dict(),
            "action": "rejected",
            "updatedAt": "2026-01-01T00:00:00Z",
        }
        record = ScanRecord.from_remote(doc)
        assert record.id == "r-9"
        assert record.context.material_hints == "glass"
        assert record.score.score == 55
        assert record.sync_state == Synced(remote_id="r-9", synced_at="2026-01-01T00:00:00Z")
        assert record.is_synced


class TestUser:
    def test_settings_camel_case(self):
        settings = UserSettings(store_images=False, dark_mode=True)
        assert settings.to_dict() == {
            "storeImages": False, "notifications": True, "darkMode": True, "language": "en",
        }
        assert UserSettings.from_dict(settings.to_dict()) == settings

    def test_user_defaults_when_settings_absent(self):
        user = User.from_dict({"_id": "abc", "email": "x@example.com"})
        assert user.id == "abc"
        assert user.settings == UserSettings()
