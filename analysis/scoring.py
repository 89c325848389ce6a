"""
Sustainability scoring — ScanContext → SustainabilityScore, via Gemini.

The weighting rule (materials 40 / packaging 30 / certifications 20 /
category 10) is given to the model as guidance. The returned `score` is
stored as-is; it is never recomputed or corrected locally.
"""
from __future__ import annotations

import logging
import math

from analysis.base import GeminiCall, parse_json_response
from errors import ValidationError
from models import IMPACTS, ScanContext, SustainabilityScore

logger = logging.getLogger(__name__)

_REQUIRED_KEYS = ("score", "breakdown", "top_factors", "suggestion", "disposal")
_BREAKDOWN_KEYS = ("materials", "packaging", "certifications", "category_baseline")


def build_scoring_prompt(context: ScanContext) -> str:
    return f"""
You are an eco-assistant. Given the short context below about a product, return a JSON object with a sustainability assessment.

Context (exact text lines):
- detected_labels: {context.detected_labels}
- packaging_type: {context.packaging_type}
- material_hints: {context.material_hints}
- visible_text: {context.ocr_text or ''}
- brand_text: {context.brand_text or ''}
- user_note: {context.user_note or ''}

Return EXACTLY one JSON object (no extra text) with the following keys:
{{
  "score": integer between 0 and 100,
  "breakdown": {{
    "materials": integer 0-100,
    "packaging": integer 0-100,
    "certifications": integer 0-100,
    "category_baseline": integer 0-100
  }},
  "top_factors": [
    {{"factor": "string", "impact": "positive|negative", "explanation": "short text"}}
  ],
  "suggestion": "single-sentence suggestion",
  "disposal": "short disposal instruction (one sentence)"
}}

Rules:
- Score is a weighted sum of breakdown (materials 40%, packaging 30%, certifications 20%, category 10%).
- If visible_text contains 'recyclable'/'compostable' or known certifications (FSC, Organic), increase certifications subscore.
- Keep explanations short (max 20 words each)."""


def _as_score(value, name: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"Invalid score response structure ({name} is not a number)")
    if not math.isfinite(value):
        raise ValidationError(f"Invalid score response structure ({name}={value} is not finite)")
    n = int(round(value))
    if not 0 <= n <= 100:
        raise ValidationError(f"Invalid score response structure ({name}={n} outside 0-100)")
    return n


def _to_score(data: dict) -> SustainabilityScore:
    missing = [k for k in _REQUIRED_KEYS if data.get(k) in (None, "")]
    if missing:
        raise ValidationError(f"Invalid score response structure (missing: {', '.join(missing)})")

    breakdown = data["breakdown"]
    if not isinstance(breakdown, dict):
        raise ValidationError("Invalid score response structure (breakdown is not an object)")
    factors = data["top_factors"]
    if not isinstance(factors, list):
        raise ValidationError("Invalid score response structure (top_factors is not a list)")
    for f in factors:
        if not isinstance(f, dict) or not f.get("factor") or f.get("impact") not in IMPACTS:
            raise ValidationError(f"Invalid score response structure (bad factor: {f!r})")

    normalised = {
        "score": _as_score(data["score"], "score"),
        "breakdown": {k: _as_score(breakdown.get(k), k) for k in _BREAKDOWN_KEYS},
        "top_factors": factors,
        "suggestion": data["suggestion"],
        "disposal": data["disposal"],
    }
    return SustainabilityScore.from_dict(normalised)


class ScoringClient(GeminiCall):
    tag = "scoring"
    temperature = 0.2

    async def score(self, context: ScanContext) -> SustainabilityScore:
        logger.info("[scoring] Getting sustainability score…")
        api_key = await self._api_key()
        prompt = build_scoring_prompt(context.text_fields())
        await self._limiter.acquire()
        raw = await self._generate(api_key, [prompt])
        result = _to_score(parse_json_response(raw, self.tag))

        weighted = result.weighted_score()
        if abs(weighted - result.score) > 10:
            logger.info(
                "[scoring] Model score %d differs from weighted breakdown %.1f (kept as-is)",
                result.score, weighted,
            )
        logger.info("[scoring] OK — score=%d", result.score)
        return result
