"""
Vision analysis — product photo → ScanContext, via Gemini.

The prompt asks for exactly one JSON object with the six ScanContext text
fields; anything the model can't determine comes back as "unknown".
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

from google.genai import types as genai_types

from analysis.base import GeminiCall, parse_json_response
from errors import ImageReadError, ValidationError
from models import OPTIONAL_CONTEXT_FIELDS, REQUIRED_CONTEXT_FIELDS, ScanContext

logger = logging.getLogger(__name__)

VISION_PROMPT = """
You are an expert product analyzer. Look at the image and identify the product, packaging, materials, and any visible text.
Return EXACTLY one JSON object (no extra text) with the following keys. If a value is unknown, return "unknown".
{
  "detected_labels": "string, e.g., 'soda can; beverage; aluminum'",
  "packaging_type": "string, e.g., 'can', 'bottle', 'box', 'pouch'",
  "material_hints": "string, e.g., 'aluminum', 'PET plastic', 'cardboard'",
  "ocr_text": "string of all visible text, e.g., 'Coca-Cola, 12 fl oz, 100% recyclable'",
  "brand_text": "string, e.g., 'Coca-Cola'",
  "user_note": ""
}"""


def _image_path(image_uri: str) -> Path:
    """Accept a file:// URI or a plain filesystem path."""
    parsed = urlparse(image_uri)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path))
    return Path(image_uri)


def _detect_mime(image_bytes: bytes) -> str:
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if image_bytes[:4] == b"GIF8":
        return "image/gif"
    if image_bytes[:4] == b"RIFF" and image_bytes[8:12] == b"WEBP":
        return "image/webp"
    return "image/jpeg"


async def read_image(image_uri: str) -> bytes:
    path = _image_path(image_uri)
    try:
        data = await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        logger.error("[vision] Could not read %s: %s", image_uri, exc)
        raise ImageReadError("Failed to read image file. Please try again.") from exc
    if not data:
        raise ImageReadError(f"Image file is empty: {image_uri}")
    return data


def _to_context(data: dict) -> ScanContext:
    missing = [
        f for f in REQUIRED_CONTEXT_FIELDS
        if not isinstance(data.get(f), str) or not data[f].strip()
    ]
    if missing:
        raise ValidationError(f"Invalid analysis response structure (missing: {', '.join(missing)})")

    optional = {}
    for f in OPTIONAL_CONTEXT_FIELDS:
        value = data.get(f)
        optional[f] = value if isinstance(value, str) else None
    return ScanContext(
        detected_labels=data["detected_labels"].strip(),
        packaging_type=data["packaging_type"].strip(),
        material_hints=data["material_hints"].strip(),
        **optional,
    )


class VisionAnalysisClient(GeminiCall):
    tag = "vision"
    temperature = 0.1
    check_safety = True

    async def analyze(self, image_uri: str) -> ScanContext:
        logger.info("[vision] Analyzing image %s", image_uri)
        api_key = await self._api_key()
        image_bytes = await read_image(image_uri)
        contents = [
            VISION_PROMPT,
            genai_types.Part.from_bytes(data=image_bytes, mime_type=_detect_mime(image_bytes)),
        ]

        # Acquire right before the request so the spacing is between request starts
        await self._limiter.acquire()
        raw = await self._generate(api_key, contents)
        context = _to_context(parse_json_response(raw, self.tag))
        logger.info(
            "[vision] OK — packaging=%s materials=%s",
            context.packaging_type, context.material_hints,
        )
        return context
