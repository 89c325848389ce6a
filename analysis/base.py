"""
Shared plumbing for the two Gemini calls (vision and scoring).

Each subclass runs the same sequence:
  1. _api_key()   — read the key fresh from key_store (→ ConfigurationError)
  2. limiter      — wait for the shared rate limiter
  3. _generate()  — exactly one generate_content request, with SDK and
                    transport failures mapped onto the errors.py taxonomy
  4. parse_json_response() + subclass validation

No retries anywhere: a failure ends the current scan attempt.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Optional

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

import config
import key_store
from errors import ConfigurationError, NetworkError, ParseError, SafetyBlockError
from rate_limiter import RateLimiter, limiter as shared_limiter

logger = logging.getLogger(__name__)

# finish_reason / block_reason values that mean "refused by content policy"
_POLICY_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII", "IMAGE_SAFETY"}


def parse_json_response(raw: Optional[str], tag: str) -> dict:
    """
    Parse a single JSON object from a model response, handling markdown
    fences gracefully. Raises ParseError on anything that isn't an object.
    """
    if not raw or not raw.strip():
        raise ParseError(f"[{tag}] Empty response from model")
    text = raw.strip()
    # Strip ```json ... ``` or ``` ... ``` fences, on one line or several
    if text.startswith("```"):
        text = text[3:]
        if text[:4].lower() == "json":
            text = text[4:]
        text = text.strip()
        if text.endswith("```"):
            text = text[:-3].strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("[%s] Non-JSON response: %s", tag, raw[:300])
        raise ParseError(f"[{tag}] Failed to parse model response: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError(f"[{tag}] Expected a JSON object, got {type(data).__name__}")
    return data


def _reason_name(reason: Any) -> str:
    if reason is None:
        return ""
    return str(getattr(reason, "value", reason)).upper()


class GeminiCall:
    """Base class for one kind of Gemini request."""

    tag: str = "gemini"
    temperature: float = 0.1
    check_safety: bool = False

    def __init__(self, model: Optional[str] = None, limiter: Optional[RateLimiter] = None) -> None:
        self._model = model
        self._limiter = limiter or shared_limiter

    @property
    def model_id(self) -> str:
        return self._model or config.GEMINI_MODEL

    async def _api_key(self) -> str:
        api_key = await key_store.get_gemini_api_key()
        if not api_key:
            raise ConfigurationError(
                "Gemini API key not found. Set it with `main.py set-key` or GEMINI_API_KEY."
            )
        return api_key

    def _config(self) -> genai_types.GenerateContentConfig:
        return genai_types.GenerateContentConfig(
            temperature=self.temperature,
            top_p=1,
            top_k=32,
        )

    async def _generate(self, api_key: str, contents: list) -> str:
        """Send one request (caller has already acquired the limiter). Returns raw text."""
        client = genai.Client(api_key=api_key)
        t0 = time.monotonic()
        try:
            response = await client.aio.models.generate_content(
                model=self.model_id,
                contents=contents,
                config=self._config(),
            )
        except genai_errors.APIError as exc:
            logger.error("[%s] API error %s: %s", self.tag, exc.code, exc.message)
            raise NetworkError(exc.message or f"API Error: {exc.code}", status=exc.code) from exc
        except (httpx.HTTPError, OSError, TimeoutError) as exc:
            logger.error("[%s] Transport error: %s", self.tag, exc)
            raise NetworkError(f"Could not reach Gemini: {exc}") from exc

        latency_ms = int((time.monotonic() - t0) * 1000)
        logger.info("[%s] %s responded in %dms", self.tag, self.model_id, latency_ms)

        if self.check_safety:
            self._raise_if_blocked(response)

        text = response.text
        if not text:
            raise ParseError(f"[{self.tag}] Invalid response from Gemini: no text returned")
        return text

    def _raise_if_blocked(self, response: Any) -> None:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = _reason_name(getattr(feedback, "block_reason", None))
        if block_reason:
            raise SafetyBlockError(f"Image analysis blocked by safety settings ({block_reason}).")

        candidates = getattr(response, "candidates", None) or []
        if candidates:
            finish = _reason_name(getattr(candidates[0], "finish_reason", None))
            if finish in _POLICY_REASONS:
                raise SafetyBlockError(f"Image analysis blocked by safety settings ({finish}).")
