"""
key_store.py — single source of truth for credentials.

Two named slots live in the secure_store table:

  GEMINI_API_KEY  →  external vision/scoring credential
                     priority: 1. secure slot  2. GEMINI_API_KEY env var
  AUTH_TOKEN      →  bearer token for the remote store
                     secure slot only; set on login/register, cleared on
                     logout / account deletion

Changing the Gemini key takes effect on the NEXT API call; the clients
read it fresh every time, nothing is cached.
"""
from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger(__name__)

GEMINI_API_KEY_SLOT = "GEMINI_API_KEY"
AUTH_TOKEN_SLOT = "AUTH_TOKEN"

# Lazy import to avoid circular dependency at module load time
_db = None


def _get_db():
    global _db
    if _db is None:
        import database as db
        _db = db
    return _db


# ── Gemini API key ────────────────────────────────────────────────────────────

async def get_gemini_api_key() -> Optional[str]:
    """
    Return the Gemini key, checking the secure slot first then env.
    Returns None if not set anywhere.
    """
    try:
        stored = await _get_db().get_secret(GEMINI_API_KEY_SLOT)
        if stored:
            return stored
    except Exception as exc:
        logger.warning("key_store: secure slot lookup failed for %s: %s", GEMINI_API_KEY_SLOT, exc)

    env_val = os.getenv(GEMINI_API_KEY_SLOT)
    return env_val or None


async def set_gemini_api_key(value: str) -> None:
    """Save the key to the secure slot (overrides .env for all future calls)."""
    value = value.strip()
    if not value:
        raise ValueError("API key must not be empty")
    await _get_db().set_secret(GEMINI_API_KEY_SLOT, value)
    logger.info("key_store: Gemini API key updated (%s)", mask(value))


async def delete_gemini_api_key() -> None:
    """Remove the stored key (falls back to .env value if present)."""
    await _get_db().delete_secret(GEMINI_API_KEY_SLOT)


# ── Auth token ────────────────────────────────────────────────────────────────

async def get_auth_token() -> Optional[str]:
    return await _get_db().get_secret(AUTH_TOKEN_SLOT)


async def set_auth_token(token: str) -> None:
    await _get_db().set_secret(AUTH_TOKEN_SLOT, token)


async def clear_auth_token() -> None:
    await _get_db().delete_secret(AUTH_TOKEN_SLOT)


def mask(value: Optional[str]) -> str:
    """Return a masked version safe to print or log."""
    if not value:
        return "not set"
    if len(value) <= 8:
        return "****"
    return f"{value[:4]}{'*' * (len(value) - 8)}{value[-4:]}"
