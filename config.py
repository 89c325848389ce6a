"""
Central configuration — reads from .env file.

Settings priority order:
  1. Database (set via `main.py settings KEY VALUE`) — live, no restart needed
  2. Environment variable / .env file                — fallback / bootstrap

The Gemini API key follows the same priority via key_store.py.
settings_store.py writes directly to the module attributes below when a
setting is changed, so all code reading config.X always gets the latest
value without restarting.
"""
import logging
import os

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# ── Remote store (Express REST API) ───────────────────────────────────────────
# Base URL including the /api prefix, e.g. https://ecospectre.example.com/api
# NOTE: overridden at runtime by settings_store
API_URL: str = os.getenv("API_URL", "http://localhost:5000/api").rstrip("/")

# Total timeout for one REST call (seconds)
HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "15"))

# ── Gemini ────────────────────────────────────────────────────────────────────
# The key itself is NOT read here; see key_store.get_gemini_api_key(), which
# checks the secure slot first and falls back to GEMINI_API_KEY from the env.
# NOTE: overridden at runtime by settings_store
GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# Minimum spacing between any two Gemini calls, process-wide (seconds).
# Vision and scoring share this budget; it never drops below the floor.
MIN_RATE_LIMIT_INTERVAL = 1.0


def clamp_rate_limit_interval(value: float) -> float:
    if value < MIN_RATE_LIMIT_INTERVAL:
        logger.warning(
            "config: rate_limit_interval=%s is below %.1fs, using %.1fs",
            value, MIN_RATE_LIMIT_INTERVAL, MIN_RATE_LIMIT_INTERVAL,
        )
        return MIN_RATE_LIMIT_INTERVAL
    return value


RATE_LIMIT_INTERVAL: float = clamp_rate_limit_interval(float(os.getenv("RATE_LIMIT_INTERVAL", "1.0")))

# ── Background sync ───────────────────────────────────────────────────────────
# How long shutdown waits for outstanding sync pushes before cancelling them
SYNC_DRAIN_TIMEOUT: float = float(os.getenv("SYNC_DRAIN_TIMEOUT", "10"))

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


async def apply_db_settings() -> None:
    """
    Load all DB-persisted settings and apply them to this module's attributes.
    Called once at startup so DB values override .env from the start.
    A broken settings row is logged and skipped; the .env value stays in force.
    """
    import database as _db
    import settings_store

    for key in settings_store.SETTINGS_META:
        try:
            db_raw = await _db.get_setting(key)
            # Only apply if there's a DB override (don't stomp .env unnecessarily)
            if db_raw is not None:
                settings_store._apply_to_config(key, db_raw)
        except Exception as exc:
            logger.warning("config: could not apply DB setting %s: %s", key, exc)
