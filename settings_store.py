"""
settings_store.py — runtime-editable settings.

A value is resolved from, in order:
  1. the app_settings table  (written by `main.py settings KEY VALUE`)
  2. the environment / .env  (bootstrap)
  3. the built-in default

Values are kept as strings in SQLite and typed on the way out. Changing one
through set()/delete() also rewrites the matching attribute on `config`
(key.upper()), so the Gemini clients, the gateway and the rate limiter pick
it up on their next call.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_db = None


def _get_db():
    global _db
    if _db is None:
        import database as db
        _db = db
    return _db


def _to_bool(raw: str) -> bool:
    return raw.lower() in ("true", "1", "yes")


_CASTERS: dict[str, Callable[[str], Any]] = {
    "str": str,
    "int": int,
    "float": float,
    "bool": _to_bool,
}


def _cast(raw: str, typ: str) -> Any:
    return _CASTERS[typ](raw.strip())


@dataclass(frozen=True)
class Setting:
    env: str
    default: str
    type: str
    desc: str
    choices: tuple[str, ...] = ()
    minimum: Optional[float] = None         # inclusive
    positive: bool = False
    normalise: Optional[Callable[[Any], Any]] = field(default=None, compare=False)


SETTINGS_META: dict[str, Setting] = {
    "api_url": Setting(
        env="API_URL",
        default="http://localhost:5000/api",
        type="str",
        desc="Remote store base URL including /api",
        normalise=lambda v: v.rstrip("/"),
    ),
    "gemini_model": Setting(
        env="GEMINI_MODEL",
        default="gemini-2.5-flash",
        type="str",
        desc="Gemini model used for vision and scoring",
    ),
    "rate_limit_interval": Setting(
        env="RATE_LIMIT_INTERVAL",
        default="1.0",
        type="float",
        desc="Minimum seconds between Gemini calls",
        # shared Gemini quota: never faster than one call per second
        minimum=1.0,
    ),
    "http_timeout": Setting(
        env="HTTP_TIMEOUT",
        default="15",
        type="float",
        desc="Timeout for one REST call (seconds)",
        positive=True,
    ),
    "log_level": Setting(
        env="LOG_LEVEL",
        default="INFO",
        type="str",
        desc="Root log level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        normalise=str.upper,
    ),
}


def _meta(key: str) -> Setting:
    try:
        return SETTINGS_META[key]
    except KeyError:
        raise KeyError(f"Unknown setting: {key}") from None


def _validate(key: str, raw: str) -> Any:
    meta = _meta(key)
    value = _cast(raw, meta.type)       # ValueError on bad input
    if meta.normalise:
        value = meta.normalise(value)
    if meta.choices and value not in meta.choices:
        raise ValueError(f"{key} must be one of: {', '.join(meta.choices)}")
    if meta.minimum is not None and value < meta.minimum:
        raise ValueError(f"{key} must be at least {meta.minimum:g}")
    if meta.positive and value <= 0:
        raise ValueError(f"{key} must be positive")
    return value


async def _resolve(key: str) -> tuple[str, str]:
    """(raw value, source) where source is 'db', 'env' or 'default'."""
    meta = _meta(key)
    try:
        stored = await _get_db().get_setting(key)
        if stored is not None:
            return stored, "db"
    except Exception as exc:
        logger.warning("settings_store: DB lookup failed for %s: %s", key, exc)
    env_val = os.getenv(meta.env, "").strip()
    if env_val:
        return env_val, "env"
    return meta.default, "default"


async def get(key: str) -> Any:
    """Current typed value of a setting."""
    raw, _ = await _resolve(key)
    return _cast(raw, _meta(key).type)


async def get_raw(key: str) -> str:
    raw, _ = await _resolve(key)
    return raw


async def set(key: str, value: str) -> None:
    """Validate, persist, then apply live. Nothing is written if validation fails."""
    _validate(key, value)
    await _get_db().set_setting(key, value.strip())
    _apply_to_config(key, value)


async def delete(key: str) -> None:
    """Drop the DB override; config falls back to .env or the default."""
    _meta(key)
    await _get_db().delete_setting(key)
    raw, _ = await _resolve(key)
    _apply_to_config(key, raw)


async def get_all() -> dict[str, str]:
    return {key: await get_raw(key) for key in SETTINGS_META}


async def describe() -> list[tuple[str, str, str, str]]:
    """(key, raw value, source, description) for every setting, for display."""
    rows = []
    for key, meta in SETTINGS_META.items():
        raw, source = await _resolve(key)
        rows.append((key, raw, source, meta.desc))
    return rows


def _apply_to_config(key: str, raw: str) -> None:
    import config as cfg

    meta = _meta(key)
    value = _cast(raw, meta.type)
    if meta.normalise:
        value = meta.normalise(value)
    if meta.minimum is not None and value < meta.minimum:
        # DB rows and env values bypass _validate
        logger.warning(
            "settings_store: %s=%r is below the minimum %g, using %g",
            key, value, meta.minimum, meta.minimum,
        )
        value = meta.minimum
    if key == "log_level":
        logging.getLogger().setLevel(value)
    attr = key.upper()
    if hasattr(cfg, attr):
        setattr(cfg, attr, value)
        logger.info("settings_store: config.%s = %r (live)", attr, value)
