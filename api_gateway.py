"""
REST client for the EcoSpectre remote store (Express + MongoDB).

Endpoints used:
  POST   /auth/login         → {token, user}
  POST   /auth/register      → {token, user}
  POST   /scans              → created scan document
  GET    /scans?startDate=&endDate=
  PATCH  /users/settings     → updated user
  DELETE /users

Every request carries `Content-Type: application/json` and, whenever a token
is stored, `Authorization: Bearer <token>`. The token lives in key_store's
AUTH_TOKEN slot: written on login/register, removed on logout and after a
successful account deletion. There is no refresh: an expired token comes
back as AuthError and the caller must log in again.
"""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Optional

import aiohttp

import config
import key_store
from errors import AuthError, NetworkError
from models import ACTIONS, ScanContext, ScanRecord, SustainabilityScore, User, UserSettings

logger = logging.getLogger(__name__)

GENERIC_ERROR = "API request failed"


class ApiGateway:

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        # None → follow config live (settings_store may change it)
        self._base_url = base_url.rstrip("/") if base_url else None
        self._timeout = timeout

    @property
    def base_url(self) -> str:
        return self._base_url or config.API_URL

    # ── HTTP helper ───────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        endpoint: str,
        body: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Single authenticated HTTP call. Returns the decoded JSON body (or None)."""
        headers = {"Content-Type": "application/json"}
        token = await key_store.get_auth_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url}{endpoint}"
        timeout = aiohttp.ClientTimeout(total=self._timeout or config.HTTP_TIMEOUT)
        try:
            async with aiohttp.ClientSession() as session:
                async with session.request(
                    method,
                    url,
                    headers=headers,
                    json=body,
                    params=params,
                    timeout=timeout,
                ) as resp:
                    # Error pages are not always valid UTF-8
                    text = (await resp.read()).decode("utf-8", errors="replace")
                    status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, endpoint, str(exc) or type(exc).__name__)
            raise NetworkError(f"Network error: {str(exc) or type(exc).__name__}") from exc

        data = _decode(text)
        if not 200 <= status < 300:
            message = data.get("message") if isinstance(data, dict) else None
            logger.warning("%s %s → HTTP %d: %s", method, endpoint, status, message or text[:200])
            if status == 401:
                raise AuthError(message or "Session expired. Please log in again.")
            raise NetworkError(message or GENERIC_ERROR, status=status)
        return data

    # ── Auth ──────────────────────────────────────────────────────────────────

    async def _authenticate(self, endpoint: str, email: str, password: str) -> User:
        data = await self._request("POST", endpoint, body={"email": email, "password": password})
        if not isinstance(data, dict):
            data = {}
        token = data.get("token")
        if not token:
            raise NetworkError("Auth response did not include a token")
        await key_store.set_auth_token(token)
        user = User.from_dict(data["user"] if isinstance(data.get("user"), dict) else {})
        logger.info("Authenticated as %s", user.email or email)
        return user

    async def login(self, email: str, password: str) -> User:
        return await self._authenticate("/auth/login", email, password)

    async def register(self, email: str, password: str) -> User:
        return await self._authenticate("/auth/register", email, password)

    async def logout(self) -> None:
        await key_store.clear_auth_token()
        logger.info("Logged out; auth token cleared")

    async def is_authenticated(self) -> bool:
        return bool(await key_store.get_auth_token())

    # ── Scans ─────────────────────────────────────────────────────────────────

    async def create_scan(
        self,
        context: ScanContext,
        score: SustainabilityScore,
        action: str,
    ) -> dict:
        if action not in ACTIONS:
            raise ValueError(f"action must be one of {ACTIONS}, got {action!r}")
        body = {**context.to_dict(), "score": score.to_dict(), "action": action}
        data = await self._request("POST", "/scans", body=body)
        return data if isinstance(data, dict) else {}

    async def get_scans(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[ScanRecord]:
        params = {}
        if start_date:
            params["startDate"] = start_date.isoformat()
        if end_date:
            params["endDate"] = end_date.isoformat()

        data = await self._request("GET", "/scans", params=params or None)
        if isinstance(data, dict):
            data = data.get("scans", [])

        records: list[ScanRecord] = []
        for raw in data or []:
            try:
                records.append(ScanRecord.from_remote(raw))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed remote scan %s: %s", _doc_id(raw), exc)
        return records

    # ── User ──────────────────────────────────────────────────────────────────

    async def update_settings(self, settings: UserSettings) -> Optional[User]:
        data = await self._request("PATCH", "/users/settings", body={"settings": settings.to_dict()})
        if isinstance(data, dict) and ("email" in data or "settings" in data):
            return User.from_dict(data)
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            return User.from_dict(data["user"])
        return None

    async def delete_account(self) -> None:
        await self._request("DELETE", "/users")
        await key_store.clear_auth_token()
        logger.info("Account deleted; auth token cleared")


# ── Helpers ────────────────────────────────────────────────────────────────────

def _decode(text: str) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None


def _doc_id(raw: Any) -> str:
    if isinstance(raw, dict):
        return str(raw.get("id") or raw.get("_id") or "?")
    return "?"


def remote_id_of(doc: dict) -> Optional[str]:
    """The id the remote store assigned to a created scan, if it returned one."""
    value = doc.get("id") or doc.get("_id")
    return str(value) if value else None
