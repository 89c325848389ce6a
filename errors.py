"""
errors.py — exception taxonomy shared by the analysis clients and the gateway.

  EcoSpectreError
    ├── ConfigurationError   missing credential (no Gemini key)
    ├── NetworkError         transport failure or non-2xx HTTP response
    │     └── AuthError      401 / expired token from the remote store
    └── ScanError            model output unusable for the current scan
          ├── SafetyBlockError   vision request refused by content policy
          ├── ParseError         response text is not a JSON object
          ├── ValidationError    JSON object missing required fields
          └── ImageReadError     image URI could not be read

AuthError subclasses NetworkError so a caller that only cares about
"the remote store is unavailable" can catch one type, while callers that
need to send the user back to login can catch AuthError first.
"""
from __future__ import annotations

from typing import Optional


class EcoSpectreError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(EcoSpectreError):
    pass


class NetworkError(EcoSpectreError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class AuthError(NetworkError):
    def __init__(self, message: str = "Authentication required", status: Optional[int] = 401) -> None:
        super().__init__(message, status)


class ScanError(EcoSpectreError):
    pass


class SafetyBlockError(ScanError):
    pass


class ParseError(ScanError):
    pass


class ValidationError(ScanError):
    pass


class ImageReadError(ScanError):
    pass
