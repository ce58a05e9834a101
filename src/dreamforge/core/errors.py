"""Exception hierarchy surfaced at the HTTP boundary or absorbed by the store."""

from __future__ import annotations

from typing import Any, Optional


class DreamForgeError(Exception):
    """Base class for all dreamforge errors."""


class RequestValidationError(DreamForgeError):
    """Bad request shape or length. Raised before any side effect."""

    def __init__(self, details: list[dict[str, Any]]):
        super().__init__("Validation failed")
        self.details = details


class VisionProviderError(DreamForgeError):
    """The vision provider failed or returned something unusable."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(DreamForgeError):
    """The durable usage backend could not connect, read, or write."""
