"""
Sheet API Error Types — Structured exception hierarchy for SheetClient.

Callers (the sync session, scripts) can tell a rejected payload or a
missing character apart from a server or network failure. None of them
are retried automatically.
"""

from typing import Any, Optional


class SheetError(Exception):
    """Base class for all sheet API errors."""

    def __init__(self, message: str, status: Optional[int] = None, details: Any = None):
        self.status = status
        self.details = details
        super().__init__(message)


class SheetConnectionError(SheetError):
    """Server unreachable or returned a server error (5xx)."""
    pass


class SheetTimeoutError(SheetError):
    """Request timed out waiting for the server."""
    pass


class SheetNotFoundError(SheetError):
    """Character does not exist or belongs to another user (404)."""
    pass


class SheetValidationError(SheetError):
    """Payload rejected by the character schema (400). `details` holds the field errors."""
    pass


class SheetAuthError(SheetError):
    """Token missing or rejected (401/403)."""
    pass
