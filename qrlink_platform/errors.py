"""
Error taxonomy for QR Link Platform.

Every failure a caller can act on is one of these exceptions. Each carries a
human-readable message, the HTTP status the API maps it to, and optional
structured `data` for the response envelope (suggestions, other versions,
click counts). Messages never include internal ids or filesystem paths.

LLM Prompt Example:
    "Show how a small exception hierarchy with status codes lets a FastAPI
    app map domain failures to one JSON envelope via a single handler."
"""

from typing import Any, Dict, List, Optional


class QRLinkError(Exception):
    """Base class for all platform errors."""

    status_code = 500

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data


class ValidationError(QRLinkError, ValueError):
    """Malformed slug, URL, name or style payload. Fix the input and retry."""

    status_code = 400


class Conflict(QRLinkError):
    """Slug already taken. Carries alternative suggestions."""

    status_code = 409

    def __init__(self, message: str = "This slug is already in use", suggestions: Optional[List[str]] = None):
        self.suggestions = list(suggestions or [])
        super().__init__(message, {"suggestions": self.suggestions})


class NotFound(QRLinkError):
    status_code = 404


class LimitExceeded(QRLinkError):
    """Version cap reached for a code."""

    status_code = 400

    def __init__(self, count: int, limit: int):
        self.count = count
        self.limit = limit
        super().__init__(
            f"Maximum version limit reached ({limit} versions)",
            {"count": count, "limit": limit},
        )


class NeedsConfirmation(QRLinkError):
    """Soft gate: renaming a slug that has already been scanned."""

    status_code = 409

    def __init__(self, click_count: int):
        self.click_count = click_count
        super().__init__(
            f"This code has been scanned {click_count} time(s). Printed codes using the "
            "current slug will stop working. Resubmit with confirmation to proceed.",
            {"needs_confirmation": True, "click_count": click_count},
        )


class RequiresNewFavorite(QRLinkError):
    """Deleting the favorite version requires nominating a replacement first."""

    status_code = 400

    def __init__(self, other_versions: List[Dict[str, Any]]):
        self.other_versions = other_versions
        super().__init__(
            "This is the favorite version. Please select a new favorite version before deleting.",
            {"requires_new_favorite": True, "other_versions": other_versions},
        )


class LastVersion(QRLinkError):
    status_code = 400

    def __init__(self) -> None:
        super().__init__("Cannot delete the last version. A QR code must have at least one version.")


class StorageFailure(QRLinkError):
    """Database or filesystem failure. Logged and surfaced as a generic 500."""

    status_code = 500


class StorageTimeout(StorageFailure):
    pass
