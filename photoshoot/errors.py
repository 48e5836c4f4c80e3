"""Exception hierarchy for the photoshoot pipeline."""

from __future__ import annotations

from typing import Any


class PhotoshootError(Exception):
    """Base class for every error raised by this package.

    ``kind`` is a short, matchable failure category; subclasses set a default
    and callers may override it per instance.
    """

    kind = "error"

    def __init__(self, message: str = "", *, kind: str | None = None):
        if kind:
            self.kind = kind
        super().__init__(message)


class ValidationError(PhotoshootError, ValueError):
    """Raised when batch parameters are out of bounds. No remote call is made."""

    kind = "validation"


class PlanningError(PhotoshootError):
    """Raised when pose planning fails or returns no poses. No items exist."""

    kind = "planning"


class ItemGenerationError(PhotoshootError):
    """Image synthesis failed for one item; recorded into that item."""

    kind = "generation"


class ConflictError(PhotoshootError):
    """An equivalent operation is already in flight for the item."""

    kind = "conflict"


class PreconditionError(PhotoshootError):
    """The item is not in a state that allows the requested operation."""

    kind = "precondition"


class ItemNotFoundError(PhotoshootError, KeyError):
    """No tracked item has the given id."""

    kind = "not_found"

    def __str__(self) -> str:
        return Exception.__str__(self)


class VideoJobError(PhotoshootError):
    """Submission, polling or fetch failed while synthesizing a video."""

    kind = "video"


class GatewayError(PhotoshootError):
    """Raised when the remote generation API returns an error.

    Attributes:
        status_code: HTTP status, when the failure came from a response.
        body: Raw response body or parsed payload, for diagnostics.
        kind: Open-ended failure category (``blocked``, ``malformed`` ...).
        reason: Backend reason string, if any.
        details: Optional structured details string.
    """

    kind = "gateway"

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
        kind: str | None = None,
        reason: str | None = None,
        details: str | None = None,
    ):
        self.status_code = status_code
        self.body = body
        self.reason = reason
        self.details = details
        super().__init__(message, kind=kind)


class CredentialsError(GatewayError):
    """The API key is missing or was rejected; the user must re-authenticate."""

    kind = "credentials"


def error_kind(exc: BaseException) -> str:
    """Return the matchable kind of an exception (``transport`` for foreign ones)."""
    if isinstance(exc, PhotoshootError):
        return exc.kind
    return "transport"
