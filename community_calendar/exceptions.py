"""Application error hierarchy for community_calendar.

Service functions raise these instead of generic exceptions so the HTTP layer
can map them onto status codes and structured error bodies.
"""

from __future__ import annotations

from typing import Any


class CommunityError(Exception):
    """Base exception for all application-level failures.

    Subclasses set ``code`` (machine readable error name) and
    ``http_status`` (status returned by the API error middleware).
    """

    code = "INTERNAL_SERVER_ERROR"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON error body used by the API."""
        return {"error": self.code, "message": self.message}


class ValidationError(CommunityError):
    """Request input is missing, malformed or out of range.

    Should result in HTTP 400 Bad Request response.
    """

    code = "BAD_REQUEST"
    http_status = 400


class UnauthorizedError(CommunityError):
    """Bearer token is missing or invalid."""

    code = "UNAUTHORIZED"
    http_status = 401


class ForbiddenError(CommunityError):
    """Caller is identified but not allowed to perform the action.

    Raised when:
    - A user tries to delete themselves
    - A Root user is targeted for deletion
    - A resident edits or deletes somebody else's publication
    """

    code = "FORBIDDEN"
    http_status = 403


class NotFoundError(CommunityError):
    """Referenced user or publication does not exist."""

    code = "NOT_FOUND"
    http_status = 404


class PreconditionFailedError(CommunityError):
    """Operation blocked by dependent records.

    ``dependencies`` maps a user id to the blocking content counts
    (publications, listings, news) so callers can show what to reassign first.
    """

    code = "PRECONDITION_FAILED"
    http_status = 412

    def __init__(self, message: str, dependencies: dict[str, dict[str, int]] | None = None) -> None:
        super().__init__(message)
        self.dependencies = dependencies or {}

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["dependencies"] = self.dependencies
        return body
