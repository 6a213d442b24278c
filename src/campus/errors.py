"""Domain error taxonomy.

Services raise these; the global handler in ``campus.middleware.error_handler``
renders them as ``{"error": kind, "detail": message}`` with the matching status.
"""

from __future__ import annotations


class CampusError(Exception):
    """Base class for expected, caller-recoverable failures."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthorized(CampusError):
    """Missing, invalid or expired credential."""

    kind = "unauthorized"
    status_code = 401


class Forbidden(CampusError):
    """Authenticated but not permitted for this resource."""

    kind = "forbidden"
    status_code = 403


class NotFound(CampusError):
    kind = "not_found"
    status_code = 404


class Conflict(CampusError):
    """Uniqueness violation."""

    kind = "conflict"
    status_code = 409


class InvalidRequest(CampusError):
    """Operation is not valid for the current state."""

    kind = "invalid_request"
    status_code = 400


class RateLimited(CampusError):
    """Too many requests from one client in the current window."""

    kind = "rate_limited"
    status_code = 429


class Timeout(CampusError):
    """Request ran past its deadline."""

    kind = "timeout"
    status_code = 504


class Unavailable(CampusError):
    """Store or downstream dependency unreachable."""

    kind = "unavailable"
    status_code = 503


def error_body(kind: str, detail: object) -> dict[str, object]:
    return {"error": kind, "detail": detail}
