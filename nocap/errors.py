"""Error taxonomy shared by the storage, index and auth layers.

In-memory stores and indexes never raise these; they originate at the blob
backend boundary (or at input validation) and are translated into HTTP
responses only by :mod:`nocap.api.app`.
"""

from __future__ import annotations

from typing import Optional


class NoCapError(Exception):
    """Base class for every error the persistence layer surfaces."""

    status_code: int = 500


class ValidationError(NoCapError):
    """Malformed or missing required fields. Never retried."""

    status_code = 400


class NotFound(NoCapError):
    """Unknown fact, comment, blob or key id."""

    status_code = 404


class BackendUnavailable(NoCapError):
    """The blob backend is unreachable or answered with an error."""

    status_code = 500


class AuthenticationError(NoCapError):
    """API key missing, unknown, revoked, or lacking the required permission."""

    status_code = 403

    def __init__(self, message: str, *, missing: bool = False) -> None:
        super().__init__(message)
        self.missing = missing
        if missing:
            self.status_code = 401


class RateLimitExceeded(NoCapError):
    status_code = 429

    def __init__(self, message: str, *, limit: int, reset_at: Optional[int] = None) -> None:
        super().__init__(message)
        self.limit = limit
        # Unix seconds at which the current window closes.
        self.reset_at = reset_at
