from typing import Optional


class RendezvousError(Exception):
    """Base error rendered as a JSON error response at the HTTP boundary."""

    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str, *, reason: Optional[str] = None, extra: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason
        self.extra = extra or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "reason": self.reason, **self.extra}


class InvalidRequestError(RendezvousError):
    """Missing or malformed input. Never retried by the server."""

    status_code = 400
    reason = "invalid_request"


class NotParticipantError(RendezvousError):
    status_code = 403
    reason = "not_participant"


class MatchNotFoundError(RendezvousError):
    """Referenced match is gone; the client should re-join."""

    status_code = 404
    reason = "match_not_found"


class CapacityError(RendezvousError):
    """Transient, retry-safe: a queue is full."""

    status_code = 503
    reason = "capacity_exceeded"

    def __init__(self, message: str, *, retry_after: int, **kwargs):
        super().__init__(message, **kwargs)
        self.retry_after = retry_after
        self.extra.setdefault("retryAfter", retry_after)


class InternalServerError(RendezvousError):
    status_code = 500
    reason = "internal_error"

    def __init__(self, message: str = "Server error"):
        super().__init__(message)
