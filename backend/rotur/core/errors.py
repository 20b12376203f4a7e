# rotur/core/errors.py
"""
Error kinds surfaced by the services to the HTTP layer.

Every mutating service call either succeeds or raises one of these. Each kind
carries an HTTP status and a stable error code; the message is human readable
and mirrors what clients of the platform already display.
"""
from typing import Optional


class RoturError(Exception):
    """Base error: rendered as {"success": false, "error": {"code", "message"}}."""

    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **extra):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        body.update(self.extra)
        return body


class NotFound(RoturError):
    status_code = 404
    code = "NOT_FOUND"


class Conflict(RoturError):
    status_code = 409
    code = "CONFLICT"


class PreconditionFailed(RoturError):
    status_code = 400
    code = "PRECONDITION_FAILED"


class BadInput(RoturError):
    status_code = 400
    code = "BAD_INPUT"


class Unauthorized(RoturError):
    status_code = 401
    code = "AUTH_REQUIRED"


class Forbidden(RoturError):
    status_code = 403
    code = "FORBIDDEN"


class QuotaExceeded(RoturError):
    """OFSF batch left the user's directory over quota. Applied commands stay applied."""

    status_code = 413
    code = "QUOTA_EXCEEDED"

    def __init__(self, used_size: int, available_size: int):
        super().__init__(
            "Max Upload Size Exceeded",
            used_size=used_size,
            available_size=available_size,
        )
        self.used_size = used_size
        self.available_size = available_size
