"""
Service Errors - Typed Failures Raised by Agents

EXPLANATION:
============
Agents raise these exceptions from their operations. The agent base class
turns a raised ServiceError into an error response message carrying the
error's `code`, and the API gateway maps that code back to an HTTP status.

    Unauthorized      -> 401  (no or invalid session)
    InvalidInput      -> 400  (missing/malformed fields)
    NotFound          -> 404  (user/video/comment absent)
    Forbidden         -> 403  (authenticated but not permitted)
    Conflict          -> 409  (duplicate unique field)
    InvalidOperation  -> 400  (self-follow, self-block)
    InternalError     -> 500  (storage failure, generic message only)

The message of an InternalError is always generic; the real cause is only
written to the server log.
"""

from typing import Any, Dict, Optional, Type


class ServiceError(Exception):
    """Base class for every failure an agent reports to a caller."""

    code = "internal"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> Dict[str, Any]:
        """Payload for an error response message."""
        return {
            "success": False,
            "error": self.message,
            "error_code": self.code
        }

    @classmethod
    def for_code(cls, code: Optional[str]) -> Type["ServiceError"]:
        """Find the error class registered for a code (InternalError if unknown)."""
        return _ERRORS_BY_CODE.get(code or "", InternalError)


class Unauthorized(ServiceError):
    code = "unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class InvalidInput(ServiceError):
    code = "invalid_input"
    status_code = 400
    default_message = "Invalid input"


class NotFound(ServiceError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class Forbidden(ServiceError):
    code = "forbidden"
    status_code = 403
    default_message = "Forbidden"


class Conflict(ServiceError):
    code = "conflict"
    status_code = 409
    default_message = "Conflict"


class InvalidOperation(ServiceError):
    code = "invalid_operation"
    status_code = 400
    default_message = "Invalid operation"


class InternalError(ServiceError):
    pass


_ERRORS_BY_CODE = {
    error_class.code: error_class
    for error_class in (
        Unauthorized, InvalidInput, NotFound, Forbidden,
        Conflict, InvalidOperation, InternalError
    )
}
