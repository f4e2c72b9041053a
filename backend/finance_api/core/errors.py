# finance_api/core/errors.py
"""Error taxonomy shared by the services and the HTTP boundary.

Services raise one of the ``FinanceError`` subclasses below; ``main.py``
registers a single handler that turns the error's ``kind`` into a status code
using ``ErrorKind.status_code``. Nothing else inspects error types to pick a
status.
"""
import enum
from typing import Any, List, Optional


class ErrorKind(enum.Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    UNAUTHENTICATED = "unauthenticated"
    STORE_UNAVAILABLE = "store_unavailable"
    INTERNAL = "internal"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.UNAUTHENTICATED: 401,
    ErrorKind.STORE_UNAVAILABLE: 503,
    ErrorKind.INTERNAL: 500,
}


class FinanceError(Exception):
    kind = ErrorKind.INTERNAL
    default_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Any]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(FinanceError):
    kind = ErrorKind.VALIDATION
    default_message = "Validation errors"


class NotFound(FinanceError):
    kind = ErrorKind.NOT_FOUND
    default_message = "Resource not found"


class Forbidden(FinanceError):
    kind = ErrorKind.FORBIDDEN
    default_message = "Access denied"


class Conflict(FinanceError):
    kind = ErrorKind.CONFLICT
    default_message = "Request conflicts with current state"


class Unauthenticated(FinanceError):
    kind = ErrorKind.UNAUTHENTICATED
    default_message = "Could not validate credentials"


class StoreUnavailable(FinanceError):
    kind = ErrorKind.STORE_UNAVAILABLE
    default_message = "Database unavailable"


class Internal(FinanceError):
    kind = ErrorKind.INTERNAL
