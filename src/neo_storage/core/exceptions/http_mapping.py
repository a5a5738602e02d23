"""HTTP status code mapping for exceptions.

The engine does not serve HTTP; the mapping lets the surrounding API layer
return distinct codes for missing entities, denials and capacity errors.
"""

from typing import Dict, Type

from .base import NeoStorageError
from .domain import (
    BusyError,
    ConfigurationError,
    ConflictError,
    ExpiredError,
    InvalidStateError,
    NameConflictError,
    NotFoundError,
    ParentGoneError,
    PermissionDeniedError,
    PersistenceError,
    QuotaExceededError,
    StaleStateError,
    ValidationError,
)


HTTP_STATUS_MAP: Dict[Type[Exception], int] = {
    # 400 Bad Request
    ValidationError: 400,

    # 403 Forbidden
    PermissionDeniedError: 403,

    # 404 Not Found
    NotFoundError: 404,

    # 409 Conflict
    ConflictError: 409,
    StaleStateError: 409,
    NameConflictError: 409,
    ParentGoneError: 409,

    # 410 Gone
    ExpiredError: 410,

    # 503 Service Unavailable
    BusyError: 503,

    # 507 Insufficient Storage
    QuotaExceededError: 507,

    # 500 Internal Server Error
    InvalidStateError: 500,
    PersistenceError: 500,
    ConfigurationError: 500,
    NeoStorageError: 500,
}


def get_http_status_code(exception: Exception) -> int:
    """Resolve the status code by walking the exception's MRO."""
    for exc_type in type(exception).__mro__:
        if exc_type in HTTP_STATUS_MAP:
            return HTTP_STATUS_MAP[exc_type]
    return 500
