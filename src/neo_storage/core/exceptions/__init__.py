"""Exceptions module for neo-storage."""

from .base import (
    NeoStorageError,
    create_error_response,
    get_http_status_code,
)
from .domain import (
    # Configuration / validation
    ConfigurationError,
    ValidationError,

    # Not found
    NotFoundError,
    PrincipalNotFoundError,
    TeamNotFoundError,
    ResourceNotFoundError,
    RecycleEntryNotFoundError,
    TemplateNotFoundError,

    # Authorization
    PermissionDeniedError,

    # Quota
    QuotaExceededError,

    # Conflicts
    ConflictError,
    StaleStateError,
    NameConflictError,

    # Restore
    ParentGoneError,
    ExpiredError,

    # Concurrency / invariants / adapters
    BusyError,
    InvalidStateError,
    PersistenceError,
)
from .http_mapping import HTTP_STATUS_MAP

__all__ = [
    "NeoStorageError",
    "get_http_status_code",
    "create_error_response",
    "HTTP_STATUS_MAP",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "PrincipalNotFoundError",
    "TeamNotFoundError",
    "ResourceNotFoundError",
    "RecycleEntryNotFoundError",
    "TemplateNotFoundError",
    "PermissionDeniedError",
    "QuotaExceededError",
    "ConflictError",
    "StaleStateError",
    "NameConflictError",
    "ParentGoneError",
    "ExpiredError",
    "BusyError",
    "InvalidStateError",
    "PersistenceError",
]
