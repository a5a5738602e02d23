"""Neo-Storage - permission, quota and recycle lifecycle engine.

Decides whether a principal may act on a file or folder, keeps per-user and
per-team storage quotas consistent, and runs the soft-delete, restore and
purge lifecycle behind a recycle bin. HTTP routing and byte storage drivers
live outside this package.
"""

# Initialize logging configuration on import
from .config.logging_config import setup_logging
setup_logging()

from .__version__ import __version__

from .config import (
    StorageEngineSettings,
    load_settings,
    PermissionAction,
    ResourceKind,
    ResourceStatus,
    ResourceType,
    RecycleStatus,
    PurgeReason,
    PurgeOutcome,
    SourceRank,
    TeamMemberRole,
    UserType,
)

from .core.exceptions import (
    NeoStorageError,
    NotFoundError,
    PrincipalNotFoundError,
    TeamNotFoundError,
    ResourceNotFoundError,
    RecycleEntryNotFoundError,
    TemplateNotFoundError,
    PermissionDeniedError,
    QuotaExceededError,
    ConflictError,
    StaleStateError,
    NameConflictError,
    ParentGoneError,
    ExpiredError,
    BusyError,
    InvalidStateError,
    ValidationError,
    ConfigurationError,
    PersistenceError,
    get_http_status_code,
    create_error_response,
)

from .core.value_objects import (
    UserId,
    TeamId,
    ResourceId,
    GrantId,
    TemplateId,
    RecycleEntryId,
    AuditEventId,
)

from .features.permissions.entities import Decision, GrantScope, GrantSubject, PermissionGrant
from .features.recycle.entities import PurgeResult, RecycleBinConfig, RecycleEntry
from .features.resources.entities import Resource

from .infrastructure import (
    AsyncPGStorageStore,
    InMemoryStorageStore,
    KeyedLockManager,
    RedisLockManager,
    InMemoryAuditSink,
    LoggingAuditSink,
)

from .utils.retry import ConflictRetryPolicy, retry_on_conflict

from .factory import StorageEngine, create_storage_engine

__all__ = [
    "__version__",

    # Configuration
    "StorageEngineSettings",
    "load_settings",
    "PermissionAction",
    "ResourceKind",
    "ResourceStatus",
    "ResourceType",
    "RecycleStatus",
    "PurgeReason",
    "PurgeOutcome",
    "SourceRank",
    "TeamMemberRole",
    "UserType",

    # Exceptions
    "NeoStorageError",
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
    "ValidationError",
    "ConfigurationError",
    "PersistenceError",
    "get_http_status_code",
    "create_error_response",

    # Identifiers
    "UserId",
    "TeamId",
    "ResourceId",
    "GrantId",
    "TemplateId",
    "RecycleEntryId",
    "AuditEventId",

    # Entities
    "Decision",
    "GrantScope",
    "GrantSubject",
    "PermissionGrant",
    "PurgeResult",
    "RecycleBinConfig",
    "RecycleEntry",
    "Resource",

    # Infrastructure
    "AsyncPGStorageStore",
    "InMemoryStorageStore",
    "KeyedLockManager",
    "RedisLockManager",
    "InMemoryAuditSink",
    "LoggingAuditSink",

    # Engine
    "StorageEngine",
    "create_storage_engine",

    # Retry
    "ConflictRetryPolicy",
    "retry_on_conflict",
]
