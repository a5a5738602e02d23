"""Configuration module for neo-storage.

Enums shared across features, the pydantic settings model, and logging setup.
"""

from .constants import *
from .logging_config import (
    LogFormat,
    LoggingConfig,
    LogVerbosity,
    setup_logging,
)
from .settings import StorageEngineSettings, load_settings

__all__ = [
    # Constants
    "StorageDefaults",
    "LockNamespaces",
    "UserStatus",
    "UserType",
    "TeamStatus",
    "TeamMemberRole",
    "TeamMemberStatus",
    "ResourceKind",
    "ResourceType",
    "ResourceStatus",
    "PermissionAction",
    "OWNER_ACTIONS",
    "SubjectKind",
    "ScopeKind",
    "SourceRank",
    "RecycleStatus",
    "PurgeReason",
    "PurgeOutcome",
    "AuditEventType",
    "AuditOutcome",

    # Settings
    "StorageEngineSettings",
    "load_settings",

    # Logging
    "setup_logging",
    "LogVerbosity",
    "LogFormat",
    "LoggingConfig",
]
