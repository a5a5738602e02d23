"""Constants and enums for neo-storage.

This module defines the enums shared by the permission resolver, the quota
ledger and the recycle lifecycle. Values correspond to the persisted column
values used by the storage adapters.
"""

from enum import Enum, IntEnum
from typing import Final, FrozenSet


class StorageDefaults:
    """Default limits applied when a principal or bin is created."""

    USER_QUOTA_BYTES: Final[int] = 5 * 1024 ** 3          # 5 GiB
    TEAM_QUOTA_BYTES: Final[int] = 50 * 1024 ** 3         # 50 GiB
    RECYCLE_RETENTION_DAYS: Final[int] = 30
    RECYCLE_NOTIFY_DAYS: Final[int] = 7
    RECYCLE_MAX_STORAGE_BYTES: Final[int] = 1024 ** 3     # 1 GiB
    RECYCLE_MAX_ITEM_COUNT: Final[int] = 1000
    RECYCLE_EVICTION_TARGET_RATIO: Final[float] = 0.9
    TEAM_MAX_MEMBERS: Final[int] = 50


class LockNamespaces:
    """Lock key patterns, listed in acquisition order."""

    RESOURCE: Final[str] = "resource:{resource_id}"
    RECYCLE_BIN: Final[str] = "bin:{user_id}"
    USER_QUOTA: Final[str] = "quota:user:{user_id}"
    TEAM_QUOTA: Final[str] = "quota:team:{team_id}"


class UserStatus(str, Enum):
    """Principal account status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class UserType(str, Enum):
    """Principal account type."""

    NORMAL = "normal"
    ADMIN = "admin"


class TeamStatus(str, Enum):
    """Team status."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class TeamMemberRole(str, Enum):
    """Role of a user inside a team."""

    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"


class TeamMemberStatus(str, Enum):
    """Membership status of a user inside a team."""

    ACTIVE = "active"
    INVITED = "invited"
    INACTIVE = "inactive"
    LEFT = "left"


class ResourceKind(str, Enum):
    """Kind of a stored resource."""

    FILE = "file"
    FOLDER = "folder"


class ResourceType(str, Enum):
    """Resource types a grant or template rule may target."""

    FILE = "file"
    FOLDER = "folder"
    TEAM = "team"
    SYSTEM = "system"


class ResourceStatus(str, Enum):
    """Lifecycle status of a resource."""

    ACTIVE = "active"
    RECYCLED = "recycled"
    PURGED = "purged"


class PermissionAction(str, Enum):
    """Actions a principal may request on a resource."""

    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    SHARE = "share"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    PREVIEW = "preview"
    PERMANENT_DELETE = "permanent_delete"


# Actions granted to a resource owner (or a team owner/admin) without a grant.
OWNER_ACTIONS: FrozenSet[PermissionAction] = frozenset({
    PermissionAction.READ,
    PermissionAction.WRITE,
    PermissionAction.DELETE,
    PermissionAction.SHARE,
    PermissionAction.DOWNLOAD,
    PermissionAction.UPLOAD,
    PermissionAction.PREVIEW,
})


class SubjectKind(str, Enum):
    """Who a grant applies to."""

    USER = "user"
    TEAM = "team"
    TEMPLATE = "template"


class ScopeKind(str, Enum):
    """What a grant applies to."""

    RESOURCE = "resource"
    RESOURCE_TYPE = "resource_type"
    GLOBAL = "global"


class SourceRank(IntEnum):
    """Specificity rank of the source that produced a decision.

    Higher values are more specific.
    """

    LIFECYCLE = 0
    SYSTEM_DEFAULT = 1
    TEMPLATE = 2
    PRINCIPAL_WILDCARD = 3
    RESOURCE_TEAM = 4
    RESOURCE_USER = 5
    TEAM_ROLE = 6
    OWNERSHIP = 7


class RecycleStatus(str, Enum):
    """Status of a recycle entry."""

    DELETED = "deleted"
    RESTORED = "restored"
    PERMANENT = "permanent"


class PurgeReason(str, Enum):
    """Why a recycle entry was purged."""

    MANUAL = "manual"
    EXPIRED = "expired"
    CAPACITY = "capacity"
    CASCADE = "cascade"


class PurgeOutcome(str, Enum):
    """Outcome of a single purge attempt."""

    PURGED = "purged"
    ALREADY_PURGED = "already_purged"
    SKIPPED = "skipped"
    FAILED = "failed"


class AuditEventType(str, Enum):
    """Audit event types emitted by the engine."""

    PERMISSION_DECISION = "permission.decision"
    RESOURCE_CREATED = "resource.created"
    RESOURCE_RECYCLED = "resource.recycled"
    RESOURCE_RESTORED = "resource.restored"
    RESOURCE_PURGED = "resource.purged"
    RECYCLE_NOTIFIED = "recycle.notified"
    GRANT_ISSUED = "grant.issued"
    TEAM_CREATED = "team.created"
    TEAM_MEMBER_ADDED = "team.member_added"
    TEMPLATE_BOUND = "template.bound"
    QUOTA_CHANGED = "quota.changed"


class AuditOutcome(str, Enum):
    """Outcome recorded on an audit event."""

    ALLOWED = "allowed"
    DENIED = "denied"
    SUCCESS = "success"
    FAILURE = "failure"
