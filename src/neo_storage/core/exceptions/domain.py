"""Domain-specific exceptions for neo-storage.

Authorization denials are ordinary decisions at the resolver level; the
exceptions here are raised by the mutation services and the adapters.
"""

from datetime import datetime
from typing import Any, Optional

from .base import NeoStorageError


# Configuration Errors
class ConfigurationError(NeoStorageError):
    """Raised when engine settings are missing or invalid."""
    pass


# Validation Errors
class ValidationError(NeoStorageError):
    """Raised when an entity or request fails validation."""
    pass


# Not Found Errors
class NotFoundError(NeoStorageError):
    """Raised when a principal, resource or recycle entry does not exist."""

    def __init__(self, entity_type: str, identifier: Any):
        self.entity_type = entity_type
        self.identifier = str(identifier)
        super().__init__(
            f"{entity_type} with identifier '{self.identifier}' not found",
            details={"entity_type": entity_type, "identifier": self.identifier},
        )


class PrincipalNotFoundError(NotFoundError):
    """Raised when a user principal does not exist."""

    def __init__(self, identifier: Any):
        super().__init__("Principal", identifier)


class TeamNotFoundError(NotFoundError):
    """Raised when a team does not exist."""

    def __init__(self, identifier: Any):
        super().__init__("Team", identifier)


class ResourceNotFoundError(NotFoundError):
    """Raised when a file or folder does not exist."""

    def __init__(self, identifier: Any):
        super().__init__("Resource", identifier)


class RecycleEntryNotFoundError(NotFoundError):
    """Raised when a recycle entry does not exist."""

    def __init__(self, identifier: Any):
        super().__init__("RecycleEntry", identifier)


class TemplateNotFoundError(NotFoundError):
    """Raised when a permission template does not exist."""

    def __init__(self, identifier: Any):
        super().__init__("PermissionTemplate", identifier)


# Authorization Errors
class PermissionDeniedError(NeoStorageError):
    """Raised by a mutation service when the actor's decision is deny."""

    def __init__(self, actor_id: Any, resource_id: Any, action: str, source_rank: Optional[int] = None):
        self.actor_id = str(actor_id) if actor_id is not None else None
        self.resource_id = str(resource_id)
        self.action = action
        self.source_rank = source_rank
        super().__init__(
            f"Action '{action}' denied on resource '{self.resource_id}'",
            details={"action": action, "resource_id": self.resource_id},
        )


# Quota Errors
class QuotaExceededError(NeoStorageError):
    """Raised when a reservation would push usage beyond the quota."""

    def __init__(self, account: str, requested: int, used: int, total: int):
        self.account = account
        self.requested = requested
        self.used = used
        self.total = total
        super().__init__(
            f"Quota exceeded for {account}: requested {requested} bytes, "
            f"{max(total - used, 0)} of {total} bytes available",
            details={"account": account, "requested": requested, "used": used, "total": total},
        )


# Conflict Errors
class ConflictError(NeoStorageError):
    """Base class for concurrent-modification and naming conflicts."""
    pass


class StaleStateError(ConflictError):
    """Raised when the entity changed since it was read.

    Callers should re-read and retry with bounded backoff.
    """

    def __init__(self, entity_type: str, identifier: Any, reason: str = ""):
        self.entity_type = entity_type
        self.identifier = str(identifier)
        self.reason = reason
        message = f"{entity_type} '{self.identifier}' was modified concurrently"
        if reason:
            message += f": {reason}"
        super().__init__(message, details={"entity_type": entity_type, "identifier": self.identifier})


class NameConflictError(ConflictError):
    """Raised when the target folder already holds an active resource with the same name."""

    def __init__(self, parent_id: Any, name: str):
        self.parent_id = str(parent_id) if parent_id is not None else None
        self.name = name
        super().__init__(
            f"A resource named '{name}' already exists in the target folder",
            details={"parent_id": self.parent_id, "name": name},
        )


# Restore Errors
class ParentGoneError(NeoStorageError):
    """Raised when a restore target folder was purged, recycled or renamed."""

    def __init__(self, entry_id: Any, parent_id: Any, reason: str):
        self.entry_id = str(entry_id)
        self.parent_id = str(parent_id) if parent_id is not None else None
        self.reason = reason
        super().__init__(
            f"Original parent of recycle entry '{self.entry_id}' is gone: {reason}",
            details={"entry_id": self.entry_id, "parent_id": self.parent_id, "reason": reason},
        )


class ExpiredError(NeoStorageError):
    """Raised when a recycle entry is past its expiry and can no longer be restored."""

    def __init__(self, entry_id: Any, expires_at: datetime):
        self.entry_id = str(entry_id)
        self.expires_at = expires_at
        super().__init__(
            f"Recycle entry '{self.entry_id}' expired at {expires_at.isoformat()}",
            details={"entry_id": self.entry_id, "expires_at": expires_at.isoformat()},
        )


# Concurrency Errors
class BusyError(NeoStorageError):
    """Raised when a lock could not be acquired within the bounded wait."""

    def __init__(self, key: str, timeout_seconds: float):
        self.key = key
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Timed out after {timeout_seconds}s waiting for '{key}'",
            details={"key": key, "timeout_seconds": timeout_seconds},
        )


# Invariant Errors
class InvalidStateError(NeoStorageError):
    """Raised when stored state violates an engine invariant."""
    pass


# Persistence Errors
class PersistenceError(NeoStorageError):
    """Raised when a persistence adapter fails."""
    pass
