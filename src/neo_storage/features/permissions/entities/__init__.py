"""Permission entities package."""

from .decision import Decision
from .grant import GrantScope, GrantSubject, PermissionGrant
from .protocols import GrantRepository
from .template import PermissionTemplate

__all__ = [
    "Decision",
    "GrantSubject",
    "GrantScope",
    "PermissionGrant",
    "PermissionTemplate",
    "GrantRepository",
]
