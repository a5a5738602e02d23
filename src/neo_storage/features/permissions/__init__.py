"""Permissions feature for neo-storage.

Grant-based authorization over files and folders:
- entities/: grants, templates, decisions and the repository protocol
- services/: PermissionResolver (pure decisions) and GrantService
"""

from .entities import (
    Decision,
    GrantRepository,
    GrantScope,
    GrantSubject,
    PermissionGrant,
    PermissionTemplate,
)
from .services import GrantService, PermissionResolver

__all__ = [
    "Decision",
    "GrantSubject",
    "GrantScope",
    "PermissionGrant",
    "PermissionTemplate",
    "GrantRepository",
    "PermissionResolver",
    "GrantService",
]
