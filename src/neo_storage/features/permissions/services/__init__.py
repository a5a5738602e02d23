"""Permission services package."""

from .grant_service import GrantService
from .permission_resolver import PermissionResolver, pick_winner

__all__ = [
    "PermissionResolver",
    "GrantService",
    "pick_winner",
]
