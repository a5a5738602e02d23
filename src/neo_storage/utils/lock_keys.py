"""Lock key construction and acquisition ordering.

Keys are always taken in namespace order (resource, then recycle bin, then
quota) and sorted within a namespace, so two callers that need overlapping
keys can never wait on each other in a cycle.
"""

from typing import Iterable, List, Optional, Tuple

from ..config.constants import LockNamespaces

_NAMESPACE_ORDER = ("resource:", "bin:", "quota:user:", "quota:team:")


def resource_key(resource_id) -> str:
    return LockNamespaces.RESOURCE.format(resource_id=resource_id)


def bin_key(user_id) -> str:
    return LockNamespaces.RECYCLE_BIN.format(user_id=user_id)


def user_quota_key(user_id) -> str:
    return LockNamespaces.USER_QUOTA.format(user_id=user_id)


def team_quota_key(team_id) -> str:
    return LockNamespaces.TEAM_QUOTA.format(team_id=team_id)


def quota_keys(user_id, team_id: Optional[object] = None) -> List[str]:
    """Quota keys for a user and, when given, a team."""
    keys = [user_quota_key(user_id)]
    if team_id is not None:
        keys.append(team_quota_key(team_id))
    return keys


def lock_sort_key(key: str) -> Tuple[int, str]:
    for rank, prefix in enumerate(_NAMESPACE_ORDER):
        if key.startswith(prefix):
            return rank, key
    return len(_NAMESPACE_ORDER), key


def ordered_keys(keys: Iterable[str]) -> List[str]:
    """Deduplicate and order keys for acquisition."""
    return sorted(set(keys), key=lock_sort_key)
