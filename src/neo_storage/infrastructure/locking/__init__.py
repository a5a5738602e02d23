"""Lock manager implementations."""

from .lock_manager import KeyedLockManager
from .redis_lock_manager import RedisLockManager

__all__ = [
    "KeyedLockManager",
    "RedisLockManager",
]
