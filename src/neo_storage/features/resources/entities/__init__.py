"""Resource entities package."""

from .protocols import ResourceRepository
from .resource import PATH_SEPARATOR, Resource, join_path

__all__ = [
    "Resource",
    "ResourceRepository",
    "PATH_SEPARATOR",
    "join_path",
]
