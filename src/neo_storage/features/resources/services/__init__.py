"""Resource services package."""

from .resource_service import ResourceService
from .resource_tree import ancestor_chain, collect_subtree

__all__ = [
    "ResourceService",
    "collect_subtree",
    "ancestor_chain",
]
