"""Resources feature for neo-storage.

Files and folders in the storage tree:
- entities/: Resource and the repository protocol
- services/: ResourceService (create under quota) and tree traversal helpers

Services are imported from ``resources.services``; the permission entities
depend on ``Resource``, so this package only exposes the entities.
"""

from .entities import Resource, ResourceRepository

__all__ = [
    "Resource",
    "ResourceRepository",
]
