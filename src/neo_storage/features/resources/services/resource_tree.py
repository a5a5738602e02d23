"""Tree traversal helpers over a resource repository.

Both walks detect cycles and dangling parents and raise ``InvalidStateError``
instead of looping, since the tree must always terminate at a root.
"""

import logging
from collections import deque
from typing import List, Optional, Set

from ....config.constants import ResourceStatus
from ....core.exceptions import InvalidStateError
from ....core.value_objects import ResourceId
from ..entities.protocols import ResourceRepository
from ..entities.resource import Resource

logger = logging.getLogger(__name__)


async def collect_subtree(
    repository: ResourceRepository,
    root: Resource,
    status: Optional[ResourceStatus] = ResourceStatus.ACTIVE,
) -> List[Resource]:
    """Return ``root`` followed by its descendants in breadth-first order.

    Only children with ``status`` are followed (all children when None).
    Parents always precede their children in the result.
    """
    result: List[Resource] = [root]
    seen: Set[ResourceId] = {root.id}
    queue = deque([root])

    while queue:
        node = queue.popleft()
        if not node.is_folder:
            continue
        for child in await repository.list_children(node.id, status=status):
            if child.id in seen:
                raise InvalidStateError(
                    f"Cycle detected in resource tree at '{child.id}' under '{root.id}'",
                    details={"root_id": str(root.id), "resource_id": str(child.id)},
                )
            seen.add(child.id)
            result.append(child)
            queue.append(child)

    logger.debug(f"Collected {len(result)} resources under {root.id}")
    return result


async def ancestor_chain(repository: ResourceRepository, resource: Resource) -> List[Resource]:
    """Return the ancestors of ``resource`` from its parent up to the root."""
    chain: List[Resource] = []
    seen: Set[ResourceId] = {resource.id}
    parent_id = resource.parent_id

    while parent_id is not None:
        if parent_id in seen:
            raise InvalidStateError(
                f"Cycle detected in ancestor chain of '{resource.id}'",
                details={"resource_id": str(resource.id), "parent_id": str(parent_id)},
            )
        parent = await repository.get_resource(parent_id)
        if parent is None:
            raise InvalidStateError(
                f"Ancestor '{parent_id}' of '{resource.id}' does not exist",
                details={"resource_id": str(resource.id), "parent_id": str(parent_id)},
            )
        seen.add(parent_id)
        chain.append(parent)
        parent_id = parent.parent_id

    return chain
