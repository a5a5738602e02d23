"""Purge result value object."""

from dataclasses import dataclass
from typing import Optional

from ....config.constants import PurgeOutcome, PurgeReason
from ....core.value_objects import RecycleEntryId, ResourceId


@dataclass(frozen=True)
class PurgeResult:
    """Outcome of purging one recycle entry."""

    entry_id: RecycleEntryId
    resource_id: ResourceId
    outcome: PurgeOutcome
    reason: PurgeReason
    released_bytes: int = 0
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome in (PurgeOutcome.PURGED, PurgeOutcome.ALREADY_PURGED)
