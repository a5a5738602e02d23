"""Permission decision value object."""

from dataclasses import dataclass
from typing import Optional

from ....config.constants import SourceRank
from ....core.value_objects import GrantId


@dataclass(frozen=True)
class Decision:
    """Outcome of a permission check.

    A deny is an ordinary decision, not an error. ``source_rank`` names the
    tier that produced the outcome and ``grant_id`` the deciding grant, if any.
    """

    allow: bool
    source_rank: SourceRank
    grant_id: Optional[GrantId] = None
    reason: str = ""

    @classmethod
    def allowed(cls, source_rank: SourceRank, reason: str = "", grant_id: Optional[GrantId] = None) -> "Decision":
        return cls(True, source_rank, grant_id, reason)

    @classmethod
    def denied(cls, source_rank: SourceRank, reason: str = "", grant_id: Optional[GrantId] = None) -> "Decision":
        return cls(False, source_rank, grant_id, reason)

    def __bool__(self) -> bool:
        return self.allow
