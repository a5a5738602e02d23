"""Principal entities package."""

from .principal import Principal
from .protocols import PrincipalRepository
from .team import Team, TeamMembership

__all__ = [
    "Principal",
    "Team",
    "TeamMembership",
    "PrincipalRepository",
]
