"""Protocol interfaces for principal and team data access."""

from abc import abstractmethod
from typing import List, Optional, Protocol, runtime_checkable

from ....core.value_objects import TeamId, UserId
from .principal import Principal
from .team import Team, TeamMembership


@runtime_checkable
class PrincipalRepository(Protocol):
    """Protocol for principal, team and membership data access."""

    @abstractmethod
    async def get_principal(self, user_id: UserId) -> Optional[Principal]:
        """Get a user principal by id."""
        ...

    @abstractmethod
    async def add_principal(self, principal: Principal) -> Principal:
        """Persist a new principal."""
        ...

    @abstractmethod
    async def compare_and_set_principal(self, principal: Principal, expected_version: int) -> bool:
        """Replace the stored principal if its version still equals ``expected_version``."""
        ...

    @abstractmethod
    async def get_team(self, team_id: TeamId) -> Optional[Team]:
        """Get a team by id."""
        ...

    @abstractmethod
    async def add_team(self, team: Team) -> Team:
        """Persist a new team."""
        ...

    @abstractmethod
    async def compare_and_set_team(self, team: Team, expected_version: int) -> bool:
        """Replace the stored team if its version still equals ``expected_version``."""
        ...

    @abstractmethod
    async def list_memberships(self, user_id: UserId) -> List[TeamMembership]:
        """List every membership of a user, whatever its status."""
        ...

    @abstractmethod
    async def get_membership(self, team_id: TeamId, user_id: UserId) -> Optional[TeamMembership]:
        """Get one user's membership in one team."""
        ...

    @abstractmethod
    async def save_membership(self, membership: TeamMembership) -> TeamMembership:
        """Insert or replace a membership."""
        ...
