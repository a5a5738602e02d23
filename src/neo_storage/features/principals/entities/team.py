"""Team domain entities.

Teams own shared resources and a storage limit of their own. Membership roles
decide who manages team-owned resources.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ....config.constants import (
    StorageDefaults,
    TeamMemberRole,
    TeamMemberStatus,
    TeamStatus,
)
from ....core.exceptions import ValidationError
from ....core.value_objects import TeamId, UserId


@dataclass
class Team:
    """Team with its own storage quota."""

    id: TeamId
    name: str
    creator_id: UserId
    quota_total: int = StorageDefaults.TEAM_QUOTA_BYTES
    quota_used: int = 0
    status: TeamStatus = TeamStatus.ACTIVE
    max_members: int = StorageDefaults.TEAM_MAX_MEMBERS
    is_public: bool = False
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Team name must not be empty")
        if self.quota_total < 0 or self.quota_used < 0:
            raise ValidationError(
                f"Quota values must be non-negative (total={self.quota_total}, used={self.quota_used})"
            )
        if self.max_members <= 0:
            raise ValidationError(f"Team max_members must be positive, got {self.max_members}")

    @classmethod
    def create(
        cls,
        name: str,
        creator_id: UserId,
        quota_total: Optional[int] = None,
        max_members: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> "Team":
        """Build a new active team with defaults applied."""
        created = now or datetime.now(timezone.utc)
        return cls(
            id=TeamId.generate(),
            name=name.strip(),
            creator_id=creator_id,
            quota_total=StorageDefaults.TEAM_QUOTA_BYTES if quota_total is None else quota_total,
            max_members=max_members or StorageDefaults.TEAM_MAX_MEMBERS,
            created_at=created,
            updated_at=created,
        )

    @property
    def is_active(self) -> bool:
        return self.status == TeamStatus.ACTIVE

    @property
    def available_bytes(self) -> int:
        return max(self.quota_total - self.quota_used, 0)

    def is_storage_exceeded(self) -> bool:
        return self.quota_used >= self.quota_total


@dataclass
class TeamMembership:
    """A user's membership in a team."""

    team_id: TeamId
    user_id: UserId
    role: TeamMemberRole = TeamMemberRole.MEMBER
    status: TeamMemberStatus = TeamMemberStatus.ACTIVE
    joined_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_active(self) -> bool:
        return self.status == TeamMemberStatus.ACTIVE

    @property
    def is_owner(self) -> bool:
        return self.role == TeamMemberRole.OWNER

    @property
    def is_admin(self) -> bool:
        return self.role in (TeamMemberRole.OWNER, TeamMemberRole.ADMIN)

    def can_manage_team(self) -> bool:
        """Active owners and admins manage team-owned resources."""
        return self.is_active and self.is_admin
