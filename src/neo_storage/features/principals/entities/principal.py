"""Principal domain entity.

A principal is a user account that owns resources and a storage quota.
Quota fields are only ever changed by the quota ledger.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ....config.constants import StorageDefaults, UserStatus, UserType
from ....core.exceptions import ValidationError
from ....core.value_objects import TemplateId, UserId


@dataclass
class Principal:
    """User principal with storage quota and optional permission template."""

    id: UserId
    username: str
    quota_total: int = StorageDefaults.USER_QUOTA_BYTES
    quota_used: int = 0
    user_type: UserType = UserType.NORMAL
    status: UserStatus = UserStatus.ACTIVE
    template_id: Optional[TemplateId] = None
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.username or not self.username.strip():
            raise ValidationError("Principal username must not be empty")
        if self.quota_total < 0 or self.quota_used < 0:
            raise ValidationError(
                f"Quota values must be non-negative (total={self.quota_total}, used={self.quota_used})"
            )

    @classmethod
    def create(
        cls,
        username: str,
        quota_total: Optional[int] = None,
        user_type: UserType = UserType.NORMAL,
        template_id: Optional[TemplateId] = None,
        now: Optional[datetime] = None,
    ) -> "Principal":
        """Build a new principal with defaults applied."""
        created = now or datetime.now(timezone.utc)
        return cls(
            id=UserId.generate(),
            username=username.strip(),
            quota_total=StorageDefaults.USER_QUOTA_BYTES if quota_total is None else quota_total,
            user_type=user_type,
            template_id=template_id,
            created_at=created,
            updated_at=created,
        )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_admin(self) -> bool:
        return self.user_type == UserType.ADMIN

    @property
    def available_bytes(self) -> int:
        return max(self.quota_total - self.quota_used, 0)

    def is_storage_exceeded(self) -> bool:
        return self.quota_used >= self.quota_total

    def __str__(self) -> str:
        return f"Principal({self.username})"
