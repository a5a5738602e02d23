"""Permission template entity."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from ....config.constants import StorageDefaults
from ....core.exceptions import ValidationError
from ....core.value_objects import TemplateId


@dataclass(frozen=True)
class PermissionTemplate:
    """Named bundle of default grants and a default storage quota.

    The template's rules are grants whose subject is this template. A
    principal is bound to at most one template; principals with no binding
    fall back to the template flagged ``is_default``. ``storage_quota`` is the
    quota given to principals registered with this template. System templates
    are created by the system actor only.
    """

    id: TemplateId
    name: str
    description: Optional[str] = None
    is_default: bool = False
    is_system: bool = False
    storage_quota: int = StorageDefaults.USER_QUOTA_BYTES
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self):
        if not self.name or not self.name.strip():
            raise ValidationError("Template name must not be empty")
        if self.storage_quota < 0:
            raise ValidationError(f"Template storage quota must be non-negative, got {self.storage_quota}")

    @classmethod
    def create(
        cls,
        name: str,
        description: Optional[str] = None,
        is_default: bool = False,
        storage_quota: Optional[int] = None,
        is_system: bool = False,
        now: Optional[datetime] = None,
    ) -> "PermissionTemplate":
        return cls(
            id=TemplateId.generate(),
            name=name.strip(),
            description=description,
            is_default=is_default,
            is_system=is_system,
            storage_quota=StorageDefaults.USER_QUOTA_BYTES if storage_quota is None else storage_quota,
            created_at=now or datetime.now(timezone.utc),
        )
