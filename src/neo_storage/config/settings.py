"""Engine settings for neo-storage.

Settings are read from the environment (``NEO_STORAGE_*``) and an optional
``.env`` file. There is no module-level settings instance: build one with
:func:`load_settings` and hand it to each component's constructor.
"""

import logging
from typing import Any, Optional

from pydantic import Field, ValidationError as PydanticValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..core.exceptions import ConfigurationError
from .constants import StorageDefaults

logger = logging.getLogger(__name__)


class StorageEngineSettings(BaseSettings):
    """Tunables for the permission, quota and recycle engine."""

    model_config = SettingsConfigDict(
        env_prefix="NEO_STORAGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Quota defaults
    default_user_quota_bytes: int = Field(default=StorageDefaults.USER_QUOTA_BYTES, ge=0)
    default_team_quota_bytes: int = Field(default=StorageDefaults.TEAM_QUOTA_BYTES, ge=0)

    # Recycle bin defaults
    recycle_retention_days: int = Field(default=StorageDefaults.RECYCLE_RETENTION_DAYS, gt=0)
    recycle_notify_days: int = Field(default=StorageDefaults.RECYCLE_NOTIFY_DAYS, ge=0)
    recycle_max_storage_bytes: int = Field(default=StorageDefaults.RECYCLE_MAX_STORAGE_BYTES, gt=0)
    recycle_max_item_count: int = Field(default=StorageDefaults.RECYCLE_MAX_ITEM_COUNT, gt=0)
    recycle_eviction_target_ratio: float = Field(default=StorageDefaults.RECYCLE_EVICTION_TARGET_RATIO)

    # Concurrency
    lock_timeout_seconds: float = Field(default=2.0, gt=0)
    lock_lease_seconds: float = Field(default=30.0, gt=0)
    redis_lock_prefix: str = Field(default="neo-storage:lock:")

    # Background work
    sweep_batch_size: int = Field(default=100, gt=0)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)
    notification_page_size: int = Field(default=100, gt=0)

    # Persistence
    database_schema: str = Field(default="storage")

    @field_validator("recycle_eviction_target_ratio")
    @classmethod
    def _validate_ratio(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError(f"eviction target ratio must be in (0, 1], got {value}")
        return value

    @field_validator("database_schema")
    @classmethod
    def _validate_schema(cls, value: str) -> str:
        if not value.isidentifier():
            raise ValueError(f"invalid database schema name: {value!r}")
        return value

    @model_validator(mode="after")
    def _validate_notify_window(self) -> "StorageEngineSettings":
        if self.recycle_notify_days >= self.recycle_retention_days:
            raise ValueError(
                "recycle_notify_days must be smaller than recycle_retention_days "
                f"({self.recycle_notify_days} >= {self.recycle_retention_days})"
            )
        return self


def load_settings(**overrides: Any) -> StorageEngineSettings:
    """Build a settings value from the environment plus explicit overrides.

    Raises:
        ConfigurationError: if any value fails validation
    """
    try:
        settings = StorageEngineSettings(**overrides)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid storage engine settings: {e}",
            details={"errors": e.errors(include_url=False)},
        ) from e

    logger.debug(
        "Loaded storage engine settings: retention=%sd notify=%sd bin=%s bytes/%s items",
        settings.recycle_retention_days,
        settings.recycle_notify_days,
        settings.recycle_max_storage_bytes,
        settings.recycle_max_item_count,
    )
    return settings
