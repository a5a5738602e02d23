"""Quota usage snapshot."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class QuotaUsage:
    """Point-in-time view of one quota account."""

    account: str
    total_bytes: int
    used_bytes: int

    @property
    def available_bytes(self) -> int:
        return max(self.total_bytes - self.used_bytes, 0)

    @property
    def usage_percent(self) -> float:
        if self.total_bytes == 0:
            return 100.0 if self.used_bytes else 0.0
        return round(self.used_bytes * 100.0 / self.total_bytes, 2)

    def can_fit(self, delta_bytes: int) -> bool:
        return self.used_bytes + delta_bytes <= self.total_bytes


@dataclass(frozen=True)
class QuotaSnapshot:
    """Usage of a user and, for team resources, of the team."""

    user: QuotaUsage
    team: Optional[QuotaUsage] = None
