"""Principals feature for neo-storage.

Users and teams acting as permission and quota subjects:
- entities/: Principal, Team, TeamMembership and the repository protocol
"""

from .entities import Principal, PrincipalRepository, Team, TeamMembership

__all__ = [
    "Principal",
    "Team",
    "TeamMembership",
    "PrincipalRepository",
]
