"""Permission grant entities.

A grant is an immutable allow/deny rule for one (subject, scope, action).
Subjects and scopes are tagged variants; the pair decides the grant's
specificity rank used by the resolver.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Union

from ....config.constants import (
    PermissionAction,
    ResourceType,
    ScopeKind,
    SourceRank,
    SubjectKind,
)
from ....core.exceptions import ValidationError
from ....core.value_objects import GrantId, ResourceId, TeamId, TemplateId, UserId
from ...resources.entities.resource import Resource


@dataclass(frozen=True)
class GrantSubject:
    """Who a grant applies to: a user, a team or a permission template."""

    kind: SubjectKind
    subject_id: Union[UserId, TeamId, TemplateId]

    def __post_init__(self):
        expected = {
            SubjectKind.USER: UserId,
            SubjectKind.TEAM: TeamId,
            SubjectKind.TEMPLATE: TemplateId,
        }[self.kind]
        if not isinstance(self.subject_id, expected):
            raise ValidationError(
                f"{self.kind.value} subject requires a {expected.__name__}, "
                f"got {type(self.subject_id).__name__}"
            )

    @classmethod
    def user(cls, user_id: UserId) -> "GrantSubject":
        return cls(SubjectKind.USER, user_id)

    @classmethod
    def team(cls, team_id: TeamId) -> "GrantSubject":
        return cls(SubjectKind.TEAM, team_id)

    @classmethod
    def template(cls, template_id: TemplateId) -> "GrantSubject":
        return cls(SubjectKind.TEMPLATE, template_id)


@dataclass(frozen=True)
class GrantScope:
    """What a grant applies to: one resource, a resource type, or everything."""

    kind: ScopeKind
    resource_id: Optional[ResourceId] = None
    resource_type: Optional[ResourceType] = None

    def __post_init__(self):
        if self.kind == ScopeKind.RESOURCE and self.resource_id is None:
            raise ValidationError("Resource scope requires a resource_id")
        if self.kind == ScopeKind.RESOURCE_TYPE and self.resource_type is None:
            raise ValidationError("Resource-type scope requires a resource_type")
        if self.kind == ScopeKind.GLOBAL and (self.resource_id or self.resource_type):
            raise ValidationError("Global scope takes no resource_id or resource_type")

    @classmethod
    def resource(cls, resource_id: ResourceId) -> "GrantScope":
        return cls(ScopeKind.RESOURCE, resource_id=resource_id)

    @classmethod
    def of_type(cls, resource_type: ResourceType) -> "GrantScope":
        return cls(ScopeKind.RESOURCE_TYPE, resource_type=resource_type)

    @classmethod
    def everywhere(cls) -> "GrantScope":
        return cls(ScopeKind.GLOBAL)

    def covers(self, resource: Resource) -> bool:
        if self.kind == ScopeKind.RESOURCE:
            return self.resource_id == resource.id
        if self.kind == ScopeKind.RESOURCE_TYPE:
            return self.resource_type == resource.resource_type
        return True


@dataclass(frozen=True)
class PermissionGrant:
    """Immutable allow/deny rule.

    A grant whose ``expires_at`` has passed is inert: it stays in storage but
    the resolver treats it as absent. Revocation is a newer deny grant.
    """

    id: GrantId
    subject: GrantSubject
    scope: GrantScope
    action: PermissionAction
    allow: bool
    granted_by: Optional[UserId]
    granted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: Optional[datetime] = None

    def __post_init__(self):
        if self.subject.kind == SubjectKind.TEAM and self.scope.kind != ScopeKind.RESOURCE:
            raise ValidationError("Team grants are only valid on a specific resource")
        if self.subject.kind == SubjectKind.TEMPLATE and self.scope.kind == ScopeKind.RESOURCE:
            raise ValidationError("Template grants apply to a resource type or globally")
        if self.expires_at is not None and self.expires_at <= self.granted_at:
            raise ValidationError("Grant expires_at must be later than granted_at")

    @classmethod
    def issue(
        cls,
        subject: GrantSubject,
        scope: GrantScope,
        action: PermissionAction,
        allow: bool,
        granted_by: Optional[UserId],
        granted_at: datetime,
        expires_at: Optional[datetime] = None,
    ) -> "PermissionGrant":
        return cls(
            id=GrantId.generate(),
            subject=subject,
            scope=scope,
            action=action,
            allow=allow,
            granted_by=granted_by,
            granted_at=granted_at,
            expires_at=expires_at,
        )

    @property
    def rank(self) -> SourceRank:
        """Specificity tier of this grant."""
        if self.scope.kind == ScopeKind.RESOURCE:
            if self.subject.kind == SubjectKind.USER:
                return SourceRank.RESOURCE_USER
            return SourceRank.RESOURCE_TEAM
        if self.subject.kind == SubjectKind.USER:
            return SourceRank.PRINCIPAL_WILDCARD
        return SourceRank.TEMPLATE

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def applies_to(self, resource: Resource, action: PermissionAction) -> bool:
        return self.action == action and self.scope.covers(resource)
