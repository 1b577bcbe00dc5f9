"""Access scope resolver.

Every service asks this module which offices an actor may act on instead of
re-deriving the role branching itself. The base scope is pure and side-effect
free; per-feature rules are separate predicates layered on top of it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Optional

from ..core.enums import Role
from ..core.exceptions import AuthorizationError, ConfigurationError, PolicyViolationError
from ..users.model import User


@dataclass(frozen=True)
class AccessScope:
    all_offices: bool
    office_ids: FrozenSet[str] = frozenset()

    def includes(self, office_id: Optional[str]) -> bool:
        if self.all_offices:
            return True
        return office_id is not None and office_id in self.office_ids

    @property
    def single_office_id(self) -> Optional[str]:
        """The only office in scope, or None for an unrestricted scope."""
        if self.all_offices:
            return None
        return next(iter(self.office_ids))


ALL_OFFICES = AccessScope(all_offices=True)


def resolve_scope(actor: User) -> AccessScope:
    role = actor.role
    if role == Role.SUPER_ADMIN:
        return ALL_OFFICES

    if role == Role.ADMIN:
        if not actor.assigned_office_id:
            raise ConfigurationError("Admin user must have an assigned office")
        return AccessScope(all_offices=False, office_ids=frozenset({actor.assigned_office_id}))

    if role in (Role.INTERNAL, Role.EXTERNAL):
        if not actor.primary_office_id:
            raise ConfigurationError("Employee must have a primary office")
        return AccessScope(all_offices=False, office_ids=frozenset({actor.primary_office_id}))

    raise PolicyViolationError("Invalid user role")


def has_office_access(actor: User, office_id: Optional[str]) -> bool:
    return resolve_scope(actor).includes(office_id)


def require_office_access(actor: User, office_id: Optional[str], *, message: str = "You do not have access to this office") -> None:
    if not has_office_access(actor, office_id):
        raise AuthorizationError(message)


def require_role(actor: User, *roles: Role, message: Optional[str] = None) -> None:
    if actor.role not in roles:
        raise AuthorizationError(message or f"Role '{actor.role.value}' is not authorized to access this resource")


def require_super_admin(actor: User) -> None:
    require_role(actor, Role.SUPER_ADMIN, message="Only super admins can perform this action")


def require_admin_or_super_admin(actor: User) -> None:
    require_role(actor, Role.ADMIN, Role.SUPER_ADMIN, message="Only admins or super admins can perform this action")


# Feature predicates layered on the base scope.


def can_list_offices(actor: User) -> bool:
    return actor.role != Role.EXTERNAL


def can_view_user(actor: User, target: User) -> bool:
    if actor.role == Role.EXTERNAL:
        return actor.user_id == target.user_id
    if actor.role == Role.INTERNAL and target.role.is_administrator:
        return False
    scope = resolve_scope(actor)
    return scope.all_offices or scope.includes(target.office_id)


def can_manage_user(actor: User, target: User) -> bool:
    """Suspend/verify/delete authority: strictly higher rank, inside scope."""
    if actor.user_id == target.user_id:
        return False
    if not actor.role.is_administrator or not actor.role.outranks(target.role):
        return False
    return has_office_access(actor, target.office_id)


def can_request_location_from(requester: User, target: User) -> bool:
    if requester.user_id == target.user_id:
        return False
    if requester.role == Role.EXTERNAL:
        return False
    if target.role == Role.INTERNAL:
        allowed = requester.role.is_administrator
    elif target.role == Role.EXTERNAL:
        allowed = requester.role in (Role.INTERNAL, Role.ADMIN, Role.SUPER_ADMIN)
    else:
        return False
    return allowed and has_office_access(requester, target.office_id)


def can_verify_user(actor: User, target: User) -> bool:
    """Activation of pending accounts: any higher rank within scope, so internal staff can verify externals."""
    if actor.user_id == target.user_id or actor.role == Role.EXTERNAL:
        return False
    return actor.role.outranks(target.role) and has_office_access(actor, target.office_id)
