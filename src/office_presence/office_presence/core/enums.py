from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """User roles, declared from highest to lowest authority."""

    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    INTERNAL = "internal"
    EXTERNAL = "external"

    @property
    def rank(self) -> int:
        return _ROLE_RANKS[self]

    def outranks(self, other: "Role") -> bool:
        return self.rank > other.rank

    @property
    def is_employee(self) -> bool:
        return self in EMPLOYEE_ROLES

    @property
    def is_administrator(self) -> bool:
        return self in ADMIN_ROLES


_ROLE_RANKS = {
    Role.SUPER_ADMIN: 4,
    Role.ADMIN: 3,
    Role.INTERNAL: 2,
    Role.EXTERNAL: 1,
}

EMPLOYEE_ROLES = frozenset({Role.INTERNAL, Role.EXTERNAL})
ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.ADMIN})


class UserStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


class OfficeType(str, Enum):
    MAIN = "main"
    BRANCH = "branch"


class TargetType(str, Enum):
    """Granularity of an office distribution target; decides the period format."""

    DAILY = "daily"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class LocationRequestStatus(str, Enum):
    """State of an admin-initiated location request.

    pending -> shared | denied | expired; the last three are terminal.
    """

    PENDING = "pending"
    SHARED = "shared"
    DENIED = "denied"
    EXPIRED = "expired"

    @property
    def is_terminal(self) -> bool:
        return self is not LocationRequestStatus.PENDING


class NotificationType(str, Enum):
    LOCATION_REQUEST = "location_request"
    LOCATION_SHARED = "location_shared"
    LOCATION_DENIED = "location_denied"
    GOODIES = "goodies"
    ACCOUNT = "account"
    GENERAL = "general"
