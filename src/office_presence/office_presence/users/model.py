from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Optional

from ..core.enums import Role, UserStatus


@dataclass(frozen=True)
class User:
    """Domain entity: an Actor.

    Note: plain data object (no DB access code). Internal/external employees are
    scoped by primary_office_id, admins by assigned_office_id.
    """

    user_id: str
    name: str
    email: str
    password_hash: str
    role: Role
    status: UserStatus
    primary_office_id: Optional[str] = None
    assigned_office_id: Optional[str] = None
    phone: Optional[str] = None
    employee_id: Optional[str] = None
    created_by: Optional[str] = None
    verified_by: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def office_id(self) -> Optional[str]:
        """The office this user belongs to for reporting purposes."""
        if self.role == Role.ADMIN:
            return self.assigned_office_id
        return self.primary_office_id

    def to_dict(self) -> dict:
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "status": self.status.value,
            "primaryOfficeId": self.primary_office_id,
            "assignedOfficeId": self.assigned_office_id,
            "phone": self.phone,
            "employeeId": self.employee_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class UserFilter:
    """Repository query. office_id matches either the primary or assigned office."""

    office_id: Optional[str] = None
    roles: FrozenSet[Role] = field(default_factory=frozenset)
    status: Optional[UserStatus] = None
    search: Optional[str] = None
