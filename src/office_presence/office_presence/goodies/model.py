from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import FrozenSet, Optional, Tuple, Union

from ..core.enums import Role
from ..users.model import User


@dataclass(frozen=True)
class UnregisteredRecipient:
    """A named claim target with no user account, stored inline on its distribution."""

    recipient_id: str
    name: str
    office_id: Optional[str] = None
    employee_id: Optional[str] = None
    is_claimed: bool = False
    claimed_at: Optional[datetime] = None
    handed_over_by: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.recipient_id,
            "name": self.name,
            "officeId": self.office_id,
            "employeeId": self.employee_id,
            "isClaimed": self.is_claimed,
            "claimedAt": self.claimed_at.isoformat() if self.claimed_at else None,
            "handedOverBy": self.handed_over_by,
        }


@dataclass(frozen=True)
class Distribution:
    """A goodies distribution.

    Broadcast (is_for_all_employees) distributions carry no recipients; targeted
    ones carry at least one registered or unregistered recipient. office_id is
    None for an org-wide distribution.
    """

    distribution_id: str
    office_id: Optional[str]
    goods_type: str
    distribution_date: date
    total_quantity: int
    distributed_by: str
    is_for_all_employees: bool = True
    target_employee_ids: Tuple[str, ...] = ()
    unregistered_recipients: Tuple[UnregisteredRecipient, ...] = ()
    created_at: Optional[datetime] = None

    @property
    def is_org_wide(self) -> bool:
        return self.office_id is None

    def targets(self, user_id: str) -> bool:
        return user_id in self.target_employee_ids

    def visible_to(self, user_id: str) -> bool:
        return self.is_for_all_employees or self.targets(user_id)

    def find_unregistered(self, recipient_id: str) -> Optional[UnregisteredRecipient]:
        for recipient in self.unregistered_recipients:
            if recipient.recipient_id == recipient_id:
                return recipient
        return None

    def to_dict(self) -> dict:
        return {
            "id": self.distribution_id,
            "officeId": self.office_id,
            "goodiesType": self.goods_type,
            "distributionDate": self.distribution_date.isoformat(),
            "totalQuantity": self.total_quantity,
            "distributedBy": self.distributed_by,
            "isForAllEmployees": self.is_for_all_employees,
            "targetEmployees": list(self.target_employee_ids),
            "unregisteredRecipients": [r.to_dict() for r in self.unregistered_recipients],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class ReceivedRecord:
    """A registered recipient's claim; one per (distribution_id, user_id)."""

    received_id: str
    distribution_id: str
    user_id: str
    received_at: datetime
    received_at_office_id: Optional[str]
    handed_over_by: str

    def to_dict(self) -> dict:
        return {
            "id": self.received_id,
            "distributionId": self.distribution_id,
            "userId": self.user_id,
            "receivedAt": self.received_at.isoformat(),
            "receivedAtOfficeId": self.received_at_office_id,
            "handedOverBy": self.handed_over_by,
        }


@dataclass(frozen=True)
class RegisteredRecipient:
    user: User


@dataclass(frozen=True)
class UnregisteredRecipientTarget:
    recipient: UnregisteredRecipient


ClaimTarget = Union[RegisteredRecipient, UnregisteredRecipientTarget]


@dataclass(frozen=True)
class ClaimSummary:
    total_quantity: int
    registered_claims: int
    unregistered_claims: int

    @property
    def claimed_count(self) -> int:
        return self.registered_claims + self.unregistered_claims

    @property
    def remaining_count(self) -> int:
        return max(self.total_quantity - self.claimed_count, 0)

    @property
    def is_exhausted(self) -> bool:
        return self.claimed_count >= self.total_quantity

    def to_dict(self) -> dict:
        return {
            "totalQuantity": self.total_quantity,
            "claimedCount": self.claimed_count,
            "remainingCount": self.remaining_count,
        }


@dataclass(frozen=True)
class DistributionView:
    """A distribution annotated for one caller with live claim counts."""

    distribution: Distribution
    summary: ClaimSummary
    is_received: bool = False

    def to_dict(self) -> dict:
        return {**self.distribution.to_dict(), **self.summary.to_dict(), "isReceived": self.is_received}


@dataclass(frozen=True)
class EligibleEmployee:
    recipient_id: str
    name: str
    is_registered: bool
    is_claimed: bool
    email: Optional[str] = None
    role: Optional[Role] = None
    employee_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.recipient_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value if self.role else None,
            "employeeId": self.employee_id,
            "isRegistered": self.is_registered,
            "isClaimed": self.is_claimed,
        }


@dataclass(frozen=True)
class DistributionFilter:
    """Resolved repository query.

    office_ids None means unrestricted; include_org_wide adds distributions with
    no office; visible_to_user_id keeps broadcasts plus those targeting the user.
    """

    office_ids: Optional[FrozenSet[str]] = None
    include_org_wide: bool = True
    visible_to_user_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class ReceivedFilter:
    office_id: Optional[str] = None
    user_id: Optional[str] = None
    distribution_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
