from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from ..core.enums import LocationRequestStatus
from ..offices.model import GeoPoint


@dataclass(frozen=True)
class LocationShare:
    """Append-only record of a voluntarily shared position. No geofence applies."""

    location_id: str
    user_id: str
    location: GeoPoint
    shared_at: datetime
    reason: Optional[str] = None
    office_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.location_id,
            "userId": self.user_id,
            "location": self.location.to_dict(),
            "sharedAt": self.shared_at.isoformat(),
            "reason": self.reason,
            "officeId": self.office_id,
        }


@dataclass(frozen=True)
class LocationRequest:
    request_id: str
    requester_id: str
    target_user_id: str
    status: LocationRequestStatus
    requested_at: datetime
    responded_at: Optional[datetime] = None
    location_id: Optional[str] = None

    def is_stale(self, now: datetime, ttl: timedelta) -> bool:
        return self.status == LocationRequestStatus.PENDING and self.requested_at + ttl <= now

    def to_dict(self) -> dict:
        return {
            "id": self.request_id,
            "requesterId": self.requester_id,
            "targetUserId": self.target_user_id,
            "status": self.status.value,
            "requestedAt": self.requested_at.isoformat(),
            "respondedAt": self.responded_at.isoformat() if self.responded_at else None,
            "locationId": self.location_id,
        }


@dataclass(frozen=True)
class LocationFilter:
    office_id: Optional[str] = None
    user_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass(frozen=True)
class LocationRequestFilter:
    requester_id: Optional[str] = None
    target_user_id: Optional[str] = None
    status: Optional[LocationRequestStatus] = None
