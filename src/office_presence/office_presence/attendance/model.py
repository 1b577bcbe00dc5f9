from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from ..offices.model import GeoPoint


@dataclass(frozen=True)
class AttendanceRecord:
    """Domain entity: one attendance mark per user per UTC day."""

    attendance_id: str
    user_id: str
    office_id: str
    attendance_date: date
    marked_at: datetime
    location: GeoPoint

    def to_dict(self) -> dict:
        return {
            "id": self.attendance_id,
            "userId": self.user_id,
            "officeId": self.office_id,
            "date": self.attendance_date.isoformat(),
            "markedAt": self.marked_at.isoformat(),
            "location": self.location.to_dict(),
        }


@dataclass(frozen=True)
class AttendanceFilter:
    """Resolved repository query; built by the service, never taken raw from clients."""

    office_id: Optional[str] = None
    user_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
