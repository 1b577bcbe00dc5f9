from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.enums import OfficeType, TargetType


@dataclass(frozen=True)
class GeoPoint:
    longitude: float
    latitude: float

    def to_dict(self) -> dict:
        return {"type": "Point", "coordinates": [self.longitude, self.latitude]}


@dataclass(frozen=True)
class Office:
    office_id: str
    name: str
    address: str
    location: Optional[GeoPoint]
    target_headcount: int = 0
    office_type: OfficeType = OfficeType.BRANCH
    created_at: Optional[datetime] = None

    @property
    def is_main_office(self) -> bool:
        return self.office_type == OfficeType.MAIN

    def to_dict(self) -> dict:
        return {
            "id": self.office_id,
            "name": self.name,
            "address": self.address,
            "location": self.location.to_dict() if self.location else None,
            "targetHeadcount": self.target_headcount,
            "officeType": self.office_type.value,
            "isMainOffice": self.is_main_office,
        }


@dataclass(frozen=True)
class NearbyOffice:
    office: Office
    distance_m: float

    def to_dict(self) -> dict:
        return {**self.office.to_dict(), "distance": round(self.distance_m, 2)}


@dataclass(frozen=True)
class OfficeDependents:
    users: int = 0
    attendance: int = 0
    distributions: int = 0
    recipients: int = 0
    received: int = 0
    locations: int = 0

    @property
    def total(self) -> int:
        return self.users + self.attendance + self.distributions + self.recipients + self.received + self.locations


@dataclass(frozen=True)
class OfficeTarget:
    """Distribution goal for one period: "2024-01-15" (daily), "2024-01" (monthly) or "2024" (yearly)."""

    office_id: str
    target_type: TargetType
    period: str
    count: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "type": self.target_type.value,
            "period": self.period,
            "count": self.count,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
