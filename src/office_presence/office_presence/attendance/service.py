from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from ..access.scope import require_admin_or_super_admin, require_office_access, resolve_scope
from ..common.datetime_utils import start_of_day_utc, utc_now
from ..common.geo import haversine_distance_m
from ..common.ids import new_id
from ..common.pagination import Page, parse_pagination
from ..common.validators import optional_date, require_coordinates
from ..core.constants import DEFAULT_ATTENDANCE_RADIUS_METERS
from ..core.enums import Role
from ..core.exceptions import (
    AlreadyMarkedError,
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    OutOfRangeError,
)
from ..database.errors import DuplicateKeyError
from ..offices.model import GeoPoint
from ..offices.repository import OfficeRepository
from ..users.model import User
from .model import AttendanceFilter, AttendanceRecord
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


class AttendanceService:
    def __init__(
        self,
        attendance: AttendanceRepository,
        offices: OfficeRepository,
        *,
        radius_m: float = DEFAULT_ATTENDANCE_RADIUS_METERS,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._attendance = attendance
        self._offices = offices
        self._radius_m = float(radius_m)
        self._clock = clock

    @property
    def radius_m(self) -> float:
        return self._radius_m

    def mark_attendance(self, actor: User, longitude: Any, latitude: Any, *, now: Optional[datetime] = None) -> AttendanceRecord:
        if actor.role not in (Role.INTERNAL, Role.EXTERNAL):
            raise AuthorizationError("Only employees can mark attendance")

        lon, lat = require_coordinates(longitude, latitude)

        if not actor.primary_office_id:
            raise InvalidStateError("You must be assigned to an office to mark attendance")
        office = self._offices.get_by_id(actor.primary_office_id)
        if not office:
            raise InvalidStateError("Your assigned office was not found")
        if not office.location:
            raise InvalidStateError("Office location is not configured")

        distance = haversine_distance_m(lon, lat, office.location.longitude, office.location.latitude)
        if distance > self._radius_m:
            raise OutOfRangeError(distance, self._radius_m)

        now = now or self._clock()
        record = AttendanceRecord(
            attendance_id=new_id(),
            user_id=actor.user_id,
            office_id=office.office_id,
            attendance_date=start_of_day_utc(now).date(),
            marked_at=now,
            location=GeoPoint(longitude=lon, latitude=lat),
        )

        # The unique (user_id, attendance_date) key decides; no pre-check.
        try:
            created = self._attendance.create(record)
        except DuplicateKeyError:
            raise AlreadyMarkedError("Attendance already marked for today")

        logger.info(
            "attendance marked",
            extra={"user_id": actor.user_id, "office_id": office.office_id, "distance_m": round(distance, 2)},
        )
        return created

    def resolve_filter(
        self,
        actor: User,
        *,
        office_id: Optional[str] = None,
        user_id: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
    ) -> AttendanceFilter:
        """Client filters are advisory; the role-derived filter always wins."""
        scope = resolve_scope(actor)
        start = optional_date(start_date, "Start date")
        end = optional_date(end_date, "End date")

        if actor.role == Role.SUPER_ADMIN:
            return AttendanceFilter(office_id=office_id or None, user_id=user_id or None, start_date=start, end_date=end)
        if actor.role == Role.ADMIN:
            forced_office = office_id if scope.includes(office_id) else scope.single_office_id
            return AttendanceFilter(office_id=forced_office, user_id=user_id or None, start_date=start, end_date=end)
        if actor.role == Role.INTERNAL:
            return AttendanceFilter(office_id=scope.single_office_id, start_date=start, end_date=end)
        # external
        return AttendanceFilter(user_id=actor.user_id, start_date=start, end_date=end)

    def list_attendance(
        self,
        actor: User,
        *,
        office_id: Optional[str] = None,
        user_id: Optional[str] = None,
        start_date: Any = None,
        end_date: Any = None,
        page: Any = None,
        limit: Any = None,
    ) -> Page[AttendanceRecord]:
        query = self.resolve_filter(actor, office_id=office_id, user_id=user_id, start_date=start_date, end_date=end_date)
        req = parse_pagination(page, limit)
        items, total = self._attendance.find(query, req)
        return Page(items=items, total=total, page=req.page, limit=req.limit)

    def get_attendance(self, actor: User, attendance_id: str) -> AttendanceRecord:
        record = self._attendance.get_by_id(attendance_id)
        if not record:
            raise NotFoundError("Attendance record not found")

        if actor.role == Role.EXTERNAL:
            if record.user_id != actor.user_id:
                raise AuthorizationError("You are not authorized to view this attendance record")
            return record

        require_office_access(actor, record.office_id, message="You are not authorized to view this attendance record")
        return record

    def delete_attendance(self, actor: User, attendance_id: str) -> None:
        require_admin_or_super_admin(actor)
        record = self._attendance.get_by_id(attendance_id)
        if not record:
            raise NotFoundError("Attendance record not found")
        require_office_access(actor, record.office_id, message="You are not authorized to delete this attendance record")
        if not self._attendance.delete_by_id(attendance_id):
            raise NotFoundError("Attendance record not found")
        logger.info("attendance deleted", extra={"attendance_id": attendance_id, "by": actor.user_id})

