from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict

from ..access.scope import resolve_scope
from ..attendance.model import AttendanceFilter
from ..attendance.repository import AttendanceRepository
from ..common.datetime_utils import start_of_day_utc, utc_now
from ..core.enums import EMPLOYEE_ROLES, Role, UserStatus
from ..goodies.model import ReceivedFilter
from ..goodies.repository import ReceivedRepository
from ..offices.repository import OfficeRepository
from ..users.model import User, UserFilter
from ..users.repository import UserRepository


class DashboardService:
    """Read-only counters for the landing screen, narrowed to the actor's scope."""

    def __init__(
        self,
        users: UserRepository,
        offices: OfficeRepository,
        attendance: AttendanceRepository,
        received: ReceivedRepository,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._users = users
        self._offices = offices
        self._attendance = attendance
        self._received = received
        self._clock = clock

    def summary(self, actor: User) -> Dict[str, int]:
        scope = resolve_scope(actor)
        today = start_of_day_utc(self._clock()).date()

        if actor.role == Role.EXTERNAL:
            return {
                "attendanceMarkedToday": int(
                    self._attendance.count(AttendanceFilter(user_id=actor.user_id, start_date=today, end_date=today)) > 0
                ),
                "myAttendanceCount": self._attendance.count(AttendanceFilter(user_id=actor.user_id)),
                "goodiesReceived": self._received.count(ReceivedFilter(user_id=actor.user_id)),
            }

        office_id = scope.single_office_id
        counts = {
            "totalEmployees": self._users.count(
                UserFilter(office_id=office_id, roles=EMPLOYEE_ROLES, status=UserStatus.ACTIVE)
            ),
            "todayAttendance": self._attendance.count(
                AttendanceFilter(office_id=office_id, start_date=today, end_date=today)
            ),
            "goodiesReceived": self._received.count(ReceivedFilter(office_id=office_id)),
        }
        if actor.role == Role.INTERNAL:
            counts["attendanceMarkedToday"] = int(
                self._attendance.count(AttendanceFilter(user_id=actor.user_id, start_date=today, end_date=today)) > 0
            )
            return counts

        counts["pendingVerifications"] = self._users.count(
            UserFilter(office_id=office_id, roles=EMPLOYEE_ROLES, status=UserStatus.PENDING)
        )
        counts["totalOffices"] = self._offices.count() if scope.all_offices else len(scope.office_ids)
        return counts
