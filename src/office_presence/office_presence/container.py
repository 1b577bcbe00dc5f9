from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .attendance.mysql_attendance_repository import MySQLAttendanceRepository
from .attendance.repository import AttendanceRepository
from .attendance.service import AttendanceService
from .core.constants import (
    DEFAULT_ATTENDANCE_RADIUS_METERS,
    DEFAULT_LOCATION_REQUEST_TTL_HOURS,
    DEFAULT_NEARBY_OFFICES_MAX_DISTANCE_METERS,
)
from .dashboard.service import DashboardService
from .database.connection import DatabaseConnection, DBConfig
from .goodies.mysql_distribution_repository import MySQLDistributionRepository
from .goodies.mysql_received_repository import MySQLReceivedRepository
from .goodies.repository import DistributionRepository, ReceivedRepository
from .goodies.service import GoodiesService
from .locations.mysql_location_repository import MySQLLocationRepository, MySQLLocationRequestRepository
from .locations.repository import LocationRepository, LocationRequestRepository
from .locations.service import LocationService
from .notifications.mysql_notification_repository import MySQLNotificationRepository
from .notifications.repository import NotificationRepository
from .notifications.service import NotificationService
from .offices.mysql_office_repository import MySQLOfficeRepository
from .offices.repository import OfficeRepository
from .offices.service import OfficeService
from .users.mysql_user_repository import MySQLUserRepository
from .users.repository import UserRepository
from .users.service import AuthService, UserService


@dataclass(frozen=True)
class Settings:
    attendance_radius_m: float = DEFAULT_ATTENDANCE_RADIUS_METERS
    location_request_ttl_hours: float = DEFAULT_LOCATION_REQUEST_TTL_HOURS
    nearby_offices_max_distance_m: float = DEFAULT_NEARBY_OFFICES_MAX_DISTANCE_METERS

    @classmethod
    def from_module(cls, settings) -> "Settings":
        return cls(
            attendance_radius_m=float(getattr(settings, "ATTENDANCE_RADIUS_METERS", DEFAULT_ATTENDANCE_RADIUS_METERS)),
            location_request_ttl_hours=float(
                getattr(settings, "LOCATION_REQUEST_TTL_HOURS", DEFAULT_LOCATION_REQUEST_TTL_HOURS)
            ),
            nearby_offices_max_distance_m=float(
                getattr(settings, "NEARBY_OFFICES_MAX_DISTANCE_METERS", DEFAULT_NEARBY_OFFICES_MAX_DISTANCE_METERS)
            ),
        )


@dataclass(frozen=True)
class Container:
    users_repo: UserRepository
    offices_repo: OfficeRepository
    attendance_repo: AttendanceRepository
    distributions_repo: DistributionRepository
    received_repo: ReceivedRepository
    locations_repo: LocationRepository
    location_requests_repo: LocationRequestRepository
    notifications_repo: NotificationRepository

    auth_service: AuthService
    user_service: UserService
    office_service: OfficeService
    attendance_service: AttendanceService
    goodies_service: GoodiesService
    location_service: LocationService
    notification_service: NotificationService
    dashboard_service: DashboardService


def wire(
    *,
    users_repo: UserRepository,
    offices_repo: OfficeRepository,
    attendance_repo: AttendanceRepository,
    distributions_repo: DistributionRepository,
    received_repo: ReceivedRepository,
    locations_repo: LocationRepository,
    location_requests_repo: LocationRequestRepository,
    notifications_repo: NotificationRepository,
    settings: Optional[Settings] = None,
) -> Container:
    """Build the services over any set of repositories (MySQL in production, in-memory in tests)."""
    settings = settings or Settings()

    notification_service = NotificationService(notifications_repo)
    auth_service = AuthService(users_repo, offices_repo)
    user_service = UserService(users_repo, offices_repo, notification_service)
    office_service = OfficeService(offices_repo, nearby_max_distance_m=settings.nearby_offices_max_distance_m)
    attendance_service = AttendanceService(attendance_repo, offices_repo, radius_m=settings.attendance_radius_m)
    goodies_service = GoodiesService(
        distributions_repo,
        received_repo,
        users_repo,
        offices_repo,
        notification_service,
    )
    location_service = LocationService(
        locations_repo,
        location_requests_repo,
        users_repo,
        notification_service,
        request_ttl_hours=settings.location_request_ttl_hours,
    )
    dashboard_service = DashboardService(users_repo, offices_repo, attendance_repo, received_repo)

    return Container(
        users_repo=users_repo,
        offices_repo=offices_repo,
        attendance_repo=attendance_repo,
        distributions_repo=distributions_repo,
        received_repo=received_repo,
        locations_repo=locations_repo,
        location_requests_repo=location_requests_repo,
        notifications_repo=notifications_repo,
        auth_service=auth_service,
        user_service=user_service,
        office_service=office_service,
        attendance_service=attendance_service,
        goodies_service=goodies_service,
        location_service=location_service,
        notification_service=notification_service,
        dashboard_service=dashboard_service,
    )


def build_container(*, db_config: dict, settings: Optional[Settings] = None) -> Container:
    conn = DatabaseConnection.get_instance(DBConfig.from_dict(db_config))
    return wire(
        users_repo=MySQLUserRepository(conn),
        offices_repo=MySQLOfficeRepository(conn),
        attendance_repo=MySQLAttendanceRepository(conn),
        distributions_repo=MySQLDistributionRepository(conn),
        received_repo=MySQLReceivedRepository(conn),
        locations_repo=MySQLLocationRepository(conn),
        location_requests_repo=MySQLLocationRequestRepository(conn),
        notifications_repo=MySQLNotificationRepository(conn),
        settings=settings,
    )
