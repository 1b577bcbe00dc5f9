from __future__ import annotations

import math
import threading
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Collection, Dict, List, Optional, Sequence

import pytest
from werkzeug.security import generate_password_hash

from office_presence.attendance.model import AttendanceFilter, AttendanceRecord
from office_presence.common.geo import haversine_distance_m
from office_presence.common.ids import new_id
from office_presence.common.pagination import PageRequest
from office_presence.container import Container, Settings, wire
from office_presence.core.constants import EARTH_RADIUS_METERS
from office_presence.core.enums import LocationRequestStatus, OfficeType, Role, UserStatus
from office_presence.database.errors import DuplicateKeyError, MissingReferenceError, RowReferencedError
from office_presence.goodies.model import Distribution, DistributionFilter, ReceivedFilter, ReceivedRecord
from office_presence.locations.model import LocationFilter, LocationRequest, LocationRequestFilter, LocationShare
from office_presence.notifications.model import Notification
from office_presence.offices.model import GeoPoint, NearbyOffice, Office, OfficeDependents, OfficeTarget
from office_presence.users.model import User, UserFilter

PASSWORD = "secret123"
_PASSWORD_HASH = generate_password_hash(PASSWORD)

OFFICE_A_POINT = GeoPoint(longitude=105.8542, latitude=21.0285)
OFFICE_B_POINT = GeoPoint(longitude=106.6297, latitude=10.8231)

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def north_of(point: GeoPoint, meters: float) -> GeoPoint:
    """A point `meters` due north along the meridian."""
    return GeoPoint(longitude=point.longitude, latitude=point.latitude + math.degrees(meters / EARTH_RADIUS_METERS))


def _page(items: List, page: PageRequest):
    return items[page.offset : page.offset + page.limit], len(items)


def _in_range(day: date, start: Optional[date], end: Optional[date]) -> bool:
    return (start is None or day >= start) and (end is None or day <= end)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


# ----- in-memory repositories -----


class InMemoryUsers:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows: Dict[str, User] = {}

    def _check_unique(self, user: User) -> None:
        for other in self.rows.values():
            if other.user_id == user.user_id:
                continue
            if other.email == user.email:
                raise DuplicateKeyError("users.uq_users_email")
            if user.phone and other.phone == user.phone:
                raise DuplicateKeyError("users.uq_users_phone")
            if user.employee_id and other.employee_id == user.employee_id:
                raise DuplicateKeyError("users.uq_users_employee_id")

    def get_by_id(self, user_id):
        return self.rows.get(user_id)

    def get_by_email(self, email):
        return next((u for u in self.rows.values() if u.email == email), None)

    def get_many(self, user_ids):
        return [self.rows[uid] for uid in user_ids if uid in self.rows]

    def create_user(self, user):
        with self._lock:
            self._check_unique(user)
            user = replace(user, created_at=user.created_at or NOW)
            self.rows[user.user_id] = user
            return user

    def set_status(self, user_id, *, status, verified_by=None):
        user = self.rows.get(user_id)
        if not user:
            return False
        self.rows[user_id] = replace(user, status=status, verified_by=verified_by or user.verified_by)
        return True

    def update_profile(self, user_id, changes):
        with self._lock:
            user = self.rows.get(user_id)
            if not user:
                return False
            updated = replace(user, **{k: v for k, v in changes.items() if k in ("name", "phone")})
            self._check_unique(updated)
            self.rows[user_id] = updated
            return True

    def delete_by_id(self, user_id):
        return self.rows.pop(user_id, None) is not None

    def _matching(self, query: UserFilter) -> List[User]:
        out = []
        for u in self.rows.values():
            if query.office_id and query.office_id not in (u.primary_office_id, u.assigned_office_id):
                continue
            if query.roles and u.role not in query.roles:
                continue
            if query.status and u.status != query.status:
                continue
            if query.search and query.search.lower() not in (u.name + " " + u.email).lower():
                continue
            out.append(u)
        return sorted(out, key=lambda u: u.name)

    def find(self, query, page):
        return _page(self._matching(query), page)

    def count(self, query):
        return len(self._matching(query))

    def list_all(self, query):
        return self._matching(query)


class InMemoryOffices:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows: Dict[str, Office] = {}
        self.dependents: Callable[[str], OfficeDependents] = lambda office_id: OfficeDependents()
        self.targets: Dict[tuple, OfficeTarget] = {}

    def _check_single_main(self, office: Office) -> None:
        if office.is_main_office and any(
            o.is_main_office and o.office_id != office.office_id for o in self.rows.values()
        ):
            raise DuplicateKeyError("offices.uq_offices_single_main")

    def get_by_id(self, office_id):
        return self.rows.get(office_id)

    def create(self, office):
        with self._lock:
            self._check_single_main(office)
            office = replace(office, created_at=office.created_at or NOW)
            self.rows[office.office_id] = office
            return office

    def update(self, office):
        with self._lock:
            self._check_single_main(office)
            self.rows[office.office_id] = office

    def delete_by_id(self, office_id):
        with self._lock:
            for key in [k for k in self.targets if k[0] == office_id]:
                del self.targets[key]
            return self.rows.pop(office_id, None) is not None

    def find(self, *, office_ids, search, page):
        items = [
            o
            for o in self.rows.values()
            if (office_ids is None or o.office_id in office_ids)
            and (not search or search.lower() in o.name.lower())
        ]
        return _page(sorted(items, key=lambda o: o.name), page)

    def list_names(self):
        return sorted(self.rows.values(), key=lambda o: o.name)

    def count(self):
        return len(self.rows)

    def find_within(self, *, longitude, latitude, max_distance_m):
        out = []
        for office in self.rows.values():
            if office.location is None:
                continue
            d = haversine_distance_m(longitude, latitude, office.location.longitude, office.location.latitude)
            if d <= max_distance_m:
                out.append(NearbyOffice(office=office, distance_m=d))
        return sorted(out, key=lambda n: n.distance_m)

    def count_dependents(self, office_id):
        return self.dependents(office_id)

    def list_targets(self, office_id):
        items = [t for t in self.targets.values() if t.office_id == office_id]
        return sorted(items, key=lambda t: (t.target_type.value, t.period))

    def add_target(self, target):
        key = (target.office_id, target.target_type, target.period)
        with self._lock:
            if key in self.targets:
                raise DuplicateKeyError("office_targets.PRIMARY")
            self.targets[key] = target
            return target

    def update_target_count(self, office_id, target_type, period, *, count, updated_at):
        key = (office_id, target_type, period)
        with self._lock:
            if key not in self.targets:
                return False
            self.targets[key] = replace(self.targets[key], count=count, updated_at=updated_at)
            return True


class InMemoryAttendance:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows: Dict[str, AttendanceRecord] = {}

    def create(self, record):
        with self._lock:
            for other in self.rows.values():
                if other.user_id == record.user_id and other.attendance_date == record.attendance_date:
                    raise DuplicateKeyError("attendance.uq_attendance_user_date")
            self.rows[record.attendance_id] = record
            return record

    def get_by_id(self, attendance_id):
        return self.rows.get(attendance_id)

    def _matching(self, query: AttendanceFilter) -> List[AttendanceRecord]:
        items = [
            r
            for r in self.rows.values()
            if (query.office_id is None or r.office_id == query.office_id)
            and (query.user_id is None or r.user_id == query.user_id)
            and _in_range(r.attendance_date, query.start_date, query.end_date)
        ]
        return sorted(items, key=lambda r: r.marked_at, reverse=True)

    def find(self, query, page):
        return _page(self._matching(query), page)

    def count(self, query):
        return len(self._matching(query))

    def delete_by_id(self, attendance_id):
        return self.rows.pop(attendance_id, None) is not None


class InMemoryDistributions:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows: Dict[str, Distribution] = {}
        self.has_claims: Callable[[str], bool] = lambda distribution_id: False

    def create(self, distribution):
        with self._lock:
            if distribution.office_id is not None:
                for other in self.rows.values():
                    if (other.office_id, other.distribution_date, other.goods_type) == (
                        distribution.office_id,
                        distribution.distribution_date,
                        distribution.goods_type,
                    ):
                        raise DuplicateKeyError("goodies_distributions.uq_distribution_office_date_type")
            distribution = replace(distribution, created_at=distribution.created_at or NOW)
            self.rows[distribution.distribution_id] = distribution
            return distribution

    def get_by_id(self, distribution_id):
        return self.rows.get(distribution_id)

    def find(self, query: DistributionFilter, page):
        items = []
        for d in self.rows.values():
            if query.office_ids is not None:
                if d.office_id is None:
                    if not query.include_org_wide:
                        continue
                elif d.office_id not in query.office_ids:
                    continue
            if query.visible_to_user_id and not d.visible_to(query.visible_to_user_id):
                continue
            if not _in_range(d.distribution_date, query.start_date, query.end_date):
                continue
            if query.search and query.search.lower() not in d.goods_type.lower():
                continue
            items.append(d)
        return _page(sorted(items, key=lambda d: d.distribution_date, reverse=True), page)

    def delete_by_id(self, distribution_id):
        with self._lock:
            if self.has_claims(distribution_id):
                raise RowReferencedError("fk_received_distribution")
            return self.rows.pop(distribution_id, None) is not None

    def count_claimed_unregistered(self, distribution_id):
        d = self.rows.get(distribution_id)
        return sum(1 for r in d.unregistered_recipients if r.is_claimed) if d else 0

    def claim_unregistered(self, distribution_id, recipient_id, *, claimed_at, handed_over_by):
        with self._lock:
            d = self.rows.get(distribution_id)
            if d is None:
                return False
            recipient = d.find_unregistered(recipient_id)
            if recipient is None or recipient.is_claimed:
                return False
            claimed = replace(recipient, is_claimed=True, claimed_at=claimed_at, handed_over_by=handed_over_by)
            self.rows[distribution_id] = replace(
                d,
                unregistered_recipients=tuple(
                    claimed if r.recipient_id == recipient_id else r for r in d.unregistered_recipients
                ),
            )
            return True


class InMemoryReceived:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows: Dict[str, ReceivedRecord] = {}
        self.distribution_exists: Callable[[str], bool] = lambda distribution_id: True

    def create(self, record):
        with self._lock:
            for other in self.rows.values():
                if other.distribution_id == record.distribution_id and other.user_id == record.user_id:
                    raise DuplicateKeyError("goodies_received.uq_received_distribution_user")
            if not self.distribution_exists(record.distribution_id):
                raise MissingReferenceError("fk_received_distribution")
            self.rows[record.received_id] = record
            return record

    def get_by_id(self, received_id):
        return self.rows.get(received_id)

    def delete_by_id(self, received_id):
        return self.rows.pop(received_id, None) is not None

    def _matching(self, query: ReceivedFilter) -> List[ReceivedRecord]:
        items = [
            r
            for r in self.rows.values()
            if (query.office_id is None or r.received_at_office_id == query.office_id)
            and (query.user_id is None or r.user_id == query.user_id)
            and (query.distribution_id is None or r.distribution_id == query.distribution_id)
            and _in_range(r.received_at.date(), query.start_date, query.end_date)
        ]
        return sorted(items, key=lambda r: r.received_at, reverse=True)

    def find(self, query, page):
        return _page(self._matching(query), page)

    def count(self, query):
        return len(self._matching(query))

    def user_ids_for(self, distribution_id):
        return {r.user_id for r in self.rows.values() if r.distribution_id == distribution_id}

    def distribution_ids_received_by(self, user_id, distribution_ids: Collection[str]):
        wanted = set(distribution_ids)
        return {r.distribution_id for r in self.rows.values() if r.user_id == user_id and r.distribution_id in wanted}


class InMemoryLocations:
    def __init__(self):
        self.rows: Dict[str, LocationShare] = {}

    def create_share(self, share):
        self.rows[share.location_id] = share
        return share

    def get_share(self, location_id):
        return self.rows.get(location_id)

    def find_shares(self, query: LocationFilter, page):
        items = [
            s
            for s in self.rows.values()
            if (query.office_id is None or s.office_id == query.office_id)
            and (query.user_id is None or s.user_id == query.user_id)
            and _in_range(s.shared_at.date(), query.start_date, query.end_date)
        ]
        return _page(sorted(items, key=lambda s: s.shared_at, reverse=True), page)


class InMemoryLocationRequests:
    def __init__(self):
        self._lock = threading.Lock()
        self.rows: Dict[str, LocationRequest] = {}

    def create(self, request):
        self.rows[request.request_id] = request
        return request

    def get_by_id(self, request_id):
        return self.rows.get(request_id)

    def find(self, query: LocationRequestFilter, page):
        items = [
            r
            for r in self.rows.values()
            if (query.requester_id is None or r.requester_id == query.requester_id)
            and (query.target_user_id is None or r.target_user_id == query.target_user_id)
            and (query.status is None or r.status == query.status)
        ]
        return _page(sorted(items, key=lambda r: r.requested_at, reverse=True), page)

    def transition(self, request_id, *, expected, new_status, responded_at, location_id=None):
        with self._lock:
            request = self.rows.get(request_id)
            if request is None or request.status != expected:
                return False
            self.rows[request_id] = replace(
                request, status=new_status, responded_at=responded_at, location_id=location_id or request.location_id
            )
            return True

    def expire_pending(self, *, requested_before, now):
        with self._lock:
            expired = 0
            for request_id, request in list(self.rows.items()):
                if request.status == LocationRequestStatus.PENDING and request.requested_at <= requested_before:
                    self.rows[request_id] = replace(request, status=LocationRequestStatus.EXPIRED, responded_at=now)
                    expired += 1
            return expired


class InMemoryNotifications:
    def __init__(self):
        self.rows: Dict[str, Notification] = {}
        self.fail = False

    def create(self, notification):
        if self.fail:
            raise RuntimeError("notification store unavailable")
        self.rows[notification.notification_id] = notification
        return notification

    def get_by_id(self, notification_id):
        return self.rows.get(notification_id)

    def _for(self, recipient_id, unread_only=False):
        items = [
            n for n in self.rows.values() if n.recipient_id == recipient_id and (not unread_only or not n.is_read)
        ]
        return sorted(items, key=lambda n: n.created_at, reverse=True)

    def find_for_recipient(self, recipient_id, *, unread_only, page):
        return _page(self._for(recipient_id, unread_only), page)

    def count_unread(self, recipient_id):
        return len(self._for(recipient_id, unread_only=True))

    def mark_read(self, notification_id):
        n = self.rows.get(notification_id)
        if not n:
            return False
        self.rows[notification_id] = replace(n, is_read=True)
        return True

    def mark_all_read(self, recipient_id):
        unread = self._for(recipient_id, unread_only=True)
        for n in unread:
            self.rows[n.notification_id] = replace(n, is_read=True)
        return len(unread)

    def delete_by_id(self, notification_id):
        return self.rows.pop(notification_id, None) is not None

    def types_for(self, recipient_id) -> List[str]:
        return [n.type.value for n in self._for(recipient_id)]


# ----- fixtures -----


@dataclass
class Repos:
    users: InMemoryUsers
    offices: InMemoryOffices
    attendance: InMemoryAttendance
    distributions: InMemoryDistributions
    received: InMemoryReceived
    locations: InMemoryLocations
    requests: InMemoryLocationRequests
    notifications: InMemoryNotifications


@dataclass
class World:
    """Two offices and one user per role in office A, plus a few in office B."""

    office_a: Office
    office_b: Office
    super_admin: User
    admin_a: User
    admin_b: User
    internal_a: User
    external_a: User
    internal_b: User
    external_b: User


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def repos() -> Repos:
    r = Repos(
        users=InMemoryUsers(),
        offices=InMemoryOffices(),
        attendance=InMemoryAttendance(),
        distributions=InMemoryDistributions(),
        received=InMemoryReceived(),
        locations=InMemoryLocations(),
        requests=InMemoryLocationRequests(),
        notifications=InMemoryNotifications(),
    )

    def dependents(office_id: str) -> OfficeDependents:
        return OfficeDependents(
            users=r.users.count(UserFilter(office_id=office_id)),
            attendance=r.attendance.count(AttendanceFilter(office_id=office_id)),
            distributions=sum(1 for d in r.distributions.rows.values() if d.office_id == office_id),
            recipients=sum(
                1 for d in r.distributions.rows.values() for u in d.unregistered_recipients if u.office_id == office_id
            ),
            received=sum(1 for x in r.received.rows.values() if x.received_at_office_id == office_id),
            locations=sum(1 for s in r.locations.rows.values() if s.office_id == office_id),
        )

    r.offices.dependents = dependents
    r.distributions.has_claims = lambda distribution_id: bool(r.received.user_ids_for(distribution_id))
    r.received.distribution_exists = lambda distribution_id: distribution_id in r.distributions.rows
    return r


def make_office(repos: Repos, name: str, point: Optional[GeoPoint], office_type: OfficeType = OfficeType.BRANCH) -> Office:
    return repos.offices.create(
        Office(office_id=new_id(), name=name, address=f"{name} street", location=point, office_type=office_type)
    )


def make_user(
    repos: Repos,
    name: str,
    role: Role,
    *,
    office: Optional[Office] = None,
    status: UserStatus = UserStatus.ACTIVE,
    employee_id: Optional[str] = None,
) -> User:
    office_id = office.office_id if office else None
    return repos.users.create_user(
        User(
            user_id=new_id(),
            name=name,
            email=f"{name.lower().replace(' ', '.')}@example.com",
            password_hash=_PASSWORD_HASH,
            role=role,
            status=status,
            primary_office_id=office_id if role in (Role.INTERNAL, Role.EXTERNAL) else None,
            assigned_office_id=office_id if role == Role.ADMIN else None,
            employee_id=employee_id,
        )
    )


@pytest.fixture()
def world(repos: Repos) -> World:
    office_a = make_office(repos, "Hanoi HQ", OFFICE_A_POINT, OfficeType.MAIN)
    office_b = make_office(repos, "Saigon Branch", OFFICE_B_POINT)
    return World(
        office_a=office_a,
        office_b=office_b,
        super_admin=make_user(repos, "Root Admin", Role.SUPER_ADMIN),
        admin_a=make_user(repos, "Admin A", Role.ADMIN, office=office_a),
        admin_b=make_user(repos, "Admin B", Role.ADMIN, office=office_b),
        internal_a=make_user(repos, "Internal A", Role.INTERNAL, office=office_a),
        external_a=make_user(repos, "External A", Role.EXTERNAL, office=office_a),
        internal_b=make_user(repos, "Internal B", Role.INTERNAL, office=office_b),
        external_b=make_user(repos, "External B", Role.EXTERNAL, office=office_b),
    )


@pytest.fixture()
def container(repos: Repos) -> Container:
    return wire(
        users_repo=repos.users,
        offices_repo=repos.offices,
        attendance_repo=repos.attendance,
        distributions_repo=repos.distributions,
        received_repo=repos.received,
        locations_repo=repos.locations,
        location_requests_repo=repos.requests,
        notifications_repo=repos.notifications,
        settings=Settings(),
    )


def run_concurrently(count: int, fn: Callable[[int], object]) -> Sequence[object]:
    """Start `count` threads behind a barrier; returns each result or raised exception."""
    barrier = threading.Barrier(count)
    results: List[object] = [None] * count

    def worker(i: int) -> None:
        barrier.wait()
        try:
            results[i] = fn(i)
        except Exception as e:  # collected for assertions
            results[i] = e

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results
