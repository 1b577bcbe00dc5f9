from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from ..common.datetime_utils import as_utc, start_of_day_utc, to_naive_utc
from ..common.pagination import PageRequest
from ..core.enums import LocationRequestStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, utc_or_none, where_sql
from ..offices.model import GeoPoint
from .model import LocationFilter, LocationRequest, LocationRequestFilter, LocationShare
from .repository import LocationRepository, LocationRequestRepository

_SHARE_COLUMNS = "location_id, user_id, longitude, latitude, shared_at, reason, office_id"
_REQUEST_COLUMNS = "request_id, requester_id, target_user_id, status, requested_at, responded_at, location_id"


def _row_to_share(r: dict) -> LocationShare:
    return LocationShare(
        location_id=r["location_id"],
        user_id=r["user_id"],
        location=GeoPoint(longitude=float(r["longitude"]), latitude=float(r["latitude"])),
        shared_at=as_utc(r["shared_at"]),
        reason=r.get("reason"),
        office_id=r.get("office_id"),
    )


def _row_to_request(r: dict) -> LocationRequest:
    return LocationRequest(
        request_id=r["request_id"],
        requester_id=r["requester_id"],
        target_user_id=r["target_user_id"],
        status=LocationRequestStatus(r["status"]),
        requested_at=as_utc(r["requested_at"]),
        responded_at=utc_or_none(r.get("responded_at")),
        location_id=r.get("location_id"),
    )


class MySQLLocationRepository(LocationRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create_share(self, share: LocationShare) -> LocationShare:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO location_shares(location_id, user_id, longitude, latitude, shared_at, reason, office_id)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    share.location_id,
                    share.user_id,
                    share.location.longitude,
                    share.location.latitude,
                    to_naive_utc(share.shared_at),
                    share.reason,
                    share.office_id,
                ),
            )
        return share

    def get_share(self, location_id: str) -> Optional[LocationShare]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_SHARE_COLUMNS} FROM location_shares WHERE location_id=%s", (location_id,))
            r = fetchone(cur)
            return _row_to_share(r) if r else None

    def find_shares(self, query: LocationFilter, page: PageRequest) -> tuple[Sequence[LocationShare], int]:
        clauses: list[str] = []
        params: list[Any] = []
        if query.office_id:
            clauses.append("office_id=%s")
            params.append(query.office_id)
        if query.user_id:
            clauses.append("user_id=%s")
            params.append(query.user_id)
        if query.start_date:
            clauses.append("shared_at >= %s")
            params.append(to_naive_utc(start_of_day_utc(query.start_date)))
        if query.end_date:
            clauses.append("shared_at < %s + INTERVAL 1 DAY")
            params.append(to_naive_utc(start_of_day_utc(query.end_date)))
        where = where_sql(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM location_shares {where}", tuple(params))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"SELECT {_SHARE_COLUMNS} FROM location_shares {where} ORDER BY shared_at DESC LIMIT %s OFFSET %s",
                tuple(params + [page.limit, page.offset]),
            )
            return [_row_to_share(r) for r in fetchall(cur)], total


class MySQLLocationRequestRepository(LocationRequestRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, request: LocationRequest) -> LocationRequest:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO location_requests(request_id, requester_id, target_user_id, status, requested_at)
                VALUES(%s,%s,%s,%s,%s)
                """,
                (
                    request.request_id,
                    request.requester_id,
                    request.target_user_id,
                    request.status.value,
                    to_naive_utc(request.requested_at),
                ),
            )
        return request

    def get_by_id(self, request_id: str) -> Optional[LocationRequest]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_REQUEST_COLUMNS} FROM location_requests WHERE request_id=%s", (request_id,))
            r = fetchone(cur)
            return _row_to_request(r) if r else None

    def find(self, query: LocationRequestFilter, page: PageRequest) -> tuple[Sequence[LocationRequest], int]:
        clauses: list[str] = []
        params: list[Any] = []
        if query.requester_id:
            clauses.append("requester_id=%s")
            params.append(query.requester_id)
        if query.target_user_id:
            clauses.append("target_user_id=%s")
            params.append(query.target_user_id)
        if query.status:
            clauses.append("status=%s")
            params.append(query.status.value)
        where = where_sql(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM location_requests {where}", tuple(params))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"SELECT {_REQUEST_COLUMNS} FROM location_requests {where} ORDER BY requested_at DESC LIMIT %s OFFSET %s",
                tuple(params + [page.limit, page.offset]),
            )
            return [_row_to_request(r) for r in fetchall(cur)], total

    def transition(
        self,
        request_id: str,
        *,
        expected: LocationRequestStatus,
        new_status: LocationRequestStatus,
        responded_at: datetime,
        location_id: Optional[str] = None,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE location_requests
                SET status=%s, responded_at=%s, location_id=COALESCE(%s, location_id)
                WHERE request_id=%s AND status=%s
                """,
                (new_status.value, to_naive_utc(responded_at), location_id, request_id, expected.value),
            )
            return cur.rowcount == 1

    def expire_pending(self, *, requested_before: datetime, now: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE location_requests
                SET status=%s, responded_at=%s
                WHERE status=%s AND requested_at <= %s
                """,
                (
                    LocationRequestStatus.EXPIRED.value,
                    to_naive_utc(now),
                    LocationRequestStatus.PENDING.value,
                    to_naive_utc(requested_before),
                ),
            )
            return int(cur.rowcount)
