from __future__ import annotations

from typing import Any, Optional, Sequence

from ..common.datetime_utils import as_utc, to_naive_utc
from ..common.pagination import PageRequest
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, where_sql
from ..offices.model import GeoPoint
from .model import AttendanceFilter, AttendanceRecord
from .repository import AttendanceRepository

_COLUMNS = "attendance_id, user_id, office_id, attendance_date, marked_at, longitude, latitude"


def _row_to_record(r: dict) -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=r["attendance_id"],
        user_id=r["user_id"],
        office_id=r["office_id"],
        attendance_date=r["attendance_date"],
        marked_at=as_utc(r["marked_at"]),
        location=GeoPoint(longitude=float(r["longitude"]), latitude=float(r["latitude"])),
    )


def _filter_sql(query: AttendanceFilter) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if query.office_id:
        clauses.append("office_id=%s")
        params.append(query.office_id)
    if query.user_id:
        clauses.append("user_id=%s")
        params.append(query.user_id)
    if query.start_date:
        clauses.append("attendance_date >= %s")
        params.append(query.start_date)
    if query.end_date:
        clauses.append("attendance_date <= %s")
        params.append(query.end_date)
    return where_sql(clauses), params


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, record: AttendanceRecord) -> AttendanceRecord:
        # uq_attendance_user_date rejects a second mark for the same day.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO attendance_records(attendance_id, user_id, office_id, attendance_date, marked_at, longitude, latitude)
                VALUES(%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    record.attendance_id,
                    record.user_id,
                    record.office_id,
                    record.attendance_date,
                    to_naive_utc(record.marked_at),
                    record.location.longitude,
                    record.location.latitude,
                ),
            )
        return record

    def get_by_id(self, attendance_id: str) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM attendance_records WHERE attendance_id=%s", (attendance_id,))
            r = fetchone(cur)
            return _row_to_record(r) if r else None

    def find(self, query: AttendanceFilter, page: PageRequest) -> tuple[Sequence[AttendanceRecord], int]:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM attendance_records {where}", tuple(params))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM attendance_records
                {where}
                ORDER BY attendance_date DESC, marked_at DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params + [page.limit, page.offset]),
            )
            return [_row_to_record(r) for r in fetchall(cur)], total

    def count(self, query: AttendanceFilter) -> int:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM attendance_records {where}", tuple(params))
            return int(fetchone(cur)["n"])

    def delete_by_id(self, attendance_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM attendance_records WHERE attendance_id=%s", (attendance_id,))
            return cur.rowcount > 0
