from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from ..common.pagination import PageRequest
from ..core.enums import OfficeType, TargetType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, utc_or_none, where_sql
from .model import GeoPoint, NearbyOffice, Office, OfficeDependents, OfficeTarget
from .repository import OfficeRepository

_COLUMNS = "office_id, name, address, longitude, latitude, target_headcount, office_type, created_at"


def _row_to_office(r: dict) -> Office:
    location = None
    if r.get("longitude") is not None and r.get("latitude") is not None:
        location = GeoPoint(longitude=float(r["longitude"]), latitude=float(r["latitude"]))
    return Office(
        office_id=r["office_id"],
        name=r["name"],
        address=r["address"],
        location=location,
        target_headcount=int(r.get("target_headcount") or 0),
        office_type=OfficeType(r["office_type"]),
        created_at=utc_or_none(r.get("created_at")),
    )


def _row_to_target(r: dict) -> OfficeTarget:
    return OfficeTarget(
        office_id=r["office_id"],
        target_type=TargetType(r["target_type"]),
        period=r["period"],
        count=int(r["target_count"]),
        created_at=utc_or_none(r.get("created_at")),
        updated_at=utc_or_none(r.get("updated_at")),
    )


class MySQLOfficeRepository(OfficeRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, office_id: str) -> Optional[Office]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM offices WHERE office_id=%s", (office_id,))
            row = fetchone(cur)
            return _row_to_office(row) if row else None

    def create(self, office: Office) -> Office:
        loc = office.location
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO offices(office_id, name, address, longitude, latitude, target_headcount, office_type, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,UTC_TIMESTAMP())
                """,
                (
                    office.office_id,
                    office.name,
                    office.address,
                    loc.longitude if loc else None,
                    loc.latitude if loc else None,
                    office.target_headcount,
                    office.office_type.value,
                ),
            )
        return self.get_by_id(office.office_id) or office

    def update(self, office: Office) -> None:
        loc = office.location
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE offices
                SET name=%s, address=%s, longitude=%s, latitude=%s, target_headcount=%s, office_type=%s
                WHERE office_id=%s
                """,
                (
                    office.name,
                    office.address,
                    loc.longitude if loc else None,
                    loc.latitude if loc else None,
                    office.target_headcount,
                    office.office_type.value,
                    office.office_id,
                ),
            )

    def delete_by_id(self, office_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM offices WHERE office_id=%s", (office_id,))
            return cur.rowcount > 0

    def find(
        self,
        *,
        office_ids: Optional[Sequence[str]],
        search: Optional[str],
        page: PageRequest,
    ) -> tuple[Sequence[Office], int]:
        clauses: list[str] = []
        params: list[Any] = []
        if office_ids is not None:
            if not office_ids:
                return [], 0
            clauses.append(f"office_id IN ({in_clause(office_ids)})")
            params.extend(office_ids)
        if search:
            clauses.append("name LIKE %s")
            params.append(f"%{search.strip()}%")
        where = where_sql(clauses)

        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM offices {where}", tuple(params))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"SELECT {_COLUMNS} FROM offices {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                tuple(params + [page.limit, page.offset]),
            )
            return [_row_to_office(r) for r in fetchall(cur)], total

    def list_names(self) -> Sequence[Office]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM offices ORDER BY name")
            return [_row_to_office(r) for r in fetchall(cur)]

    def count(self) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS n FROM offices")
            return int(fetchone(cur)["n"])

    def find_within(self, *, longitude: float, latitude: float, max_distance_m: float) -> Sequence[NearbyOffice]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS}, distance_m FROM (
                    SELECT {_COLUMNS},
                           ST_Distance_Sphere(POINT(longitude, latitude), POINT(%s, %s)) AS distance_m
                    FROM offices
                    WHERE longitude IS NOT NULL AND latitude IS NOT NULL
                ) AS o
                WHERE distance_m <= %s
                ORDER BY distance_m
                """,
                (longitude, latitude, max_distance_m),
            )
            return [
                NearbyOffice(office=_row_to_office(r), distance_m=float(r["distance_m"]))
                for r in fetchall(cur)
            ]

    def count_dependents(self, office_id: str) -> OfficeDependents:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT
                  (SELECT COUNT(*) FROM users WHERE primary_office_id=%s OR assigned_office_id=%s) AS users,
                  (SELECT COUNT(*) FROM attendance_records WHERE office_id=%s) AS attendance,
                  (SELECT COUNT(*) FROM goodies_distributions WHERE office_id=%s) AS distributions,
                  (SELECT COUNT(*) FROM unregistered_recipients WHERE office_id=%s) AS recipients,
                  (SELECT COUNT(*) FROM goodies_received WHERE received_at_office_id=%s) AS received,
                  (SELECT COUNT(*) FROM location_shares WHERE office_id=%s) AS locations
                """,
                (office_id,) * 7,
            )
            r = fetchone(cur) or {}
            return OfficeDependents(
                users=int(r.get("users") or 0),
                attendance=int(r.get("attendance") or 0),
                distributions=int(r.get("distributions") or 0),
                recipients=int(r.get("recipients") or 0),
                received=int(r.get("received") or 0),
                locations=int(r.get("locations") or 0),
            )

    def list_targets(self, office_id: str) -> Sequence[OfficeTarget]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT office_id, target_type, period, target_count, created_at, updated_at
                FROM office_targets WHERE office_id=%s
                ORDER BY target_type, period
                """,
                (office_id,),
            )
            return [_row_to_target(r) for r in fetchall(cur)]

    def add_target(self, target: OfficeTarget) -> OfficeTarget:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO office_targets(office_id, target_type, period, target_count, created_at, updated_at)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    target.office_id,
                    target.target_type.value,
                    target.period,
                    target.count,
                    target.created_at,
                    target.updated_at,
                ),
            )
        return target

    def update_target_count(
        self, office_id: str, target_type: TargetType, period: str, *, count: int, updated_at: datetime
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE office_targets SET target_count=%s, updated_at=%s
                WHERE office_id=%s AND target_type=%s AND period=%s
                """,
                (count, updated_at, office_id, target_type.value, period),
            )
            if cur.rowcount > 0:
                return True
            # rowcount is 0 when the count is unchanged.
            cur.execute(
                "SELECT 1 FROM office_targets WHERE office_id=%s AND target_type=%s AND period=%s",
                (office_id, target_type.value, period),
            )
            return fetchone(cur) is not None
