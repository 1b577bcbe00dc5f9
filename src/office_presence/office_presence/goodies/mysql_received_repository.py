from __future__ import annotations

from typing import Any, Collection, Optional, Sequence, Set

from ..common.datetime_utils import as_utc, start_of_day_utc, to_naive_utc
from ..common.pagination import PageRequest
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, where_sql
from .model import ReceivedFilter, ReceivedRecord
from .repository import ReceivedRepository

_COLUMNS = "received_id, distribution_id, user_id, received_at, received_at_office_id, handed_over_by"


def _row_to_record(r: dict) -> ReceivedRecord:
    return ReceivedRecord(
        received_id=r["received_id"],
        distribution_id=r["distribution_id"],
        user_id=r["user_id"],
        received_at=as_utc(r["received_at"]),
        received_at_office_id=r.get("received_at_office_id"),
        handed_over_by=r["handed_over_by"],
    )


def _filter_sql(query: ReceivedFilter) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if query.office_id:
        clauses.append("received_at_office_id=%s")
        params.append(query.office_id)
    if query.user_id:
        clauses.append("user_id=%s")
        params.append(query.user_id)
    if query.distribution_id:
        clauses.append("distribution_id=%s")
        params.append(query.distribution_id)
    if query.start_date:
        clauses.append("received_at >= %s")
        params.append(to_naive_utc(start_of_day_utc(query.start_date)))
    if query.end_date:
        clauses.append("received_at < %s + INTERVAL 1 DAY")
        params.append(to_naive_utc(start_of_day_utc(query.end_date)))
    return where_sql(clauses), params


class MySQLReceivedRepository(ReceivedRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def create(self, record: ReceivedRecord) -> ReceivedRecord:
        # uq_received_distribution_user is the at-most-once guarantee.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO goodies_received(received_id, distribution_id, user_id, received_at, received_at_office_id, handed_over_by)
                VALUES(%s,%s,%s,%s,%s,%s)
                """,
                (
                    record.received_id,
                    record.distribution_id,
                    record.user_id,
                    to_naive_utc(record.received_at),
                    record.received_at_office_id,
                    record.handed_over_by,
                ),
            )
        return record

    def get_by_id(self, received_id: str) -> Optional[ReceivedRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM goodies_received WHERE received_id=%s", (received_id,))
            r = fetchone(cur)
            return _row_to_record(r) if r else None

    def delete_by_id(self, received_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM goodies_received WHERE received_id=%s", (received_id,))
            return cur.rowcount > 0

    def find(self, query: ReceivedFilter, page: PageRequest) -> tuple[Sequence[ReceivedRecord], int]:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM goodies_received {where}", tuple(params))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"SELECT {_COLUMNS} FROM goodies_received {where} ORDER BY received_at DESC LIMIT %s OFFSET %s",
                tuple(params + [page.limit, page.offset]),
            )
            return [_row_to_record(r) for r in fetchall(cur)], total

    def count(self, query: ReceivedFilter) -> int:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM goodies_received {where}", tuple(params))
            return int(fetchone(cur)["n"])

    def user_ids_for(self, distribution_id: str) -> Set[str]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT user_id FROM goodies_received WHERE distribution_id=%s", (distribution_id,))
            return {r["user_id"] for r in fetchall(cur)}

    def distribution_ids_received_by(self, user_id: str, distribution_ids: Collection[str]) -> Set[str]:
        ids = list(distribution_ids)
        if not ids:
            return set()
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT distribution_id FROM goodies_received WHERE user_id=%s AND distribution_id IN ({in_clause(ids)})",
                tuple([user_id] + ids),
            )
            return {r["distribution_id"] for r in fetchall(cur)}
