from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from ..common.datetime_utils import to_naive_utc
from ..common.pagination import PageRequest
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, utc_or_none, where_sql
from .model import Distribution, DistributionFilter, UnregisteredRecipient
from .repository import DistributionRepository

_COLUMNS = (
    "d.distribution_id, d.office_id, d.goods_type, d.distribution_date, d.total_quantity, "
    "d.distributed_by, d.is_for_all_employees, d.created_at"
)


def _filter_sql(query: DistributionFilter) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if query.office_ids is not None:
        office_ids = sorted(query.office_ids)
        if office_ids:
            office_clause = f"d.office_id IN ({in_clause(office_ids)})"
            params.extend(office_ids)
            if query.include_org_wide:
                office_clause = f"({office_clause} OR d.office_id IS NULL)"
            clauses.append(office_clause)
        elif query.include_org_wide:
            clauses.append("d.office_id IS NULL")
        else:
            clauses.append("1=0")
    elif not query.include_org_wide:
        clauses.append("d.office_id IS NOT NULL")
    if query.visible_to_user_id:
        clauses.append(
            "(d.is_for_all_employees=1 OR EXISTS ("
            "SELECT 1 FROM distribution_targets t WHERE t.distribution_id=d.distribution_id AND t.user_id=%s))"
        )
        params.append(query.visible_to_user_id)
    if query.start_date:
        clauses.append("d.distribution_date >= %s")
        params.append(query.start_date)
    if query.end_date:
        clauses.append("d.distribution_date <= %s")
        params.append(query.end_date)
    if query.search:
        clauses.append("d.goods_type LIKE %s")
        params.append(f"%{query.search.strip()}%")
    return where_sql(clauses), params


class MySQLDistributionRepository(DistributionRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def _hydrate(self, cur, rows: List[dict]) -> List[Distribution]:
        if not rows:
            return []
        ids = [r["distribution_id"] for r in rows]
        placeholders = in_clause(ids)

        targets: Dict[str, List[str]] = defaultdict(list)
        cur.execute(
            f"SELECT distribution_id, user_id FROM distribution_targets WHERE distribution_id IN ({placeholders})",
            tuple(ids),
        )
        for t in fetchall(cur):
            targets[t["distribution_id"]].append(t["user_id"])

        recipients: Dict[str, List[UnregisteredRecipient]] = defaultdict(list)
        cur.execute(
            f"""
            SELECT recipient_id, distribution_id, name, office_id, employee_id, is_claimed, claimed_at, handed_over_by
            FROM unregistered_recipients
            WHERE distribution_id IN ({placeholders})
            ORDER BY distribution_id, position
            """,
            tuple(ids),
        )
        for u in fetchall(cur):
            recipients[u["distribution_id"]].append(
                UnregisteredRecipient(
                    recipient_id=u["recipient_id"],
                    name=u["name"],
                    office_id=u.get("office_id"),
                    employee_id=u.get("employee_id"),
                    is_claimed=bool(u.get("is_claimed")),
                    claimed_at=utc_or_none(u.get("claimed_at")),
                    handed_over_by=u.get("handed_over_by"),
                )
            )

        return [
            Distribution(
                distribution_id=r["distribution_id"],
                office_id=r.get("office_id"),
                goods_type=r["goods_type"],
                distribution_date=r["distribution_date"],
                total_quantity=int(r["total_quantity"]),
                distributed_by=r["distributed_by"],
                is_for_all_employees=bool(r["is_for_all_employees"]),
                target_employee_ids=tuple(sorted(targets.get(r["distribution_id"], []))),
                unregistered_recipients=tuple(recipients.get(r["distribution_id"], [])),
                created_at=utc_or_none(r.get("created_at")),
            )
            for r in rows
        ]

    def create(self, distribution: Distribution) -> Distribution:
        # Header, targets and recipients commit together or not at all.
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO goodies_distributions(
                    distribution_id, office_id, goods_type, distribution_date, total_quantity,
                    distributed_by, is_for_all_employees, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,UTC_TIMESTAMP())
                """,
                (
                    distribution.distribution_id,
                    distribution.office_id,
                    distribution.goods_type,
                    distribution.distribution_date,
                    distribution.total_quantity,
                    distribution.distributed_by,
                    1 if distribution.is_for_all_employees else 0,
                ),
            )
            if distribution.target_employee_ids:
                cur.executemany(
                    "INSERT INTO distribution_targets(distribution_id, user_id) VALUES(%s,%s)",
                    [(distribution.distribution_id, user_id) for user_id in distribution.target_employee_ids],
                )
            if distribution.unregistered_recipients:
                cur.executemany(
                    """
                    INSERT INTO unregistered_recipients(recipient_id, distribution_id, position, name, office_id, employee_id)
                    VALUES(%s,%s,%s,%s,%s,%s)
                    """,
                    [
                        (r.recipient_id, distribution.distribution_id, i, r.name, r.office_id, r.employee_id)
                        for i, r in enumerate(distribution.unregistered_recipients)
                    ],
                )
        return self.get_by_id(distribution.distribution_id) or distribution

    def get_by_id(self, distribution_id: str) -> Optional[Distribution]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM goodies_distributions d WHERE d.distribution_id=%s", (distribution_id,))
            row = fetchone(cur)
            if not row:
                return None
            return self._hydrate(cur, [row])[0]

    def find(self, query: DistributionFilter, page: PageRequest) -> tuple[Sequence[Distribution], int]:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM goodies_distributions d {where}", tuple(params))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM goodies_distributions d
                {where}
                ORDER BY d.distribution_date DESC, d.created_at DESC
                LIMIT %s OFFSET %s
                """,
                tuple(params + [page.limit, page.offset]),
            )
            return self._hydrate(cur, fetchall(cur)), total

    def delete_by_id(self, distribution_id: str) -> bool:
        # Targets and unregistered recipients go with it (ON DELETE CASCADE).
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM goodies_distributions WHERE distribution_id=%s", (distribution_id,))
            return cur.rowcount > 0

    def count_claimed_unregistered(self, distribution_id: str) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COUNT(*) AS n FROM unregistered_recipients WHERE distribution_id=%s AND is_claimed=1",
                (distribution_id,),
            )
            return int(fetchone(cur)["n"])

    def claim_unregistered(
        self,
        distribution_id: str,
        recipient_id: str,
        *,
        claimed_at: datetime,
        handed_over_by: str,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE unregistered_recipients
                SET is_claimed=1, claimed_at=%s, handed_over_by=%s
                WHERE recipient_id=%s AND distribution_id=%s AND is_claimed=0
                """,
                (to_naive_utc(claimed_at), handed_over_by, recipient_id, distribution_id),
            )
            return cur.rowcount == 1
