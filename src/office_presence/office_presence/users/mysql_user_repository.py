from __future__ import annotations

from typing import Any, Mapping, Optional, Sequence

from ..common.pagination import PageRequest
from ..core.enums import Role, UserStatus
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, in_clause, utc_or_none, where_sql
from .model import User, UserFilter
from .repository import UserRepository

_PROFILE_COLUMNS = ("name", "phone")

_COLUMNS = """
    user_id, name, email, password_hash, role, status, primary_office_id, assigned_office_id,
    phone, employee_id, created_by, verified_by, created_at
"""


def _row_to_user(r: dict) -> User:
    return User(
        user_id=r["user_id"],
        name=r["name"],
        email=r["email"],
        password_hash=r["password_hash"],
        role=Role(r["role"]),
        status=UserStatus(r["status"]),
        primary_office_id=r.get("primary_office_id"),
        assigned_office_id=r.get("assigned_office_id"),
        phone=r.get("phone"),
        employee_id=r.get("employee_id"),
        created_by=r.get("created_by"),
        verified_by=r.get("verified_by"),
        created_at=utc_or_none(r.get("created_at")),
    )


def _filter_sql(query: UserFilter) -> tuple[str, list[Any]]:
    clauses: list[str] = []
    params: list[Any] = []
    if query.office_id:
        clauses.append("(primary_office_id=%s OR assigned_office_id=%s)")
        params.extend([query.office_id, query.office_id])
    if query.roles:
        roles = sorted(r.value for r in query.roles)
        clauses.append(f"role IN ({in_clause(roles)})")
        params.extend(roles)
    if query.status:
        clauses.append("status=%s")
        params.append(query.status.value)
    if query.search:
        clauses.append("(name LIKE %s OR email LIKE %s)")
        term = f"%{query.search.strip()}%"
        params.extend([term, term])
    return where_sql(clauses), params


class MySQLUserRepository(UserRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, user_id: str) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE user_id=%s", (user_id,))
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def get_by_email(self, email: str) -> Optional[User]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE email=%s", (email.lower(),))
            row = fetchone(cur)
            return _row_to_user(row) if row else None

    def get_many(self, user_ids: Sequence[str]) -> Sequence[User]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM users WHERE user_id IN ({in_clause(ids)})", tuple(ids))
            return [_row_to_user(r) for r in fetchall(cur)]

    def create_user(self, user: User) -> User:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                INSERT INTO users(user_id, name, email, password_hash, role, status, primary_office_id,
                                  assigned_office_id, phone, employee_id, created_by, created_at)
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,UTC_TIMESTAMP())
                """,
                (
                    user.user_id,
                    user.name,
                    user.email,
                    user.password_hash,
                    user.role.value,
                    user.status.value,
                    user.primary_office_id,
                    user.assigned_office_id,
                    user.phone,
                    user.employee_id,
                    user.created_by,
                ),
            )
        created = self.get_by_id(user.user_id)
        return created or user

    def set_status(self, user_id: str, *, status: UserStatus, verified_by: Optional[str] = None) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            if verified_by:
                cur.execute(
                    "UPDATE users SET status=%s, verified_by=%s WHERE user_id=%s",
                    (status.value, verified_by, user_id),
                )
            else:
                cur.execute("UPDATE users SET status=%s WHERE user_id=%s", (status.value, user_id))
            return cur.rowcount > 0

    def update_profile(self, user_id: str, changes: Mapping[str, Optional[str]]) -> bool:
        columns = [c for c in _PROFILE_COLUMNS if c in changes]
        if not columns:
            return self.get_by_id(user_id) is not None
        assignments = ", ".join(f"{c}=%s" for c in columns)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"UPDATE users SET {assignments} WHERE user_id=%s",
                tuple(changes[c] for c in columns) + (user_id,),
            )
            return cur.rowcount > 0

    def delete_by_id(self, user_id: str) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("DELETE FROM users WHERE user_id=%s", (user_id,))
            return cur.rowcount > 0

    def find(self, query: UserFilter, page: PageRequest) -> tuple[Sequence[User], int]:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM users {where}", tuple(params))
            total = int(fetchone(cur)["n"])
            cur.execute(
                f"SELECT {_COLUMNS} FROM users {where} ORDER BY created_at DESC LIMIT %s OFFSET %s",
                tuple(params + [page.limit, page.offset]),
            )
            return [_row_to_user(r) for r in fetchall(cur)], total

    def count(self, query: UserFilter) -> int:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT COUNT(*) AS n FROM users {where}", tuple(params))
            return int(fetchone(cur)["n"])

    def list_all(self, query: UserFilter) -> Sequence[User]:
        where, params = _filter_sql(query)
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM users {where} ORDER BY name", tuple(params))
            return [_row_to_user(r) for r in fetchall(cur)]
