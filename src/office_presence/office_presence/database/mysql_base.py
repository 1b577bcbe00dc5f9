from __future__ import annotations

import re
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

import mysql.connector
from mysql.connector import errorcode

from ..common.datetime_utils import as_utc
from .connection import DatabaseConnection
from .errors import DuplicateKeyError, MissingReferenceError, RowReferencedError

_DUP_KEY_RE = re.compile(r"for key '([^']+)'")
_FK_NAME_RE = re.compile(r"CONSTRAINT `([^`]+)`")


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True) -> Iterator[Tuple[Any, Any]]:
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except mysql.connector.IntegrityError as e:
        conn.rollback()
        if e.errno == errorcode.ER_DUP_ENTRY:
            m = _DUP_KEY_RE.search(e.msg or "")
            raise DuplicateKeyError(m.group(1) if m else "") from e
        if e.errno in (errorcode.ER_NO_REFERENCED_ROW_2, errorcode.ER_ROW_IS_REFERENCED_2):
            m = _FK_NAME_RE.search(e.msg or "")
            error_type = MissingReferenceError if e.errno == errorcode.ER_NO_REFERENCED_ROW_2 else RowReferencedError
            raise error_type(m.group(1) if m else "") from e
        raise
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def in_clause(values: Sequence[Any]) -> str:
    """Placeholder list for `IN (...)`; callers must guard against empty input."""
    return ",".join(["%s"] * len(values))


def where_sql(clauses: Sequence[str]) -> str:
    return ("WHERE " + " AND ".join(clauses)) if clauses else ""
