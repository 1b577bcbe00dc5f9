from __future__ import annotations

import logging
import re
from contextlib import closing
from pathlib import Path
from typing import Iterator, List

from .connection import DatabaseConnection, DBConfig

logger = logging.getLogger(__name__)

# Quoted literals are matched whole so a ';' inside them never ends a statement.
_SQL_TOKEN = re.compile(r"""'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*"|;|[^'";]+|['"]""")
_DB_SELECTION = re.compile(r"(?im)^\s*(?:CREATE\s+DATABASE|USE)\b[^;]*;\s*$")
_LINE_COMMENT = re.compile(r"(?m)^\s*--.*$")


def prepare_script(sql: str) -> str:
    """Drop comment lines and any database selection so DB_CONFIG decides the target."""
    return _LINE_COMMENT.sub("", _DB_SELECTION.sub("", sql))


def iter_sql_statements(sql: str) -> Iterator[str]:
    current: List[str] = []
    for token in _SQL_TOKEN.findall(sql):
        if token != ";":
            current.append(token)
            continue
        statement = "".join(current).strip()
        current = []
        if statement:
            yield statement
    statement = "".join(current).strip()
    if statement:
        yield statement


def ensure_database_exists(db: DatabaseConnection) -> None:
    name = db.config.database
    with closing(db.connect(with_database=False)) as conn:
        cur = conn.cursor()
        cur.execute(f"CREATE DATABASE IF NOT EXISTS `{name}` CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci")
        conn.commit()


def apply_schema(db_config: dict, *, schema_path: str | Path) -> int:
    """Create the database if needed and run every statement of the schema file.

    The schema only uses CREATE TABLE IF NOT EXISTS, so re-running it is safe.
    Returns the number of statements executed.
    """
    db = DatabaseConnection(DBConfig.from_dict(db_config))
    ensure_database_exists(db)
    statements = list(iter_sql_statements(prepare_script(Path(schema_path).read_text(encoding="utf-8"))))

    with closing(db.connect()) as conn:
        cur = conn.cursor()
        for statement in statements:
            cur.execute(statement)
        conn.commit()

    logger.info(
        "schema applied",
        extra={"schema_path": str(schema_path), "database": db.config.database, "statements": len(statements)},
    )
    return len(statements)


def list_tables(db_config: dict) -> List[str]:
    db = DatabaseConnection(DBConfig.from_dict(db_config))
    with closing(db.connect()) as conn:
        cur = conn.cursor()
        cur.execute("SHOW TABLES")
        return sorted(row[0] for row in cur.fetchall())
