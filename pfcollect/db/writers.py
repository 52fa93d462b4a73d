from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection


def json_dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def json_loads(value: Any) -> Any:
    if value is None or isinstance(value, (dict, list)):
        return value
    return json.loads(value)


def _dialect_insert(conn: Connection, table: Table):
    name = conn.dialect.name
    if name == "postgresql":
        return postgresql.insert(table)
    if name == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"upsert is not supported on dialect '{name}'")


def upsert_rows(
    conn: Connection,
    table: Table,
    rows: Sequence[dict[str, Any]],
    conflict_columns: Iterable[str],
    update: bool = True,
) -> int:
    """Bulk insert rows; on conflict either update the non-key columns or skip the row."""
    if not rows:
        return 0
    conflict = list(conflict_columns)
    stmt = _dialect_insert(conn, table)
    if update:
        update_cols = [c for c in rows[0].keys() if c not in conflict]
        stmt = stmt.on_conflict_do_update(
            index_elements=conflict,
            set_={c: stmt.excluded[c] for c in update_cols},
        )
    else:
        stmt = stmt.on_conflict_do_nothing(index_elements=conflict)
    result = conn.execute(stmt, list(rows))
    return safe_rowcount(result)


def insert_ignore_duplicates(
    conn: Connection,
    table: Table,
    rows: Sequence[dict[str, Any]],
    conflict_columns: Iterable[str],
) -> int:
    return upsert_rows(conn, table, rows, conflict_columns, update=False)


def safe_rowcount(result) -> int:
    rc = getattr(result, "rowcount", 0)
    try:
        n = int(rc or 0)
    except (TypeError, ValueError):
        n = 0
    return n if n > 0 else 0
