"""Relation store: the flat ``(parent_id, child_id, grandchild_id)`` lookup table.

One row per node -> media -> file path observed at generation time. A
``grandchild_id`` of ``0`` means the media resolves to no stored file (for
example remote content). The table is a cache; it has no primary key and is
only ever rebuilt from the entity tables.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from hierarchical_access.config import DEFAULT_LUT_TABLE
from hierarchical_access.query_builder import check_identifier

LUT_COLUMNS: tuple[str, ...] = ("parent_id", "child_id", "grandchild_id")

NO_FILE = 0


@dataclass(frozen=True, slots=True, order=True)
class LutRow:
    """One materialized node -> media -> file path."""

    parent_id: int
    child_id: int
    grandchild_id: int


def ensure_lut_table(conn: Any, table: str = DEFAULT_LUT_TABLE) -> None:
    """Create the lookup table if it does not exist."""
    check_identifier(table)
    conn.execute(
        f"""
        CREATE TABLE IF NOT EXISTS {table} (
            parent_id INTEGER NOT NULL,
            child_id INTEGER NOT NULL,
            grandchild_id INTEGER NOT NULL DEFAULT {NO_FILE}
        )
        """
    )
    conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_child ON {table}(child_id)")
    conn.execute(f"CREATE INDEX IF NOT EXISTS idx_{table}_grandchild ON {table}(grandchild_id)")


def truncate_lut(conn: Any, table: str = DEFAULT_LUT_TABLE) -> None:
    conn.execute(f"TRUNCATE {check_identifier(table)}")


def fetch_rows(
    conn: Any,
    table: str = DEFAULT_LUT_TABLE,
    *,
    child_id: int | None = None,
) -> list[LutRow]:
    """Return lookup rows sorted by ``(parent_id, child_id, grandchild_id)``."""
    check_identifier(table)
    sql = f"SELECT {', '.join(LUT_COLUMNS)} FROM {table}"
    params: list[Any] = []
    if child_id is not None:
        sql += " WHERE child_id = ?"
        params.append(int(child_id))
    sql += " ORDER BY parent_id, child_id, grandchild_id"
    return [LutRow(*map(int, row)) for row in conn.execute(sql, params).fetchall()]


def count_rows(conn: Any, table: str = DEFAULT_LUT_TABLE) -> int:
    row = conn.execute(f"SELECT COUNT(*) FROM {check_identifier(table)}").fetchone()
    return int(row[0]) if row else 0
