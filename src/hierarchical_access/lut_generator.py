"""Lookup-table generator: materializes node -> media -> file paths.

The generation query walks::

    node n
      JOIN media__<media_of> fmo  ON fmo.<media_of>_target_id = n.nid
      JOIN media m                ON m.mid = fmo.entity_id
      LEFT JOIN media__<field> mf ON mf.entity_id = m.mid      (per file field)
      LEFT JOIN file_managed fm   ON fm.fid = mf.<field>_target_id OR ...
    WHERE fm.fid IS NOT NULL OR m.mid NOT IN (<media resolving a file>)

and selects ``(n.nid, m.mid, COALESCE(fm.fid, 0))``. Media resolving no file
produce exactly one ``0`` row; media resolving any file produce none.

Full regeneration (truncate + rebuild) runs in one transaction and is rolled
back on any failure. Targeted generation for one media is additive and
un-transacted: it never removes rows left over from an earlier state of that
media; only a full regeneration does.
"""
from __future__ import annotations

import contextlib
import importlib
import logging
from collections.abc import Iterator
from typing import Any

from hierarchical_access.config import HierarchyConfig
from hierarchical_access.errors import StorageError
from hierarchical_access.lut_store import LUT_COLUMNS, NO_FILE, ensure_lut_table, truncate_lut
from hierarchical_access.metadata import EntityMetadata, SchemaMetadata
from hierarchical_access.query_builder import SelectQuery, coalesce

# Dynamic DuckDB import for pyright compatibility
_duckdb_mod = importlib.import_module("duckdb")

log = logging.getLogger(__name__)


@contextlib.contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Re-raise DuckDB errors as ``StorageError``, chained to the original."""
    try:
        yield
    except _duckdb_mod.Error as exc:
        raise StorageError(f"{action} failed: {exc}") from exc


class LUTGenerator:
    """Builds and maintains the lookup table."""

    def __init__(
        self,
        conn: Any,
        metadata: EntityMetadata | None = None,
        *,
        config: HierarchyConfig | None = None,
    ) -> None:
        self._conn = conn
        self.config = config or HierarchyConfig()
        self.metadata: EntityMetadata = metadata or SchemaMetadata(conn, self.config)
        self._unique_file_fields: list[str] | None = None
        with _storage_errors("Creating lookup table"):
            ensure_lut_table(conn, self.config.lut_table)

    @property
    def table(self) -> str:
        return self.config.lut_table

    def unique_file_fields(self) -> list[str]:
        """File-referencing fields across all media types, first-seen order.

        A field shared by several media types is listed once.
        """
        if self._unique_file_fields is None:
            fields: list[str] = []
            for media_type in self.metadata.media_types():
                for name in self.metadata.file_fields(media_type):
                    if name not in fields:
                        fields.append(name)
            self._unique_file_fields = fields
        return self._unique_file_fields

    def _join_files(
        self, query: SelectQuery, media_ref: str, field_alias: str, file_alias: str, *, kind: str
    ) -> str | None:
        """Join every file field of *media_ref* and the file table matching any of them.

        Returns the file table's alias, or None when no media type stores files.
        """
        media = self.metadata.entity_info("media")
        file = self.metadata.entity_info("file")
        targets: list[str] = []
        for name in self.unique_file_fields():
            alias = query.left_join(
                f"{media.field_table_prefix}{name}",
                field_alias,
                [("entity_id", media_ref)],
            )
            targets.append(f"{alias}.{name}_target_id")
        if not targets:
            return None
        return query.join(
            file.base_table,
            file_alias,
            [(file.id_key, target) for target in targets],
            kind=kind,
            match="OR",
        )

    def build_query(self, media_id: int | None = None) -> SelectQuery:
        """Build the SELECT producing lookup rows, optionally for one media."""
        node = self.metadata.entity_info("node")
        media = self.metadata.entity_info("media")
        file = self.metadata.entity_info("file")

        query = SelectQuery(node.base_table, "n")
        fmo_alias = query.join(
            self.config.media_of_table,
            "fmo",
            [(f"{self.config.media_of_field}_target_id", f"n.{node.id_key}")],
        )
        media_alias = query.join(
            media.base_table,
            "m",
            [(media.id_key, f"{fmo_alias}.entity_id")],
        )
        media_ref = f"{media_alias}.{media.id_key}"
        if media_id is not None:
            query.condition(media_ref, int(media_id))

        file_alias = self._join_files(query, media_ref, "mf", "fm", kind="LEFT")
        if file_alias is None:
            grandchild = coalesce(default=NO_FILE)
        else:
            file_ref = f"{file_alias}.{file.id_key}"
            grandchild = coalesce(file_ref, default=NO_FILE)
            # Unmatched field deltas only stand in for a file when the media
            # resolves none at all.
            resolved = SelectQuery(media.base_table, "rm").add_field("rm", media.id_key)
            self._join_files(resolved, f"rm.{media.id_key}", "rf", "rfm", kind="INNER")
            query.condition(
                query.or_group()
                .is_not_null(file_ref)
                .condition(media_ref, resolved, "NOT IN")
            )

        return (
            query.distinct()
            .add_field("n", node.id_key, "parent_id")
            .add_field(media_alias, media.id_key, "child_id")
            .add_expression(grandchild, "grandchild_id")
        )

    def generate(self, media_id: int | None = None) -> int:
        """Insert lookup rows; all of them, or only those of *media_id*.

        Existing rows are left in place. Returns the number of rows inserted.
        """
        sql, params = self.build_query(media_id).to_sql()
        insert = f"INSERT INTO {self.table} ({', '.join(LUT_COLUMNS)}) {sql}"
        log.debug("LUT generation SQL: %s %s", insert, params)
        with _storage_errors("Generating lookup rows"):
            row = self._conn.execute(insert, params).fetchone()
        inserted = int(row[0]) if row else 0
        if media_id is None:
            log.info("Generated %d lookup rows", inserted)
        else:
            log.info("Generated %d lookup rows for media %s", inserted, media_id)
        return inserted

    def regenerate(self) -> int:
        """Truncate and fully rebuild the lookup table in one transaction.

        On failure the transaction is rolled back, leaving the table as it
        was, and the error is re-raised.
        """
        with _storage_errors("Starting lookup table transaction"):
            self._conn.execute("BEGIN TRANSACTION")
        try:
            with _storage_errors("Truncating lookup table"):
                truncate_lut(self._conn, self.table)
            inserted = self.generate()
            with _storage_errors("Committing lookup table"):
                self._conn.execute("COMMIT")
        except Exception:
            log.warning("Lookup table regeneration failed; rolling back")
            with contextlib.suppress(Exception):
                self._conn.execute("ROLLBACK")
            raise
        return inserted
