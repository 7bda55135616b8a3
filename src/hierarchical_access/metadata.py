"""Entity/field metadata consumed by the LUT generator and query tagger.

``EntityMetadata`` is the narrow read-only interface the rest of the package
depends on. ``SchemaMetadata`` answers it from a :class:`HierarchyConfig`
plus DuckDB's ``information_schema``:

* an entity type is stored in its base table, ``<base>_field_data``,
  ``<base>_revision``, ``<base>_field_revision`` and every
  ``<entity_type>__*`` / ``<entity_type>_revision__*`` field table present;
* a media type's candidate file fields are its source field when that field
  targets the file handler (``default:file``). A built-in media type whose
  field table is absent contributes no fields.
"""
from __future__ import annotations

import logging
from typing import Any, Protocol

from hierarchical_access.config import EntityTypeConfig, HierarchyConfig
from hierarchical_access.errors import MetadataError

log = logging.getLogger(__name__)

_ENTITY_TABLE_SUFFIXES: tuple[str, ...] = ("", "_field_data", "_revision", "_field_revision")


class EntityMetadata(Protocol):
    """Read-only entity/field metadata."""

    def entity_info(self, entity_type: str) -> EntityTypeConfig:
        """Return base table and id key for *entity_type*."""
        ...

    def table_names(self, entity_type: str) -> frozenset[str]:
        """Return every physical table backing *entity_type*."""
        ...

    def media_types(self) -> list[str]:
        """Return the configured media sub-type names."""
        ...

    def file_fields(self, media_type: str) -> list[str]:
        """Return the fields of *media_type* that reference stored files."""
        ...


class SchemaMetadata:
    """``EntityMetadata`` backed by config + the live DuckDB schema."""

    def __init__(self, conn: Any, config: HierarchyConfig | None = None) -> None:
        self._conn = conn
        self.config = config or HierarchyConfig()
        self._table_cache: dict[str, frozenset[str]] = {}

    def _existing_tables(self) -> set[str]:
        rows = self._conn.execute(
            """
            SELECT table_name
            FROM information_schema.tables
            WHERE table_schema = 'main'
            """
        ).fetchall()
        return {str(row[0]) for row in rows}

    def entity_info(self, entity_type: str) -> EntityTypeConfig:
        return self.config.entity(entity_type)

    def table_names(self, entity_type: str) -> frozenset[str]:
        if entity_type in self._table_cache:
            return self._table_cache[entity_type]

        info = self.entity_info(entity_type)
        existing = self._existing_tables()
        if info.base_table not in existing:
            raise MetadataError(
                f"Base table {info.base_table!r} for entity type {entity_type!r} does not exist"
            )

        prefixes = (info.field_table_prefix, f"{entity_type}_revision__")
        names = {
            name
            for name in existing
            if name.startswith(prefixes)
            or any(name == f"{info.base_table}{suffix}" for suffix in _ENTITY_TABLE_SUFFIXES)
        }
        tables = frozenset(names)
        log.debug("Tables for %s: %s", entity_type, sorted(tables))
        self._table_cache[entity_type] = tables
        return tables

    def media_types(self) -> list[str]:
        return [info.media_type for info in self.config.media_types]

    def file_fields(self, media_type: str) -> list[str]:
        info = self.config.media_type(media_type)
        if not info.is_file_backed:
            return []
        table = f"{self.entity_info('media').field_table_prefix}{info.source_field}"
        if table not in self._existing_tables():
            if not info.required:
                log.debug("Skipping media type %s: no field table %s", media_type, table)
                return []
            raise MetadataError(
                f"Field table {table!r} for media type {media_type!r} does not exist"
            )
        return [info.source_field]
