#!/usr/bin/env python3
"""Regenerate the hierarchical access lookup table.

Without ``--media-ids`` the whole table is truncated and rebuilt in one
transaction. With ``--media-ids`` only the rows of the listed media are
(additively) generated; ids that do not resolve to a media are reported as
warnings and skipped.

Usage:
    # Fully rebuild the lookup table
    python3 scripts/regenerate_lut.py --db site.duckdb

    # Only the rows for media 2 and 6
    python3 scripts/regenerate_lut.py --db site.duckdb --media-ids 2,6

    # Non-default table layout
    python3 scripts/regenerate_lut.py --db site.duckdb --config hierarchy.json -v
"""
from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Any

import duckdb

from hierarchical_access.config import HierarchyConfig
from hierarchical_access.errors import EntityNotFoundError, HierarchicalAccessError
from hierarchical_access.lut_generator import LUTGenerator
from hierarchical_access.metadata import EntityMetadata, SchemaMetadata

log = logging.getLogger("regenerate_lut")


def parse_media_ids(raw: str) -> list[str]:
    """Split a comma-separated id list (CSV quoting honoured), dropping blanks."""
    return [value.strip() for row in csv.reader([raw]) for value in row if value.strip()]


def resolve_media_id(conn: Any, metadata: EntityMetadata, raw: str) -> int:
    """Return the integer id of an existing media, else raise EntityNotFoundError."""
    try:
        media_id = int(raw)
    except ValueError as exc:
        raise EntityNotFoundError("media", raw) from exc
    info = metadata.entity_info("media")
    row = conn.execute(
        f"SELECT {info.id_key} FROM {info.base_table} WHERE {info.id_key} = ?",
        [media_id],
    ).fetchone()
    if row is None:
        raise EntityNotFoundError("media", raw)
    return media_id


def regenerate_lut(conn: Any, generator: LUTGenerator, media_ids: list[str] | None) -> int:
    """Run a full or targeted regeneration. Returns the number of skipped ids."""
    if not media_ids:
        log.info("Regenerating full LUT; this could take a while...")
        generator.regenerate()
        log.info("... done!")
        return 0

    skipped = 0
    for raw in media_ids:
        try:
            media_id = resolve_media_id(conn, generator.metadata, raw)
        except EntityNotFoundError:
            log.warning("Failed to load %s for LUT regeneration.", raw)
            skipped += 1
            continue
        generator.generate(media_id)
        log.info("Regenerated LUT rows for %s.", media_id)
    return skipped


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        description="Regenerate the hierarchical access lookup table",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--db", required=True, type=Path,
        help="Path to the site DuckDB database",
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="Path to a JSON hierarchy config (default: stock layout)",
    )
    parser.add_argument(
        "--media-ids", default=None,
        help="Comma-separated list of media ids to constrain regeneration",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Verbose logging",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    if not args.db.exists():
        log.error("Database not found: %s", args.db)
        return 1

    try:
        config = HierarchyConfig.from_json(args.config) if args.config else HierarchyConfig()
    except HierarchicalAccessError as exc:
        log.error("%s", exc)
        return 1

    media_ids = parse_media_ids(args.media_ids) if args.media_ids else None

    conn = duckdb.connect(str(args.db))
    try:
        generator = LUTGenerator(conn, SchemaMetadata(conn, config), config=config)
        regenerate_lut(conn, generator, media_ids)
    except HierarchicalAccessError as exc:
        log.error("LUT regeneration failed: %s", exc)
        return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
