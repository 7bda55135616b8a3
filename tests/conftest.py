"""Shared fixtures: a small DuckDB site with nodes, media and files.

Layout::

    node 1 ── media 10 (image)        ── file 100
           └─ media 11 (file)         ── file 101
    node 2 ── media 12 (document)     ── file 102
           └─ media 13 (remote_video) ── (no file)
    node 3    (no media)
              media 14 (file, orphan) ── file 104
              file 103 (unrelated)
"""
from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import duckdb
import pytest

from hierarchical_access.config import HierarchyConfig
from hierarchical_access.io_utils import save_json
from hierarchical_access.lut_generator import LUTGenerator
from hierarchical_access.metadata import SchemaMetadata

SITE_CONFIG: dict[str, Any] = {
    "media_types": {
        "document": {"source_field": "field_media_file"},
        "file": {"source_field": "field_media_file"},
        "image": {"source_field": "field_media_image", "handler": "default:file"},
        "remote_video": {"source_field": "field_media_oembed_video", "handler": None},
    },
}

_SITE_DDL = """
CREATE TABLE node (nid INTEGER PRIMARY KEY, type VARCHAR);
CREATE TABLE node_field_data (nid INTEGER, title VARCHAR, status INTEGER);
CREATE TABLE media (mid INTEGER PRIMARY KEY, bundle VARCHAR);
CREATE TABLE media_field_data (mid INTEGER, name VARCHAR, status INTEGER);
CREATE TABLE media__field_media_of (entity_id INTEGER, delta INTEGER, field_media_of_target_id INTEGER);
CREATE TABLE media__field_media_file (entity_id INTEGER, delta INTEGER, field_media_file_target_id INTEGER);
CREATE TABLE media__field_media_image (entity_id INTEGER, delta INTEGER, field_media_image_target_id INTEGER);
CREATE TABLE media__field_media_oembed_video (entity_id INTEGER, delta INTEGER, field_media_oembed_video_value VARCHAR);
CREATE TABLE file_managed (fid INTEGER PRIMARY KEY, uri VARCHAR);
CREATE TABLE file_usage (fid INTEGER, module VARCHAR);
"""


def create_site(conn: Any) -> None:
    for stmt in _SITE_DDL.split(";"):
        if stmt.strip():
            conn.execute(stmt)

    conn.executemany("INSERT INTO node VALUES (?, 'islandora_object')", [[1], [2], [3]])
    conn.executemany(
        "INSERT INTO node_field_data VALUES (?, ?, 1)",
        [[1, "Book"], [2, "Video"], [3, "Empty"]],
    )
    conn.executemany(
        "INSERT INTO media VALUES (?, ?)",
        [[10, "image"], [11, "file"], [12, "document"], [13, "remote_video"], [14, "file"]],
    )
    conn.executemany(
        "INSERT INTO media_field_data VALUES (?, ?, 1)",
        [[10, "cover"], [11, "original"], [12, "transcript"], [13, "stream"], [14, "orphan"]],
    )
    conn.executemany(
        "INSERT INTO media__field_media_of VALUES (?, 0, ?)",
        [[10, 1], [11, 1], [12, 2], [13, 2]],
    )
    conn.executemany(
        "INSERT INTO media__field_media_file VALUES (?, 0, ?)",
        [[11, 101], [12, 102], [14, 104]],
    )
    conn.execute("INSERT INTO media__field_media_image VALUES (10, 0, 100)")
    conn.execute("INSERT INTO media__field_media_oembed_video VALUES (13, 0, 'https://example.org/v')")
    conn.executemany(
        "INSERT INTO file_managed VALUES (?, ?)",
        [[fid, f"public://{fid}.bin"] for fid in (100, 101, 102, 103, 104)],
    )


@pytest.fixture()
def site_config() -> HierarchyConfig:
    return HierarchyConfig.from_dict(SITE_CONFIG)


@pytest.fixture()
def conn(tmp_path: Path) -> Iterator[Any]:
    """DuckDB connection on a freshly populated site database."""
    con = duckdb.connect(str(tmp_path / "site.duckdb"))
    create_site(con)
    yield con
    con.close()


@pytest.fixture()
def metadata(conn: Any, site_config: HierarchyConfig) -> SchemaMetadata:
    return SchemaMetadata(conn, site_config)


@pytest.fixture()
def generator(conn: Any, metadata: SchemaMetadata, site_config: HierarchyConfig) -> LUTGenerator:
    return LUTGenerator(conn, metadata, config=site_config)


@pytest.fixture()
def site_db(tmp_path: Path) -> Path:
    """Path to a populated site database with no open connections."""
    path = tmp_path / "cli_site.duckdb"
    con = duckdb.connect(str(path))
    try:
        create_site(con)
    finally:
        con.close()
    return path


@pytest.fixture()
def site_config_path(tmp_path: Path) -> Path:
    path = tmp_path / "hierarchy.json"
    save_json(SITE_CONFIG, path)
    return path
