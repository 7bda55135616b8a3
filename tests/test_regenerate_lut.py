"""Tests for scripts/regenerate_lut.py — lookup table regeneration CLI."""
from __future__ import annotations

import importlib.util
import logging
from pathlib import Path
from typing import Any

import duckdb
import pytest

from hierarchical_access.io_utils import save_json
from hierarchical_access.lut_store import LutRow, fetch_rows

# ---------------------------------------------------------------------------
# Module loader (scripts/ is not a package)
# ---------------------------------------------------------------------------

_ROOT = Path(__file__).resolve().parents[1]


def _load_cli():
    """Import scripts/regenerate_lut.py as a module."""
    script_path = _ROOT / "scripts" / "regenerate_lut.py"
    spec = importlib.util.spec_from_file_location("regenerate_lut", script_path)
    assert spec is not None and spec.loader is not None
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)
    return mod


cli = _load_cli()


def _lut_rows(db: Path) -> list[LutRow]:
    con = duckdb.connect(str(db))
    try:
        return fetch_rows(con)
    finally:
        con.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestParseMediaIds:
    def test_simple(self) -> None:
        assert cli.parse_media_ids("2,6") == ["2", "6"]

    def test_spaces_blanks_and_quotes(self) -> None:
        assert cli.parse_media_ids(' 2, 6,,"7"') == ["2", "6", "7"]


class TestResolveMediaId:
    def test_existing(self, conn: Any, metadata: Any) -> None:
        assert cli.resolve_media_id(conn, metadata, "12") == 12

    @pytest.mark.parametrize("raw", ["999", "abc"])
    def test_unresolvable(self, conn: Any, metadata: Any, raw: str) -> None:
        with pytest.raises(cli.EntityNotFoundError) as excinfo:
            cli.resolve_media_id(conn, metadata, raw)
        assert excinfo.value.entity_id == raw


# ---------------------------------------------------------------------------
# main()
# ---------------------------------------------------------------------------


class TestMain:
    def test_full_regeneration(
        self, site_db: Path, site_config_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO)
        rc = cli.main(["--db", str(site_db), "--config", str(site_config_path)])
        assert rc == 0
        assert _lut_rows(site_db) == [
            LutRow(1, 10, 100),
            LutRow(1, 11, 101),
            LutRow(2, 12, 102),
            LutRow(2, 13, 0),
        ]
        assert "Regenerating full LUT" in caplog.text
        assert "... done!" in caplog.text

    def test_targeted_regeneration(
        self, site_db: Path, site_config_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        caplog.set_level(logging.INFO)
        rc = cli.main([
            "--db", str(site_db),
            "--config", str(site_config_path),
            "--media-ids", "11,abc,999,13",
        ])
        assert rc == 0
        assert _lut_rows(site_db) == [LutRow(1, 11, 101), LutRow(2, 13, 0)]

        warnings = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
        assert warnings == [
            "Failed to load abc for LUT regeneration.",
            "Failed to load 999 for LUT regeneration.",
        ]
        assert "Regenerated LUT rows for 11." in caplog.text

    def test_missing_database(self, tmp_path: Path) -> None:
        assert cli.main(["--db", str(tmp_path / "missing.duckdb")]) == 1

    def test_missing_config(self, site_db: Path, tmp_path: Path) -> None:
        assert cli.main(["--db", str(site_db), "--config", str(tmp_path / "nope.json")]) == 1

    def test_default_config(self, site_db: Path) -> None:
        # Built-in media types without field tables on this site are skipped.
        assert cli.main(["--db", str(site_db)]) == 0
        assert _lut_rows(site_db) == [
            LutRow(1, 10, 100),
            LutRow(1, 11, 101),
            LutRow(2, 12, 102),
            LutRow(2, 13, 0),
        ]

    def test_metadata_error_reported(self, site_db: Path, tmp_path: Path) -> None:
        config_path = tmp_path / "audio.json"
        save_json({"media_types": {"audio": {"source_field": "field_media_audio_file"}}}, config_path)
        assert cli.main(["--db", str(site_db), "--config", str(config_path)]) == 1

    def test_requires_db(self) -> None:
        with pytest.raises(SystemExit) as excinfo:
            cli.main([])
        assert excinfo.value.code == 2


class TestRegenerateLut:
    def test_empty_id_list_means_full(self, generator: Any, conn: Any) -> None:
        assert cli.regenerate_lut(conn, generator, []) == 0
        assert len(fetch_rows(conn, generator.table)) == 4

    def test_counts_skipped(self, generator: Any, conn: Any) -> None:
        assert cli.regenerate_lut(conn, generator, ["10", "x", "404"]) == 2
        assert fetch_rows(conn, generator.table) == [LutRow(1, 10, 100)]
