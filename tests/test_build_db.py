"""
Tests for build_ecfr_db.py — schema creation and snapshot loading

Builds databases from the sample snapshot (and small variations of it) in
tmp_path and checks derived columns, FTS5 sync and the command line.
"""
import json
import sqlite3
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from build_ecfr_db import (
    _compute_depths,
    _duration_days,
    build_database,
    create_database,
    load_snapshot,
    main,
)
from utils.database import table_exists


def _pairs(rows):
    return {r[0]: r[1] for r in rows}


@pytest.fixture()
def fresh_db(tmp_path):
    conn = create_database(tmp_path / "ecfr.sqlite")
    yield conn
    conn.close()


class TestCreateDatabase:
    def test_tables_created(self, fresh_db):
        for table in ("nodes", "content_chunks", "agencies", "agency_node_mappings",
                      "corrections", "content_chunks_fts"):
            assert table_exists(fresh_db, table), table

    def test_fts_triggers_created(self, fresh_db):
        names = {r[0] for r in fresh_db.execute(
            "SELECT name FROM sqlite_master WHERE type='trigger'")}
        assert names == {"content_chunks_ai", "content_chunks_ad", "content_chunks_au"}

    def test_wal_mode(self, fresh_db):
        assert fresh_db.execute("PRAGMA journal_mode").fetchone()[0] == "wal"

    def test_idempotent(self, tmp_path):
        path = tmp_path / "ecfr.sqlite"
        create_database(path).close()
        create_database(path).close()


class TestDepths:
    def test_chain(self):
        nodes = [{"id": "s", "parent": "p"}, {"id": "p", "parent": "t"}, {"id": "t", "parent": None}]
        assert _compute_depths(nodes) == {"t": 0, "p": 1, "s": 2}

    def test_orphan_chain_starts_at_zero(self):
        nodes = [{"id": "a", "parent": "gone"}, {"id": "b", "parent": "a"}]
        assert _compute_depths(nodes) == {"a": 0, "b": 1}

    def test_cycle_terminates(self):
        depths = _compute_depths([{"id": "a", "parent": "b"}, {"id": "b", "parent": "a"}])
        assert set(depths) == {"a", "b"}


class TestDurationDays:
    def test_days_between(self):
        assert _duration_days("2024-02-15", "2024-06-15") == 121

    def test_timestamps_truncated_to_dates(self):
        assert _duration_days("2023-01-10T08:00:00", "2023-01-12T01:00:00") == 2

    def test_missing(self):
        assert _duration_days(None, "2023-01-01") is None
        assert _duration_days("2023-01-01", "") is None

    def test_unparseable_logged(self, caplog):
        with caplog.at_level("WARNING"):
            assert _duration_days("soon", "2023-01-01") is None
        assert "Unparseable" in caplog.text


class TestLoadSnapshot:
    def test_counts(self, fresh_db, snapshot):
        counts = load_snapshot(fresh_db, snapshot)
        assert counts == {
            "nodes": 13,
            "content_chunks": 5,
            "agencies": 5,
            "agency_node_mappings": 4,
            "corrections": 4,
        }

    def test_depth_computed(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        depth = _pairs(fresh_db.execute("SELECT id, depth FROM nodes").fetchall())
        assert depth["title-4"] == 0
        assert depth["chapter-I"] == 1
        assert depth["part-21"] == 3
        assert depth["section-21.10"] == 4
        assert depth["section-5-1.1"] == 2

    def test_num_corrections_derived(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        counts = _pairs(fresh_db.execute("SELECT id, num_corrections FROM nodes").fetchall())
        assert counts["section-21.1"] == 2
        assert counts["part-21"] == 1
        assert counts["title-4"] == 0

    def test_explicit_values_kept(self, fresh_db, snapshot):
        snapshot["nodes"][0]["num_corrections"] = 9
        snapshot["corrections"][0]["correction_duration"] = 400
        load_snapshot(fresh_db, snapshot)
        assert fresh_db.execute(
            "SELECT num_corrections FROM nodes WHERE id = 'title-10'").fetchone()[0] == 9
        assert fresh_db.execute(
            "SELECT correction_duration FROM corrections WHERE id = 'corr-1'").fetchone()[0] == 400

    def test_explicit_null_falls_back(self, fresh_db, snapshot):
        snapshot["nodes"][0]["num_corrections"] = None
        snapshot["agencies"][2]["num_children"] = None
        load_snapshot(fresh_db, snapshot)
        assert fresh_db.execute(
            "SELECT num_corrections FROM nodes WHERE id = 'title-10'").fetchone()[0] == 0
        assert fresh_db.execute(
            "SELECT num_children FROM agencies WHERE id = 'doe'").fetchone()[0] == 1

    def test_correction_duration_derived(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        durations = _pairs(fresh_db.execute(
            "SELECT id, correction_duration FROM corrections").fetchall())
        assert durations == {"corr-1": 31, "corr-2": 2, "corr-3": 121, "corr-4": 10}

    def test_num_children_derived(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        children = _pairs(fresh_db.execute("SELECT id, num_children FROM agencies").fetchall())
        assert children == {"gao": 0, "opm": 0, "doe": 1, "doe-eere": 1, "doe-eere-bto": 0}

    def test_metadata_stored_as_json(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        raw = fresh_db.execute(
            "SELECT metadata FROM nodes WHERE id = 'section-21.1'").fetchone()[0]
        assert json.loads(raw) == {"effective_date": "2022-03-15"}
        assert fresh_db.execute(
            "SELECT metadata FROM nodes WHERE id = 'title-4'").fetchone()[0] is None

    def test_fts_index_built(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        rows = fresh_db.execute(
            "SELECT cc.id FROM content_chunks_fts f JOIN content_chunks cc ON cc.rowid = f.rowid "
            "WHERE content_chunks_fts MATCH '\"remedies\"'").fetchall()
        assert [r[0] for r in rows] == ["chunk-21.10-0"]

    def test_fts_triggers_track_later_inserts(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        fresh_db.execute(
            "INSERT INTO content_chunks (id, section_id, chunk_number, content) "
            "VALUES ('late', 'section-21.2', 1, 'Interested parties may intervene.')")
        rows = fresh_db.execute(
            "SELECT rowid FROM content_chunks_fts WHERE content_chunks_fts MATCH 'intervene'"
        ).fetchall()
        assert len(rows) == 1

    def test_reload_is_harmless(self, fresh_db, snapshot):
        load_snapshot(fresh_db, snapshot)
        counts = load_snapshot(fresh_db, snapshot)
        assert counts["nodes"] == 13
        assert counts["agency_node_mappings"] == 4
        rows = fresh_db.execute(
            "SELECT rowid FROM content_chunks_fts WHERE content_chunks_fts MATCH 'remedies'"
        ).fetchall()
        assert len(rows) == 1

    def test_row_without_id_rejected(self, fresh_db, snapshot):
        snapshot["corrections"].append({"node_id": "part-21"})
        with pytest.raises(ValueError, match="correction without id"):
            load_snapshot(fresh_db, snapshot)

    def test_missing_sections_allowed(self, fresh_db):
        counts = load_snapshot(fresh_db, {"nodes": [{"id": "title-1", "level_type": "title"}]})
        assert counts["nodes"] == 1
        assert counts["corrections"] == 0

    def test_from_file(self, fresh_db, snapshot, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(snapshot), encoding="utf-8")
        assert load_snapshot(fresh_db, path)["nodes"] == 13

    def test_file_must_hold_object(self, fresh_db, tmp_path):
        path = tmp_path / "snapshot.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ValueError, match="JSON object"):
            load_snapshot(fresh_db, path)

    def test_unknown_level_type_logged(self, fresh_db, caplog):
        with caplog.at_level("WARNING"):
            load_snapshot(fresh_db, {"nodes": [{"id": "v-1", "level_type": "volume"},
                                               {"id": "title-1", "level_type": "Title"}]})
        assert "Unknown level types ['volume']" in caplog.text


class TestBuildDatabase:
    def test_missing_snapshot(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            build_database(tmp_path / "nope.json", tmp_path / "ecfr.sqlite")

    def test_rebuild_replaces_database(self, tmp_path, snapshot):
        path = tmp_path / "snapshot.json"
        db = tmp_path / "ecfr.sqlite"
        path.write_text(json.dumps(snapshot), encoding="utf-8")
        build_database(path, db)

        snapshot["nodes"] = snapshot["nodes"][:2]
        path.write_text(json.dumps(snapshot), encoding="utf-8")
        assert build_database(path, db)["nodes"] == 13
        assert build_database(path, db, rebuild=True)["nodes"] == 2

    def test_main(self, tmp_path, snapshot, monkeypatch, capsys):
        path = tmp_path / "snapshot.json"
        path.write_text(json.dumps(snapshot), encoding="utf-8")
        db = tmp_path / "cli.sqlite"
        monkeypatch.setattr(sys, "argv", ["build_ecfr_db.py", str(path), "--db", str(db)])
        main()
        assert db.exists()
        assert "corrections" in capsys.readouterr().out
        conn = sqlite3.connect(str(db))
        assert conn.execute("SELECT COUNT(*) FROM nodes").fetchone()[0] == 13
        conn.close()

    def test_main_error_exit(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", ["build_ecfr_db.py", str(tmp_path / "nope.json"),
                                          "--db", str(tmp_path / "x.sqlite")])
        with pytest.raises(SystemExit) as exc:
            main()
        assert exc.value.code == 1
        assert "ERROR:" in capsys.readouterr().out
