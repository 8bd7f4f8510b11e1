"""
Pytest fixtures for eCFR Analyzer tests.

Provides a small but complete snapshot (three titles, a chapter with two
subchapters, a part with three sections, agencies and corrections), a
database built from it with build_ecfr_db, and a TestClient bound to that
database.

Snapshot shape used throughout the tests:

    title-4 "Accounts"
      chapter-I
        subchapter-A                  (no children)
        subchapter-B
          part-21 "Bid Protest Regulations"
            section-21.1, section-21.2, section-21.10
          part-100 "Claims"           (no children)
    title-5 "Administrative Personnel"
      chapter-5-I
        section-5-1.1 "Definitions"
    title-10 "Energy"                 (no children)
"""

import copy
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from build_ecfr_db import create_database, load_snapshot


def _node(node_id, parent, link, level_type, number, name,
          citation=None, node_type="structure", metadata=None):
    return {
        "id": node_id, "parent": parent, "link": link,
        "level_type": level_type, "number": number, "node_name": name,
        "citation": citation, "node_type": node_type, "metadata": metadata,
    }


_P21 = "/title=4/chapter=I/subchapter=B/part=21"

SNAPSHOT = {
    "nodes": [
        # Deliberately not in display order
        _node("title-10", None, "/title=10", "title", "10", "Energy", "10 CFR"),
        _node("section-21.10", "part-21", _P21 + "/section=21.10", "section",
              "21.10", "Remedies", "4 CFR 21.10", "content"),
        _node("title-4", None, "/title=4", "title", "4", "Accounts", "4 CFR"),
        _node("chapter-I", "title-4", "/title=4/chapter=I", "chapter", "I",
              "Government Accountability Office"),
        _node("subchapter-B", "chapter-I", "/title=4/chapter=I/subchapter=B",
              "subchapter", "B", "General Procedures"),
        _node("subchapter-A", "chapter-I", "/title=4/chapter=I/subchapter=A",
              "subchapter", "A", "Personnel"),
        _node("part-100", "subchapter-B", "/title=4/chapter=I/subchapter=B/part=100",
              "part", "100", "Claims", "4 CFR Part 100"),
        _node("part-21", "subchapter-B", _P21, "part", "21",
              "Bid Protest Regulations", "4 CFR Part 21"),
        _node("section-21.2", "part-21", _P21 + "/section=21.2", "section",
              "21.2", "Time for filing", "4 CFR 21.2", "content"),
        _node("section-21.1", "part-21", _P21 + "/section=21.1", "section",
              "21.1", "Filing a protest", "4 CFR 21.1", "content",
              metadata={"effective_date": "2022-03-15"}),
        _node("title-5", None, "/title=5", "title", "5",
              "Administrative Personnel", "5 CFR"),
        _node("chapter-5-I", "title-5", "/title=5/chapter=I", "chapter", "I",
              "Office of Personnel Management"),
        _node("section-5-1.1", "chapter-5-I", "/title=5/chapter=I/section=1.1",
              "section", "1.1", "Definitions", "5 CFR 1.1", "content"),
    ],
    "content_chunks": [
        {"id": "chunk-21.1-1", "section_id": "section-21.1", "chunk_number": 1,
         "content": "Protests shall include the name and address of the protester."},
        {"id": "chunk-21.1-0", "section_id": "section-21.1", "chunk_number": 0,
         "content": "A protest must be filed with the Government Accountability Office in writing."},
        {"id": "chunk-21.2-0", "section_id": "section-21.2", "chunk_number": 0,
         "content": "Protests based upon alleged improprieties in a solicitation must be filed before bid opening."},
        {"id": "chunk-21.10-0", "section_id": "section-21.10", "chunk_number": 0,
         "content": "The remedies available include recommending that the agency terminate the contract."},
        {"id": "chunk-5-1.1-0", "section_id": "section-5-1.1", "chunk_number": 0,
         "content": "Definitions used for personnel actions. A protest of a personnel action is not covered here."},
    ],
    "agencies": [
        {"id": "gao", "parent_id": None, "name": "Government Accountability Office",
         "short_name": "GAO", "slug": "gao", "num_cfr": 5, "num_sections": 120,
         "num_words": 50000, "num_corrections": 3},
        {"id": "opm", "parent_id": None, "name": "Office of Personnel Management",
         "short_name": "OPM", "slug": "opm", "num_cfr": 3, "num_sections": 300,
         "num_words": 90000, "num_corrections": 1},
        {"id": "doe", "parent_id": None, "name": "Department of Energy",
         "short_name": "DOE", "slug": "doe", "num_cfr": 2, "num_sections": 200,
         "num_words": 70000, "num_corrections": 0},
        {"id": "doe-eere", "parent_id": "doe", "name": "Office of Energy Efficiency",
         "short_name": "EERE", "slug": "doe-eere", "num_cfr": 1, "num_sections": 10,
         "num_words": 1000, "num_corrections": 0},
        {"id": "doe-eere-bto", "parent_id": "doe-eere", "name": "Building Technologies Office",
         "short_name": "BTO", "slug": "doe-eere-bto", "num_cfr": 1, "num_sections": 5,
         "num_words": 500, "num_corrections": 0},
    ],
    "agency_node_mappings": [
        {"agency_id": "gao", "node_id": "part-21"},
        {"agency_id": "gao", "node_id": "title-4"},
        {"agency_id": "gao", "node_id": "chapter-I"},
        {"agency_id": "opm", "node_id": "title-5"},
    ],
    "corrections": [
        {"id": "corr-1", "node_id": "section-21.1", "agency_id": "gao", "title": 4,
         "error_occurred": "2023-01-10", "error_corrected": "2023-02-10",
         "corrective_action": "Corrected citation"},
        {"id": "corr-2", "node_id": "section-21.1", "agency_id": "gao", "title": 4,
         "error_occurred": "2023-05-01", "error_corrected": "2023-05-03",
         "corrective_action": "Fixed typo"},
        {"id": "corr-3", "node_id": "part-21", "agency_id": "gao", "title": 4,
         "error_occurred": "2024-02-15", "error_corrected": "2024-06-15",
         "corrective_action": "Restored paragraph"},
        {"id": "corr-4", "node_id": "section-5-1.1", "agency_id": "opm", "title": 5,
         "error_occurred": "2024-03-20", "error_corrected": "2024-03-30",
         "corrective_action": "Amended definition"},
    ],
}


@pytest.fixture()
def snapshot():
    """A private copy of the sample snapshot, safe to modify."""
    return copy.deepcopy(SNAPSHOT)


@pytest.fixture(scope="session")
def ecfr_db(tmp_path_factory):
    """Path to a database built from the sample snapshot."""
    db_path = tmp_path_factory.mktemp("ecfr") / "ecfr.sqlite"
    conn = create_database(db_path)
    try:
        load_snapshot(conn, SNAPSHOT)
    finally:
        conn.close()
    return db_path


@pytest.fixture()
def db_conn(ecfr_db):
    """A read connection to the sample database (row_factory=sqlite3.Row)."""
    import sqlite3

    conn = sqlite3.connect(str(ecfr_db))
    conn.row_factory = sqlite3.Row
    yield conn
    conn.close()


@pytest.fixture()
def client(ecfr_db):
    """TestClient for an app bound to the sample database."""
    from fastapi.testclient import TestClient

    from api.app import create_app

    return TestClient(create_app(db_path=ecfr_db))
