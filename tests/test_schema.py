"""Local schema bootstrap and migrations."""

from __future__ import annotations

import sqlite3

import pytest

from alumni.schema import CURRENT_SCHEMA_VERSION, initialize_schema

EXPECTED_TABLES = {
    "schema_version",
    "sync_queue",
    "audit_log",
    "users",
    "membership_requests",
    "financial_transactions",
    "settings",
    "counters",
    "issues",
}


def _tables(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    return {row[0] for row in rows}


def _columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()}


def _indexes(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA index_list({table})").fetchall()}


def test_fresh_database(logger):
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)
    initialize_schema(conn, logger)

    assert EXPECTED_TABLES <= _tables(conn)
    version = conn.execute("SELECT version FROM schema_version").fetchone()[0]
    assert version == CURRENT_SCHEMA_VERSION


def test_v1_database_is_upgraded(logger):
    conn = sqlite3.connect(":memory:")
    conn.execute("CREATE TABLE schema_version (id INTEGER PRIMARY KEY CHECK (id = 1), version INTEGER NOT NULL, applied_at TIMESTAMP)")
    conn.execute("INSERT INTO schema_version (id, version) VALUES (1, 1)")
    conn.execute("CREATE TABLE membership_requests (id TEXT PRIMARY KEY, user_id TEXT, status TEXT)")
    conn.execute("CREATE TABLE financial_transactions (id TEXT PRIMARY KEY, status TEXT)")
    conn.execute("CREATE TABLE users (id TEXT PRIMARY KEY, email TEXT NOT NULL UNIQUE)")
    conn.execute("INSERT INTO membership_requests (id, status) VALUES ('r1', 'draft')")
    conn.commit()

    initialize_schema(conn, logger)

    assert "version" in _columns(conn, "membership_requests")
    assert "version" in _columns(conn, "financial_transactions")
    assert conn.execute("SELECT version FROM membership_requests WHERE id = 'r1'").fetchone()[0] == 1
    assert "idx_membership_requests_one_active" in _indexes(conn, "membership_requests")
    assert {"email_verification_token", "email_verification_expires"} <= _columns(conn, "users")
    assert "issues" in _tables(conn)


def test_membership_id_is_unique(db):
    db.sqlite.execute("INSERT INTO users (id, email, membership_id) VALUES ('a', 'a@x.com', 'M00001')")
    try:
        db.sqlite.execute("INSERT INTO users (id, email, membership_id) VALUES ('b', 'b@x.com', 'M00001')")
    except sqlite3.IntegrityError:
        return
    raise AssertionError("duplicate membership_id accepted")


def test_second_active_request_rejected_by_storage(db):
    db.sqlite.execute("INSERT INTO membership_requests (id, user_id, status) VALUES ('r1', 'u1', 'rejected')")
    db.sqlite.execute("INSERT INTO membership_requests (id, user_id, status) VALUES ('r2', 'u1', 'draft')")
    with pytest.raises(sqlite3.IntegrityError):
        db.sqlite.execute("INSERT INTO membership_requests (id, user_id, status) VALUES ('r3', 'u1', 'approved')")


def test_duplicate_active_requests_block_the_upgrade(logger):
    conn = sqlite3.connect(":memory:")
    initialize_schema(conn, logger)
    conn.execute("DROP INDEX idx_membership_requests_one_active")
    conn.execute("UPDATE schema_version SET version = 2")
    conn.execute("INSERT INTO membership_requests (id, user_id, status) VALUES ('r1', 'u1', 'draft')")
    conn.execute("INSERT INTO membership_requests (id, user_id, status) VALUES ('r2', 'u1', 'draft')")
    conn.commit()

    with pytest.raises(sqlite3.IntegrityError):
        initialize_schema(conn, logger)
    assert conn.execute("SELECT version FROM schema_version").fetchone()[0] == 2
