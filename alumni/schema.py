"""
Centralized SQLite Schema Initialization.

Defines the canonical schema for the local store and provides a single
entry-point -- :func:`initialize_schema` -- that creates all required
tables idempotently.  A lightweight ``schema_version`` table tracks
applied migrations so that schema changes can be rolled forward without
data loss.

Migration Strategy
~~~~~~~~~~~~~~~~~~
- **Fresh databases** (version 0): all tables are created in one shot from
  :data:`_TABLE_DEFINITIONS`.
- **Existing databases** (version N > 0): only incremental migrations
  registered in :data:`_MIGRATIONS` are executed.  ``CREATE TABLE IF NOT
  EXISTS`` is *not* re-run; it cannot add columns to existing tables.
- The entire upgrade (migrations + version bump) is wrapped in a single
  SQLite transaction.  On failure the database rolls back to version N
  and the next startup retries.

Adding a New Migration
~~~~~~~~~~~~~~~~~~~~~~
1. Bump :data:`CURRENT_SCHEMA_VERSION`.
2. Update the relevant DDL in :data:`_TABLE_DEFINITIONS` (for fresh installs).
3. Write a ``_migrate_vN_to_vN+1()`` function (use ``ALTER TABLE`` with a
   :func:`_column_exists` guard for idempotency).
4. Register the function in :data:`_MIGRATIONS`.

Documents with nested structure (status histories, role sets, setting
values) are stored as JSON text; money is stored as decimal text so that
``Decimal`` round-trips exactly.

Usage::

    from alumni.schema import initialize_schema

    initialize_schema(db.sqlite, logger)
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable

from alumni.logger import StructuredLogger

__all__ = ["CURRENT_SCHEMA_VERSION", "initialize_schema"]

# ---------------------------------------------------------------------------
# Schema version -- bump this whenever a migration is added.
# ---------------------------------------------------------------------------
CURRENT_SCHEMA_VERSION: int = 4

# At most one non-rejected membership request per user.
_ACTIVE_REQUEST_INDEX: str = (
    "CREATE UNIQUE INDEX IF NOT EXISTS idx_membership_requests_one_active "
    "ON membership_requests(user_id) WHERE status != 'rejected'"
)

_ISSUES_TABLE: str = """
    CREATE TABLE IF NOT EXISTS issues (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT NOT NULL,
        subject TEXT NOT NULL,
        message TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'open',
        resolved_at TIMESTAMP,
        resolved_by TEXT,
        notes TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
"""
_ISSUES_STATUS_INDEX: str = (
    "CREATE INDEX IF NOT EXISTS idx_issues_status ON issues(status)"
)
_VERIFICATION_TOKEN_INDEX: str = (
    "CREATE INDEX IF NOT EXISTS idx_users_verification_token "
    "ON users(email_verification_token)"
)

# ---------------------------------------------------------------------------
# DDL statements for every table in the local database.
# ---------------------------------------------------------------------------
_TABLE_DEFINITIONS: list[str] = [
    # -- single-row version tracker -------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        version INTEGER NOT NULL,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- outbound sync buffer -------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS sync_queue (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        table_name TEXT NOT NULL,
        operation TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        payload TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        attempted_at TIMESTAMP,
        error_message TEXT
    )
    """,
    # -- persistent structured audit trail ------------------------------------
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp TEXT NOT NULL,
        action TEXT NOT NULL,
        entity_type TEXT NOT NULL,
        entity_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        details TEXT DEFAULT '{}',
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- users ----------------------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        auth0_id TEXT UNIQUE,
        email TEXT NOT NULL UNIQUE,
        first_name TEXT,
        last_name TEXT,
        picture TEXT,
        phone_number TEXT,
        batch TEXT,
        date_of_birth TEXT,
        company TEXT,
        designation TEXT,
        passing_year INTEGER,
        education_level TEXT,
        roles TEXT NOT NULL DEFAULT '["guest"]',
        is_active INTEGER NOT NULL DEFAULT 1,
        email_verified INTEGER NOT NULL DEFAULT 0,
        email_verification_token TEXT,
        email_verification_expires TIMESTAMP,
        membership_id TEXT UNIQUE,
        password_hash TEXT,
        password_salt TEXT,
        is_system_bot INTEGER NOT NULL DEFAULT 0,
        last_login_at TIMESTAMP,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- membership requests --------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS membership_requests (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft',
        payment_url TEXT,
        payment_transaction_id TEXT,
        payment_amount TEXT,
        payment_status TEXT,
        rejection_reason TEXT,
        status_history TEXT NOT NULL DEFAULT '[]',
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- financial transactions -----------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS financial_transactions (
        id TEXT PRIMARY KEY,
        type TEXT NOT NULL CHECK (type IN ('income', 'expense')),
        amount TEXT NOT NULL,
        description TEXT NOT NULL,
        currency TEXT NOT NULL DEFAULT 'BDT',
        category TEXT,
        reference_number TEXT,
        transaction_date TIMESTAMP NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft',
        created_by TEXT NOT NULL,
        reviewed_by TEXT,
        reviewed_at TIMESTAMP,
        review_note TEXT,
        rejection_reason TEXT,
        status_history TEXT NOT NULL DEFAULT '[]',
        attachment_url TEXT,
        payee TEXT,
        payer TEXT,
        version INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- key-value settings ---------------------------------------------------
    """
    CREATE TABLE IF NOT EXISTS settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL DEFAULT '{}',
        description TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- monotonic counters (membership numbers) ------------------------------
    """
    CREATE TABLE IF NOT EXISTS counters (
        name TEXT PRIMARY KEY,
        value INTEGER NOT NULL DEFAULT 0,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # -- public issue reports ------------------------------------------------
    _ISSUES_TABLE,
    # -- indexes --------------------------------------------------------------
    "CREATE INDEX IF NOT EXISTS idx_membership_requests_user_id ON membership_requests(user_id)",
    _ACTIVE_REQUEST_INDEX,
    "CREATE INDEX IF NOT EXISTS idx_membership_requests_status ON membership_requests(status)",
    "CREATE INDEX IF NOT EXISTS idx_financial_transactions_status ON financial_transactions(status)",
    "CREATE INDEX IF NOT EXISTS idx_financial_transactions_type ON financial_transactions(type)",
    "CREATE INDEX IF NOT EXISTS idx_financial_transactions_created_by ON financial_transactions(created_by)",
    "CREATE INDEX IF NOT EXISTS idx_financial_transactions_date ON financial_transactions(transaction_date)",
    "CREATE INDEX IF NOT EXISTS idx_sync_queue_status ON sync_queue(status)",
    _ISSUES_STATUS_INDEX,
    _VERIFICATION_TOKEN_INDEX,
]


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _ensure_version_table(conn: sqlite3.Connection) -> None:
    """Create the ``schema_version`` table if it does not yet exist.

    This is executed *before* any version check so that a brand-new
    database can be bootstrapped cleanly.
    """
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            version INTEGER NOT NULL,
            applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    conn.commit()


def _get_schema_version(conn: sqlite3.Connection) -> int:
    """Return the current schema version, or ``0`` if unset."""
    cursor: sqlite3.Cursor = conn.execute(
        "SELECT version FROM schema_version WHERE id = 1"
    )
    row: tuple[int] | None = cursor.fetchone()
    return row[0] if row is not None else 0


def _set_schema_version(conn: sqlite3.Connection, version: int) -> None:
    """Upsert the single-row version tracker to *version*.

    Does **not** commit; the caller is responsible for transaction
    management so that version updates are atomic with schema changes.
    """
    conn.execute(
        """
        INSERT INTO schema_version (id, version) VALUES (1, ?)
        ON CONFLICT(id) DO UPDATE SET version = excluded.version,
                                      applied_at = CURRENT_TIMESTAMP
        """,
        (version,),
    )


def _create_all_tables(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Execute every DDL statement in :data:`_TABLE_DEFINITIONS`.

    Does **not** commit; the caller is responsible for transaction
    management.
    """
    for ddl in _TABLE_DEFINITIONS:
        conn.execute(ddl)
    logger.info(
        f"All {len(_TABLE_DEFINITIONS)} schema statements applied successfully."
    )


_ALLOWED_TABLES: frozenset[str] = frozenset({
    "schema_version",
    "sync_queue",
    "audit_log",
    "users",
    "membership_requests",
    "financial_transactions",
    "settings",
    "counters",
    "issues",
})
"""Tables that may be referenced in dynamic PRAGMA queries."""


def _column_exists(
    conn: sqlite3.Connection, table: str, column: str,
) -> bool:
    """Check whether *column* already exists in *table*.

    Raises:
        ValueError: If *table* is not in :data:`_ALLOWED_TABLES`.
    """
    if table not in _ALLOWED_TABLES:
        raise ValueError(
            f"Invalid table name: {table!r}. "
            f"Allowed tables: {sorted(_ALLOWED_TABLES)}"
        )
    cursor = conn.execute(f"PRAGMA table_info({table})")
    return any(row[1] == column for row in cursor.fetchall())


def _migrate_v1_to_v2(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Add the optimistic-concurrency ``version`` column.

    Status histories are appended with read-modify-write; the column lets
    repositories reject a write based on a stale read.  Existing rows
    start at version 1.
    """
    for table in ("membership_requests", "financial_transactions"):
        if not _column_exists(conn, table, "version"):
            conn.execute(
                f"ALTER TABLE {table} ADD COLUMN version INTEGER NOT NULL DEFAULT 1"
            )
            logger.info(f"Migration v1→v2: added version column to {table}.")


def _migrate_v2_to_v3(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Enforce one active membership request per user in storage.

    Fails (and rolls the upgrade back) if a user already holds two
    non-rejected requests; those must be resolved by hand first.
    """
    conn.execute(_ACTIVE_REQUEST_INDEX)
    logger.info("Migration v2→v3: added one-active-request index.")


def _migrate_v3_to_v4(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Add the issue inbox and email-verification columns for local sign-up."""
    conn.execute(_ISSUES_TABLE)
    conn.execute(_ISSUES_STATUS_INDEX)
    for column, decl in (
        ("email_verification_token", "TEXT"),
        ("email_verification_expires", "TIMESTAMP"),
    ):
        if not _column_exists(conn, "users", column):
            conn.execute(f"ALTER TABLE users ADD COLUMN {column} {decl}")
            logger.info(f"Migration v3→v4: added {column} column to users.")
    conn.execute(_VERIFICATION_TOKEN_INDEX)


# ---------------------------------------------------------------------------
# Migration registry: maps *target* version to its migration function.
# ---------------------------------------------------------------------------

MigrationFunc = Callable[[sqlite3.Connection, StructuredLogger], None]

_MIGRATIONS: dict[int, MigrationFunc] = {
    2: _migrate_v1_to_v2,
    3: _migrate_v2_to_v3,
    4: _migrate_v3_to_v4,
}


def _run_incremental_migrations(
    conn: sqlite3.Connection,
    logger: StructuredLogger,
    from_version: int,
    to_version: int,
) -> None:
    """Run all registered migrations between *from_version* and *to_version*.

    Migrations are executed in ascending version order.  Only versions
    in the half-open range ``(from_version, to_version]`` are applied.

    Does **not** commit; the caller is responsible for transaction
    management.
    """
    versions_to_apply: list[int] = sorted(
        v for v in _MIGRATIONS if from_version < v <= to_version
    )

    if not versions_to_apply:
        logger.info("No incremental migrations to apply.")
        return

    logger.info(
        f"Applying {len(versions_to_apply)} migration(s): "
        f"{' → '.join(str(v) for v in versions_to_apply)}"
    )
    for version in versions_to_apply:
        logger.info(f"Running migration to version {version} …")
        _MIGRATIONS[version](conn, logger)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def initialize_schema(conn: sqlite3.Connection, logger: StructuredLogger) -> None:
    """Ensure the local SQLite database matches the current schema version.

    Workflow:
        1. Guarantee the ``schema_version`` table exists (separate commit).
        2. Read the stored version number (``0`` for a fresh database).
        3. If the stored version equals or exceeds
           :data:`CURRENT_SCHEMA_VERSION`, return immediately.
        4. Otherwise, upgrade within a **single atomic transaction** and
           roll back on failure so the next startup retries.

    Called on every startup; fully idempotent.
    """
    _ensure_version_table(conn)
    current: int = _get_schema_version(conn)

    if current >= CURRENT_SCHEMA_VERSION:
        logger.info(f"Schema is up to date (version {current}).")
        return

    logger.info(
        f"Upgrading schema from version {current} "
        f"to {CURRENT_SCHEMA_VERSION} …"
    )

    try:
        if current == 0:
            _create_all_tables(conn, logger)
        else:
            _run_incremental_migrations(
                conn, logger, current, CURRENT_SCHEMA_VERSION,
            )

        _set_schema_version(conn, CURRENT_SCHEMA_VERSION)
        conn.commit()
    except Exception:
        conn.rollback()
        logger.error(
            f"Schema migration failed; rolled back to version {current}."
        )
        raise

    logger.info(f"Schema initialised at version {CURRENT_SCHEMA_VERSION}.")
