"""
Counter Repository.

Monotonic named counters backing sequential identifiers.  Each allocation
is a single atomic increment; a number handed out is never handed out
again, even if the caller fails to use it.
"""

from __future__ import annotations

from alumni.database import DatabaseManager
from alumni.exceptions import ExternalServiceError
from alumni.logger import StructuredLogger
from alumni.repositories.base_repository import BaseRepository

MEMBERSHIP_COUNTER: str = "membership_id"

# Suffix of the highest ``M#####`` id already assigned.  Seeds the counter
# so that ids issued before the counter existed are never reissued.
_HIGHEST_ASSIGNED_SQL: str = """
    SELECT COALESCE(MAX(CAST(SUBSTR(membership_id, 2) AS INTEGER)), 0)
    FROM users
    WHERE membership_id GLOB 'M[0-9][0-9][0-9][0-9][0-9]'
"""


class CounterRepository(BaseRepository):
    """Data access layer for the ``counters`` table."""

    TABLE = "counters"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def allocate_membership_number(self) -> int:
        """Reserve and return the next membership number (starting at 1).

        Online, the ``allocate_membership_number`` Postgres function (see
        ``sql/supabase_workflow.sql``) does the increment server-side.  The
        local cache only sees the users it has synced, so while Supabase is
        configured a failed RPC is an error, never a cue to count locally.
        Offline the local counter is advanced with one ``UPDATE`` under the
        write lock.

        Raises:
            ExternalServiceError: Online and the RPC failed.
        """
        if not self._db.is_online:
            return self._allocate_local(MEMBERSHIP_COUNTER)
        try:
            response = self.supabase.rpc("allocate_membership_number", {}).execute()
        except Exception as exc:
            self._logger.error("Supabase counter RPC failed: %s", exc)
            raise ExternalServiceError(
                "supabase", "Membership number allocation is unavailable", exc,
            ) from exc
        if response.data is None:
            raise ExternalServiceError(
                "supabase", "Membership number allocation returned no value",
            )
        return int(response.data)

    def current(self, name: str = MEMBERSHIP_COUNTER) -> int:
        """Last value handed out for *name* (0 if never used)."""
        row = self.sqlite.execute(
            f"SELECT value FROM {self.TABLE} WHERE name = ?", (name,)
        ).fetchone()
        return int(row["value"]) if row else 0

    def _allocate_local(self, name: str) -> int:
        with self._db.write_lock:
            self.sqlite.execute(
                f"INSERT INTO {self.TABLE} (name, value) VALUES (?, 0) "
                f"ON CONFLICT(name) DO NOTHING",
                (name,),
            )
            self.sqlite.execute(
                f"""
                UPDATE {self.TABLE}
                SET value = MAX(value, ({_HIGHEST_ASSIGNED_SQL})) + 1,
                    updated_at = CURRENT_TIMESTAMP
                WHERE name = ?
                """,
                (name,),
            )
            value = self.current(name)
            self._commit()
        self._logger.debug("Counter %s advanced to %d", name, value)
        return value
