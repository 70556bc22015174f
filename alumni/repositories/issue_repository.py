"""
Issue Repository.

Reported issues (``issues`` table) via Supabase (primary) and SQLite
(offline cache).
"""

from __future__ import annotations

from typing import Optional

from alumni.database import DatabaseManager
from alumni.logger import StructuredLogger
from alumni.models.enums import IssueStatus
from alumni.models.issue import Issue
from alumni.repositories.base_repository import BaseRepository


class IssueRepository(BaseRepository):
    """Data access layer for Issue entities."""

    TABLE = "issues"

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_by_id(self, issue_id: str) -> Optional[Issue]:
        def _supabase() -> Optional[Issue]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", issue_id)
                .maybe_single()
                .execute()
            )
            return Issue.model_validate(response.data) if response and response.data else None

        def _sqlite() -> Optional[Issue]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (issue_id,)
            ).fetchone()
            return Issue.model_validate(dict(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name="get_by_id (issues)",
            on_supabase_success=lambda issue: self._cache_record(self._to_record(issue)),
        )

    def find(self, status: Optional[IssueStatus] = None) -> list[Issue]:
        """Issues, newest report first, optionally only those in *status*."""

        def _supabase() -> list[Issue]:
            query = self.supabase.table(self.TABLE).select("*")
            if status is not None:
                query = query.eq("status", str(status))
            response = query.order("created_at", desc=True).execute()
            return [Issue.model_validate(row) for row in response.data]

        def _sqlite() -> list[Issue]:
            sql = f"SELECT * FROM {self.TABLE}"
            params: tuple[str, ...] = ()
            if status is not None:
                sql += " WHERE status = ?"
                params = (str(status),)
            rows = self.sqlite.execute(
                sql + " ORDER BY julianday(created_at) DESC, rowid DESC", params,
            ).fetchall()
            return [Issue.model_validate(dict(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="find (issues)",
        )

    def count_by_status(self) -> dict[IssueStatus, int]:
        """Number of issues in each status; absent statuses count zero."""

        def _supabase() -> dict[IssueStatus, int]:
            response = self.supabase.table(self.TABLE).select("status").execute()
            counts = dict.fromkeys(IssueStatus, 0)
            for row in response.data:
                counts[IssueStatus(row["status"])] += 1
            return counts

        def _sqlite() -> dict[IssueStatus, int]:
            rows = self.sqlite.execute(
                f"SELECT status, COUNT(*) AS n FROM {self.TABLE} GROUP BY status"
            ).fetchall()
            counts = dict.fromkeys(IssueStatus, 0)
            for row in rows:
                counts[IssueStatus(row["status"])] = row["n"]
            return counts

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: dict.fromkeys(IssueStatus, 0),
            operation_name="count_by_status (issues)",
        )

    def create(self, issue: Issue) -> Issue:
        self._insert(self._to_record(issue), issue.id)
        self._logger.info("Issue created: %s", issue.id)
        return issue

    def save(self, issue: Issue) -> Issue:
        """Overwrite an existing issue (last write wins)."""
        record = self._to_record(issue)
        synced = self._write_to_supabase(
            "update",
            issue.id,
            lambda: self.supabase.table(self.TABLE)
            .update({k: v for k, v in record.items() if k != "id"})
            .eq("id", issue.id)
            .execute(),
        )
        if synced:
            self._cache_record(record)
            return issue

        row = self._encode_row({k: v for k, v in record.items() if k != "id"})
        assignments = ", ".join(f"{column} = ?" for column in row)
        with self._db.write_lock:
            self.sqlite.execute(
                f"UPDATE {self.TABLE} SET {assignments} WHERE id = ?",
                (*row.values(), issue.id),
            )
            self._commit()
        self._queue_pending_sync("update", issue.id, record)
        return issue

    def delete(self, issue_id: str) -> None:
        synced = self._write_to_supabase(
            "delete",
            issue_id,
            lambda: self.supabase.table(self.TABLE).delete().eq("id", issue_id).execute(),
        )
        with self._db.write_lock:
            self.sqlite.execute(f"DELETE FROM {self.TABLE} WHERE id = ?", (issue_id,))
            self._commit()
        if not synced:
            self._queue_pending_sync("delete", issue_id, {"id": issue_id})
        self._logger.info("Issue deleted: %s", issue_id)
