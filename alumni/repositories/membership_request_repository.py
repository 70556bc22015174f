"""
Membership Request Repository.

Handles membership request data access via Supabase (primary) and SQLite
(offline cache).  Updates are version-checked so that concurrent status
transitions on one request cannot overwrite each other's history entries.
"""

from __future__ import annotations

from typing import Optional

from alumni.database import DatabaseManager
from alumni.logger import StructuredLogger
from alumni.models.enums import MembershipStatus
from alumni.models.membership_request import ACTIVE_STATUSES, MembershipRequest
from alumni.repositories.base_repository import BaseRepository


class MembershipRequestRepository(BaseRepository):
    """Data access layer for MembershipRequest entities.

    **No ``delete()`` method.**  Requests are kept forever as the record
    of how a member was admitted (or why they were not).
    """

    TABLE = "membership_requests"
    JSON_COLUMNS = frozenset({"status_history"})

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_by_id(self, request_id: str) -> Optional[MembershipRequest]:
        """Fetch a request by ID. Tries Supabase first, falls back to SQLite."""
        def _supabase() -> Optional[MembershipRequest]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", request_id)
                .maybe_single()
                .execute()
            )
            return MembershipRequest.model_validate(response.data) if response and response.data else None

        def _sqlite() -> Optional[MembershipRequest]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (request_id,)
            ).fetchone()
            return MembershipRequest.model_validate(self._decode_row(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name="get_by_id (membership_requests)",
            on_supabase_success=self._cache_request,
        )

    def list_for_user(self, user_id: str) -> list[MembershipRequest]:
        """All requests of *user_id*, newest first."""
        def _supabase() -> list[MembershipRequest]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("user_id", user_id)
                .order("created_at", desc=True)
                .execute()
            )
            return [MembershipRequest.model_validate(row) for row in response.data]

        def _sqlite() -> list[MembershipRequest]:
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE user_id = ? "
                f"ORDER BY created_at DESC, rowid DESC",
                (user_id,),
            ).fetchall()
            return [MembershipRequest.model_validate(self._decode_row(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="list_for_user (membership_requests)",
        )

    def get_active_for_user(self, user_id: str) -> Optional[MembershipRequest]:
        """The user's request in any non-rejected state, if one exists."""
        for request in self.list_for_user(user_id):
            if request.status in ACTIVE_STATUSES:
                return request
        return None

    def get_latest_for_user(self, user_id: str) -> Optional[MembershipRequest]:
        requests = self.list_for_user(user_id)
        return requests[0] if requests else None

    def list_all(self, status: Optional[MembershipStatus] = None) -> list[MembershipRequest]:
        """All requests, optionally of one status, newest first."""
        def _supabase() -> list[MembershipRequest]:
            query = self.supabase.table(self.TABLE).select("*")
            if status is not None:
                query = query.eq("status", str(status))
            response = query.order("created_at", desc=True).execute()
            return [MembershipRequest.model_validate(row) for row in response.data]

        def _sqlite() -> list[MembershipRequest]:
            sql = f"SELECT * FROM {self.TABLE}"
            params: tuple[str, ...] = ()
            if status is not None:
                sql += " WHERE status = ?"
                params = (str(status),)
            rows = self.sqlite.execute(
                sql + " ORDER BY created_at DESC, rowid DESC", params
            ).fetchall()
            return [MembershipRequest.model_validate(self._decode_row(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="list_all (membership_requests)",
        )

    def create(self, request: MembershipRequest) -> MembershipRequest:
        """Insert a new request."""
        self._insert(self._to_record(request), request.id)
        self._logger.info("Membership request created: %s", request.id)
        return request

    def update(self, request: MembershipRequest) -> MembershipRequest:
        """Persist *request*, which must carry the version it was read at.

        Returns the stored request with its version incremented.

        Raises:
            ConflictError: The request changed since it was read.
        """
        stored = request.model_copy(update={"version": request.version + 1})
        self._update_versioned(self._to_record(stored), expected_version=request.version)
        return stored

    def _cache_request(self, request: MembershipRequest) -> None:
        self._cache_record(self._to_record(request))
