"""
User Repository.

Handles all user data access via Supabase (primary) and SQLite (offline cache).
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from alumni.database import DatabaseManager
from alumni.exceptions import ConflictError, ExternalServiceError
from alumni.logger import StructuredLogger
from alumni.models.enums import UserRole
from alumni.models.user import User
from alumni.repositories.base_repository import BaseRepository, is_unique_violation
from alumni.utils.string_helpers import sanitize_search_term


class UserRepository(BaseRepository):
    """Data access layer for User entities.

    **No ``delete()`` method.**  Users are referenced by membership
    requests, transactions and the audit trail; clear ``is_active``
    through :meth:`save` to revoke access while keeping those associations.
    """

    TABLE = "users"
    JSON_COLUMNS = frozenset({"roles"})

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get_one(self, column: str, value: str) -> Optional[User]:
        def _supabase() -> Optional[User]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq(column, value)
                .maybe_single()
                .execute()
            )
            return User.model_validate(response.data) if response and response.data else None

        def _sqlite() -> Optional[User]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE {column} = ?", (value,)
            ).fetchone()
            return User.model_validate(self._decode_row(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name=f"get_by_{column} (users)",
            on_supabase_success=self._cache_user,
        )

    def get_by_id(self, user_id: str) -> Optional[User]:
        """Fetch a user by primary key."""
        return self._get_one("id", user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        """Fetch a user by email address (case-insensitive)."""
        return self._get_one("email", email.strip().lower())

    def get_by_auth0_id(self, auth0_id: str) -> Optional[User]:
        """Fetch a user by identity-provider subject."""
        return self._get_one("auth0_id", auth0_id)

    def get_by_verification_token(self, token_digest: str) -> Optional[User]:
        """Fetch the user holding a pending sign-up token (stored as a digest)."""
        return self._get_one("email_verification_token", token_digest)

    def list_active(
        self,
        batch: Optional[str] = None,
        passing_year: Optional[int] = None,
        roles: Optional[list[UserRole]] = None,
    ) -> list[User]:
        """Active users, optionally filtered; a user matches ``roles`` if it
        holds any of them.  Ordered by first then last name."""

        def _supabase() -> list[User]:
            query = self.supabase.table(self.TABLE).select("*").eq("is_active", True)
            if batch is not None:
                query = query.eq("batch", batch)
            if passing_year is not None:
                query = query.eq("passing_year", passing_year)
            response = query.order("first_name").order("last_name").execute()
            return [User.model_validate(row) for row in response.data]

        def _sqlite() -> list[User]:
            clauses = ["is_active = 1"]
            params: list[object] = []
            if batch is not None:
                clauses.append("batch = ?")
                params.append(batch)
            if passing_year is not None:
                clauses.append("passing_year = ?")
                params.append(passing_year)
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE {' AND '.join(clauses)} "
                f"ORDER BY first_name, last_name",
                params,
            ).fetchall()
            return [User.model_validate(self._decode_row(row)) for row in rows]

        users = self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="list_active (users)",
        )
        if roles:
            wanted = set(roles)
            users = [u for u in users if wanted.intersection(u.roles)]
        return users

    def search(self, term: str, limit: int = 20) -> list[User]:
        """Case-insensitive match on first name, last name or email."""
        safe = sanitize_search_term(term)
        if not safe:
            return []

        def _supabase() -> list[User]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("is_active", True)
                .or_(
                    f"first_name.ilike.%{safe}%,"
                    f"last_name.ilike.%{safe}%,"
                    f"email.ilike.%{safe}%"
                )
                .limit(limit)
                .execute()
            )
            return [User.model_validate(row) for row in response.data]

        def _sqlite() -> list[User]:
            pattern = f"%{safe.lower()}%"
            rows = self.sqlite.execute(
                f"""
                SELECT * FROM {self.TABLE}
                WHERE is_active = 1
                  AND (LOWER(COALESCE(first_name, '')) LIKE ?
                       OR LOWER(COALESCE(last_name, '')) LIKE ?
                       OR LOWER(email) LIKE ?)
                ORDER BY first_name, last_name
                LIMIT ?
                """,
                (pattern, pattern, pattern, limit),
            ).fetchall()
            return [User.model_validate(self._decode_row(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="search (users)",
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create(self, user: User) -> User:
        """Insert a new user.

        Raises:
            ConflictError: The email, identity subject or membership id is
                already taken.
        """
        self._insert(self._to_record(user), user.id)
        self._logger.info("User created: %s", user.id)
        return user

    def save(self, user: User) -> User:
        """Persist an existing user (last write wins).

        ``membership_id`` is never written here; it is set once through
        :meth:`assign_membership_id` so a stale copy cannot clear it.
        """
        record = self._to_record(user, exclude={"membership_id"})
        synced = self._write_to_supabase(
            "update",
            user.id,
            lambda: self.supabase.table(self.TABLE)
            .update({k: v for k, v in record.items() if k != "id"})
            .eq("id", user.id)
            .execute(),
        )

        row = self._encode_row({k: v for k, v in record.items() if k != "id"})
        assignments = ", ".join(f"{column} = ?" for column in row)
        with self._db.write_lock:
            try:
                self.sqlite.execute(
                    f"UPDATE {self.TABLE} SET {assignments} WHERE id = ?",
                    (*row.values(), user.id),
                )
                self._commit()
            except sqlite3.IntegrityError as exc:
                self.sqlite.rollback()
                raise ConflictError(
                    "User email or identity is already in use",
                    details={"user_id": user.id},
                ) from exc
        if not synced:
            self._queue_pending_sync("update", user.id, record)
        return user

    def assign_membership_id(self, user_id: str, membership_id: str) -> bool:
        """Compare-and-set: write *membership_id* only while the user has none.

        Returns ``True`` when this call assigned the id, ``False`` when the
        user already held one (another approval won the race).  While
        Supabase is configured it is the only store consulted: the local
        cache cannot see ids held by users it never synced.

        Raises:
            ConflictError: *membership_id* is already held by another user.
            ExternalServiceError: Online and the cloud write failed.
        """
        if self._db.is_online:
            return self._assign_membership_id_cloud(user_id, membership_id)

        with self._db.write_lock:
            try:
                cursor = self.sqlite.execute(
                    f"""
                    UPDATE {self.TABLE}
                    SET membership_id = ?, updated_at = CURRENT_TIMESTAMP
                    WHERE id = ? AND membership_id IS NULL
                    """,
                    (membership_id, user_id),
                )
                self._commit()
            except sqlite3.IntegrityError as exc:
                self.sqlite.rollback()
                raise ConflictError(
                    f"Membership ID {membership_id} is already assigned",
                    details={"user_id": user_id},
                ) from exc
        assigned = cursor.rowcount == 1
        if assigned:
            self._queue_pending_sync(
                "update", user_id, {"id": user_id, "membership_id": membership_id},
            )
        return assigned

    def _assign_membership_id_cloud(self, user_id: str, membership_id: str) -> bool:
        try:
            response = (
                self.supabase.table(self.TABLE)
                .update({"membership_id": membership_id})
                .eq("id", user_id)
                .is_("membership_id", "null")
                .execute()
            )
        except Exception as exc:
            if is_unique_violation(exc):
                raise ConflictError(
                    f"Membership ID {membership_id} is already assigned",
                    details={"user_id": user_id},
                ) from exc
            self._logger.error(
                "Supabase membership id assignment failed for %s: %s", user_id, exc,
            )
            raise ExternalServiceError(
                "supabase", "Membership ID assignment is unavailable", exc,
            ) from exc
        assigned = bool(response.data)
        if assigned:
            self._cache_user(User.model_validate(response.data[0]))
        return assigned

    def _cache_user(self, user: User) -> None:
        self._cache_record(self._to_record(user))
