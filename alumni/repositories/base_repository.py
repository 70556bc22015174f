"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase + SQLite)
- Logger reference
- Supabase-first reads with SQLite fallback
- Write-through to the SQLite cache, with a sync queue for writes that
  Supabase did not acknowledge
- Row (de)serialisation for JSON and boolean columns
"""

from __future__ import annotations

import json
import sqlite3
from typing import Callable, Optional, TypeVar

from pydantic import BaseModel
from supabase import Client as SupabaseClient

from alumni.database import DatabaseManager
from alumni.exceptions import ConflictError
from alumni.logger import StructuredLogger
from alumni.utils.string_helpers import JsonValue

T = TypeVar("T")

Record = dict[str, JsonValue]

# PostgreSQL SQLSTATE for unique_violation, surfaced as ``APIError.code``.
_PG_UNIQUE_VIOLATION: str = "23505"


def is_unique_violation(exc: Exception) -> bool:
    """``True`` when Supabase rejected a write on a UNIQUE constraint."""
    return getattr(exc, "code", None) == _PG_UNIQUE_VIOLATION


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""
    # Columns stored as JSON text in SQLite (native JSON in Supabase).
    JSON_COLUMNS: frozenset[str] = frozenset()

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger

    @property
    def supabase(self) -> SupabaseClient:
        """Returns the Supabase client for cloud operations."""
        return self._db.supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Returns the SQLite connection for local cache operations."""
        return self._db.sqlite

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _execute_with_fallback(
        self,
        supabase_op: Callable[[], Optional[T]],
        sqlite_op: Callable[[], Optional[T]],
        default_factory: Callable[[], T],
        *,
        operation_name: str,
        on_supabase_success: Optional[Callable[[T], None]] = None,
    ) -> T:
        """Execute a read with Supabase-first, SQLite-fallback semantics.

        Execution order:
        1. ``supabase_op()``; a non-``None`` result is returned (after the
           optional ``on_supabase_success`` cache-warming callback).
        2. ``sqlite_op()``; a non-``None`` result is returned.
        3. ``default_factory()``.

        In offline mode step 1 raises ``RuntimeError`` from
        :pyattr:`DatabaseManager.supabase` and is skipped silently.
        """
        if self._db.is_online:
            try:
                result = supabase_op()
                if result is not None:
                    if on_supabase_success is not None:
                        try:
                            on_supabase_success(result)
                        except Exception as cache_exc:
                            self._logger.warning(
                                "Post-Supabase callback failed for %s: %s",
                                operation_name,
                                cache_exc,
                            )
                    return result
            except Exception as exc:
                self._logger.warning(
                    "Supabase unavailable for %s: %s", operation_name, exc
                )

        try:
            result = sqlite_op()
            if result is not None:
                return result
        except sqlite3.Error as sqlite_exc:
            self._logger.error(
                "SQLite fallback also failed for %s: %s",
                operation_name,
                sqlite_exc,
            )

        return default_factory()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _write_to_supabase(
        self, operation: str, entity_id: str, op: Callable[[], None],
    ) -> bool:
        """Run a Supabase write; ``False`` means the caller must queue it.

        A ``ConflictError`` raised by *op* is a business outcome and
        propagates unchanged, as does a cloud UNIQUE violation (converted
        to ``ConflictError``).
        """
        if not self._db.is_online:
            return False
        try:
            op()
            return True
        except ConflictError:
            raise
        except Exception as exc:
            if not is_unique_violation(exc):
                self._logger.error(
                    "Supabase %s failed for %s/%s: %s",
                    operation, self.TABLE, entity_id, exc,
                )
                return False
            raise ConflictError(
                f"{self.TABLE} record conflicts with an existing one",
                details={"entity_id": entity_id},
            ) from exc

    def _insert(self, record: Record, entity_id: str) -> None:
        """Insert a new row: Supabase when reachable, SQLite always.

        Raises:
            ConflictError: A UNIQUE constraint rejected the row.
        """
        synced = self._write_to_supabase(
            "insert",
            entity_id,
            lambda: self.supabase.table(self.TABLE).insert(record).execute(),
        )
        if synced:
            self._cache_record(record)
            return
        self._insert_local(record, replace=False)
        self._queue_pending_sync("insert", entity_id, record)

    def _update_versioned(self, record: Record, expected_version: int) -> None:
        """Persist *record* only if the stored row is still at *expected_version*.

        *record* carries the full new state including the bumped
        ``version``.  The version predicate is part of the write itself
        (``... WHERE id = ? AND version = ?``), so two writers that read
        the same version cannot both succeed.

        Raises:
            ConflictError: The row was modified since it was read.
        """
        entity_id = str(record["id"])
        conflict = ConflictError(
            f"{self.TABLE} record was modified concurrently; reload and retry",
            details={"entity_id": entity_id, "expected_version": expected_version},
        )

        def _supabase_update() -> None:
            response = (
                self.supabase.table(self.TABLE)
                .update({k: v for k, v in record.items() if k != "id"})
                .eq("id", entity_id)
                .eq("version", expected_version)
                .execute()
            )
            if not response.data:
                raise conflict

        if self._write_to_supabase("update", entity_id, _supabase_update):
            self._cache_record(record)
            return

        row = self._encode_row({k: v for k, v in record.items() if k != "id"})
        assignments = ", ".join(f"{column} = ?" for column in row)
        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"UPDATE {self.TABLE} SET {assignments} "
                f"WHERE id = ? AND version = ?",
                (*row.values(), entity_id, expected_version),
            )
            if cursor.rowcount == 0:
                raise conflict
            self._commit()
        self._queue_pending_sync("update", entity_id, record)

    def _insert_local(self, record: Record, *, replace: bool) -> None:
        """Insert *record* into the SQLite table.

        With ``replace=True`` (cache refresh after an acknowledged cloud
        write) an existing row is overwritten.  Otherwise a UNIQUE
        violation becomes a ``ConflictError``.
        """
        row = self._encode_row(record)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        verb = "INSERT OR REPLACE" if replace else "INSERT"
        with self._db.write_lock:
            try:
                self.sqlite.execute(
                    f"{verb} INTO {self.TABLE} ({columns}) VALUES ({placeholders})",
                    tuple(row.values()),
                )
                self._commit()
            except sqlite3.IntegrityError as exc:
                self.sqlite.rollback()
                raise ConflictError(
                    f"{self.TABLE} record conflicts with an existing one",
                    details={"entity_id": str(record.get("id") or record.get("key"))},
                ) from exc

    def _cache_record(self, record: Record) -> None:
        """Refresh the local cache; failures are logged, never raised."""
        try:
            self._insert_local(record, replace=True)
        except (ConflictError, sqlite3.Error) as exc:
            self._logger.warning(
                "Failed to cache %s row to SQLite (non-fatal): %s", self.TABLE, exc,
            )

    def _commit(self) -> None:
        """Commit the SQLite transaction unless a batch is active.

        Inside :meth:`DatabaseManager.batch_write` this is a no-op; the
        batch context issues a single commit (or rollback) on exit.
        """
        if not self._db.in_batch:
            self.sqlite.commit()

    def _queue_pending_sync(
        self,
        operation: str,
        entity_id: str,
        payload: Record,
    ) -> None:
        """Record a write Supabase has not acknowledged for later replay."""
        try:
            with self._db.write_lock:
                self.sqlite.execute(
                    """
                    INSERT INTO sync_queue (table_name, operation, entity_id, payload)
                    VALUES (?, ?, ?, ?)
                    """,
                    (self.TABLE, operation, entity_id, json.dumps(payload, default=str)),
                )
                self._commit()
            self._logger.info(
                "Queued pending sync: %s %s/%s", operation, self.TABLE, entity_id
            )
        except sqlite3.Error as exc:
            self._logger.warning(
                "Failed to queue pending sync for %s/%s: %s",
                self.TABLE,
                entity_id,
                exc,
            )

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_record(model: BaseModel, *, exclude: Optional[set[str]] = None) -> Record:
        """JSON-safe dict of *model* (Decimal → str, datetime → ISO text)."""
        return model.model_dump(mode="json", exclude=exclude)

    def _encode_row(self, record: Record) -> dict[str, object]:
        """Convert a record to SQLite parameters (JSON columns to text)."""
        return {
            key: json.dumps(value) if key in self.JSON_COLUMNS else value
            for key, value in record.items()
        }

    def _decode_row(self, row: sqlite3.Row) -> Record:
        """Convert a SQLite row back into a record (JSON text to values)."""
        data: Record = dict(row)
        for column in self.JSON_COLUMNS:
            raw = data.get(column)
            if isinstance(raw, str):
                data[column] = json.loads(raw)
        return data
