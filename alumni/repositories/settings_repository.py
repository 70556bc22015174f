"""
Settings Repository.

Key-value configuration records (``settings`` table).  Values are JSON
objects; in SQLite they are stored as text.
"""

from __future__ import annotations

from typing import Optional

from alumni.database import DatabaseManager
from alumni.logger import StructuredLogger
from alumni.models.setting import Setting
from alumni.repositories.base_repository import BaseRepository


class SettingsRepository(BaseRepository):
    """Data access layer for Setting records, keyed by ``key``."""

    TABLE = "settings"
    JSON_COLUMNS = frozenset({"value"})

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get(self, key: str) -> Optional[Setting]:
        def _supabase() -> Optional[Setting]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("key", key)
                .maybe_single()
                .execute()
            )
            return Setting.model_validate(response.data) if response and response.data else None

        def _sqlite() -> Optional[Setting]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE key = ?", (key,)
            ).fetchone()
            return Setting.model_validate(self._decode_row(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name=f"get (settings/{key})",
            on_supabase_success=lambda s: self._cache_record(self._to_record(s)),
        )

    def get_all(self) -> list[Setting]:
        """Every setting, ordered by key."""
        def _supabase() -> list[Setting]:
            response = self.supabase.table(self.TABLE).select("*").order("key").execute()
            return [Setting.model_validate(row) for row in response.data]

        def _sqlite() -> list[Setting]:
            rows = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} ORDER BY key"
            ).fetchall()
            return [Setting.model_validate(self._decode_row(row)) for row in rows]

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="get_all (settings)",
        )

    def create(self, setting: Setting) -> Setting:
        """Insert a new setting.

        Raises:
            ConflictError: *key* already exists.
        """
        self._insert(self._to_record(setting), setting.key)
        return setting

    def create_many(self, settings: list[Setting]) -> list[Setting]:
        """Insert *settings* with a single local commit; all or none land.

        Raises:
            ConflictError: A key already exists (nothing is kept locally).
        """
        with self._db.batch_write():
            for setting in settings:
                self.create(setting)
        return settings

    def save(self, setting: Setting) -> Setting:
        """Overwrite an existing setting (settings carry no version)."""
        record = self._to_record(setting)
        synced = self._write_to_supabase(
            "update",
            setting.key,
            lambda: self.supabase.table(self.TABLE)
            .update({k: v for k, v in record.items() if k != "key"})
            .eq("key", setting.key)
            .execute(),
        )
        if synced:
            self._cache_record(record)
            return setting

        row = self._encode_row({k: v for k, v in record.items() if k != "key"})
        assignments = ", ".join(f"{column} = ?" for column in row)
        with self._db.write_lock:
            self.sqlite.execute(
                f"UPDATE {self.TABLE} SET {assignments} WHERE key = ?",
                (*row.values(), setting.key),
            )
            self._commit()
        self._queue_pending_sync("update", setting.key, record)
        return setting

    def delete(self, key: str) -> None:
        synced = self._write_to_supabase(
            "delete",
            key,
            lambda: self.supabase.table(self.TABLE).delete().eq("key", key).execute(),
        )
        with self._db.write_lock:
            self.sqlite.execute(f"DELETE FROM {self.TABLE} WHERE key = ?", (key,))
            self._commit()
        if not synced:
            self._queue_pending_sync("delete", key, {"key": key})
