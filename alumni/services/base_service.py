"""
Base Service Class.

Minimal base class standardizing the logger pattern for all services.
Services extend this and add their own repository dependencies via __init__.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from alumni.database import DatabaseManager
from alumni.exceptions import DetailValue
from alumni.logger import StructuredLogger
from alumni.utils.audit import log_audit_event


class BaseService:
    """Base class for all service classes. Provides a logger and audit hook.

    When a ``DatabaseManager`` is supplied, audit events are also persisted
    to the local ``audit_log`` table.
    """

    def __init__(
        self, logger: StructuredLogger, db: Optional[DatabaseManager] = None,
    ) -> None:
        self._logger: StructuredLogger = logger
        self._audit_db: Optional[DatabaseManager] = db

    def _audit(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        user_id: str,
        details: Optional[dict[str, DetailValue]] = None,
    ) -> None:
        if self._audit_db is None:
            log_audit_event(self._logger, action, entity_type, entity_id, user_id, details)
            return
        with self._audit_db.write_lock:
            log_audit_event(
                self._logger, action, entity_type, entity_id, user_id, details,
                conn=self._audit_db.sqlite,
            )

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)
