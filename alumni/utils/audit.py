"""
Structured Audit Logging.

Every state change the engine performs is reported as one JSON object:
always to the application log, and to the local ``audit_log`` table when
a SQLite connection is supplied.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from alumni.exceptions import DetailValue
from alumni.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event", "persist_audit_event"]

# Engine-wide actor id for changes made without a human caller
# (payment side effects, startup bootstrap).
SYSTEM_ACTOR: str = "system"


class AuditEvent(BaseModel):
    """One audit trail entry.  ``details`` is kept flat on purpose."""

    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
    )
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> AuditEvent:
    """Log a structured audit event and optionally persist it.

    Args:
        logger: Destination for the ``AUDIT: {...}`` line.
        action: What happened (e.g. ``"MEMBERSHIP_STATUS_CHANGE"``).
        entity_type: ``"MembershipRequest"``, ``"FinancialTransaction"``,
            ``"User"`` or ``"Setting"``.
        entity_id: Primary key of the affected entity.
        user_id: Who performed the action (``"system"`` for side effects).
        details: Flat additional context (old/new status, amounts).
        conn: When given, the event is also written to ``audit_log``.
            Persistence failures are logged and never propagated.

    Returns:
        The validated event.
    """
    event = AuditEvent(
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))

    if conn is not None:
        try:
            persist_audit_event(conn, event)
        except sqlite3.Error as db_err:
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)
    return event


def persist_audit_event(conn: sqlite3.Connection, event: AuditEvent) -> None:
    """Write a validated *event* to the ``audit_log`` table and commit."""
    conn.execute(
        """
        INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (
            event.timestamp,
            event.action,
            event.entity_type,
            event.entity_id,
            event.user_id,
            json.dumps(event.details, default=str),
        ),
    )
    conn.commit()
