"""
Status History Model.

Append-only audit log of every state change on a workflow entity.
Entries are frozen and histories are tuples, so appending returns a new
sequence and earlier entries can never be rewritten in place.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StatusHistoryEntry(BaseModel):
    """One recorded transition: the status entered, when, by whom, and why."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    status: str
    changed_at: datetime
    changed_by: str
    note: Optional[str] = None


StatusHistory = tuple[StatusHistoryEntry, ...]


def append_history(
    history: StatusHistory,
    status: str,
    changed_by: str,
    note: Optional[str] = None,
) -> StatusHistory:
    """Return *history* extended by one entry stamped with the current UTC time."""
    entry = StatusHistoryEntry(
        status=str(status),
        changed_at=datetime.now(timezone.utc),
        changed_by=changed_by,
        note=note,
    )
    return (*history, entry)
