"""
Repository Layer.

Data access objects that abstract Supabase (cloud) and SQLite (local)
operations.  Each repository receives a ``DatabaseManager`` and a
``StructuredLogger`` via constructor injection.
"""

from alumni.repositories.base_repository import BaseRepository
from alumni.repositories.counter_repository import CounterRepository
from alumni.repositories.issue_repository import IssueRepository
from alumni.repositories.membership_request_repository import MembershipRequestRepository
from alumni.repositories.settings_repository import SettingsRepository
from alumni.repositories.transaction_repository import TransactionRepository
from alumni.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "CounterRepository",
    "IssueRepository",
    "MembershipRequestRepository",
    "SettingsRepository",
    "TransactionRepository",
    "UserRepository",
]
