"""
Financial Transaction Repository.

Handles financial transaction data access via Supabase (primary) and
SQLite (offline cache).  Amounts are stored as decimal text; totals are
computed by the service layer with ``Decimal`` so no float rounding
creeps into the books.
"""

from __future__ import annotations

from typing import Optional

from alumni.database import DatabaseManager
from alumni.logger import StructuredLogger
from alumni.models.transaction import FinancialTransaction, TransactionFilter, as_utc
from alumni.repositories.base_repository import BaseRepository


class TransactionRepository(BaseRepository):
    """Data access layer for FinancialTransaction entities."""

    TABLE = "financial_transactions"
    JSON_COLUMNS = frozenset({"status_history"})

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        super().__init__(db, logger)

    def get_by_id(self, transaction_id: str) -> Optional[FinancialTransaction]:
        """Fetch a transaction by ID. Tries Supabase first, falls back to SQLite."""
        def _supabase() -> Optional[FinancialTransaction]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", transaction_id)
                .maybe_single()
                .execute()
            )
            return FinancialTransaction.model_validate(response.data) if response and response.data else None

        def _sqlite() -> Optional[FinancialTransaction]:
            row = self.sqlite.execute(
                f"SELECT * FROM {self.TABLE} WHERE id = ?", (transaction_id,)
            ).fetchone()
            return FinancialTransaction.model_validate(self._decode_row(row)) if row else None

        return self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=lambda: None,
            operation_name="get_by_id (financial_transactions)",
            on_supabase_success=self._cache_transaction,
        )

    def find(self, criteria: Optional[TransactionFilter] = None) -> list[FinancialTransaction]:
        """Transactions matching *criteria*, newest transaction date first.

        Every criterion is pushed down to the store.  Locally the date window
        is compared through ``julianday()``, which normalises UTC offsets
        but only resolves milliseconds, so the exact window is re-checked
        on the rows that come back.
        """
        criteria = criteria or TransactionFilter()
        equals: dict[str, str] = {
            column: str(value)
            for column, value in (
                ("type", criteria.type),
                ("status", criteria.status),
                ("category", criteria.category),
                ("reference_number", criteria.reference_number),
                ("created_by", criteria.created_by),
            )
            if value is not None
        }

        def _supabase() -> list[FinancialTransaction]:
            query = self.supabase.table(self.TABLE).select("*")
            for column, value in equals.items():
                query = query.eq(column, value)
            if criteria.start_date is not None:
                query = query.gte("transaction_date", criteria.start_date.isoformat())
            if criteria.end_date is not None:
                query = query.lte("transaction_date", criteria.end_date.isoformat())
            response = query.execute()
            return [FinancialTransaction.model_validate(row) for row in response.data]

        def _sqlite() -> list[FinancialTransaction]:
            clauses = [f"{column} = ?" for column in equals]
            params: list[str] = list(equals.values())
            if criteria.start_date is not None:
                clauses.append("julianday(transaction_date) >= julianday(?)")
                params.append(criteria.start_date.isoformat())
            if criteria.end_date is not None:
                clauses.append("julianday(transaction_date) <= julianday(?)")
                params.append(criteria.end_date.isoformat())
            sql = f"SELECT * FROM {self.TABLE}"
            if clauses:
                sql += " WHERE " + " AND ".join(clauses)
            rows = self.sqlite.execute(sql, params).fetchall()
            return [FinancialTransaction.model_validate(self._decode_row(row)) for row in rows]

        found = self._execute_with_fallback(
            supabase_op=_supabase,
            sqlite_op=_sqlite,
            default_factory=list,
            operation_name="find (financial_transactions)",
        )
        window = criteria.date_range
        matching = [t for t in found if window.contains(t.transaction_date)]
        matching.sort(key=lambda t: as_utc(t.transaction_date), reverse=True)
        return matching

    def find_by_reference(
        self, reference_number: str, category: str,
    ) -> Optional[FinancialTransaction]:
        """Transaction with this gateway reference in *category*, if any."""
        found = self.find(
            TransactionFilter(category=category, reference_number=reference_number)
        )
        return found[0] if found else None

    def create(self, transaction: FinancialTransaction) -> FinancialTransaction:
        """Insert a new transaction."""
        self._insert(self._to_record(transaction), transaction.id)
        self._logger.info("Financial transaction created: %s", transaction.id)
        return transaction

    def update(self, transaction: FinancialTransaction) -> FinancialTransaction:
        """Persist *transaction*, which must carry the version it was read at.

        Raises:
            ConflictError: The transaction changed since it was read.
        """
        stored = transaction.model_copy(update={"version": transaction.version + 1})
        self._update_versioned(self._to_record(stored), expected_version=transaction.version)
        return stored

    def delete(self, transaction_id: str) -> None:
        """Remove a transaction row from both stores."""
        synced = self._write_to_supabase(
            "delete",
            transaction_id,
            lambda: self.supabase.table(self.TABLE).delete().eq("id", transaction_id).execute(),
        )
        with self._db.write_lock:
            self.sqlite.execute(f"DELETE FROM {self.TABLE} WHERE id = ?", (transaction_id,))
            self._commit()
        if not synced:
            self._queue_pending_sync("delete", transaction_id, {"id": transaction_id})
        self._logger.info("Financial transaction deleted: %s", transaction_id)

    def _cache_transaction(self, transaction: FinancialTransaction) -> None:
        self._cache_record(self._to_record(transaction))
