"""
sales_etl/repositories/order_sales_repository.py

Persistence layer for order-sales records.

Conflict policy is insert-or-ignore: the first writer of an order id wins
for the lifetime of the table, matching the transformer's first-occurrence
dedup. A later load carrying the same order id never overwrites it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import Any, Callable

from sqlalchemy import Table, func, insert, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.base import Base
from db.models.order_sales_record import OrderSalesRecord
from sales_etl.domain.order_record import BatchResult, OrderSalesInput
from sales_etl.errors import SchemaError, StorageError
from sales_etl.mappers.schema_model import CANONICAL_COLUMNS, PRIMARY_KEY_COLUMN

logger = logging.getLogger(__name__)

_DEFAULT_BATCH_SIZE = 500

# Dialects with a native INSERT ... ON CONFLICT DO NOTHING.
_INSERT_OR_IGNORE: dict[str, Callable[[Table], Any]] = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


def record_to_row(record: OrderSalesInput) -> dict[str, Any]:
    """
    Column-name keyed row for one canonical record.
    """

    return {column.column_name: getattr(record, column.attribute) for column in CANONICAL_COLUMNS}


class OrderSalesRepository:
    """
    The only writer of the `transformed_data` table.
    """

    def __init__(self, session: Session, *, batch_size: int = _DEFAULT_BATCH_SIZE) -> None:
        self._session = session
        self._batch_size = max(1, batch_size)
        self._table: Table = OrderSalesRecord.__table__  # type: ignore[assignment]

    def ensure_schema(self) -> None:
        """
        Create the table if absent. Safe to call on every invocation.
        """

        try:
            Base.metadata.create_all(
                self._session.connection(),
                tables=[self._table],
                checkfirst=True,
            )
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            if _is_already_exists(exc):
                # Another invocation created it between the check and the CREATE.
                logger.info("Table %s already exists", self._table.name)
                return
            raise SchemaError(f"Failed to create table {self._table.name}.") from exc

    def upsert(self, record: OrderSalesInput) -> bool:
        """
        Insert one record unless its order id is already stored. Returns True when inserted.
        """

        return self.upsert_batch([record]).inserted == 1

    def upsert_batch(self, records: Iterable[OrderSalesInput]) -> BatchResult:
        """
        Insert-or-ignore a batch inside a single transaction.

        Duplicate order ids (within the batch or already stored) are counted
        as skipped and never raise. Store failures roll the whole batch back.
        """

        rows = [record_to_row(record) for record in records]
        if not rows:
            return BatchResult(inserted=0, skipped_duplicates=0)

        deduped_rows = self._deduplicate_rows(rows)
        try:
            inserted = self._insert_or_ignore(deduped_rows)
            self._session.commit()
        except SQLAlchemyError as exc:
            self._session.rollback()
            raise StorageError("Failed to persist order-sales records.") from exc

        result = BatchResult(inserted=inserted, skipped_duplicates=len(rows) - inserted)
        logger.info(
            "Loaded batch table=%s received=%d inserted=%d skipped_duplicates=%d",
            self._table.name,
            len(rows),
            result.inserted,
            result.skipped_duplicates,
        )
        return result

    def count(self) -> int:
        """
        Number of stored records.
        """

        try:
            return int(self._session.scalar(select(func.count()).select_from(self._table)) or 0)
        except SQLAlchemyError as exc:
            raise StorageError(f"Failed to count rows in {self._table.name}.") from exc

    def _insert_or_ignore(self, rows: Sequence[dict[str, Any]]) -> int:
        dialect_name = self._session.get_bind().dialect.name
        insert_factory = _INSERT_OR_IGNORE.get(dialect_name)
        if insert_factory is None:
            return self._insert_missing(rows)

        key_column = self._table.c[PRIMARY_KEY_COLUMN.column_name]
        inserted = 0
        for start in range(0, len(rows), self._batch_size):
            chunk = rows[start : start + self._batch_size]
            stmt = (
                insert_factory(self._table)
                .values(list(chunk))
                .on_conflict_do_nothing(index_elements=[key_column])
                .returning(key_column)
            )
            inserted += len(self._session.execute(stmt).scalars().all())
        return inserted

    def _insert_missing(self, rows: Sequence[dict[str, Any]]) -> int:
        # Portable path: read the stored keys first, then insert only new ones.
        key_name = PRIMARY_KEY_COLUMN.column_name
        key_column = self._table.c[key_name]
        inserted = 0
        for start in range(0, len(rows), self._batch_size):
            chunk = rows[start : start + self._batch_size]
            keys = [row[key_name] for row in chunk]
            existing = set(self._session.execute(select(key_column).where(key_column.in_(keys))).scalars())
            new_rows = [row for row in chunk if row[key_name] not in existing]
            if new_rows:
                self._session.execute(insert(self._table), new_rows)
            inserted += len(new_rows)
        return inserted

    @staticmethod
    def _deduplicate_rows(rows: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
        key_name = PRIMARY_KEY_COLUMN.column_name
        seen: set[Any] = set()
        deduped_rows: list[dict[str, Any]] = []

        for row in rows:
            key = row[key_name]
            if key in seen:
                continue
            seen.add(key)
            deduped_rows.append(row)

        return deduped_rows


def _is_already_exists(exc: SQLAlchemyError) -> bool:
    original = getattr(exc, "orig", None)
    message = str(original if original is not None else exc).lower()
    return "already exists" in message
