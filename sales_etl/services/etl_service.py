"""
sales_etl/services/etl_service.py

Service layer for the three ETL operations.

    transform: fetch raw CSV -> transform -> optional put of processed CSV
    load:      fetch CSV -> transform (or read processed rows) -> ensure table -> insert-or-ignore
    query:     validate -> materialize the embedded database if absent -> aggregate

Each store-bound call opens its own session and releases it on exit.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from db.config import EMBEDDED_BACKEND, ConnectionSettings, embedded_database_path
from db.session import session_scope
from sales_etl.config import get_connection_settings, get_load_settings, get_object_storage_settings
from sales_etl.domain.order_record import BatchResult, RowError, TransformResult, summarize_row_errors
from sales_etl.domain.query_spec import QuerySpec, ResultRow
from sales_etl.errors import ObjectStorageError, ValidationError
from sales_etl.repositories.order_query_repository import OrderQueryRepository
from sales_etl.repositories.order_sales_repository import OrderSalesRepository
from sales_etl.services.csv_codec import (
    decode_csv_bytes,
    records_from_csv_text,
    render_processed_csv,
    transform_csv_text,
)
from sales_etl.storage import ObjectLocator, ObjectStorage, build_object_storage, write_bytes_atomically
from sales_etl.validators.query_validator import QueryValidator

logger = logging.getLogger(__name__)

_BACKEND_LABELS = {EMBEDDED_BACKEND: "SQLite"}


@dataclass(frozen=True)
class TransformOutcome:
    csv_text: str
    result: TransformResult
    output: ObjectLocator | None = None


@dataclass(frozen=True)
class LoadOutcome:
    backend: str
    batch: BatchResult
    result: TransformResult

    @property
    def message(self) -> str:
        label = _BACKEND_LABELS.get(self.backend, "PostgreSQL")
        return (
            f"Data successfully loaded into {label} database. "
            f"Inserted {self.batch.inserted}, skipped {self.batch.skipped_duplicates} duplicates, "
            f"rejected {self.result.rows_failed} rows."
        )


class ETLService:
    """
    Coordinates object storage, the transformer, the loader and the query builder.
    """

    def __init__(
        self,
        *,
        storage: ObjectStorage,
        connection_settings: ConnectionSettings,
        batch_size: int = 500,
        max_row_errors: int = 500,
        log_row_errors: bool = True,
        query_validator: QueryValidator | None = None,
    ) -> None:
        self._storage = storage
        self._connection_settings = connection_settings
        self._batch_size = max(1, batch_size)
        self._max_row_errors = max(1, max_row_errors)
        self._log_row_errors = log_row_errors
        self._query_validator = query_validator or QueryValidator()

    @property
    def connection_settings(self) -> ConnectionSettings:
        return self._connection_settings

    # ------------------------------------------------------------------
    # Transform
    # ------------------------------------------------------------------

    def transform(
        self,
        *,
        raw_data: str | None = None,
        source: ObjectLocator | None = None,
        output: ObjectLocator | None = None,
        has_header: bool = True,
    ) -> TransformOutcome:
        """
        Transform raw CSV from `raw_data` or the `source` object into processed CSV.

        When `output` is given the processed CSV is also put to the sink.
        """

        text = self._read_text(raw_data=raw_data, source=source)
        result = transform_csv_text(text, has_header=has_header)
        self._report_row_errors(result.errors)

        csv_text = render_processed_csv(result.records)
        if output is not None:
            self._storage.put(output, csv_text.encode("utf-8"), content_type="text/csv")

        logger.info(
            "Transform completed records=%d rows_failed=%d duplicates_skipped=%d",
            len(result.records),
            result.rows_failed,
            result.duplicates_skipped,
        )
        return TransformOutcome(csv_text=csv_text, result=result, output=output)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(
        self,
        *,
        raw_data: str | None = None,
        source: ObjectLocator | None = None,
        db_type: str | None = None,
        has_header: bool = True,
    ) -> LoadOutcome:
        """
        Load raw or processed CSV into the selected backend with insert-or-ignore.

        Raises:
            ValidationError: If no input is given or `db_type` is unknown.
            SchemaError: If the header or the table definition is unusable.
            StorageError: If the store or the object source fails.
        """

        settings = self._settings_for(db_type)
        text = self._read_text(raw_data=raw_data, source=source)
        result = records_from_csv_text(text, has_header=has_header)
        self._report_row_errors(result.errors)

        with session_scope(settings) as session:
            repository = OrderSalesRepository(session, batch_size=self._batch_size)
            repository.ensure_schema()
            batch = repository.upsert_batch(result.records)

        return LoadOutcome(backend=settings.backend, batch=batch, result=result)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(
        self,
        spec: QuerySpec,
        *,
        snapshot: ObjectLocator | None = None,
        db_type: str | None = None,
    ) -> list[ResultRow]:
        """
        Run one grouped aggregate query.

        The descriptor is validated before anything else. An absent embedded
        database file is first materialized from `snapshot`.
        """

        validated = self._query_validator.validate(spec)
        settings = self._settings_for(db_type)
        self._materialize_embedded(settings, snapshot)

        with session_scope(settings) as session:
            return OrderQueryRepository(session, validator=self._query_validator).run(validated)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def summarize(self, result: TransformResult) -> dict[str, Any]:
        """
        Row error summary capped at the configured number of errors.
        """

        summary = summarize_row_errors(result.errors, max_errors=self._max_row_errors)
        summary["duplicates_skipped"] = result.duplicates_skipped
        return summary

    def _settings_for(self, db_type: str | None) -> ConnectionSettings:
        try:
            return self._connection_settings.with_backend(db_type)
        except ValueError as exc:
            raise ValidationError(str(exc), code="invalid_db_type") from exc

    def _read_text(self, *, raw_data: str | None, source: ObjectLocator | None) -> str:
        if raw_data is not None:
            return raw_data
        if source is None:
            raise ValidationError(
                "Either raw CSV data or a bucket and key must be provided.",
                code="missing_input",
            )
        return decode_csv_bytes(self._storage.fetch(source))

    def _materialize_embedded(self, settings: ConnectionSettings, snapshot: ObjectLocator | None) -> None:
        database_path = embedded_database_path(settings)
        if database_path is None or database_path.exists():
            return
        if snapshot is None:
            raise ValidationError(
                "A bucket and key must be provided to download the database.",
                code="missing_locator",
            )

        content = self._storage.fetch(snapshot)
        try:
            write_bytes_atomically(database_path, content)
        except OSError as exc:
            raise ObjectStorageError(f"Failed to write database snapshot to {database_path}.") from exc
        logger.info("Materialized embedded database path=%s from=%s size=%d", database_path, snapshot, len(content))

    def _report_row_errors(self, errors: list[RowError]) -> None:
        if not self._log_row_errors:
            return
        for error in errors[: self._max_row_errors]:
            logger.warning(
                "Row rejected position=%d kind=%s order_id=%s column=%s message=%s value=%r",
                error.position,
                error.kind.value,
                error.order_id,
                error.column,
                error.message,
                error.value,
            )


@lru_cache(maxsize=1)
def get_etl_service() -> ETLService:
    """
    Build and cache the ETL service with env-driven settings.
    """
    load_settings = get_load_settings()
    return ETLService(
        storage=build_object_storage(get_object_storage_settings()),
        connection_settings=get_connection_settings(),
        batch_size=load_settings.batch_size,
        max_row_errors=load_settings.max_row_errors,
        log_row_errors=load_settings.log_row_errors,
    )
