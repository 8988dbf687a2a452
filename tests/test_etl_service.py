"""
tests/test_etl_service.py

End-to-end ETLService tests with an in-memory object store and SQLite files.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from db.config import EMBEDDED_BACKEND, NETWORKED_BACKEND, ConnectionSettings
from sales_etl.errors import ObjectStorageError, SchemaError, UnknownColumnError, ValidationError
from sales_etl.services.etl_service import ETLService
from sales_etl.storage import LocalObjectStorage, ObjectLocator, write_bytes_atomically
from sales_etl.validators.query_validator import build_query_spec

RAW = ObjectLocator("raw-bucket", "incoming/sales.csv")
PROCESSED = ObjectLocator("raw-bucket", "processed/sales.csv")


def _count_by_order_id():
    return build_query_spec(filters=[], aggregations=["COUNT(*)"], group_by="orderId")


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


class TestTransform:
    def test_transform_inline_csv(self, etl_service, sample_csv) -> None:
        outcome = etl_service.transform(raw_data=sample_csv)

        assert len(outcome.result.records) == 4
        assert outcome.csv_text.splitlines()[1].startswith("Europe,France,Snacks,Online,Low,ORD-1")
        assert outcome.output is None

    def test_transform_from_source_to_sink(self, etl_service, memory_storage, sample_csv) -> None:
        memory_storage.put(RAW, sample_csv.encode("utf-8"))

        outcome = etl_service.transform(source=RAW, output=PROCESSED)

        stored = memory_storage.objects[(PROCESSED.bucket, PROCESSED.key)].decode("utf-8")
        assert stored == outcome.csv_text
        assert memory_storage.content_types[(PROCESSED.bucket, PROCESSED.key)] == "text/csv"

    def test_transform_requires_input(self, etl_service) -> None:
        with pytest.raises(ValidationError) as exc_info:
            etl_service.transform()
        assert exc_info.value.code == "missing_input"

    def test_missing_source_object(self, etl_service) -> None:
        with pytest.raises(ObjectStorageError):
            etl_service.transform(source=ObjectLocator("raw-bucket", "absent.csv"))

    def test_summary_reports_rejections(self, etl_service, sample_rows, make_csv) -> None:
        broken = list(sample_rows[0])
        broken[11] = "0"
        outcome = etl_service.transform(raw_data=make_csv([broken, *sample_rows]))

        summary = etl_service.summarize(outcome.result)

        assert summary["rows_failed"] == 1
        assert summary["by_kind"] == {"InvalidRevenue": 1}
        assert summary["duplicates_skipped"] == 0
        assert summary["errors"][0]["position"] == 0

    def test_header_problem_is_schema_error(self, etl_service) -> None:
        with pytest.raises(SchemaError):
            etl_service.transform(raw_data="Region,Country\nEurope,France\n")


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


class TestLoad:
    def test_load_raw_csv_twice(self, etl_service, sample_csv) -> None:
        first = etl_service.load(raw_data=sample_csv)
        second = etl_service.load(raw_data=sample_csv)

        assert first.batch.inserted == 4
        assert second.batch.inserted == 0
        assert second.batch.skipped_duplicates == 4
        assert "SQLite" in first.message

        rows = etl_service.query(_count_by_order_id())
        assert len(rows) == 4

    def test_load_processed_csv_from_source(self, etl_service, memory_storage, sample_csv) -> None:
        memory_storage.put(RAW, sample_csv.encode("utf-8"))
        etl_service.transform(source=RAW, output=PROCESSED)

        outcome = etl_service.load(source=PROCESSED, db_type="sqlite")

        assert outcome.backend == EMBEDDED_BACKEND
        assert outcome.batch.inserted == 4
        assert outcome.result.rows_failed == 0

    def test_unknown_db_type(self, etl_service, sample_csv) -> None:
        with pytest.raises(ValidationError) as exc_info:
            etl_service.load(raw_data=sample_csv, db_type="oracle")
        assert exc_info.value.code == "invalid_db_type"

    def test_db_type_alias_selects_networked_backend(self, etl_service) -> None:
        settings = etl_service._settings_for("aurora")
        assert settings.backend == NETWORKED_BACKEND


# ---------------------------------------------------------------------------
# Query
# ---------------------------------------------------------------------------


class TestQuery:
    def test_materializes_embedded_database_from_snapshot(
        self,
        tmp_path: Path,
        etl_service,
        memory_storage,
        sample_csv,
    ) -> None:
        etl_service.load(raw_data=sample_csv)
        source_path = Path(etl_service.connection_settings.sqlite_path)
        snapshot = ObjectLocator("snapshots", "transformed_data.db")
        memory_storage.put(snapshot, source_path.read_bytes())

        target_path = tmp_path / "fresh" / "transformed_data.db"
        reader = ETLService(
            storage=memory_storage,
            connection_settings=ConnectionSettings(backend=EMBEDDED_BACKEND, sqlite_path=str(target_path)),
            log_row_errors=False,
        )

        rows = reader.query(_count_by_order_id(), snapshot=snapshot)

        assert target_path.exists()
        assert len(rows) == 4

    def test_absent_database_without_snapshot(self, tmp_path: Path, memory_storage) -> None:
        reader = ETLService(
            storage=memory_storage,
            connection_settings=ConnectionSettings(sqlite_path=str(tmp_path / "absent.db")),
        )

        with pytest.raises(ValidationError) as exc_info:
            reader.query(_count_by_order_id())
        assert exc_info.value.code == "missing_locator"

    def test_validation_runs_before_materialization(self, tmp_path: Path, memory_storage) -> None:
        reader = ETLService(
            storage=memory_storage,
            connection_settings=ConnectionSettings(sqlite_path=str(tmp_path / "absent.db")),
        )
        spec = build_query_spec(filters=[], aggregations=["COUNT(*)"], group_by="Profit")

        with pytest.raises(UnknownColumnError):
            reader.query(spec)
        assert not (tmp_path / "absent.db").exists()


# ---------------------------------------------------------------------------
# Local object storage
# ---------------------------------------------------------------------------


class TestLocalObjectStorage:
    def test_put_then_fetch(self, tmp_path: Path) -> None:
        storage = LocalObjectStorage(tmp_path)
        locator = ObjectLocator("bucket", "nested/dir/file.csv")

        storage.put(locator, b"a,b\n")

        assert storage.fetch(locator) == b"a,b\n"
        assert (tmp_path / "bucket" / "nested" / "dir" / "file.csv").exists()
        assert not list(tmp_path.rglob("*.tmp"))

    def test_missing_object(self, tmp_path: Path) -> None:
        with pytest.raises(ObjectStorageError):
            LocalObjectStorage(tmp_path).fetch(ObjectLocator("bucket", "missing.csv"))

    @pytest.mark.parametrize(("bucket", "key"), [("..", "x.csv"), ("bucket", "../x.csv"), ("a/b", "x.csv")])
    def test_paths_stay_inside_root(self, tmp_path: Path, bucket: str, key: str) -> None:
        with pytest.raises(ValidationError):
            LocalObjectStorage(tmp_path).put(ObjectLocator(bucket, key), b"x")

    def test_locator_requires_bucket_and_key(self) -> None:
        with pytest.raises(ValidationError):
            ObjectLocator("", "key")
        with pytest.raises(ValidationError):
            ObjectLocator("bucket", " ")

    def test_atomic_write_replaces_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "db" / "transformed_data.db"
        write_bytes_atomically(target, b"old")
        write_bytes_atomically(target, b"new")

        assert target.read_bytes() == b"new"
        assert not list(tmp_path.rglob("*.tmp"))

    def test_failed_atomic_write_leaves_no_temp_file(self, tmp_path: Path) -> None:
        target = tmp_path / "occupied"
        (target / "child").mkdir(parents=True)

        with pytest.raises(OSError):
            write_bytes_atomically(target, b"data")

        assert not list(tmp_path.rglob("*.tmp"))
