"""
Shared fixtures for the ETL test suite.

Store-bound tests run against SQLite files under `tmp_path`; object
storage is replaced by an in-memory fake.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from sqlalchemy.orm import Session

from db.config import EMBEDDED_BACKEND, ConnectionSettings
from db.session import session_scope
from sales_etl.errors import ObjectStorageError
from sales_etl.mappers.schema_model import DEFAULT_RAW_LAYOUT
from sales_etl.services.etl_service import ETLService
from sales_etl.storage import ObjectLocator

# Region, Country, Item Type, Sales Channel, Order Priority, Order ID, Order Date,
# Ship Date, Units Sold, Unit Price, Unit Cost, Total Revenue, Total Cost, Total Profit
SAMPLE_ROWS: list[list[str]] = [
    ["Europe", "France", "Snacks", "Online", "L", "ORD-1", "01/01/2024", "01/05/2024", "10", "5.00", "3.00", "50.00", "20.00", ""],
    ["Europe", "Germany", "Cereal", "Offline", "H", "ORD-2", "02/01/2024", "02/03/2024", "20", "10.00", "6.00", "200.00", "120.00", ""],
    ["Asia", "Japan", "Snacks", "Online", "m", "ORD-3", "03/10/2024", "03/20/2024", "5", "4.00", "2.00", "20.00", "10.00", ""],
    ["Asia", "China", "Fruits", "Offline", "X", "ORD-4", "04/01/2024", "04/01/2024", "8", "2.50", "1.00", "20.00", "8.00", ""],
]


def to_csv(rows: list[list[str]], *, header: bool = True) -> str:
    lines = [",".join(DEFAULT_RAW_LAYOUT)] if header else []
    lines.extend(",".join(row) for row in rows)
    return "\n".join(lines) + "\n"


class InMemoryObjectStorage:
    """
    Dict-backed source and sink.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[tuple[str, str], str | None] = {}

    def fetch(self, locator: ObjectLocator) -> bytes:
        try:
            return self.objects[(locator.bucket, locator.key)]
        except KeyError as exc:
            raise ObjectStorageError(f"Object not found: {locator}.") from exc

    def put(self, locator: ObjectLocator, data: bytes, *, content_type: str | None = None) -> None:
        self.objects[(locator.bucket, locator.key)] = data
        self.content_types[(locator.bucket, locator.key)] = content_type


@pytest.fixture()
def sample_rows() -> list[list[str]]:
    return [list(row) for row in SAMPLE_ROWS]


@pytest.fixture()
def sample_csv() -> str:
    return to_csv(SAMPLE_ROWS)


@pytest.fixture()
def sqlite_settings(tmp_path) -> ConnectionSettings:
    return ConnectionSettings(
        backend=EMBEDDED_BACKEND,
        sqlite_path=str(tmp_path / "db" / "transformed_data.db"),
    )


@pytest.fixture()
def session(sqlite_settings: ConnectionSettings) -> Iterator[Session]:
    with session_scope(sqlite_settings) as db:
        yield db


@pytest.fixture()
def memory_storage() -> InMemoryObjectStorage:
    return InMemoryObjectStorage()


@pytest.fixture()
def etl_service(memory_storage: InMemoryObjectStorage, sqlite_settings: ConnectionSettings) -> ETLService:
    return ETLService(
        storage=memory_storage,
        connection_settings=sqlite_settings,
        batch_size=2,
        max_row_errors=10,
        log_row_errors=False,
    )


@pytest.fixture()
def make_csv():
    return to_csv
