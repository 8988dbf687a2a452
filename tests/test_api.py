"""
tests/test_api.py

HTTP adapter tests: envelopes, runtime reporting and error mapping.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sales_etl.api.dependencies import get_service
from sales_etl.main import create_app
from sales_etl.storage import ObjectLocator


@pytest.fixture()
def client(etl_service):
    application = create_app()
    application.dependency_overrides[get_service] = lambda: etl_service
    with TestClient(application) as test_client:
        yield test_client


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


# ---------------------------------------------------------------------------
# Transform
# ---------------------------------------------------------------------------


class TestTransformEndpoint:
    def test_inline_raw_data(self, client, sample_csv) -> None:
        response = client.post("/transform", json={"rawData": sample_csv})

        assert response.status_code == 200
        body = response.json()
        assert body["records"] == 4
        assert body["value"].splitlines()[0].endswith("Order Processing Time,Gross Margin")
        assert body["error_summary"]["rows_failed"] == 0
        assert body["runtime_ms"] >= 0

    def test_bucket_key_with_output(self, client, memory_storage, sample_csv) -> None:
        memory_storage.put(ObjectLocator("in", "raw.csv"), sample_csv.encode("utf-8"))

        response = client.post(
            "/transform",
            json={"s3Bucket": "in", "s3Key": "raw.csv", "outputKey": "processed.csv"},
        )

        assert response.status_code == 200
        assert response.json()["output"] == "in/processed.csv"
        assert ("in", "processed.csv") in memory_storage.objects

    def test_upload(self, client, sample_csv) -> None:
        response = client.post(
            "/transform/upload",
            files={"file": ("sales.csv", sample_csv.encode("utf-8"), "text/csv")},
        )

        assert response.status_code == 200
        assert response.json()["records"] == 4

    def test_upload_rejects_non_csv(self, client) -> None:
        response = client.post(
            "/transform/upload",
            files={"file": ("sales.json", b"{}", "application/json")},
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_upload"

    def test_missing_input_is_400(self, client) -> None:
        response = client.post("/transform", json={})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "missing_input"

    def test_partial_locator_is_400(self, client) -> None:
        response = client.post("/transform", json={"bucket": "in"})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "missing_locator"

    def test_header_problem_is_422(self, client) -> None:
        response = client.post("/transform", json={"rawData": "Region,Country\nEurope,France\n"})

        assert response.status_code == 422
        assert "Order ID" in response.json()["detail"]["missing_columns"]

    def test_missing_object_is_503(self, client) -> None:
        response = client.post("/transform", json={"bucket": "in", "key": "absent.csv"})

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "object_storage_error"


# ---------------------------------------------------------------------------
# Load and query
# ---------------------------------------------------------------------------


class TestLoadAndQueryEndpoints:
    def test_load_then_query(self, client, sample_csv) -> None:
        load_response = client.post("/load", json={"csvData": sample_csv, "dbType": "sqlite"})

        assert load_response.status_code == 200
        assert load_response.json()["inserted"] == 4
        assert load_response.json()["backend"] == "embedded"

        query_response = client.post(
            "/query",
            json={
                "filters": ["Region = 'Europe'"],
                "aggregations": ["SUM(Total_Revenue) AS revenue", "COUNT(*)"],
                "groupBy": "Country",
                "orderBy": ["Country"],
            },
        )

        assert query_response.status_code == 200
        body = query_response.json()
        assert body["rows"] == 2
        assert body["value"] == [
            {"Country": "France", "revenue": 50.0, "count_all": 1},
            {"Country": "Germany", "revenue": 200.0, "count_all": 1},
        ]

    def test_second_load_skips_duplicates(self, client, sample_csv) -> None:
        client.post("/load", json={"rawData": sample_csv})
        response = client.post("/load", json={"rawData": sample_csv})

        assert response.status_code == 200
        assert response.json()["inserted"] == 0
        assert response.json()["skipped_duplicates"] == 4

    def test_unknown_db_type_is_400(self, client, sample_csv) -> None:
        response = client.post("/load", json={"rawData": sample_csv, "dbType": "oracle"})

        assert response.status_code == 400

    def test_unknown_column_is_400_with_code(self, client, sample_csv) -> None:
        client.post("/load", json={"rawData": sample_csv})

        response = client.post(
            "/query",
            json={"aggregations": ["COUNT(*)"], "groupBy": "Region; DROP TABLE transformed_data"},
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["code"] == "unknown_column"
        assert detail["role"] == "groupBy"

    def test_missing_group_by_is_400(self, client) -> None:
        response = client.post("/query", json={"aggregations": ["COUNT(*)"]})

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "missing_group_by"
