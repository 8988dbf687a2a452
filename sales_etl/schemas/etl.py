"""
sales_etl/schemas/etl.py

Request and response envelopes for the transform, load and query endpoints.

Requests accept the camelCase keys existing callers send (`rawData`,
`s3Bucket`, `groupBy`, ...) as well as the snake_case field names.
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from sales_etl.errors import ValidationError
from sales_etl.storage import ObjectLocator


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _locator(bucket: str | None, key: str | None, *, what: str) -> ObjectLocator | None:
    has_bucket = bool(bucket and bucket.strip())
    has_key = bool(key and key.strip())
    if not has_bucket and not has_key:
        return None
    if not (has_bucket and has_key):
        raise ValidationError(f"Both bucket and key must be provided for the {what}.", code="missing_locator")
    return ObjectLocator(bucket=bucket.strip(), key=key.strip())  # type: ignore[union-attr]


class _ObjectRequest(BaseModel):
    bucket: str | None = Field(default=None, validation_alias=_alias("bucket", "s3Bucket", "s3_bucket"))
    key: str | None = Field(default=None, validation_alias=_alias("key", "s3Key", "s3_key"))

    def source(self) -> ObjectLocator | None:
        return _locator(self.bucket, self.key, what="source object")


class TransformRequest(_ObjectRequest):
    """
    Raw CSV inline or by object locator, with an optional sink key for the processed CSV.
    """

    raw_data: str | None = Field(default=None, validation_alias=_alias("rawData", "csvData", "raw_data"))
    output_key: str | None = Field(default=None, validation_alias=_alias("outputKey", "output_key"))
    output_bucket: str | None = Field(default=None, validation_alias=_alias("outputBucket", "output_bucket"))
    has_header: bool = Field(default=True, validation_alias=_alias("hasHeader", "has_header"))

    def output(self) -> ObjectLocator | None:
        if not self.output_key:
            return None
        return _locator(self.output_bucket or self.bucket, self.output_key, what="processed output")


class LoadRequest(_ObjectRequest):
    """
    Raw or processed CSV inline or by object locator, plus the target backend.
    """

    raw_data: str | None = Field(default=None, validation_alias=_alias("rawData", "csvData", "raw_data"))
    db_type: str | None = Field(default=None, validation_alias=_alias("dbType", "db_type"))
    has_header: bool = Field(default=True, validation_alias=_alias("hasHeader", "has_header"))


class QueryRequest(_ObjectRequest):
    """
    Aggregate query descriptor. `bucket`/`key` name a database snapshot.
    """

    filters: list[str | dict[str, Any]] = Field(default_factory=list)
    aggregations: list[str | dict[str, Any]] = Field(default_factory=list)
    group_by: str | None = Field(default=None, validation_alias=_alias("groupBy", "group_by"))
    order_by: list[str | dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=_alias("orderBy", "order_by"),
    )
    db_type: str | None = Field(default=None, validation_alias=_alias("dbType", "db_type"))

    def snapshot(self) -> ObjectLocator | None:
        return _locator(self.bucket, self.key, what="database snapshot")


class RowErrorResponse(BaseModel):
    """
    API response model for one rejected row.
    """

    position: int = Field(..., ge=0)
    kind: str
    message: str
    order_id: str | None = None
    column: str | None = None
    value: str | None = None


class ErrorSummaryResponse(BaseModel):
    """
    Row rejections attached to a partially successful response.
    """

    rows_failed: int = Field(default=0, ge=0)
    duplicates_skipped: int = Field(default=0, ge=0)
    by_kind: dict[str, int] = Field(default_factory=dict)
    errors: list[RowErrorResponse] = Field(default_factory=list)
    truncated: bool = False


class TransformResponse(BaseModel):
    value: str
    records: int = Field(..., ge=0)
    output: str | None = None
    error_summary: ErrorSummaryResponse
    runtime_ms: float = Field(..., ge=0)


class LoadResponse(BaseModel):
    value: str
    backend: str
    inserted: int = Field(..., ge=0)
    skipped_duplicates: int = Field(..., ge=0)
    error_summary: ErrorSummaryResponse
    runtime_ms: float = Field(..., ge=0)


class QueryResponse(BaseModel):
    value: list[dict[str, Any]] = Field(default_factory=list)
    rows: int = Field(..., ge=0)
    runtime_ms: float = Field(..., ge=0)


class HealthResponse(BaseModel):
    status: str
    version: str
