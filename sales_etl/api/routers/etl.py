"""
sales_etl/api/routers/etl.py

Transform, load and query HTTP endpoints.

Handlers are thin: they time the call, hand the envelope to ETLService and
map engine exceptions to structured HTTP errors.
"""

from __future__ import annotations

import logging
import time
from typing import NoReturn

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status

from sales_etl.api.dependencies import get_csv_upload, get_service
from sales_etl.domain.order_record import TransformResult
from sales_etl.errors import SalesETLError, SchemaError, StorageError, ValidationError
from sales_etl.logging_utils import log_event
from sales_etl.schemas.etl import (
    ErrorSummaryResponse,
    LoadRequest,
    LoadResponse,
    QueryRequest,
    QueryResponse,
    TransformRequest,
    TransformResponse,
)
from sales_etl.services.csv_codec import decode_csv_bytes
from sales_etl.services.etl_service import ETLService, TransformOutcome
from sales_etl.validators.query_validator import build_query_spec

logger = logging.getLogger(__name__)

router = APIRouter(tags=["etl"])


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000.0, 3)


def _raise_http(operation: str, exc: SalesETLError, started: float) -> NoReturn:
    if isinstance(exc, ValidationError):
        status_code = status.HTTP_400_BAD_REQUEST
        detail = exc.to_dict()
    elif isinstance(exc, SchemaError):
        # Header problems name the missing columns; DDL failures do not.
        status_code = (
            status.HTTP_422_UNPROCESSABLE_ENTITY if exc.missing_columns else status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        detail = exc.to_dict()
    elif isinstance(exc, StorageError):
        status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        detail = exc.to_dict()
    else:
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        detail = {"code": "internal_error", "message": str(exc)}

    log_event(
        logger,
        logging.WARNING if status_code < 500 else logging.ERROR,
        f"{operation}_failed",
        status_code=status_code,
        code=detail.get("code"),
        runtime_ms=_elapsed_ms(started),
    )
    raise HTTPException(status_code=status_code, detail=detail) from exc


def _error_summary(service: ETLService, result: TransformResult) -> ErrorSummaryResponse:
    return ErrorSummaryResponse(**service.summarize(result))


def _transform_response(service: ETLService, outcome: TransformOutcome, started: float) -> TransformResponse:
    runtime_ms = _elapsed_ms(started)
    log_event(
        logger,
        logging.INFO,
        "transform_completed",
        records=len(outcome.result.records),
        rows_failed=outcome.result.rows_failed,
        runtime_ms=runtime_ms,
    )
    return TransformResponse(
        value=outcome.csv_text,
        records=len(outcome.result.records),
        output=str(outcome.output) if outcome.output is not None else None,
        error_summary=_error_summary(service, outcome.result),
        runtime_ms=runtime_ms,
    )


@router.post("/transform", response_model=TransformResponse)
def transform(
    payload: TransformRequest,
    service: ETLService = Depends(get_service),
) -> TransformResponse:
    """
    Transform raw CSV given inline or by object locator.
    """

    started = time.perf_counter()
    try:
        outcome = service.transform(
            raw_data=payload.raw_data,
            source=payload.source() if payload.raw_data is None else None,
            output=payload.output(),
            has_header=payload.has_header,
        )
    except SalesETLError as exc:
        _raise_http("transform", exc, started)

    return _transform_response(service, outcome, started)


@router.post("/transform/upload", response_model=TransformResponse)
def transform_upload(
    file: UploadFile = Depends(get_csv_upload),
    has_header: bool = Query(default=True, description="Whether the first line is a header"),
    service: ETLService = Depends(get_service),
) -> TransformResponse:
    """
    Transform one uploaded raw CSV file.
    """

    started = time.perf_counter()
    try:
        text = decode_csv_bytes(file.file.read())
        outcome = service.transform(raw_data=text, has_header=has_header)
    except SalesETLError as exc:
        _raise_http("transform_upload", exc, started)
    finally:
        file.file.close()

    return _transform_response(service, outcome, started)


@router.post("/load", response_model=LoadResponse)
def load(
    payload: LoadRequest,
    service: ETLService = Depends(get_service),
) -> LoadResponse:
    """
    Load raw or processed CSV into the selected backend.
    """

    started = time.perf_counter()
    try:
        outcome = service.load(
            raw_data=payload.raw_data,
            source=payload.source() if payload.raw_data is None else None,
            db_type=payload.db_type,
            has_header=payload.has_header,
        )
    except SalesETLError as exc:
        _raise_http("load", exc, started)

    runtime_ms = _elapsed_ms(started)
    log_event(
        logger,
        logging.INFO,
        "load_completed",
        backend=outcome.backend,
        inserted=outcome.batch.inserted,
        skipped_duplicates=outcome.batch.skipped_duplicates,
        rows_failed=outcome.result.rows_failed,
        runtime_ms=runtime_ms,
    )
    return LoadResponse(
        value=outcome.message,
        backend=outcome.backend,
        inserted=outcome.batch.inserted,
        skipped_duplicates=outcome.batch.skipped_duplicates,
        error_summary=_error_summary(service, outcome.result),
        runtime_ms=runtime_ms,
    )


@router.post("/query", response_model=QueryResponse)
def query(
    payload: QueryRequest,
    service: ETLService = Depends(get_service),
) -> QueryResponse:
    """
    Run one allow-listed grouped aggregate query.
    """

    started = time.perf_counter()
    try:
        spec = build_query_spec(
            filters=payload.filters,
            aggregations=payload.aggregations,
            group_by=payload.group_by,
            order_by=payload.order_by,
        )
        rows = service.query(spec, snapshot=payload.snapshot(), db_type=payload.db_type)
    except SalesETLError as exc:
        _raise_http("query", exc, started)

    runtime_ms = _elapsed_ms(started)
    log_event(logger, logging.INFO, "query_completed", rows=len(rows), runtime_ms=runtime_ms)
    return QueryResponse(value=rows, rows=len(rows), runtime_ms=runtime_ms)
