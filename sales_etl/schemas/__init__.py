"""
sales_etl/schemas package marker.
"""

from sales_etl.schemas.etl import (
    ErrorSummaryResponse,
    HealthResponse,
    LoadRequest,
    LoadResponse,
    QueryRequest,
    QueryResponse,
    RowErrorResponse,
    TransformRequest,
    TransformResponse,
)

__all__ = [
    "ErrorSummaryResponse",
    "HealthResponse",
    "LoadRequest",
    "LoadResponse",
    "QueryRequest",
    "QueryResponse",
    "RowErrorResponse",
    "TransformRequest",
    "TransformResponse",
]
