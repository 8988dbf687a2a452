"""
sales_etl/domain package marker.
"""

from sales_etl.domain.order_record import (
    BatchResult,
    OrderPriority,
    OrderSalesInput,
    RowError,
    RowErrorKind,
    TransformResult,
    summarize_row_errors,
)
from sales_etl.domain.query_spec import Aggregation, FilterPredicate, OrderBy, QuerySpec, ResultRow

__all__ = [
    "Aggregation",
    "BatchResult",
    "FilterPredicate",
    "OrderBy",
    "OrderPriority",
    "OrderSalesInput",
    "QuerySpec",
    "ResultRow",
    "RowError",
    "RowErrorKind",
    "TransformResult",
    "summarize_row_errors",
]
