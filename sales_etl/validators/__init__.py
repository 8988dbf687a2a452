"""
sales_etl/validators package marker.
"""

from sales_etl.validators.query_validator import (
    QueryValidator,
    ValidatedQuery,
    build_query_spec,
    parse_aggregation,
    parse_filter,
    parse_order_by,
)
from sales_etl.validators.row_parser import OrderRowParser, normalize_priority

__all__ = [
    "OrderRowParser",
    "QueryValidator",
    "ValidatedQuery",
    "build_query_spec",
    "normalize_priority",
    "parse_aggregation",
    "parse_filter",
    "parse_order_by",
]
