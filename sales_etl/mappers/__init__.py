"""
sales_etl/mappers package marker.
"""

from sales_etl.mappers.schema_model import (
    CANONICAL_COLUMNS,
    DEFAULT_RAW_LAYOUT,
    TABLE_NAME,
    ColumnSpec,
    RawLayout,
    find_column,
    lookup_column,
    normalize_header,
    resolve_raw_positions,
)

__all__ = [
    "CANONICAL_COLUMNS",
    "DEFAULT_RAW_LAYOUT",
    "TABLE_NAME",
    "ColumnSpec",
    "RawLayout",
    "find_column",
    "lookup_column",
    "normalize_header",
    "resolve_raw_positions",
]
