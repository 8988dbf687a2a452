"""
sales_etl/services package marker.
"""

from sales_etl.services.csv_codec import (
    decode_csv_bytes,
    parse_csv_text,
    records_from_csv_text,
    render_processed_csv,
    transform_csv_text,
)
from sales_etl.services.etl_service import ETLService, LoadOutcome, TransformOutcome, get_etl_service
from sales_etl.services.transformer import read_processed_rows, transform

__all__ = [
    "ETLService",
    "LoadOutcome",
    "TransformOutcome",
    "decode_csv_bytes",
    "get_etl_service",
    "parse_csv_text",
    "read_processed_rows",
    "records_from_csv_text",
    "render_processed_csv",
    "transform",
    "transform_csv_text",
]
