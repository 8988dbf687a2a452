"""
sales_etl/services/csv_codec.py

Delimited text in and out of the transformer.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass

from sales_etl.domain.order_record import OrderSalesInput, TransformResult
from sales_etl.errors import ValidationError
from sales_etl.mappers.schema_model import (
    DERIVED_RAW_COLUMNS,
    PROCESSED_LAYOUT,
    normalize_header,
)
from sales_etl.services.transformer import read_processed_rows, transform
from sales_etl.validators.row_parser import DATE_FORMAT

_DERIVED_KEYS = frozenset(normalize_header(name) for name in DERIVED_RAW_COLUMNS)


@dataclass(frozen=True)
class ParsedCSV:
    header: list[str] | None
    rows: list[list[str]]

    @property
    def is_processed(self) -> bool:
        """
        True when the header already carries the derived columns.
        """

        if not self.header:
            return False
        keys = {normalize_header(cell) for cell in self.header}
        return _DERIVED_KEYS.issubset(keys)


def decode_csv_bytes(content: bytes) -> str:
    """
    Decode an object-store payload as UTF-8 (BOM tolerated).
    """

    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("CSV must be UTF-8 encoded.", code="invalid_encoding") from exc


def parse_csv_text(text: str, *, has_header: bool = True) -> ParsedCSV:
    """
    Split delimited text into an optional header and data rows.

    Blank lines are dropped before rows are numbered.
    """

    if text.startswith("\ufeff"):
        text = text[1:]

    try:
        lines = [row for row in csv.reader(io.StringIO(text, newline="")) if _has_content(row)]
    except csv.Error as exc:
        raise ValidationError(f"Invalid CSV format: {exc}", code="invalid_csv") from exc

    if not lines:
        raise ValidationError("CSV is empty.", code="empty_csv")

    if not has_header:
        return ParsedCSV(header=None, rows=lines)

    header = [cell.strip() for cell in lines[0]]
    return ParsedCSV(header=header, rows=lines[1:])


def transform_csv_text(text: str, *, has_header: bool = True) -> TransformResult:
    """
    Parse raw CSV text and transform it.
    """

    parsed = parse_csv_text(text, has_header=has_header)
    return transform(parsed.rows, parsed.header)


def records_from_csv_text(text: str, *, has_header: bool = True) -> TransformResult:
    """
    Canonical records from either raw or already processed CSV text.
    """

    parsed = parse_csv_text(text, has_header=has_header)
    if parsed.is_processed and parsed.header is not None:
        return read_processed_rows(parsed.rows, parsed.header)
    return transform(parsed.rows, parsed.header)


def render_processed_csv(records: list[OrderSalesInput]) -> str:
    """
    Write canonical records as processed CSV.

    Dates keep the MM/DD/YYYY input format. Numbers are written at full
    precision so the file reloads to the same values; only gross margin is
    rounded to two decimals.
    """

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(PROCESSED_LAYOUT)
    for record in records:
        writer.writerow(
            [
                record.region,
                record.country,
                record.item_type,
                record.sales_channel,
                record.order_priority,
                record.order_id,
                record.order_date.strftime(DATE_FORMAT),
                record.ship_date.strftime(DATE_FORMAT),
                str(record.units_sold),
                _number(record.unit_price),
                _number(record.unit_cost),
                _number(record.total_revenue),
                _number(record.total_cost),
                _number(record.total_profit),
                str(record.order_processing_time),
                f"{record.gross_margin:.2f}",
            ]
        )
    return buffer.getvalue()


def _number(value: float | None) -> str:
    return "" if value is None else repr(value)


def _has_content(row: list[str]) -> bool:
    return any(cell.strip() for cell in row)
