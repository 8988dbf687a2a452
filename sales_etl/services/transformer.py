"""
sales_etl/services/transformer.py

Raw rows to canonical records.

Pure functions: no I/O and no store access, so every rule can be tested
with literal row fixtures. Per-row problems are collected as RowError
values and the batch always continues.
"""

from __future__ import annotations

from typing import Callable, Iterable, Sequence

from sales_etl.domain.order_record import OrderSalesInput, RowError, TransformResult
from sales_etl.mappers.schema_model import RAW_ORDER_ID, RawLayout, resolve_raw_positions
from sales_etl.validators.row_parser import OrderRowParser

_RowParseFn = Callable[..., tuple[OrderSalesInput | None, RowError | None]]


def transform(
    raw_rows: Iterable[Sequence[str]],
    header: Sequence[str] | None = None,
    *,
    parser: OrderRowParser | None = None,
) -> TransformResult:
    """
    Convert raw rows into canonical records.

    Column positions come from `header` when given, else from the default
    layout. The first occurrence of an order id wins even when it is
    rejected; later duplicates are skipped before parsing and only counted.

    Raises:
        SchemaError: If `header` lacks a required column.
    """

    layout = resolve_raw_positions(header)
    row_parser = parser or OrderRowParser()
    return _collect(raw_rows, layout, row_parser.parse_raw_row)


def read_processed_rows(
    rows: Iterable[Sequence[str]],
    header: Sequence[str],
    *,
    parser: OrderRowParser | None = None,
) -> TransformResult:
    """
    Read rows of an already processed CSV back into canonical records.

    Derived columns are taken as written; priorities must already be
    normalized.
    """

    layout = resolve_raw_positions(header, include_derived=True)
    row_parser = parser or OrderRowParser()
    return _collect(rows, layout, row_parser.parse_processed_row)


def _collect(
    rows: Iterable[Sequence[str]],
    layout: RawLayout,
    parse_row: _RowParseFn,
) -> TransformResult:
    records: list[OrderSalesInput] = []
    errors: list[RowError] = []
    seen_order_ids: set[str] = set()
    duplicates_skipped = 0

    for position, row in enumerate(rows):
        # The first occurrence claims its order id whether or not it parses.
        order_id = (layout.value(row, RAW_ORDER_ID) or "").strip()
        if order_id:
            if order_id in seen_order_ids:
                duplicates_skipped += 1
                continue
            seen_order_ids.add(order_id)

        record, error = parse_row(row=row, layout=layout, position=position)
        if error is not None:
            errors.append(error)
            continue
        if record is not None:
            records.append(record)

    return TransformResult(
        records=records,
        errors=errors,
        duplicates_skipped=duplicates_skipped,
    )
