"""
sales_etl/mappers/schema_model.py

Single source of truth for the order-sales record shape.

Holds the canonical column list (caller-facing name, Python attribute,
table column, type), the default raw CSV layout, and the lookups the transformer, loader
and query builder share so none of them hardcodes positional offsets.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from sales_etl.errors import SchemaError, UnknownColumnError

TABLE_NAME = "transformed_data"

# Column kinds
STRING = "string"
INTEGER = "integer"
FLOAT = "float"
DATE = "date"

NUMERIC_KINDS = frozenset({INTEGER, FLOAT})

# Raw layout header names
RAW_REGION = "Region"
RAW_COUNTRY = "Country"
RAW_ITEM_TYPE = "Item Type"
RAW_SALES_CHANNEL = "Sales Channel"
RAW_ORDER_PRIORITY = "Order Priority"
RAW_ORDER_ID = "Order ID"
RAW_ORDER_DATE = "Order Date"
RAW_SHIP_DATE = "Ship Date"
RAW_UNITS_SOLD = "Units Sold"
RAW_UNIT_PRICE = "Unit Price"
RAW_UNIT_COST = "Unit Cost"
RAW_TOTAL_REVENUE = "Total Revenue"
RAW_TOTAL_COST = "Total Cost"
RAW_TOTAL_PROFIT = "Total Profit"
RAW_ORDER_PROCESSING_TIME = "Order Processing Time"
RAW_GROSS_MARGIN = "Gross Margin"

# Used when no header line is supplied.
DEFAULT_RAW_LAYOUT: tuple[str, ...] = (
    RAW_REGION,
    RAW_COUNTRY,
    RAW_ITEM_TYPE,
    RAW_SALES_CHANNEL,
    RAW_ORDER_PRIORITY,
    RAW_ORDER_ID,
    RAW_ORDER_DATE,
    RAW_SHIP_DATE,
    RAW_UNITS_SOLD,
    RAW_UNIT_PRICE,
    RAW_UNIT_COST,
    RAW_TOTAL_REVENUE,
    RAW_TOTAL_COST,
    RAW_TOTAL_PROFIT,
)

REQUIRED_RAW_COLUMNS: tuple[str, ...] = DEFAULT_RAW_LAYOUT[:12]

# At least one of these must be present; cost is derived from profit otherwise.
COST_SOURCE_COLUMNS: tuple[str, ...] = (RAW_TOTAL_COST, RAW_TOTAL_PROFIT)

DERIVED_RAW_COLUMNS: tuple[str, ...] = (RAW_ORDER_PROCESSING_TIME, RAW_GROSS_MARGIN)

# Header of the processed CSV: the raw columns plus the derived ones.
PROCESSED_LAYOUT: tuple[str, ...] = (*DEFAULT_RAW_LAYOUT, *DERIVED_RAW_COLUMNS)


def normalize_header(header: str) -> str:
    """
    Normalize a column name for flexible matching.
    """

    return "".join(ch for ch in header.strip().lower() if ch.isalnum())


@dataclass(frozen=True)
class ColumnSpec:
    """
    One canonical column.

    `raw_header` is the column's CSV header; derived columns only appear
    under it in processed CSV output.
    """

    name: str
    attribute: str
    column_name: str
    kind: str
    raw_header: str
    derived: bool = False

    @property
    def is_numeric(self) -> bool:
        return self.kind in NUMERIC_KINDS


CANONICAL_COLUMNS: tuple[ColumnSpec, ...] = (
    ColumnSpec("orderId", "order_id", "Order_ID", STRING, RAW_ORDER_ID),
    ColumnSpec("region", "region", "Region", STRING, RAW_REGION),
    ColumnSpec("country", "country", "Country", STRING, RAW_COUNTRY),
    ColumnSpec("itemType", "item_type", "Item_Type", STRING, RAW_ITEM_TYPE),
    ColumnSpec("salesChannel", "sales_channel", "Sales_Channel", STRING, RAW_SALES_CHANNEL),
    ColumnSpec("orderPriority", "order_priority", "Order_Priority", STRING, RAW_ORDER_PRIORITY),
    ColumnSpec("orderDate", "order_date", "Order_Date", DATE, RAW_ORDER_DATE),
    ColumnSpec("shipDate", "ship_date", "Ship_Date", DATE, RAW_SHIP_DATE),
    ColumnSpec("unitsSold", "units_sold", "Units_Sold", INTEGER, RAW_UNITS_SOLD),
    ColumnSpec("unitPrice", "unit_price", "Unit_Price", FLOAT, RAW_UNIT_PRICE),
    ColumnSpec("unitCost", "unit_cost", "Unit_Cost", FLOAT, RAW_UNIT_COST),
    ColumnSpec("totalRevenue", "total_revenue", "Total_Revenue", FLOAT, RAW_TOTAL_REVENUE),
    ColumnSpec(
        "orderProcessingTime",
        "order_processing_time",
        "Order_Processing_Time",
        INTEGER,
        RAW_ORDER_PROCESSING_TIME,
        derived=True,
    ),
    ColumnSpec("grossMargin", "gross_margin", "Gross_Margin", FLOAT, RAW_GROSS_MARGIN, derived=True),
)

PRIMARY_KEY_COLUMN: ColumnSpec = CANONICAL_COLUMNS[0]


def _build_reference_lookup(columns: Sequence[ColumnSpec]) -> dict[str, ColumnSpec]:
    lookup: dict[str, ColumnSpec] = {}
    for column in columns:
        for reference in (column.name, column.attribute, column.column_name, column.raw_header):
            lookup.setdefault(normalize_header(reference), column)
    return lookup


_REFERENCE_LOOKUP: Mapping[str, ColumnSpec] = _build_reference_lookup(CANONICAL_COLUMNS)


def column_pairs() -> list[tuple[str, str]]:
    """
    Ordered (table column name, kind) pairs of the canonical record.
    """

    return [(column.column_name, column.kind) for column in CANONICAL_COLUMNS]


def find_column(reference: str | None) -> ColumnSpec | None:
    """
    Resolve a caller-facing column reference, or None if it is not a schema column.

    `orderId`, `order_id`, `Order_ID` and `Order ID` all resolve to the same column.
    """

    if reference is None:
        return None
    key = normalize_header(str(reference))
    if not key:
        return None
    return _REFERENCE_LOOKUP.get(key)


def lookup_column(reference: str | None, *, role: str | None = None) -> ColumnSpec:
    """
    Resolve a caller-facing column reference or raise UnknownColumnError.
    """

    column = find_column(reference)
    if column is None:
        raise UnknownColumnError(str(reference), role=role)
    return column


@dataclass(frozen=True)
class RawLayout:
    """
    Resolved raw column positions for one batch.
    """

    positions: dict[str, int]
    required_length: int

    def position(self, raw_column: str) -> int | None:
        return self.positions.get(raw_column)

    def value(self, row: Sequence[str], raw_column: str) -> str | None:
        """
        Return the raw cell for `raw_column`, or None when the column is absent from the layout or row.
        """

        index = self.positions.get(raw_column)
        if index is None or index >= len(row):
            return None
        return row[index]


def _layout_from_positions(positions: dict[str, int], required: Sequence[str]) -> RawLayout:
    required_indexes = [positions[name] for name in required if name in positions]
    # The cost source is required too, but either column satisfies it.
    cost_indexes = [positions[name] for name in COST_SOURCE_COLUMNS if name in positions]
    if cost_indexes:
        required_indexes.append(min(cost_indexes))
    return RawLayout(
        positions=positions,
        required_length=max(required_indexes, default=-1) + 1,
    )


def resolve_raw_positions(
    header: Sequence[str] | None = None,
    *,
    include_derived: bool = False,
) -> RawLayout:
    """
    Resolve raw column positions from a header line, or the default layout when no header is given.

    Matching is case-, space- and underscore-insensitive. Raises SchemaError
    naming every required column absent from the header.
    """

    required: list[str] = list(REQUIRED_RAW_COLUMNS)
    if include_derived:
        required.extend(DERIVED_RAW_COLUMNS)

    if header is None:
        if include_derived:
            raise SchemaError("A header line is required to read processed rows.")
        positions = {name: index for index, name in enumerate(DEFAULT_RAW_LAYOUT)}
        return _layout_from_positions(positions, required)

    normalized_positions: dict[str, int] = {}
    for index, cell in enumerate(header):
        key = normalize_header(str(cell or ""))
        if key and key not in normalized_positions:
            normalized_positions[key] = index

    positions: dict[str, int] = {}
    for name in (*DEFAULT_RAW_LAYOUT, *DERIVED_RAW_COLUMNS):
        index = normalized_positions.get(normalize_header(name))
        if index is not None:
            positions[name] = index

    missing = [name for name in required if name not in positions]
    # Processed rows carry the margin already and do not need a cost source.
    if not include_derived and not any(name in positions for name in COST_SOURCE_COLUMNS):
        missing.append(RAW_TOTAL_COST)
    if missing:
        raise SchemaError(
            f"Header is missing required columns: {', '.join(missing)}.",
            missing_columns=missing,
        )

    return _layout_from_positions(positions, required)
