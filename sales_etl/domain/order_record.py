"""
sales_etl/domain/order_record.py

Domain models used by the transform and load flow.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Iterable


class OrderPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"
    UNKNOWN = "Unknown"


class RowErrorKind(str, Enum):
    MALFORMED_ROW = "MalformedRow"
    MISSING_ORDER_ID = "MissingOrderId"
    INVALID_DATE = "InvalidDate"
    INVALID_DATE_ORDER = "InvalidDateOrder"
    INVALID_NUMBER = "InvalidNumber"
    INVALID_REVENUE = "InvalidRevenue"
    INVALID_PRIORITY = "InvalidPriority"


@dataclass(frozen=True)
class OrderSalesInput:
    """
    Typed canonical record prepared for persistence.

    `total_cost` and `total_profit` keep the source cells for the processed
    CSV; they are not persisted.
    """

    order_id: str
    region: str
    country: str
    item_type: str
    sales_channel: str
    order_priority: str
    order_date: date
    ship_date: date
    units_sold: int
    unit_price: float
    unit_cost: float
    total_revenue: float
    order_processing_time: int
    gross_margin: float
    total_cost: float | None = None
    total_profit: float | None = None

    def to_payload(self) -> dict[str, Any]:
        """
        Attribute-keyed payload for ORM inserts.
        """

        return {
            "order_id": self.order_id,
            "region": self.region,
            "country": self.country,
            "item_type": self.item_type,
            "sales_channel": self.sales_channel,
            "order_priority": self.order_priority,
            "order_date": self.order_date,
            "ship_date": self.ship_date,
            "units_sold": self.units_sold,
            "unit_price": self.unit_price,
            "unit_cost": self.unit_cost,
            "total_revenue": self.total_revenue,
            "order_processing_time": self.order_processing_time,
            "gross_margin": self.gross_margin,
        }


@dataclass(frozen=True)
class RowError:
    """
    One rejected raw row.

    `position` is the zero-based index of the row within the batch handed
    to the transformer (the header line is not counted).
    """

    position: int
    kind: RowErrorKind
    message: str
    order_id: str | None = None
    column: str | None = None
    value: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "kind": self.kind.value,
            "message": self.message,
            "order_id": self.order_id,
            "column": self.column,
            "value": self.value,
        }


@dataclass(frozen=True)
class TransformResult:
    """
    Canonical records in first-occurrence order plus everything that was dropped.

    Duplicates are an intentional skip and are only counted, never reported
    as errors.
    """

    records: list[OrderSalesInput] = field(default_factory=list)
    errors: list[RowError] = field(default_factory=list)
    duplicates_skipped: int = 0

    @property
    def rows_failed(self) -> int:
        return len(self.errors)


@dataclass(frozen=True)
class BatchResult:
    """
    Outcome of one insert-or-ignore batch.
    """

    inserted: int
    skipped_duplicates: int

    @property
    def total(self) -> int:
        return self.inserted + self.skipped_duplicates


def summarize_row_errors(
    errors: Iterable[RowError],
    *,
    max_errors: int | None = None,
) -> dict[str, Any]:
    """
    Build the error summary attached to a partially successful response.
    """

    collected = list(errors)
    by_kind = Counter(error.kind.value for error in collected)
    kept = collected if max_errors is None else collected[: max(0, max_errors)]
    return {
        "rows_failed": len(collected),
        "by_kind": dict(sorted(by_kind.items())),
        "errors": [error.to_dict() for error in kept],
        "truncated": len(kept) < len(collected),
    }
