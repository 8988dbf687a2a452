"""
sales_etl/validators/row_parser.py

Row-level parsing and derivation for order-sales rows.

Checks run in a fixed order (dates, date order, priority, numerics and
margin) and the first failure rejects the row with a single RowError.
"""

from __future__ import annotations

import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Sequence

from sales_etl.domain.order_record import (
    OrderPriority,
    OrderSalesInput,
    RowError,
    RowErrorKind,
)
from sales_etl.mappers.schema_model import (
    RAW_COUNTRY,
    RAW_GROSS_MARGIN,
    RAW_ITEM_TYPE,
    RAW_ORDER_DATE,
    RAW_ORDER_ID,
    RAW_ORDER_PRIORITY,
    RAW_ORDER_PROCESSING_TIME,
    RAW_REGION,
    RAW_SALES_CHANNEL,
    RAW_SHIP_DATE,
    RAW_TOTAL_COST,
    RAW_TOTAL_PROFIT,
    RAW_TOTAL_REVENUE,
    RAW_UNIT_COST,
    RAW_UNIT_PRICE,
    RAW_UNITS_SOLD,
    RawLayout,
)

DATE_FORMAT = "%m/%d/%Y"

PRIORITY_CODES: dict[str, OrderPriority] = {
    "l": OrderPriority.LOW,
    "m": OrderPriority.MEDIUM,
    "h": OrderPriority.HIGH,
    "c": OrderPriority.CRITICAL,
}

_CANONICAL_PRIORITIES = frozenset(priority.value for priority in OrderPriority)


def normalize_priority(value: str | None) -> str:
    """
    Map a single-letter priority code to its name; any other value becomes Unknown.
    """

    if value is None:
        return OrderPriority.UNKNOWN.value
    priority = PRIORITY_CODES.get(value.strip().lower())
    return priority.value if priority is not None else OrderPriority.UNKNOWN.value


def compute_processing_days(order_date: date, ship_date: date) -> int:
    """
    Whole days between order and ship date; may be negative.
    """

    return (ship_date - order_date).days


def compute_gross_margin(total_revenue: float, total_cost: float) -> float:
    """
    (revenue - cost) / revenue. Raises ZeroDivisionError for zero revenue.
    """

    if total_revenue == 0:
        raise ZeroDivisionError("gross margin is undefined for zero revenue")
    return (total_revenue - total_cost) / total_revenue


class _RejectedRow(Exception):
    def __init__(self, error: RowError) -> None:
        super().__init__(error.message)
        self.error = error


class OrderRowParser:
    """
    Parses raw or processed CSV rows into canonical records.
    """

    def parse_raw_row(
        self,
        *,
        row: Sequence[str],
        layout: RawLayout,
        position: int,
    ) -> tuple[OrderSalesInput | None, RowError | None]:
        """
        Parse one raw row and derive processing time and gross margin.
        """

        try:
            return self._parse(row=row, layout=layout, position=position, processed=False), None
        except _RejectedRow as exc:
            return None, exc.error

    def parse_processed_row(
        self,
        *,
        row: Sequence[str],
        layout: RawLayout,
        position: int,
    ) -> tuple[OrderSalesInput | None, RowError | None]:
        """
        Parse one row of a processed CSV, trusting its derived columns.
        """

        try:
            return self._parse(row=row, layout=layout, position=position, processed=True), None
        except _RejectedRow as exc:
            return None, exc.error

    def _parse(
        self,
        *,
        row: Sequence[str],
        layout: RawLayout,
        position: int,
        processed: bool,
    ) -> OrderSalesInput:
        if len(row) < layout.required_length:
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.MALFORMED_ROW,
                    message=(
                        f"Row has {len(row)} fields; at least {layout.required_length} are required."
                    ),
                )
            )

        order_id = self._text(row, layout, RAW_ORDER_ID)
        if not order_id:
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.MISSING_ORDER_ID,
                    message="Order ID is missing.",
                    column=RAW_ORDER_ID,
                )
            )

        order_date = self._parse_date(row, layout, RAW_ORDER_DATE, position, order_id)
        ship_date = self._parse_date(row, layout, RAW_SHIP_DATE, position, order_id)

        if processed:
            processing_days = self._parse_count(
                row, layout, RAW_ORDER_PROCESSING_TIME, position, order_id, allow_negative=True
            )
        else:
            processing_days = compute_processing_days(order_date, ship_date)
        if processing_days < 0:
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.INVALID_DATE_ORDER,
                    message="Ship date is before order date.",
                    order_id=order_id,
                    column=RAW_SHIP_DATE,
                    value=f"{order_date.isoformat()} -> {ship_date.isoformat()}",
                )
            )

        raw_priority = layout.value(row, RAW_ORDER_PRIORITY)
        if processed:
            priority = self._validate_priority(raw_priority, position, order_id)
        else:
            priority = normalize_priority(raw_priority)

        units_sold = self._parse_count(row, layout, RAW_UNITS_SOLD, position, order_id)
        unit_price = self._parse_float(row, layout, RAW_UNIT_PRICE, position, order_id)
        unit_cost = self._parse_float(row, layout, RAW_UNIT_COST, position, order_id)
        total_revenue = self._parse_float(row, layout, RAW_TOTAL_REVENUE, position, order_id)

        if processed:
            total_cost = self._parse_optional_float(row, layout, RAW_TOTAL_COST, position, order_id)
            total_profit = self._parse_optional_float(row, layout, RAW_TOTAL_PROFIT, position, order_id)
            gross_margin = self._parse_float(row, layout, RAW_GROSS_MARGIN, position, order_id)
        else:
            if total_revenue == 0:
                raise _RejectedRow(
                    RowError(
                        position=position,
                        kind=RowErrorKind.INVALID_REVENUE,
                        message="Total revenue is zero; gross margin is undefined.",
                        order_id=order_id,
                        column=RAW_TOTAL_REVENUE,
                        value=layout.value(row, RAW_TOTAL_REVENUE),
                    )
                )
            total_cost = self._parse_optional_float(row, layout, RAW_TOTAL_COST, position, order_id)
            total_profit = self._parse_optional_float(row, layout, RAW_TOTAL_PROFIT, position, order_id)
            gross_margin = compute_gross_margin(
                total_revenue,
                self._resolve_total_cost(total_cost, total_profit, total_revenue, position, order_id),
            )

        return OrderSalesInput(
            order_id=order_id,
            region=self._text(row, layout, RAW_REGION),
            country=self._text(row, layout, RAW_COUNTRY),
            item_type=self._text(row, layout, RAW_ITEM_TYPE),
            sales_channel=self._text(row, layout, RAW_SALES_CHANNEL),
            order_priority=priority,
            order_date=order_date,
            ship_date=ship_date,
            units_sold=units_sold,
            unit_price=unit_price,
            unit_cost=unit_cost,
            total_revenue=total_revenue,
            order_processing_time=processing_days,
            gross_margin=gross_margin,
            total_cost=total_cost,
            total_profit=total_profit,
        )

    def _resolve_total_cost(
        self,
        total_cost: float | None,
        total_profit: float | None,
        total_revenue: float,
        position: int,
        order_id: str,
    ) -> float:
        # Total Cost wins; older exports only carry Total Profit.
        if total_cost is not None:
            return total_cost
        if total_profit is not None:
            return total_revenue - total_profit
        raise _RejectedRow(
            RowError(
                position=position,
                kind=RowErrorKind.INVALID_NUMBER,
                message="Total Cost is missing and cannot be derived from Total Profit.",
                order_id=order_id,
                column=RAW_TOTAL_COST,
            )
        )

    def _validate_priority(self, value: str | None, position: int, order_id: str) -> str:
        normalized = (value or "").strip()
        if normalized not in _CANONICAL_PRIORITIES:
            allowed = ", ".join(sorted(_CANONICAL_PRIORITIES))
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.INVALID_PRIORITY,
                    message=f"Unsupported order priority. Allowed values: {allowed}.",
                    order_id=order_id,
                    column=RAW_ORDER_PRIORITY,
                    value=value,
                )
            )
        return normalized

    def _parse_date(
        self,
        row: Sequence[str],
        layout: RawLayout,
        column: str,
        position: int,
        order_id: str,
    ) -> date:
        raw = layout.value(row, column)
        try:
            return datetime.strptime((raw or "").strip(), DATE_FORMAT).date()
        except ValueError as exc:
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.INVALID_DATE,
                    message=f"{column} must use MM/DD/YYYY.",
                    order_id=order_id,
                    column=column,
                    value=raw,
                )
            ) from exc

    def _parse_count(
        self,
        row: Sequence[str],
        layout: RawLayout,
        column: str,
        position: int,
        order_id: str,
        *,
        allow_negative: bool = False,
    ) -> int:
        raw = (layout.value(row, column) or "").strip()
        try:
            parsed = Decimal(raw)
        except InvalidOperation:
            parsed = None

        if parsed is None or not parsed.is_finite() or parsed != parsed.to_integral_value():
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.INVALID_NUMBER,
                    message=f"{column} must be a whole number.",
                    order_id=order_id,
                    column=column,
                    value=raw,
                )
            )
        value = int(parsed)
        if value < 0 and not allow_negative:
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.INVALID_NUMBER,
                    message=f"{column} must not be negative.",
                    order_id=order_id,
                    column=column,
                    value=raw,
                )
            )
        return value

    def _parse_float(
        self,
        row: Sequence[str],
        layout: RawLayout,
        column: str,
        position: int,
        order_id: str,
    ) -> float:
        raw = (layout.value(row, column) or "").strip()
        try:
            value = float(raw)
        except ValueError:
            value = math.nan

        if not math.isfinite(value):
            raise _RejectedRow(
                RowError(
                    position=position,
                    kind=RowErrorKind.INVALID_NUMBER,
                    message=f"{column} must be a finite number.",
                    order_id=order_id,
                    column=column,
                    value=raw,
                )
            )
        return value

    def _parse_optional_float(
        self,
        row: Sequence[str],
        layout: RawLayout,
        column: str,
        position: int,
        order_id: str,
    ) -> float | None:
        if self._is_blank(layout.value(row, column)):
            return None
        return self._parse_float(row, layout, column, position, order_id)

    @staticmethod
    def _text(row: Sequence[str], layout: RawLayout, column: str) -> str:
        value = layout.value(row, column)
        return value.strip() if value is not None else ""

    @staticmethod
    def _is_blank(value: str | None) -> bool:
        return value is None or value.strip() == ""
