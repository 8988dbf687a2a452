"""
sales_etl/repositories/order_query_repository.py

Parameterized aggregate queries over the `transformed_data` table.

Statements are composed with SQLAlchemy Core from validated descriptors
only: columns come from the mapped table, functions and operators from the
tables below, and every filter value is a bound parameter.
"""

from __future__ import annotations

import logging
import operator
from decimal import Decimal
from typing import Any, Callable

from sqlalchemy import Select, Table, and_, distinct, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from db.models.order_sales_record import OrderSalesRecord
from sales_etl.domain.query_spec import QuerySpec, ResultRow
from sales_etl.errors import StorageError
from sales_etl.validators.query_validator import (
    QueryValidator,
    ValidatedAggregation,
    ValidatedFilter,
    ValidatedQuery,
)

logger = logging.getLogger(__name__)

_AGGREGATE_BUILDERS: dict[str, Callable[[Any], ColumnElement[Any]]] = {
    "count": lambda column: func.count() if column is None else func.count(column),
    "count_distinct": lambda column: func.count(distinct(column)),
    "sum": lambda column: func.sum(column),
    "avg": lambda column: func.avg(column),
    "min": lambda column: func.min(column),
    "max": lambda column: func.max(column),
}

_COMPARATORS: dict[str, Callable[[Any, Any], ColumnElement[bool]]] = {
    "=": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _table() -> Table:
    return OrderSalesRecord.__table__  # type: ignore[return-value]


def _condition(table: Table, predicate: ValidatedFilter) -> ColumnElement[bool]:
    column = table.c[predicate.column.column_name]
    op = predicate.op
    if op in _COMPARATORS:
        return _COMPARATORS[op](column, predicate.value)
    if op == "in":
        return column.in_(list(predicate.value))
    if op == "not in":
        return column.not_in(list(predicate.value))
    if op == "like":
        return column.like(predicate.value)
    if op == "between":
        low, high = predicate.value
        return column.between(low, high)
    if op == "is null":
        return column.is_(None)
    if op == "is not null":
        return column.is_not(None)
    raise ValueError(f"Unhandled filter operator {op!r}")


def _aggregate(table: Table, aggregation: ValidatedAggregation) -> ColumnElement[Any]:
    column = None if aggregation.column is None else table.c[aggregation.column.column_name]
    return _AGGREGATE_BUILDERS[aggregation.function](column).label(aggregation.label)


def build_statement(query: ValidatedQuery) -> Select[Any]:
    """
    Compose the SELECT ... GROUP BY statement for a validated query.
    """

    table = _table()
    group_column = table.c[query.group_column.column_name]
    aggregates = {aggregation.label: _aggregate(table, aggregation) for aggregation in query.aggregations}

    stmt = select(group_column, *aggregates.values()).select_from(table)
    if query.filters:
        stmt = stmt.where(and_(*(_condition(table, predicate) for predicate in query.filters)))
    stmt = stmt.group_by(group_column)

    for item in query.order_by:
        target: ColumnElement[Any] = group_column if item.column is not None else aggregates[item.key]
        stmt = stmt.order_by(target.desc() if item.descending else target.asc())

    return stmt


def _plain(value: Any) -> Any:
    # Postgres returns NUMERIC for avg over integers.
    if isinstance(value, Decimal):
        return float(value)
    return value


class OrderQueryRepository:
    """
    Read-only access to grouped aggregates of the stored records.
    """

    def __init__(self, session: Session, *, validator: QueryValidator | None = None) -> None:
        self._session = session
        self._validator = validator or QueryValidator()

    def query(self, spec: QuerySpec) -> list[ResultRow]:
        """
        Run one grouped aggregate query.

        One row per distinct grouping value, keyed by the grouping column's
        table name and the aggregation labels.

        Raises:
            ValidationError: If the descriptor is not allow-listed.
            UnknownColumnError: If any referenced column is not in the schema.
            StorageError: If the store rejects the statement.
        """

        return self.run(self._validator.validate(spec))

    def run(self, validated: ValidatedQuery) -> list[ResultRow]:
        """
        Execute an already validated query.
        """

        stmt = build_statement(validated)

        try:
            rows = self._session.execute(stmt).mappings().all()
        except SQLAlchemyError as exc:
            raise StorageError("Aggregate query failed.") from exc

        results = [{key: _plain(value) for key, value in row.items()} for row in rows]
        logger.info(
            "Query executed group_by=%s aggregations=%d filters=%d rows=%d",
            validated.group_column.column_name,
            len(validated.aggregations),
            len(validated.filters),
            len(results),
        )
        return results
