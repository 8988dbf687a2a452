"""
sales_etl/validators/query_validator.py

Allow-list validation for ad-hoc aggregate queries.

Nothing caller-supplied reaches statement text: column references resolve
through the schema model, aggregate functions and operators come from fixed
tables, labels must be plain identifiers, and filter values are coerced to
the column type and later bound as parameters. Every check here runs
before a statement is composed.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Sequence

from sales_etl.domain.query_spec import Aggregation, FilterPredicate, OrderBy, QuerySpec
from sales_etl.errors import UnknownColumnError, ValidationError
from sales_etl.mappers.schema_model import (
    DATE,
    FLOAT,
    INTEGER,
    STRING,
    ColumnSpec,
    find_column,
    lookup_column,
    normalize_header,
)

AGGREGATE_FUNCTIONS: frozenset[str] = frozenset({"count", "count_distinct", "sum", "avg", "min", "max"})
NUMERIC_ONLY_FUNCTIONS: frozenset[str] = frozenset({"sum", "avg"})

COMPARISON_OPERATORS: frozenset[str] = frozenset({"=", "!=", "<", "<=", ">", ">="})
LIST_OPERATORS: frozenset[str] = frozenset({"in", "not in"})
NULL_OPERATORS: frozenset[str] = frozenset({"is null", "is not null"})
FILTER_OPERATORS: frozenset[str] = COMPARISON_OPERATORS | LIST_OPERATORS | NULL_OPERATORS | {"like", "between"}

_OPERATOR_ALIASES: dict[str, str] = {"==": "=", "<>": "!="}
_FUNCTION_ALIASES: dict[str, str] = {"mean": "avg", "average": "avg", "countdistinct": "count_distinct"}

_LABEL_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

_AGGREGATION_RE = re.compile(
    r"^\s*(?P<function>[A-Za-z_]+)\s*\(\s*(?:(?P<distinct>distinct)\s+)?"
    r"(?P<column>\*|[A-Za-z_][A-Za-z0-9_ ]*?)\s*\)"
    r"(?:\s+as\s+(?P<label>[A-Za-z_][A-Za-z0-9_]*))?\s*$",
    re.IGNORECASE,
)
_FILTER_RE = re.compile(
    r"^\s*(?P<column>[A-Za-z_][A-Za-z0-9_ ]*?)\s*"
    r"(?P<op>>=|<=|!=|<>|==|=|<|>|\blike\b)\s*"
    r"(?P<value>'(?:[^']|'')*'|-?\d+(?:\.\d+)?)\s*$",
    re.IGNORECASE,
)
_NULL_FILTER_RE = re.compile(
    r"^\s*(?P<column>[A-Za-z_][A-Za-z0-9_ ]*?)\s+is\s+(?P<negate>not\s+)?null\s*$",
    re.IGNORECASE,
)

_DATE_FORMATS: tuple[str, ...] = ("%Y-%m-%d", "%m/%d/%Y")


@dataclass(frozen=True)
class ValidatedAggregation:
    function: str
    column: ColumnSpec | None
    label: str


@dataclass(frozen=True)
class ValidatedFilter:
    column: ColumnSpec
    op: str
    value: Any


@dataclass(frozen=True)
class ValidatedOrder:
    key: str
    descending: bool
    column: ColumnSpec | None = None


@dataclass(frozen=True)
class ValidatedQuery:
    group_column: ColumnSpec
    aggregations: tuple[ValidatedAggregation, ...]
    filters: tuple[ValidatedFilter, ...]
    order_by: tuple[ValidatedOrder, ...] = ()


# ---------------------------------------------------------------------------
# Envelope parsing
# ---------------------------------------------------------------------------


def parse_aggregation(raw: Any) -> Aggregation:
    """
    Build an Aggregation from a descriptor mapping or the `FUNC(column) [AS label]` shorthand.
    """

    if isinstance(raw, Aggregation):
        return raw
    if isinstance(raw, str):
        match = _AGGREGATION_RE.match(raw)
        if match is None:
            raise ValidationError(
                f"Aggregation {raw!r} is not of the form FUNC(column) [AS label].",
                code="invalid_aggregation",
            )
        function = match.group("function")
        if match.group("distinct"):
            if function.lower() != "count":
                raise ValidationError(
                    f"DISTINCT is only supported with COUNT: {raw!r}.",
                    code="invalid_aggregation",
                )
            function = "count_distinct"
        return Aggregation(
            function=function,
            column=match.group("column").strip(),
            label=match.group("label"),
        )
    if isinstance(raw, Mapping):
        function = raw.get("function", raw.get("fn"))
        if not isinstance(function, str) or not function.strip():
            raise ValidationError("Aggregation descriptor requires a 'function'.", code="invalid_aggregation")
        column = raw.get("column", "*")
        label = raw.get("label", raw.get("alias"))
        return Aggregation(
            function=function,
            column=str(column) if column is not None else "*",
            label=str(label) if label is not None else None,
        )
    raise ValidationError(f"Unsupported aggregation descriptor: {raw!r}.", code="invalid_aggregation")


def parse_filter(raw: Any) -> FilterPredicate:
    """
    Build a FilterPredicate from a descriptor mapping or the `column <op> literal` shorthand.
    """

    if isinstance(raw, FilterPredicate):
        return raw
    if isinstance(raw, str):
        null_match = _NULL_FILTER_RE.match(raw)
        if null_match is not None:
            op = "is not null" if null_match.group("negate") else "is null"
            return FilterPredicate(column=null_match.group("column").strip(), op=op)
        match = _FILTER_RE.match(raw)
        if match is None:
            raise ValidationError(
                f"Filter {raw!r} is not of the form column <op> 'text' or column <op> number.",
                code="invalid_filter",
            )
        return FilterPredicate(
            column=match.group("column").strip(),
            op=match.group("op"),
            value=_parse_literal(match.group("value")),
        )
    if isinstance(raw, Mapping):
        column = raw.get("column")
        op = raw.get("op", raw.get("operator"))
        if not isinstance(column, str) or not isinstance(op, str):
            raise ValidationError(
                "Filter descriptor requires string 'column' and 'op'.",
                code="invalid_filter",
            )
        return FilterPredicate(column=column, op=op, value=raw.get("value"))
    raise ValidationError(f"Unsupported filter descriptor: {raw!r}.", code="invalid_filter")


def parse_order_by(raw: Any) -> OrderBy:
    """
    Build an OrderBy from `key`, `-key` or a `{key, descending|direction}` mapping.
    """

    if isinstance(raw, OrderBy):
        return raw
    if isinstance(raw, str):
        key = raw.strip()
        if key.startswith("-"):
            return OrderBy(key=key[1:].strip(), descending=True)
        return OrderBy(key=key)
    if isinstance(raw, Mapping):
        key = raw.get("key", raw.get("column"))
        if not isinstance(key, str):
            raise ValidationError("orderBy descriptor requires a string 'key'.", code="invalid_order_by")
        direction = str(raw.get("direction", "")).strip().lower()
        descending = bool(raw.get("descending", False)) or direction == "desc"
        return OrderBy(key=key, descending=descending)
    raise ValidationError(f"Unsupported orderBy descriptor: {raw!r}.", code="invalid_order_by")


def build_query_spec(
    *,
    filters: Sequence[Any] | None,
    aggregations: Sequence[Any] | None,
    group_by: str | None,
    order_by: Sequence[Any] | None = None,
) -> QuerySpec:
    """
    Turn envelope values into a QuerySpec. Column validation happens in QueryValidator.
    """

    return QuerySpec(
        filters=tuple(parse_filter(item) for item in (filters or ())),
        aggregations=tuple(parse_aggregation(item) for item in (aggregations or ())),
        group_by=(group_by or "").strip(),
        order_by=tuple(parse_order_by(item) for item in (order_by or ())),
    )


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class QueryValidator:
    """
    Resolves a QuerySpec against the schema model.
    """

    def validate(self, spec: QuerySpec) -> ValidatedQuery:
        """
        Validate every reference in `spec`.

        Raises:
            ValidationError: For an empty group_by/aggregations or bad descriptors.
            UnknownColumnError: For any column outside the schema model.
        """

        if not spec.group_by or not spec.group_by.strip():
            raise ValidationError("A 'groupBy' column must be specified.", code="missing_group_by")
        if not spec.aggregations:
            raise ValidationError(
                "At least one aggregation function must be specified.",
                code="missing_aggregations",
            )

        group_column = lookup_column(spec.group_by, role="groupBy")
        aggregations = self._validate_aggregations(spec.aggregations, group_column)
        filters = tuple(self._validate_filter(predicate) for predicate in spec.filters)
        order_by = self._validate_order_by(spec.order_by, group_column, aggregations)

        return ValidatedQuery(
            group_column=group_column,
            aggregations=aggregations,
            filters=filters,
            order_by=order_by,
        )

    def _validate_aggregations(
        self,
        aggregations: Sequence[Aggregation],
        group_column: ColumnSpec,
    ) -> tuple[ValidatedAggregation, ...]:
        validated: list[ValidatedAggregation] = []
        labels: set[str] = set()
        reserved = normalize_header(group_column.column_name)

        for aggregation in aggregations:
            function = self._normalize_function(aggregation.function)
            column_ref = (aggregation.column or "*").strip()

            if column_ref == "*":
                if function != "count":
                    raise ValidationError(
                        f"'*' is only allowed with count, not {function}.",
                        code="invalid_aggregation",
                    )
                column = None
            else:
                column = lookup_column(column_ref, role="aggregations")
                if function in NUMERIC_ONLY_FUNCTIONS and not column.is_numeric:
                    raise ValidationError(
                        f"{function} requires a numeric column; {column.column_name} is {column.kind}.",
                        code="invalid_aggregation",
                    )

            label = aggregation.label or _default_label(function, column)
            if not _LABEL_RE.match(label):
                raise ValidationError(
                    f"Aggregation label {label!r} must be a plain identifier.",
                    code="invalid_label",
                )
            if label.lower() in labels:
                raise ValidationError(f"Duplicate aggregation label {label!r}.", code="duplicate_label")
            if normalize_header(label) == reserved:
                raise ValidationError(
                    f"Aggregation label {label!r} collides with the grouping column.",
                    code="invalid_label",
                )
            labels.add(label.lower())
            validated.append(ValidatedAggregation(function=function, column=column, label=label))

        return tuple(validated)

    def _validate_filter(self, predicate: FilterPredicate) -> ValidatedFilter:
        column = lookup_column(predicate.column, role="filters")
        op = _normalize_operator(predicate.op)

        if op in NULL_OPERATORS:
            return ValidatedFilter(column=column, op=op, value=None)

        if op in LIST_OPERATORS:
            values = predicate.value
            if not isinstance(values, (list, tuple)) or not values:
                raise ValidationError(
                    f"Operator {op!r} on {column.column_name} requires a non-empty list value.",
                    code="invalid_filter",
                )
            return ValidatedFilter(
                column=column,
                op=op,
                value=tuple(coerce_value(column, item) for item in values),
            )

        if op == "between":
            bounds = predicate.value
            if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
                raise ValidationError(
                    f"Operator 'between' on {column.column_name} requires exactly two values.",
                    code="invalid_filter",
                )
            return ValidatedFilter(
                column=column,
                op=op,
                value=(coerce_value(column, bounds[0]), coerce_value(column, bounds[1])),
            )

        if op == "like" and column.kind != STRING:
            raise ValidationError(
                f"Operator 'like' requires a text column; {column.column_name} is {column.kind}.",
                code="invalid_filter",
            )

        return ValidatedFilter(column=column, op=op, value=coerce_value(column, predicate.value))

    def _validate_order_by(
        self,
        order_by: Sequence[OrderBy],
        group_column: ColumnSpec,
        aggregations: Sequence[ValidatedAggregation],
    ) -> tuple[ValidatedOrder, ...]:
        labels = {aggregation.label for aggregation in aggregations}
        validated: list[ValidatedOrder] = []

        for item in order_by:
            key = (item.key or "").strip()
            if key in labels:
                validated.append(ValidatedOrder(key=key, descending=item.descending))
                continue
            column = find_column(key)
            if column is None:
                raise UnknownColumnError(key, role="orderBy")
            if column != group_column:
                raise ValidationError(
                    f"orderBy {key!r} must be the grouping column or an aggregation label.",
                    code="invalid_order_by",
                )
            validated.append(ValidatedOrder(key=column.column_name, descending=item.descending, column=column))

        return tuple(validated)

    @staticmethod
    def _normalize_function(raw: str) -> str:
        function = "_".join((raw or "").strip().lower().split())
        function = _FUNCTION_ALIASES.get(function, function)
        if function not in AGGREGATE_FUNCTIONS:
            allowed = ", ".join(sorted(AGGREGATE_FUNCTIONS))
            raise ValidationError(
                f"Unsupported aggregate function {raw!r}. Allowed values: {allowed}.",
                code="invalid_aggregation",
            )
        return function


def coerce_value(column: ColumnSpec, value: Any) -> Any:
    """
    Coerce a filter value to the Python type of `column`.
    """

    if value is None or isinstance(value, (list, tuple, dict, set)):
        raise ValidationError(
            f"Filter on {column.column_name} requires a scalar value.",
            code="invalid_filter_value",
        )

    try:
        if column.kind == STRING:
            return str(value)
        if column.kind == INTEGER:
            if isinstance(value, bool):
                raise ValueError("booleans are not integers")
            if isinstance(value, float) and not value.is_integer():
                raise ValueError("not a whole number")
            return int(str(value).strip()) if isinstance(value, str) else int(value)
        if column.kind == FLOAT:
            if isinstance(value, bool):
                raise ValueError("booleans are not numbers")
            parsed = float(value)
            if not math.isfinite(parsed):
                raise ValueError("not finite")
            return parsed
        if column.kind == DATE:
            return _coerce_date(value)
    except ValueError as exc:
        raise ValidationError(
            f"Filter value {value!r} is not a valid {column.kind} for {column.column_name}.",
            code="invalid_filter_value",
        ) from exc

    raise ValidationError(f"Unsupported column kind {column.kind!r}.", code="invalid_filter_value")


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(raw, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unrecognised date {raw!r}")


def _normalize_operator(raw: str) -> str:
    op = " ".join((raw or "").strip().lower().split())
    op = _OPERATOR_ALIASES.get(op, op)
    if op not in FILTER_OPERATORS:
        allowed = ", ".join(sorted(FILTER_OPERATORS))
        raise ValidationError(
            f"Unsupported filter operator {raw!r}. Allowed values: {allowed}.",
            code="invalid_filter",
        )
    return op


def _default_label(function: str, column: ColumnSpec | None) -> str:
    if column is None:
        return f"{function}_all"
    return f"{function}_{column.attribute}"


def _parse_literal(raw: str) -> Any:
    if raw.startswith("'"):
        return raw[1:-1].replace("''", "'")
    if "." in raw:
        return float(raw)
    return int(raw)
