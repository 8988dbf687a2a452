"""
sales_etl/errors.py

Exception hierarchy for the ETL engine.

Row-level data-quality problems are not exceptions: they are collected as
`RowError` values (see `sales_etl.domain.order_record`) and never abort a
batch. Everything below is terminal for the request that raised it.
"""

from __future__ import annotations

from typing import Any, Sequence


class SalesETLError(Exception):
    """Base exception for all engine failures."""


class ValidationError(SalesETLError, ValueError):
    """
    Raised when caller input is malformed or missing. Never retried.
    """

    default_code = "invalid_request"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        errors: Sequence[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.errors = tuple(errors or ())

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.errors:
            payload["errors"] = list(self.errors)
        return payload


class UnknownColumnError(ValidationError):
    """
    Raised when a query references a column outside the schema model.
    """

    default_code = "unknown_column"

    def __init__(self, reference: str, *, role: str | None = None) -> None:
        where = f" in {role}" if role else ""
        super().__init__(f"Unknown column{where}: {reference!r}.")
        self.reference = reference
        self.role = role

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["column"] = self.reference
        if self.role:
            payload["role"] = self.role
        return payload


class SchemaError(SalesETLError):
    """
    Raised when a header cannot be resolved or the table definition cannot be applied.
    """

    def __init__(self, message: str, *, missing_columns: Sequence[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.missing_columns = tuple(missing_columns or ())

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": "schema_error", "message": self.message}
        if self.missing_columns:
            payload["missing_columns"] = list(self.missing_columns)
        return payload


class StorageError(SalesETLError):
    """
    Raised for connectivity or execution failures against the persisted store.

    Retry policy, if any, belongs to the caller.
    """

    code = "storage_error"

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class ObjectStorageError(StorageError):
    """Raised when fetching from or putting to the object store fails."""

    code = "object_storage_error"
