"""
sales_etl/storage/base.py

Byte source/sink contracts for raw CSV, processed CSV and database snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from sales_etl.errors import ValidationError


@dataclass(frozen=True)
class ObjectLocator:
    """
    Bucket and key of one stored object. The core never interprets either part.
    """

    bucket: str
    key: str

    def __post_init__(self) -> None:
        if not self.bucket or not self.bucket.strip():
            raise ValidationError("Object bucket must be provided.", code="missing_locator")
        if not self.key or not self.key.strip():
            raise ValidationError("Object key must be provided.", code="missing_locator")

    def __str__(self) -> str:
        return f"{self.bucket}/{self.key}"


class ByteSource(Protocol):
    """
    Reads whole objects.
    """

    def fetch(self, locator: ObjectLocator) -> bytes:
        ...


class ByteSink(Protocol):
    """
    Writes whole objects, replacing any previous content.
    """

    def put(self, locator: ObjectLocator, data: bytes, *, content_type: str | None = None) -> None:
        ...


class ObjectStorage(ByteSource, ByteSink, Protocol):
    """
    A store that is both a source and a sink.
    """
