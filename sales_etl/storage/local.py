"""
sales_etl/storage/local.py

Filesystem object storage: one directory per bucket under a root directory.
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from sales_etl.errors import ObjectStorageError, ValidationError
from sales_etl.storage.base import ObjectLocator

logger = logging.getLogger(__name__)


class LocalObjectStorage:
    """
    Local filesystem storage backend.

    Writes go through a temporary file that replaces the target, so readers
    never observe a partially written object.
    """

    def __init__(self, root_dir: str | Path = "data/objects") -> None:
        self._root_dir = Path(root_dir)

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def path_for(self, locator: ObjectLocator) -> Path:
        """
        Resolve `locator` to a path inside the root directory.
        """

        bucket = _safe_segment(locator.bucket)
        key = PurePosixPath(locator.key.strip().lstrip("/"))
        if not key.parts or any(part in {"", ".", ".."} for part in key.parts):
            raise ValidationError(f"Invalid object key: {locator.key!r}.", code="invalid_locator")
        return self._root_dir / bucket / Path(*key.parts)

    def fetch(self, locator: ObjectLocator) -> bytes:
        target = self.path_for(locator)
        try:
            content = target.read_bytes()
        except FileNotFoundError as exc:
            raise ObjectStorageError(f"Object not found: {locator}.") from exc
        except OSError as exc:
            raise ObjectStorageError(f"Failed to read object {locator}.") from exc

        logger.debug("Fetched object %s (%d bytes)", locator, len(content))
        return content

    def put(self, locator: ObjectLocator, data: bytes, *, content_type: str | None = None) -> None:
        target = self.path_for(locator)
        try:
            write_bytes_atomically(target, data)
        except OSError as exc:
            raise ObjectStorageError(f"Failed to write object {locator}.") from exc

        logger.debug("Stored object %s (%d bytes)", locator, len(data))


def write_bytes_atomically(target: Path, data: bytes) -> None:
    """
    Write `data` to a sibling temp file, then replace `target` with it.

    Raises OSError; the temp file is removed on failure.
    """

    target.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = target.with_suffix(f"{target.suffix}.tmp")
    try:
        with tmp_path.open("wb") as handle:
            handle.write(data)
        tmp_path.replace(target)
    finally:
        if tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                logger.warning("Failed to remove temp file %s", tmp_path)


def _safe_segment(bucket: str) -> str:
    name = bucket.strip()
    if not name or name in {".", ".."} or "/" in name or "\\" in name:
        raise ValidationError(f"Invalid bucket name: {bucket!r}.", code="invalid_locator")
    return name
