"""
sales_etl/config.py

Application-level configuration helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import ConnectionSettings, load_env_files, resolve_connection_settings
from sales_etl.errors import ValidationError

LOCAL_OBJECT_STORAGE = "local"
S3_OBJECT_STORAGE = "s3"
_ALLOWED_OBJECT_STORAGE = {LOCAL_OBJECT_STORAGE, S3_OBJECT_STORAGE}


@lru_cache(maxsize=1)
def _load_env_once() -> None:
    """
    Ensure project `.env` files are loaded once before reading app settings.
    """

    load_env_files()


def _get_bool_env(name: str, default: bool) -> bool:
    """
    Read a boolean from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    """
    Read an integer from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    """
    Read a string from environment variables with fallback.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return default
    stripped = value.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    """
    Read an optional string value from environment variables.
    """

    _load_env_once()
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped if stripped else None


@dataclass(frozen=True)
class LoadSettings:
    """
    Runtime settings for transform and load batches.
    """

    batch_size: int = 500
    max_row_errors: int = 500
    log_row_errors: bool = True


@dataclass(frozen=True)
class ObjectStorageSettings:
    """
    Which object store backs sources and sinks, and how to reach it.
    """

    backend: str = LOCAL_OBJECT_STORAGE
    local_root: str = "data/objects"
    s3_region: str = "us-east-1"
    s3_endpoint_url: str | None = None


@lru_cache(maxsize=1)
def get_load_settings() -> LoadSettings:
    """
    Return cached load settings from environment variables.
    """

    return LoadSettings(
        batch_size=max(1, _get_int_env("ETL_LOAD_BATCH_SIZE", 500)),
        max_row_errors=max(1, _get_int_env("ETL_MAX_ROW_ERRORS", 500)),
        log_row_errors=_get_bool_env("ETL_LOG_ROW_ERRORS", True),
    )


@lru_cache(maxsize=1)
def get_object_storage_settings() -> ObjectStorageSettings:
    """
    Return cached object storage settings.

    Raises ValidationError if ETL_OBJECT_STORAGE names an unknown backend.
    """

    backend = _get_str_env("ETL_OBJECT_STORAGE", LOCAL_OBJECT_STORAGE).lower()
    if backend not in _ALLOWED_OBJECT_STORAGE:
        raise ValidationError(
            f"ETL_OBJECT_STORAGE '{backend}' is not valid. "
            f"Allowed values: {sorted(_ALLOWED_OBJECT_STORAGE)}.",
            code="invalid_configuration",
        )
    return ObjectStorageSettings(
        backend=backend,
        local_root=_get_str_env("ETL_LOCAL_STORAGE_DIR", "data/objects"),
        s3_region=_get_str_env("ETL_S3_REGION", "us-east-1"),
        s3_endpoint_url=_get_optional_str_env("ETL_S3_ENDPOINT_URL"),
    )


@lru_cache(maxsize=1)
def get_connection_settings() -> ConnectionSettings:
    """
    Return cached database connection settings.

    Raises ValidationError if ETL_DB_BACKEND names an unknown backend.
    """

    _load_env_once()
    try:
        return resolve_connection_settings()
    except ValueError as exc:
        raise ValidationError(str(exc), code="invalid_configuration") from exc
