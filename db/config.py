"""
Shared environment-driven database configuration helpers.

The connection provider selects between an embedded SQLite file and a
networked PostgreSQL server. Callers receive a plain settings value and
build a SQLAlchemy URL from it; nothing here opens a connection.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import URL, make_url

EMBEDDED_BACKEND = "embedded"
NETWORKED_BACKEND = "networked"

BACKEND_ALIASES: dict[str, str] = {
    "embedded": EMBEDDED_BACKEND,
    "sqlite": EMBEDDED_BACKEND,
    "networked": NETWORKED_BACKEND,
    "aurora": NETWORKED_BACKEND,
    "postgres": NETWORKED_BACKEND,
    "postgresql": NETWORKED_BACKEND,
}

DEFAULT_SQLITE_PATH = "transformed_data.db"


def load_env_files() -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    project_root = Path(__file__).resolve().parents[1]
    for filename in (".env", ".env.local"):
        env_path = project_root / filename
        if not env_path.exists():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


def normalize_postgres_url(url: str) -> str:
    """
    Normalize postgres URLs to SQLAlchemy's recommended psycopg driver form.
    """

    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def normalize_backend(raw: str | None) -> str:
    """
    Map a backend selector (including legacy `sqlite` / `aurora`) to its canonical name.

    Raises ValueError for unsupported selectors.
    """

    if raw is None or not raw.strip():
        return EMBEDDED_BACKEND
    key = raw.strip().lower()
    backend = BACKEND_ALIASES.get(key)
    if backend is None:
        allowed = ", ".join(sorted(BACKEND_ALIASES))
        raise ValueError(f"Unsupported database type: {raw.strip()!r}. Allowed values: {allowed}.")
    return backend


@dataclass(frozen=True)
class ConnectionSettings:
    """
    Backend selector plus connection parameters for the persisted table.

    `url` wins over the individual parts when set.
    """

    backend: str = EMBEDDED_BACKEND
    url: str | None = None
    sqlite_path: str = DEFAULT_SQLITE_PATH
    host: str = "localhost"
    port: int = 5432
    username: str | None = None
    password: str | None = None
    database: str = "sales"
    echo: bool = False

    def with_backend(self, raw_backend: str | None) -> "ConnectionSettings":
        """
        Return a copy targeting another backend, keeping the other parameters.
        """

        if raw_backend is None:
            return self
        backend = normalize_backend(raw_backend)
        if backend == self.backend:
            return self
        return ConnectionSettings(
            backend=backend,
            url=None,
            sqlite_path=self.sqlite_path,
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            database=self.database,
            echo=self.echo,
        )


def build_database_url(settings: ConnectionSettings) -> URL:
    """
    Build the SQLAlchemy URL for the configured backend.
    """

    if settings.url:
        return make_url(normalize_postgres_url(settings.url))

    if settings.backend == EMBEDDED_BACKEND:
        return URL.create("sqlite", database=settings.sqlite_path)

    return URL.create(
        "postgresql+psycopg",
        username=settings.username,
        password=settings.password,
        host=settings.host,
        port=settings.port,
        database=settings.database,
    )


def embedded_database_path(settings: ConnectionSettings) -> Path | None:
    """
    Return the SQLite file path for embedded settings, or None for networked/in-memory stores.
    """

    url = build_database_url(settings)
    if url.get_backend_name() != "sqlite":
        return None
    if not url.database or url.database == ":memory:":
        return None
    return Path(url.database)


def _get_int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_bool_env(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _resolve_backend(raw_backend: str | None, database_url: str | None) -> str:
    if raw_backend is None and database_url:
        scheme = database_url.split(":", 1)[0].split("+", 1)[0].lower()
        return NETWORKED_BACKEND if scheme.startswith("postgres") else EMBEDDED_BACKEND
    return normalize_backend(raw_backend)


def resolve_connection_settings() -> ConnectionSettings:
    """
    Resolve connection settings using environment variables and optional .env files.

    Priority:
    1) DATABASE_URL
    2) ETL_DB_BACKEND with ETL_SQLITE_PATH (embedded) or ETL_DB_* parts (networked)
    """

    load_env_files()
    database_url = _get_optional_env("DATABASE_URL")

    return ConnectionSettings(
        backend=_resolve_backend(_get_optional_env("ETL_DB_BACKEND"), database_url),
        url=database_url,
        sqlite_path=_get_optional_env("ETL_SQLITE_PATH") or DEFAULT_SQLITE_PATH,
        host=_get_optional_env("ETL_DB_HOST") or "localhost",
        port=_get_int_env("ETL_DB_PORT", 5432),
        username=_get_optional_env("ETL_DB_USER"),
        password=_get_optional_env("ETL_DB_PASSWORD"),
        database=_get_optional_env("ETL_DB_NAME") or "sales",
        echo=_get_bool_env("SQL_ECHO", default=False),
    )
