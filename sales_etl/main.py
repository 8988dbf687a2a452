from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from sales_etl.schemas.etl import HealthResponse

APP_VERSION = "1.0.0"


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    No connection is opened at startup: every request acquires and releases
    its own engine and session.
    """

    from db.config import load_env_files

    load_env_files()
    _configure_logging()

    application = FastAPI(
        title="Order Sales ETL API",
        version=APP_VERSION,
    )

    from sales_etl.api.routers import etl_router

    application.include_router(etl_router)

    @application.get("/health")
    def healthcheck() -> HealthResponse:
        return HealthResponse(status="ok", version=APP_VERSION)

    return application


app = create_app()
