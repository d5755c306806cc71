from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse


def _validate_env() -> None:
    """
    Validate all required environment variables at startup.

    Runs before any service or database connection is initialised.
    Raises RuntimeError listing every missing or invalid variable so the
    operator can fix all problems in one restart cycle.

    Rules:
    - A PostgreSQL database URL must resolve (DATABASE_URL and friends).
    - Numeric tuning variables, when set, must parse and be in range.
    - MUNI_MONEY_API_BASE_URL, when set, must be an http(s) URL.
    """

    from db.config import load_env_files, resolve_database_url

    load_env_files()

    errors: list[str] = []

    # --- Database URL ---------------------------------------------------
    try:
        database_url = resolve_database_url()
    except RuntimeError as exc:
        errors.append(str(exc))
    else:
        if not database_url.startswith("postgresql"):
            errors.append(
                "Database URL must point at PostgreSQL. "
                "SQLite and other backends are not permitted."
            )

    # --- Numeric settings -----------------------------------------------
    numeric_rules: tuple[tuple[str, type, float], ...] = (
        ("FINANCIAL_CACHE_TTL_HOURS", float, 0.0),
        ("DEFAULT_FINANCIAL_YEAR", int, 2000),
        ("EXTERNAL_HTTP_TIMEOUT_SECONDS", float, 0.0),
        ("EXTERNAL_HTTP_MAX_ATTEMPTS", int, 1),
    )
    for name, cast, minimum in numeric_rules:
        raw = os.getenv(name)
        if raw is None:
            continue
        try:
            value = cast(raw.strip())
        except ValueError:
            errors.append(f"{name}={raw!r} is not a valid {cast.__name__}.")
            continue
        if value < minimum:
            errors.append(f"{name}={raw!r} must be >= {minimum}.")

    # --- Municipal Money base URL ----------------------------------------
    base_url = os.getenv("MUNI_MONEY_API_BASE_URL", "").strip()
    if base_url and not base_url.startswith(("http://", "https://")):
        errors.append(f"MUNI_MONEY_API_BASE_URL={base_url!r} must start with http:// or https://.")

    if errors:
        raise RuntimeError(
            "Startup validation failed: missing or invalid environment variables:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )


def _configure_logging() -> None:
    """
    Configure root logging once for the API process.
    """

    log_level = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _check_db() -> None:
    """Open a session and run SELECT 1. Raises RuntimeError if the DB is unreachable."""
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    from db.session import SessionLocal

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
    except SQLAlchemyError as exc:
        raise RuntimeError("Database unavailable.") from exc


def _check_schema() -> None:
    """
    Compare Base.metadata table names against the live DB schema.

    Every table registered on Base.metadata must exist in the database.
    If any are missing, log a critical error and abort startup so that
    the operator is forced to run migrations before serving traffic.

    Does NOT auto-migrate.
    """
    from sqlalchemy import inspect as sa_inspect

    import db.models  # noqa: F401  registers all ORM models on Base.metadata
    from db.base import Base
    from db.session import get_engine

    inspector = sa_inspect(get_engine())
    actual: set[str] = set(inspector.get_table_names())
    expected: set[str] = set(Base.metadata.tables.keys())
    missing = expected - actual

    if missing:
        log = logging.getLogger(__name__)
        log.critical(
            "Schema mismatch: %d table(s) defined in ORM metadata are absent from "
            "the database: %s. Run 'alembic upgrade head' and restart.",
            len(missing),
            ", ".join(sorted(missing)),
        )
        raise RuntimeError(
            f"Schema mismatch: {len(missing)} table(s) missing from the database "
            f"({', '.join(sorted(missing))}). Run migrations and restart."
        )


@asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Validate DB connectivity and schema, start the scheduler on boot; shut it down on exit."""
    log = logging.getLogger(__name__)
    _check_db()
    log.info("Database connectivity confirmed")
    _check_schema()
    log.info("Database schema validated")

    from app.config import get_scheduler_settings
    from app.scheduler.jobs import build_scheduler

    scheduler = None
    if get_scheduler_settings().enabled:
        scheduler = build_scheduler()
        scheduler.start()
        log.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))
    else:
        log.info("Scheduler disabled via REFRESH_SCHEDULER_ENABLED")
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=True)
            log.info("Scheduler shut down")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """

    _validate_env()
    _configure_logging()

    application = FastAPI(
        title="Municipal Financial Health API",
        version="1.0.0",
        lifespan=_lifespan,
    )

    from app.api.routers import municipalities_router

    application.include_router(municipalities_router)

    @application.get("/health")
    def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @application.get("/ready")
    def readiness() -> JSONResponse:
        try:
            _check_db()
        except RuntimeError:
            logging.getLogger(__name__).warning("Readiness check failed: database unavailable")
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={"status": "unavailable", "database": "unreachable"},
            )
        return JSONResponse(content={"status": "ready", "database": "ok"})

    return application


app = create_app()
