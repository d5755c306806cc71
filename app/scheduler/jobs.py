"""
app/scheduler/jobs.py

APScheduler-based background refresh of cached municipality financials.

Each run finds ``financial_data`` rows whose ``fetched_at`` is older
than the cache TTL and sends them through the shared refresh controller.
The controller's single-flight map is shared with the API, so a scheduled
refresh and a request for the same key never fetch twice.

Schedule (UTC)
--------------
  daily_financial_refresh — REFRESH_SCHEDULER_HOUR:REFRESH_SCHEDULER_MINUTE,
                            02:00 by default

Lifecycle
----------
Call ``build_scheduler()`` once to get a configured ``BackgroundScheduler``.
Start it on app boot; shut it down gracefully on app shutdown.
The scheduler is wired into FastAPI via the ``lifespan`` context in main.py.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from apscheduler.schedulers.background import BackgroundScheduler

from app.api.dependencies import (
    get_cache_store,
    get_municipality_repository,
    get_refresh_controller,
)
from app.config import get_cache_settings, get_scheduler_settings
from app.services.refresh_controller import RefreshController
from db.repositories.errors import CacheStoreError, MunicipalityNotFoundError
from db.repositories.financial_cache_repository import FinancialCacheStore
from db.repositories.municipality_repository import MunicipalityRepository

logger = logging.getLogger(__name__)

_BATCH_LIMIT = 500


# ---------------------------------------------------------------------------
# Job: daily stale refresh
# ---------------------------------------------------------------------------


def refresh_stale_financials(
    controller: RefreshController,
    store: FinancialCacheStore,
    municipalities: MunicipalityRepository,
    *,
    ttl: timedelta,
    now: datetime | None = None,
    limit: int = _BATCH_LIMIT,
) -> dict[str, int]:
    """
    Refresh up to ``limit`` cached rows older than ``ttl``.
    """
    cutoff = (now or datetime.now(tz=timezone.utc)) - ttl
    keys = store.list_stale_keys(cutoff, limit=limit)
    if not keys:
        logger.info("Scheduler: no stale financial rows before %s", cutoff.isoformat())
        return {"refreshed": 0, "served_stale": 0, "failed": 0}

    def population_for(code: str) -> float | None:
        try:
            return municipalities.get(code).population
        except MunicipalityNotFoundError:
            return None

    logger.info("Scheduler: refreshing stale rows count=%d", len(keys))
    return controller.refresh_stale(keys, population_for)


def run_daily_financial_refresh() -> None:
    """
    Scheduled entry point. Storage failures are logged and the run is
    skipped; the next window tries again.
    """
    logger.info("Scheduler: daily_financial_refresh starting")
    try:
        summary = refresh_stale_financials(
            get_refresh_controller(),
            get_cache_store(),
            get_municipality_repository(),
            ttl=timedelta(hours=get_cache_settings().ttl_hours),
        )
    except CacheStoreError as exc:
        logger.error("Scheduler: daily_financial_refresh aborted: %s", exc)
        return
    logger.info("Scheduler: daily_financial_refresh complete summary=%s", summary)


# ---------------------------------------------------------------------------
# Scheduler factory
# ---------------------------------------------------------------------------


def build_scheduler() -> BackgroundScheduler:
    """
    Build and register all periodic jobs.

    Returns a configured but *not yet started* ``BackgroundScheduler``.
    The caller must call ``.start()`` and ``.shutdown(wait=True)`` at the
    appropriate lifecycle points.
    """
    settings = get_scheduler_settings()
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        run_daily_financial_refresh,
        trigger="cron",
        hour=settings.hour_utc,
        minute=settings.minute_utc,
        id="daily_financial_refresh",
        name="Daily refresh of stale municipality financials",
        replace_existing=True,
        misfire_grace_time=3600,
        max_instances=1,
        coalesce=True,
    )

    return scheduler
