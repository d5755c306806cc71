"""
app/config.py

Application-level configuration helpers.

Settings are read from the environment once per process (after loading
`.env` files) and cached; nothing in the request path re-reads them.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from db.config import load_env_files


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


def _get_float_env(name: str, default: float) -> float:
    """
    Read a float from environment variables with safe fallback.
    """

    _load_env_once()
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
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


@dataclass(frozen=True)
class ExternalHTTPSettings:
    """
    Shared HTTP behavior settings for external connectors.

    ``max_attempts`` and the backoff values are consumed per fetch by the
    metric aggregator; connectors themselves never retry.
    """

    timeout_seconds: float = 4.5
    max_attempts: int = 2
    backoff_initial_seconds: float = 0.5
    backoff_multiplier: float = 2.0


@dataclass(frozen=True)
class MunicipalMoneySettings:
    """
    Municipal Money cube API settings.
    """

    base_url: str = "https://municipaldata.treasury.gov.za/api"


@dataclass(frozen=True)
class CacheSettings:
    """
    Financial cache freshness settings.
    """

    ttl_hours: float = 24.0
    default_year: int = 2023


@dataclass(frozen=True)
class SchedulerSettings:
    """
    Background refresh scheduler settings.
    """

    enabled: bool = True
    hour_utc: int = 2
    minute_utc: int = 0


@lru_cache(maxsize=1)
def get_external_http_settings() -> ExternalHTTPSettings:
    """
    Return shared connector HTTP settings from environment variables.
    """

    return ExternalHTTPSettings(
        timeout_seconds=min(30.0, max(0.5, _get_float_env("EXTERNAL_HTTP_TIMEOUT_SECONDS", 4.5))),
        max_attempts=max(1, _get_int_env("EXTERNAL_HTTP_MAX_ATTEMPTS", 2)),
        backoff_initial_seconds=max(0.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_INITIAL_SECONDS", 0.5)),
        backoff_multiplier=max(1.0, _get_float_env("EXTERNAL_HTTP_BACKOFF_MULTIPLIER", 2.0)),
    )


@lru_cache(maxsize=1)
def get_municipal_money_settings() -> MunicipalMoneySettings:
    """
    Return Municipal Money connector settings from environment variables.
    """

    return MunicipalMoneySettings(
        base_url=_get_str_env("MUNI_MONEY_API_BASE_URL", "https://municipaldata.treasury.gov.za/api"),
    )


@lru_cache(maxsize=1)
def get_cache_settings() -> CacheSettings:
    """
    Return financial cache settings from environment variables.
    """

    return CacheSettings(
        ttl_hours=max(0.0, _get_float_env("FINANCIAL_CACHE_TTL_HOURS", 24.0)),
        default_year=_get_int_env("DEFAULT_FINANCIAL_YEAR", 2023),
    )


@lru_cache(maxsize=1)
def get_scheduler_settings() -> SchedulerSettings:
    """
    Return background refresh scheduler settings from environment variables.
    """

    return SchedulerSettings(
        enabled=_get_bool_env("REFRESH_SCHEDULER_ENABLED", True),
        hour_utc=min(23, max(0, _get_int_env("REFRESH_SCHEDULER_HOUR", 2))),
        minute_utc=min(59, max(0, _get_int_env("REFRESH_SCHEDULER_MINUTE", 0))),
    )
