"""
Environment loader for scanner settings.
"""

from __future__ import annotations

import os
from functools import lru_cache

from db.config import load_env_files

from app.scanner.config.models import ScannerSettings, WhmcsSettings


def _get_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _get_str_env(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    stripped = raw.strip()
    return stripped if stripped else default


def _get_optional_str_env(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped if stripped else None


def load_scanner_settings() -> ScannerSettings:
    """
    Build scanner settings from the current environment.
    """

    load_env_files()
    max_concurrency = max(1, _get_int_env("SCANNER_MAX_CONCURRENCY", 32))
    return ScannerSettings(
        user_agent=_get_str_env("SCANNER_USER_AGENT", "ExpiredBot"),
        page_timeout_seconds=max(
            1.0,
            _get_float_env("SCANNER_PAGE_TIMEOUT_SECONDS", 10.0),
        ),
        probe_timeout_seconds=max(
            1.0,
            _get_float_env("SCANNER_PROBE_TIMEOUT_SECONDS", 8.0),
        ),
        dns_timeout_seconds=max(
            0.5,
            _get_float_env("SCANNER_DNS_TIMEOUT_SECONDS", 5.0),
        ),
        robots_timeout_seconds=max(
            1.0,
            _get_float_env("SCANNER_ROBOTS_TIMEOUT_SECONDS", 10.0),
        ),
        aggressive_delay_seconds=max(
            0.0,
            _get_float_env("SCANNER_AGGRESSIVE_DELAY_SECONDS", 0.25),
        ),
        polite_delay_seconds=max(
            0.0,
            _get_float_env("SCANNER_POLITE_DELAY_SECONDS", 1.5),
        ),
        default_batch_size=max(1, _get_int_env("SCANNER_DEFAULT_BATCH_SIZE", 1000)),
        default_concurrency=min(
            max_concurrency,
            max(1, _get_int_env("SCANNER_DEFAULT_CONCURRENCY", 5)),
        ),
        max_concurrency=max_concurrency,
        stats_interval_seconds=max(
            0.1,
            _get_float_env("SCANNER_STATS_INTERVAL_SECONDS", 1.0),
        ),
        allow_when_robots_unreachable=_get_bool_env(
            "SCANNER_ALLOW_WHEN_ROBOTS_UNREACHABLE",
            True,
        ),
        whmcs=WhmcsSettings(
            api_url=_get_optional_str_env("WHMCS_API_URL"),
            identifier=_get_optional_str_env("WHMCS_API_IDENTIFIER"),
            secret=_get_optional_str_env("WHMCS_API_SECRET"),
            timeout_seconds=max(1.0, _get_float_env("WHMCS_API_TIMEOUT_SECONDS", 15.0)),
        ),
    )


@lru_cache(maxsize=1)
def get_scanner_settings() -> ScannerSettings:
    """
    Return cached scanner settings from environment variables.
    """

    return load_scanner_settings()
