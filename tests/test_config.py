"""
tests/test_config.py

Pytest tests for scanner settings and database URL resolution.
"""

from __future__ import annotations

import os

import pytest

from app.scanner.config import ScannerSettings, load_scanner_settings
from db.config import load_env_files, normalize_postgres_url, resolve_database_url

SCANNER_VARS = (
    "SCANNER_USER_AGENT",
    "SCANNER_MAX_CONCURRENCY",
    "SCANNER_DEFAULT_CONCURRENCY",
    "SCANNER_DEFAULT_BATCH_SIZE",
    "SCANNER_POLITE_DELAY_SECONDS",
    "SCANNER_AGGRESSIVE_DELAY_SECONDS",
    "SCANNER_ALLOW_WHEN_ROBOTS_UNREACHABLE",
    "SCANNER_STATS_INTERVAL_SECONDS",
    "WHMCS_API_URL",
    "WHMCS_API_IDENTIFIER",
    "WHMCS_API_SECRET",
)
DATABASE_VARS = ("DATABASE_URL", "CLOUD_DATABASE_URL", "LOCAL_DATABASE_URL", "ENVIRONMENT")


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    # setenv first so monkeypatch also removes anything a test loads from .env files.
    for name in (*SCANNER_VARS, *DATABASE_VARS):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


# ---------------------------------------------------------------------------
# Scanner settings
# ---------------------------------------------------------------------------


class TestScannerSettings:
    def test_defaults(self, clean_env) -> None:
        settings = load_scanner_settings()

        assert settings.user_agent == "ExpiredBot"
        assert settings.default_batch_size == 1000
        assert settings.default_concurrency == 5
        assert settings.allow_when_robots_unreachable is True
        assert settings.whmcs.configured is False

    def test_environment_overrides(self, clean_env) -> None:
        clean_env.setenv("SCANNER_USER_AGENT", "  AuditBot  ")
        clean_env.setenv("SCANNER_DEFAULT_BATCH_SIZE", "250")
        clean_env.setenv("SCANNER_POLITE_DELAY_SECONDS", "3.5")
        clean_env.setenv("SCANNER_ALLOW_WHEN_ROBOTS_UNREACHABLE", "no")

        settings = load_scanner_settings()

        assert settings.user_agent == "AuditBot"
        assert settings.default_batch_size == 250
        assert settings.politeness_delay(aggressive=False) == 3.5
        assert settings.allow_when_robots_unreachable is False

    def test_invalid_values_fall_back_to_defaults(self, clean_env) -> None:
        clean_env.setenv("SCANNER_DEFAULT_BATCH_SIZE", "lots")
        clean_env.setenv("SCANNER_AGGRESSIVE_DELAY_SECONDS", "fast")

        settings = load_scanner_settings()

        assert settings.default_batch_size == 1000
        assert settings.politeness_delay(aggressive=True) == 0.25

    def test_values_are_clamped(self, clean_env) -> None:
        clean_env.setenv("SCANNER_MAX_CONCURRENCY", "4")
        clean_env.setenv("SCANNER_DEFAULT_CONCURRENCY", "10")
        clean_env.setenv("SCANNER_DEFAULT_BATCH_SIZE", "0")
        clean_env.setenv("SCANNER_STATS_INTERVAL_SECONDS", "0")

        settings = load_scanner_settings()

        assert settings.max_concurrency == 4
        assert settings.default_concurrency == 4
        assert settings.default_batch_size == 1
        assert settings.stats_interval_seconds == 0.1

    def test_whmcs_configured_needs_all_three_values(self, clean_env) -> None:
        clean_env.setenv("WHMCS_API_URL", "https://billing.example.com/includes/api.php")
        clean_env.setenv("WHMCS_API_IDENTIFIER", "id")
        assert load_scanner_settings().whmcs.configured is False

        clean_env.setenv("WHMCS_API_SECRET", "secret")
        assert load_scanner_settings().whmcs.configured is True

    def test_settings_are_immutable(self) -> None:
        with pytest.raises(AttributeError):
            ScannerSettings().user_agent = "Other"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Database configuration
# ---------------------------------------------------------------------------


class TestDatabaseConfig:
    def test_direct_url_wins_and_is_normalized(self, clean_env) -> None:
        clean_env.setenv("DATABASE_URL", "postgres://u:p@db/scanner")
        clean_env.setenv("LOCAL_DATABASE_URL", "postgresql://u:p@localhost/other")

        assert resolve_database_url() == "postgresql+psycopg://u:p@db/scanner"

    def test_cloud_url_used_only_for_cloud_environments(self, clean_env) -> None:
        clean_env.setenv("CLOUD_DATABASE_URL", "postgresql://u:p@cloud/scanner")
        clean_env.setenv("LOCAL_DATABASE_URL", "postgresql://u:p@localhost/scanner")

        assert resolve_database_url() == "postgresql+psycopg://u:p@localhost/scanner"
        clean_env.setenv("ENVIRONMENT", "production")
        assert resolve_database_url() == "postgresql+psycopg://u:p@cloud/scanner"

    def test_missing_url_raises(self, clean_env) -> None:
        with pytest.raises(RuntimeError, match="No database URL configured"):
            resolve_database_url()

    def test_driver_url_is_left_alone(self) -> None:
        url = "postgresql+psycopg://u:p@db/scanner"

        assert normalize_postgres_url(url) == url

    def test_env_files_never_override_process_environment(self, clean_env, tmp_path) -> None:
        (tmp_path / ".env").write_text(
            "# comment\nexport LOCAL_DATABASE_URL='postgresql://file/db'\nDATABASE_URL=postgresql://file/direct\n",
            encoding="utf-8",
        )
        clean_env.setenv("DATABASE_URL", "postgresql://process/direct")

        load_env_files(tmp_path)

        assert os.environ["LOCAL_DATABASE_URL"] == "postgresql://file/db"
        assert os.environ["DATABASE_URL"] == "postgresql://process/direct"
