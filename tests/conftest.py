"""
tests/conftest.py

Shared fixtures for scanner tests. Fakes live in tests/fakes.py.
"""

from __future__ import annotations

from typing import Any

import pytest

from app.scanner.config import ScannerSettings
from app.scanner.engine import BatchRequest, CrawlEngine
from tests.fakes import (
    FakePageFetcher,
    InMemoryCheckpointStore,
    InMemoryResultStore,
    RecordingSink,
    StubClassifier,
    StubRobots,
)

# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def settings() -> ScannerSettings:
    """Settings with no politeness delay and a stats interval longer than any test."""
    return ScannerSettings(
        aggressive_delay_seconds=0.0,
        polite_delay_seconds=0.0,
        stats_interval_seconds=60.0,
        max_concurrency=8,
    )


@pytest.fixture()
def checkpoint_store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture()
def result_store() -> InMemoryResultStore:
    return InMemoryResultStore()


@pytest.fixture()
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture()
def make_engine(
    settings: ScannerSettings,
    checkpoint_store: InMemoryCheckpointStore,
    result_store: InMemoryResultStore,
    sink: RecordingSink,
):
    """Build a CrawlEngine over the shared fakes; keyword overrides win."""

    def _make(
        request: BatchRequest,
        *,
        fetcher: FakePageFetcher,
        classifier: Any | None = None,
        robots: Any | None = None,
        **overrides: Any,
    ) -> CrawlEngine:
        kwargs: dict[str, Any] = {
            "request": request,
            "settings": settings,
            "checkpoint_store": checkpoint_store,
            "result_store": result_store,
            "classifier": classifier or StubClassifier(),
            "robots": robots or StubRobots(),
            "fetcher": fetcher,
            "sink": sink,
        }
        kwargs.update(overrides)
        return CrawlEngine(**kwargs)

    return _make
