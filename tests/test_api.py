"""
tests/test_api.py

HTTP contract tests for the scan and results routers.

Coverage
--------
- POST /scan launches a batch and its SSE stream replays every event
- 400 for invalid seed URLs, 422 for schema violations, 409 when busy
- Status, interrupt and auto-resume cancellation endpoints
- Results filtering, reasons and per-site summary with camelCase keys
"""

from __future__ import annotations

import json
from datetime import date, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api.routers import results_router, scans_router
from app.api.routers.scans import format_sse
from app.scanner.engine import CrawlEngine
from app.scanner.types import LivenessFinding, LivenessStatus
from app.services.scan_service import ScanService, get_scan_service
from tests.fakes import (
    FIXED_NOW,
    ControlledExecutor,
    FakePageFetcher,
    FakeScheduler,
    ManualClock,
    StubClassifier,
    StubRobots,
    html_page,
)

SEED = "https://example.com"


def _parse_sse(body: str) -> list[dict]:
    events = []
    for block in body.split("\n\n"):
        if block.startswith("data: "):
            events.append(json.loads(block[len("data: "):]))
    return events


@pytest.fixture()
def executor() -> ControlledExecutor:
    return ControlledExecutor(immediate=True)


@pytest.fixture()
def service(settings, checkpoint_store, result_store, executor) -> ScanService:
    fetcher = FakePageFetcher(
        {SEED: html_page("/a", "https://gone.example.org/"), f"{SEED}/a": html_page()}
    )

    def _factory(**kwargs):
        return CrawlEngine(
            classifier=StubClassifier({"gone.example.org": LivenessStatus.NO_DNS}),
            robots=StubRobots(),
            fetcher=fetcher,
            **kwargs,
        )

    return ScanService(
        settings=settings,
        checkpoint_store=checkpoint_store,
        result_store=result_store,
        scheduler=FakeScheduler(),
        engine_factory=_factory,
        executor=executor,
        clock=ManualClock(),
    )


@pytest.fixture()
def client(service) -> TestClient:
    app = FastAPI()
    app.include_router(scans_router)
    app.include_router(results_router)
    app.dependency_overrides[get_scan_service] = lambda: service
    return TestClient(app)


# ---------------------------------------------------------------------------
# Scan control
# ---------------------------------------------------------------------------


class TestStartScan:
    def test_start_returns_id_and_stream_replays_events(self, client) -> None:
        response = client.post("/scan", json={"startUrl": SEED, "maxPages": 10, "concurrency": 2})

        assert response.status_code == 200
        scan_id = response.json()["id"]

        stream = client.get(f"/events/{scan_id}")
        assert stream.status_code == 200
        assert stream.headers["content-type"].startswith("text/event-stream")
        events = _parse_sse(stream.text)
        assert events[0] == {"type": "connected", "id": scan_id}
        assert events[1]["type"] == "start"
        assert events[1]["startUrl"] == SEED
        assert events[-1]["type"] == "done"
        assert events[-1]["totalPages"] == 2
        domain_events = [event for event in events if event["type"] == "domain"]
        assert domain_events[0]["result"] == {"status": "no-dns", "code": "NXDOMAIN"}

    def test_invalid_start_url_is_bad_request(self, client) -> None:
        response = client.post("/scan", json={"startUrl": "mailto:someone@example.com"})

        assert response.status_code == 400

    @pytest.mark.parametrize(
        "body",
        [
            {"startUrl": SEED, "concurrency": 0},
            {"startUrl": SEED, "maxPages": 0},
            {"startUrl": SEED, "mode": "restart"},
            {"startUrl": SEED, "autoResume": {"enabled": True, "delayMinutes": -5}},
            {"maxPages": 10},
        ],
    )
    def test_schema_violations_are_unprocessable(self, client, body) -> None:
        assert client.post("/scan", json=body).status_code == 422

    def test_concurrency_above_limit_is_bad_request(self, client, settings) -> None:
        response = client.post(
            "/scan",
            json={"startUrl": SEED, "concurrency": settings.max_concurrency + 1},
        )

        assert response.status_code == 400

    def test_second_start_while_running_conflicts(self, client, executor) -> None:
        executor.immediate = False

        first = client.post("/scan", json={"startUrl": SEED})
        second = client.post("/scan", json={"startUrl": SEED, "mode": "resume"})

        assert first.status_code == 200
        assert second.status_code == 409

    def test_unknown_event_stream_is_not_found(self, client) -> None:
        assert client.get("/events/does-not-exist").status_code == 404


class TestScanStatus:
    def test_status_uses_camel_case_keys(self, client) -> None:
        client.post(
            "/scan",
            json={
                "startUrl": SEED,
                "maxPages": 1,
                "autoResume": {"enabled": True, "delayMinutes": 2, "repeat": 1},
            },
        )

        body = client.get("/scan/status", params={"startUrl": SEED}).json()

        assert body["exists"] is True
        assert body["status"] == "paused"
        assert body["visitedCount"] == 1
        assert body["queueCount"] == 1
        assert body["autoResume"]["enabled"] is True
        assert body["nextResumeAt"].startswith("2026-10-18T12:02:00")

    def test_status_for_unscanned_site(self, client) -> None:
        body = client.get("/scan/status", params={"startUrl": "https://nowhere.example"}).json()

        assert body["exists"] is False
        assert body["status"] == "idle"

    def test_status_requires_valid_start_url(self, client) -> None:
        assert client.get("/scan/status", params={"startUrl": "example"}).status_code == 400
        assert client.get("/scan/status").status_code == 422


class TestInterruptAndCancel:
    def test_interrupt_disables_auto_resume(self, client, checkpoint_store) -> None:
        client.post(
            "/scan",
            json={
                "startUrl": SEED,
                "maxPages": 1,
                "autoResume": {"enabled": True, "delayMinutes": 2, "repeat": 1},
            },
        )

        response = client.post("/scan/interrupt", params={"startUrl": SEED})

        assert response.json() == {"interrupted": True}
        assert checkpoint_store.load("example.com").auto_resume.enabled is False

    def test_interrupt_unknown_site(self, client) -> None:
        response = client.post("/scan/interrupt", params={"startUrl": "https://nowhere.example"})

        assert response.json() == {"interrupted": False}

    def test_cancel_auto_resume(self, client) -> None:
        client.post("/scan", json={"startUrl": SEED, "maxPages": 1})

        response = client.delete("/scan/auto-resume", params={"startUrl": SEED})

        assert response.json() == {"cancelled": True}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def _finding(site: str, domain: str, *, reason: str | None, expiry: date | None, age: int) -> LivenessFinding:
    return LivenessFinding(
        site=site,
        domain=domain,
        tld=domain.rsplit(".", 1)[-1],
        status=LivenessStatus.NO_DNS,
        error_code="NXDOMAIN",
        expiry_date=expiry,
        expiry_reason=reason,
        found_at=FIXED_NOW - timedelta(minutes=age),
    )


@pytest.fixture()
def seeded_results(result_store) -> None:
    result_store.upsert(_finding("example.com", "old.net", reason=None, expiry=date(2025, 1, 31), age=30))
    result_store.upsert(
        _finding("example.com", "free.io", reason="Available for registration", expiry=None, age=10)
    )
    result_store.upsert(
        _finding("blog.example.org", "gone.net", reason="API call failed", expiry=None, age=20)
    )


class TestResults:
    def test_results_are_newest_first_with_camel_case_keys(self, client, seeded_results) -> None:
        rows = client.get("/results").json()

        assert [row["domain"] for row in rows] == ["free.io", "gone.net", "old.net"]
        assert set(rows[0]) == {
            "website",
            "domain",
            "tld",
            "status",
            "code",
            "expiryDate",
            "expiryDateReason",
            "foundAt",
        }
        assert rows[2]["expiryDate"] == "2025-01-31"

    def test_filters(self, client, seeded_results) -> None:
        by_site = client.get("/results", params={"website": "BLOG"}).json()
        by_tld = client.get("/results", params={"tld": "net"}).json()
        with_date = client.get("/results", params={"reason": "has-expiry-date"}).json()
        by_reason = client.get("/results", params={"reason": "Available for registration"}).json()

        assert [row["domain"] for row in by_site] == ["gone.net"]
        assert [row["domain"] for row in by_tld] == ["gone.net", "old.net"]
        assert [row["domain"] for row in with_date] == ["old.net"]
        assert [row["domain"] for row in by_reason] == ["free.io"]

    def test_reasons_and_summary(self, client, seeded_results) -> None:
        reasons = client.get("/results/reasons").json()
        summary = client.get("/summary").json()

        assert reasons == ["API call failed", "Available for registration"]
        assert summary == [
            {"website": "blog.example.org", "count": 1},
            {"website": "example.com", "count": 2},
        ]

    def test_scan_findings_show_up_in_results(self, client, result_store) -> None:
        client.post("/scan", json={"startUrl": SEED})

        rows = client.get("/results", params={"website": "example.com"}).json()

        assert [row["domain"] for row in rows] == ["gone.example.org"]
        assert rows[0]["code"] == "NXDOMAIN"


def test_format_sse_frames_one_json_event() -> None:
    assert format_sse({"type": "stats", "visited": 3}) == 'data: {"type": "stats", "visited": 3}\n\n'
