"""
Shared scanner runtime data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any


class ScanStatus:
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class ScanMode:
    NEW = "new"
    RESUME = "resume"

    ALL = frozenset({NEW, RESUME})


class LivenessStatus:
    NO_DNS = "no-dns"
    OK = "ok"
    HTTP_ERROR = "http-error"
    DNS_ERROR = "dns-error"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AutoResumePolicy:
    """
    Automatic re-invocation settings for a paused scan.

    `remaining` is the number of resume attempts left; ``None`` means
    unbounded.
    """

    enabled: bool = False
    delay_minutes: float = 0.0
    remaining: int | None = 0
    batch_size: int = 1000
    aggressive: bool = True

    def has_remaining(self) -> bool:
        return self.remaining is None or self.remaining > 0

    def consume(self) -> None:
        if self.remaining is not None:
            self.remaining = max(0, self.remaining - 1)

    def to_dict(self) -> dict[str, Any]:
        return {
            "enabled": self.enabled,
            "delayMinutes": self.delay_minutes,
            "remaining": self.remaining,
            "batchSize": self.batch_size,
            "aggressive": self.aggressive,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any] | None) -> "AutoResumePolicy":
        if not payload:
            return cls()
        remaining = payload.get("remaining", 0)
        return cls(
            enabled=bool(payload.get("enabled", False)),
            delay_minutes=float(payload.get("delayMinutes", 0.0) or 0.0),
            remaining=None if remaining is None else int(remaining),
            batch_size=int(payload.get("batchSize", 1000) or 1000),
            aggressive=bool(payload.get("aggressive", True)),
        )


@dataclass
class ScanCheckpoint:
    """
    Persisted frontier state for one site.
    """

    site: str
    seed_url: str
    status: str = ScanStatus.RUNNING
    pending: list[str] = field(default_factory=list)
    visited: list[str] = field(default_factory=list)
    domains_checked: int = 0
    concurrency: int = 5
    auto_resume: AutoResumePolicy = field(default_factory=AutoResumePolicy)
    next_resume_at: datetime | None = None
    last_error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class DnsTraceEntry:
    """
    Outcome of one DNS query step.

    `detail` holds the answers on success and the error code on failure.
    """

    step: str
    query: str
    ok: bool
    detail: tuple[str, ...] | str


@dataclass(frozen=True)
class DnsProbeResult:
    has_record: bool
    confirmed_absent: bool
    trace: tuple[DnsTraceEntry, ...] = ()

    @property
    def inconclusive(self) -> bool:
        return not self.has_record and not self.confirmed_absent

    @property
    def error_code(self) -> str | None:
        """Error code of the last failed step, if any."""

        for entry in reversed(self.trace):
            if not entry.ok:
                return str(entry.detail)
        return None


@dataclass(frozen=True)
class HttpProbeResult:
    reachable: bool
    status_code: int | None = None
    error_code: str | None = None
    url: str | None = None


@dataclass(frozen=True)
class ExpiryInfo:
    expiry_date: date | None = None
    reason: str | None = None


@dataclass(frozen=True)
class LivenessResult:
    """
    Final verdict for one outbound domain.
    """

    domain: str
    status: str
    error_code: str | None = None
    http_status: int | None = None
    expiry_date: date | None = None
    expiry_reason: str | None = None

    def to_event_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"status": self.status}
        if self.error_code is not None:
            payload["code"] = self.error_code
        if self.http_status is not None:
            payload["httpStatus"] = self.http_status
        if self.expiry_date is not None:
            payload["expiryDate"] = self.expiry_date.isoformat()
        if self.expiry_reason is not None:
            payload["expiryDateReason"] = self.expiry_reason
        return payload


@dataclass(frozen=True)
class LivenessFinding:
    """
    Persisted liveness finding keyed by (site, domain).
    """

    site: str
    domain: str
    tld: str
    status: str
    error_code: str | None
    expiry_date: date | None
    expiry_reason: str | None
    found_at: datetime

    @classmethod
    def from_result(cls, *, site: str, result: LivenessResult) -> "LivenessFinding":
        return cls(
            site=site,
            domain=result.domain,
            tld=result.domain.rsplit(".", 1)[-1],
            status=result.status,
            error_code=result.error_code,
            expiry_date=result.expiry_date,
            expiry_reason=result.expiry_reason,
            found_at=utcnow(),
        )


@dataclass(frozen=True)
class BatchOutcome:
    """
    Summary of one crawl invocation.
    """

    site: str
    status: str
    pages_fetched: int
    total_visited: int
    pending_count: int
    domains_checked: int
    interrupted: bool = False
