"""
Scanner configuration models.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class WhmcsSettings:
    """
    Credentials for the optional registry expiry lookup.
    """

    api_url: str | None = None
    identifier: str | None = None
    secret: str | None = None
    timeout_seconds: float = 15.0

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.identifier and self.secret)


@dataclass(frozen=True)
class ScannerSettings:
    """
    Runtime settings for crawl and liveness checks.
    """

    user_agent: str = "ExpiredBot"
    page_timeout_seconds: float = 10.0
    probe_timeout_seconds: float = 8.0
    dns_timeout_seconds: float = 5.0
    robots_timeout_seconds: float = 10.0
    aggressive_delay_seconds: float = 0.25
    polite_delay_seconds: float = 1.5
    default_batch_size: int = 1000
    default_concurrency: int = 5
    max_concurrency: int = 32
    stats_interval_seconds: float = 1.0
    allow_when_robots_unreachable: bool = True
    whmcs: WhmcsSettings = field(default_factory=WhmcsSettings)

    def politeness_delay(self, *, aggressive: bool) -> float:
        return self.aggressive_delay_seconds if aggressive else self.polite_delay_seconds
