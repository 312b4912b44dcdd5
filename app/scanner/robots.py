"""
robots.txt gate consulted before every page fetch.
"""

from __future__ import annotations

import logging
import threading
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import requests

from app.scanner.logging_utils import log_event

logger = logging.getLogger(__name__)

_ALLOW_ALL = ("User-agent: *", "Allow: /")
_DENY_ALL = ("User-agent: *", "Disallow: /")


class RobotsGate:
    """
    Caches one robots.txt policy per origin, fetched lazily on first use.

    An unreachable or unreadable robots.txt resolves to allow-all unless
    `allow_when_unreachable` is turned off.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        timeout_seconds: float = 10.0,
        allow_when_unreachable: bool = True,
    ) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._allow_when_unreachable = allow_when_unreachable
        self._policies: dict[str, RobotFileParser] = {}
        self._lock = threading.Lock()

    def is_allowed(self, *, url: str, user_agent: str) -> bool:
        """
        Return whether fetching `url` is allowed for `user_agent`.

        A URL that cannot be evaluated is reported as not allowed so the
        caller skips it.
        """

        try:
            return self._policy_for(url).can_fetch(user_agent, url)
        except Exception as exc:
            log_event(logger, logging.WARNING, "robots_evaluation_failed", url=url, error=str(exc))
            return False

    def _policy_for(self, url: str) -> RobotFileParser:
        origin = robots_origin(url)
        # Held across the download so concurrent workers share one fetch.
        with self._lock:
            policy = self._policies.get(origin)
            if policy is None:
                policy = self._build_policy(origin)
                self._policies[origin] = policy
            return policy

    def _build_policy(self, origin: str) -> RobotFileParser:
        robots_url = f"{origin}/robots.txt"
        policy = RobotFileParser(robots_url)
        body = self._download(robots_url)
        if body is None:
            policy.parse(_ALLOW_ALL if self._allow_when_unreachable else _DENY_ALL)
        else:
            policy.parse(body.splitlines())
            log_event(logger, logging.INFO, "robots_loaded", origin=origin)
        return policy

    def _download(self, robots_url: str) -> str | None:
        """Return the robots.txt body, or None when it cannot be used."""

        try:
            response = self._session.get(robots_url, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            log_event(
                logger,
                logging.WARNING,
                "robots_unreachable",
                robots_url=robots_url,
                allow=self._allow_when_unreachable,
                error=str(exc),
            )
            return None

        if not response.ok or not response.text:
            log_event(
                logger,
                logging.WARNING,
                "robots_unreadable",
                robots_url=robots_url,
                status_code=response.status_code,
                allow=self._allow_when_unreachable,
            )
            return None
        return response.text


def robots_origin(url: str) -> str:
    """Return the lowercased `scheme://host[:port]` a robots policy is keyed by."""

    parsed = urlparse(url)
    if not parsed.netloc:
        raise ValueError(f"URL has no host: {url!r}")
    return f"{parsed.scheme or 'https'}://{parsed.netloc.lower()}"
