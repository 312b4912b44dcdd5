"""
HTTP reachability probe for bare domains.
"""

from __future__ import annotations

import logging

import requests

from app.scanner.errors import classify_request_error
from app.scanner.logging_utils import log_event
from app.scanner.types import HttpProbeResult

logger = logging.getLogger(__name__)

PROBE_SCHEMES = ("https", "http")


class HttpReachabilityProber:
    """
    Tries HTTPS then HTTP; any response at all counts as reachable.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        timeout_seconds: float = 8.0,
        user_agent: str = "ExpiredBot",
    ) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._headers = {"User-Agent": user_agent}

    def probe(self, domain: str) -> HttpProbeResult:
        error_code: str | None = None
        for scheme in PROBE_SCHEMES:
            url = f"{scheme}://{domain}"
            try:
                response = self._session.get(
                    url,
                    headers=self._headers,
                    timeout=self._timeout_seconds,
                    allow_redirects=True,
                    stream=True,
                )
            except requests.RequestException as exc:
                error_code = classify_request_error(exc)
                log_event(
                    logger,
                    logging.DEBUG,
                    "http_probe_failed",
                    domain=domain,
                    url=url,
                    error_code=error_code,
                    error=str(exc),
                )
                continue

            # Only the status line matters; skip downloading the body.
            response.close()
            return HttpProbeResult(
                reachable=True,
                status_code=response.status_code,
                url=url,
            )

        return HttpProbeResult(reachable=False, error_code=error_code)
