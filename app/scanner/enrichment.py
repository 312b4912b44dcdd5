"""
Optional registry expiry lookup for domains without DNS.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Protocol

import requests

from app.scanner.config.models import WhmcsSettings
from app.scanner.logging_utils import log_event
from app.scanner.types import ExpiryInfo

logger = logging.getLogger(__name__)

REGISTRY_EXPIRY_REGEX = re.compile(
    r"Registry Expiry Date:\s*(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}Z)",
    flags=re.IGNORECASE,
)

REASON_CREDENTIALS_MISSING = "WHMCS credentials missing"
REASON_API_ERROR = "API Error"
REASON_AVAILABLE = "Available for registration"
REASON_TLD_UNSUPPORTED = "WHOIS lookup not supported for this TLD"
REASON_CALL_FAILED = "API call failed"
REASON_UNKNOWN = "Unknown reason"
REASON_DISABLED = "Lookup disabled"


class ExpiryLookup(Protocol):
    def lookup(self, domain: str) -> ExpiryInfo:
        ...


class NullExpiryLookup:
    """
    Lookup used when no registry provider is configured.
    """

    def lookup(self, domain: str) -> ExpiryInfo:
        return ExpiryInfo(reason=REASON_DISABLED)


class WhmcsExpiryLookup:
    """
    Resolves registry expiry dates through the WHMCS ``DomainWhois`` action.
    """

    def __init__(self, *, session: requests.Session, settings: WhmcsSettings) -> None:
        self._session = session
        self._settings = settings

    def lookup(self, domain: str) -> ExpiryInfo:
        if not self._settings.configured:
            return ExpiryInfo(reason=REASON_CREDENTIALS_MISSING)

        form = {
            "identifier": self._settings.identifier,
            "secret": self._settings.secret,
            "action": "DomainWhois",
            "domain": domain,
            "responsetype": "json",
        }
        try:
            response = self._session.post(
                self._settings.api_url,
                data=form,
                timeout=self._settings.timeout_seconds,
            )
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            log_event(
                logger,
                logging.ERROR,
                "whmcs_lookup_failed",
                domain=domain,
                error=str(exc),
            )
            return ExpiryInfo(reason=REASON_CALL_FAILED)

        return parse_whois_response(payload)


def parse_whois_response(payload: Any) -> ExpiryInfo:
    """
    Interpret one WHMCS ``DomainWhois`` JSON response.
    """

    if not isinstance(payload, dict):
        return ExpiryInfo(reason=REASON_UNKNOWN)
    if payload.get("result") == "error":
        return ExpiryInfo(reason=payload.get("message") or REASON_API_ERROR)
    if payload.get("status") == "available":
        return ExpiryInfo(reason=REASON_AVAILABLE)

    whois_text = payload.get("whois")
    if whois_text:
        match = REGISTRY_EXPIRY_REGEX.search(str(whois_text))
        if match:
            try:
                expires = datetime.strptime(match.group(1).upper(), "%Y-%m-%dT%H:%M:%SZ")
            except ValueError:
                return ExpiryInfo(reason=REASON_TLD_UNSUPPORTED)
            return ExpiryInfo(expiry_date=expires.date())
        return ExpiryInfo(reason=REASON_TLD_UNSUPPORTED)

    return ExpiryInfo(reason=REASON_UNKNOWN)
