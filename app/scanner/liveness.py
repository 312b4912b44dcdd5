"""
Domain liveness classifier.

Policy:

    DNS oracle              HTTP probe      status
    ----------------------  -------------   ----------
    confirmed absent        not attempted   no-dns
    present / inconclusive  reachable       ok
    present                 unreachable     http-error
    inconclusive            unreachable     dns-error

A `no-dns` verdict is optionally enriched with a registry expiry lookup;
lookup failures are recorded as the expiry reason and never change the
verdict.
"""

from __future__ import annotations

import logging

from app.scanner.dns_oracle import NXDOMAIN, DnsLivenessOracle
from app.scanner.enrichment import ExpiryLookup
from app.scanner.http_prober import HttpReachabilityProber
from app.scanner.logging_utils import log_event
from app.scanner.types import ExpiryInfo, LivenessResult, LivenessStatus

logger = logging.getLogger(__name__)


def to_ascii_domain(domain: str) -> str:
    """
    Return the IDNA (punycode) form of `domain`, lowercased.

    Raises UnicodeError for names that cannot be encoded.
    """

    normalized = domain.strip().rstrip(".").lower()
    if normalized.isascii():
        return normalized
    return normalized.encode("idna").decode("ascii")


class DomainLivenessClassifier:
    """
    Composes the DNS oracle and the HTTP prober into one verdict.
    """

    def __init__(
        self,
        *,
        dns_oracle: DnsLivenessOracle,
        http_prober: HttpReachabilityProber,
        expiry_lookup: ExpiryLookup | None = None,
    ) -> None:
        self._dns_oracle = dns_oracle
        self._http_prober = http_prober
        self._expiry_lookup = expiry_lookup

    def classify(self, domain: str) -> LivenessResult:
        try:
            ascii_domain = to_ascii_domain(domain)
        except UnicodeError:
            return LivenessResult(
                domain=domain,
                status=LivenessStatus.DNS_ERROR,
                error_code="EINVALIDNAME",
            )

        dns_result = self._dns_oracle.probe(ascii_domain)
        if dns_result.confirmed_absent:
            expiry = self._lookup_expiry(ascii_domain)
            log_event(
                logger,
                logging.INFO,
                "domain_without_dns",
                domain=ascii_domain,
                trace=[(entry.step, entry.detail) for entry in dns_result.trace],
                expiry_date=expiry.expiry_date,
                expiry_reason=expiry.reason,
            )
            return LivenessResult(
                domain=ascii_domain,
                status=LivenessStatus.NO_DNS,
                error_code=NXDOMAIN,
                expiry_date=expiry.expiry_date,
                expiry_reason=expiry.reason,
            )

        http_result = self._http_prober.probe(ascii_domain)
        if http_result.reachable:
            return LivenessResult(
                domain=ascii_domain,
                status=LivenessStatus.OK,
                http_status=http_result.status_code,
            )
        if dns_result.has_record:
            return LivenessResult(
                domain=ascii_domain,
                status=LivenessStatus.HTTP_ERROR,
                error_code=http_result.error_code,
            )
        return LivenessResult(
            domain=ascii_domain,
            status=LivenessStatus.DNS_ERROR,
            error_code=dns_result.error_code,
        )

    def _lookup_expiry(self, domain: str) -> ExpiryInfo:
        if self._expiry_lookup is None:
            return ExpiryInfo()
        try:
            return self._expiry_lookup.lookup(domain)
        except Exception as exc:
            log_event(
                logger,
                logging.WARNING,
                "expiry_lookup_failed",
                domain=domain,
                error=str(exc),
            )
            return ExpiryInfo(reason=f"Lookup failed: {exc}")
