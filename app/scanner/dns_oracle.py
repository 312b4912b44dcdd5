"""
Layered DNS presence checks for outbound domains.

A single query type gives false negatives on zones with partial
misconfiguration (a working CNAME with a broken apex A record, IPv6-only
hosts, resolvers that refuse one record type). The oracle therefore runs
several queries in order and stops at the first one that answers:

  1. combined address lookup (A and AAAA, follows aliases)
  2. explicit A query
  3. explicit AAAA query
  4. CNAME query, then A/AAAA lookup of the alias target
  5. ANY query, used to tell failure kinds apart

Only an NXDOMAIN from step 5 marks a domain as confirmed absent. Timeouts,
SERVFAIL/REFUSED and other resolver trouble leave the verdict inconclusive.
Every step, the combined lookup included, goes through the same resolver
and is bounded by `timeout_seconds`.
"""

from __future__ import annotations

import logging
import socket
from collections.abc import Callable, Iterable
from typing import Any

import dns.exception
import dns.name
import dns.resolver

from app.scanner.logging_utils import log_event
from app.scanner.types import DnsProbeResult, DnsTraceEntry

logger = logging.getLogger(__name__)

AddressLookup = Callable[[str], list[str]]

NXDOMAIN = "NXDOMAIN"


def classify_dns_error(exc: BaseException) -> str:
    """
    Map resolver exceptions onto stable error codes.
    """

    if isinstance(exc, dns.resolver.NXDOMAIN):
        return NXDOMAIN
    if isinstance(exc, dns.resolver.NoAnswer):
        return "NODATA"
    if isinstance(exc, dns.exception.Timeout):
        return "ETIMEOUT"
    if isinstance(exc, dns.resolver.NoNameservers):
        return "ESERVFAIL"
    if isinstance(exc, (dns.name.NameTooLong, dns.name.LabelTooLong, dns.name.EmptyLabel)):
        return "EINVALIDNAME"
    if isinstance(exc, socket.gaierror):
        if exc.errno == socket.EAI_NONAME:
            return "ENOTFOUND"
        if exc.errno == socket.EAI_AGAIN:
            return "EAI_AGAIN"
        return "EUNKNOWN"
    if isinstance(exc, UnicodeError):
        return "EINVALIDNAME"
    return "EUNKNOWN"


class DnsLivenessOracle:
    """
    Classifies a domain as present, confirmed absent, or inconclusive.
    """

    def __init__(
        self,
        *,
        resolver: Any | None = None,
        timeout_seconds: float = 5.0,
        address_lookup: AddressLookup | None = None,
    ) -> None:
        self._resolver = resolver if resolver is not None else dns.resolver.Resolver()
        self._timeout_seconds = timeout_seconds
        self._address_lookup = address_lookup or self._lookup_addresses

    def probe(self, domain: str) -> DnsProbeResult:
        trace: list[DnsTraceEntry] = []

        if self._run_step(trace, "lookup", "ADDR", lambda: self._address_lookup(domain)):
            return self._finish(domain, trace, has_record=True, confirmed_absent=False)
        if self._run_step(trace, "a", "A", lambda: self._query(domain, "A")):
            return self._finish(domain, trace, has_record=True, confirmed_absent=False)
        if self._run_step(trace, "aaaa", "AAAA", lambda: self._query(domain, "AAAA")):
            return self._finish(domain, trace, has_record=True, confirmed_absent=False)
        if self._run_step(trace, "cname", "CNAME", lambda: self._resolve_alias(domain)):
            return self._finish(domain, trace, has_record=True, confirmed_absent=False)

        try:
            answers = self._query(domain, "ANY")
        except Exception as exc:
            code = classify_dns_error(exc)
            trace.append(DnsTraceEntry(step="any", query="ANY", ok=False, detail=code))
            return self._finish(
                domain,
                trace,
                has_record=False,
                confirmed_absent=code == NXDOMAIN,
            )

        if not answers:
            trace.append(DnsTraceEntry(step="any", query="ANY", ok=False, detail="NODATA"))
            return self._finish(domain, trace, has_record=False, confirmed_absent=False)
        trace.append(DnsTraceEntry(step="any", query="ANY", ok=True, detail=tuple(answers)))
        return self._finish(domain, trace, has_record=True, confirmed_absent=False)

    def _run_step(
        self,
        trace: list[DnsTraceEntry],
        step: str,
        query: str,
        action: Callable[[], Iterable[str]],
    ) -> bool:
        try:
            answers = tuple(action())
        except Exception as exc:
            trace.append(
                DnsTraceEntry(step=step, query=query, ok=False, detail=classify_dns_error(exc))
            )
            return False
        if not answers:
            trace.append(DnsTraceEntry(step=step, query=query, ok=False, detail="NODATA"))
            return False
        trace.append(DnsTraceEntry(step=step, query=query, ok=True, detail=answers))
        return True

    def _lookup_addresses(self, domain: str) -> list[str]:
        answers = self._resolver.resolve_name(domain, lifetime=self._timeout_seconds)
        return sorted(set(answers.addresses()))

    def _query(self, name: str, rdtype: str) -> list[str]:
        answer = self._resolver.resolve(name, rdtype, lifetime=self._timeout_seconds)
        return [rdata.to_text() for rdata in answer]

    def _resolve_alias(self, domain: str) -> list[str]:
        answer = self._resolver.resolve(domain, "CNAME", lifetime=self._timeout_seconds)
        addresses: list[str] = []
        for rdata in answer:
            target = str(rdata.target).rstrip(".")
            for rdtype in ("A", "AAAA"):
                try:
                    addresses.extend(self._query(target, rdtype))
                except dns.exception.DNSException:
                    continue
        return addresses

    @staticmethod
    def _finish(
        domain: str,
        trace: list[DnsTraceEntry],
        *,
        has_record: bool,
        confirmed_absent: bool,
    ) -> DnsProbeResult:
        result = DnsProbeResult(
            has_record=has_record,
            confirmed_absent=confirmed_absent,
            trace=tuple(trace),
        )
        log_event(
            logger,
            logging.DEBUG,
            "dns_probe_finished",
            domain=domain,
            has_record=has_record,
            confirmed_absent=confirmed_absent,
            trace=[(entry.step, entry.ok, entry.detail) for entry in trace],
        )
        return result
