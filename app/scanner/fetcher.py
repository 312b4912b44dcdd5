"""
Page fetch and link extraction.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urljoin, urlsplit

import requests
from bs4 import BeautifulSoup

from app.scanner.errors import InvalidSeedUrlError, PageFetchError, classify_request_error

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")
CRAWLABLE_SCHEMES = {"http", "https"}
_DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class SiteIdentity:
    """
    Site a scan is bound to: its hostname and its origin.
    """

    hostname: str
    origin: str


@dataclass
class PartitionedLinks:
    internal: list[str] = field(default_factory=list)
    outbound_hosts: list[str] = field(default_factory=list)


def origin_of(url: str) -> str | None:
    """
    Return ``scheme://host[:port]`` for `url`, omitting default ports.
    """

    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in CRAWLABLE_SCHEMES or not host:
        return None
    if port is None or port == _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def site_identity(start_url: str) -> SiteIdentity:
    """
    Validate a seed URL and derive the site it belongs to.
    """

    origin = origin_of(start_url.strip()) if start_url else None
    if origin is None:
        raise InvalidSeedUrlError(f"Invalid startUrl: {start_url!r}")
    hostname = urlsplit(start_url.strip()).hostname or ""
    return SiteIdentity(hostname=hostname.lower(), origin=origin)


def normalize_link(base_url: str, href: str) -> str | None:
    """
    Resolve `href` against `base_url`; return None when it is unusable.

    Fragments are dropped so ``/a#top`` and ``/a`` are one page.
    """

    candidate = (href or "").strip()
    if not candidate:
        return None
    try:
        absolute = urljoin(base_url, candidate)
        absolute, _fragment = urldefrag(absolute)
    except ValueError:
        return None
    if origin_of(absolute) is None:
        return None
    return absolute


def partition_links(links: Iterable[str], *, site: SiteIdentity) -> PartitionedLinks:
    """
    Split absolute links into same-origin pages and outbound hostnames.

    Links to the site's own hostname on another scheme or port are neither:
    they are not crawled and not checked.
    """

    partitioned = PartitionedLinks()
    seen_hosts: set[str] = set()
    for link in links:
        origin = origin_of(link)
        if origin is None:
            continue
        if origin == site.origin:
            partitioned.internal.append(link)
            continue
        host = (urlsplit(link).hostname or "").lower()
        if not host or host == site.hostname or host in seen_hosts:
            continue
        seen_hosts.add(host)
        partitioned.outbound_hosts.append(host)
    return partitioned


def extract_links(*, html: str, base_url: str) -> list[str]:
    """
    Return absolute URLs for every usable ``a[href]`` in `html`, in order.
    """

    soup = BeautifulSoup(html, "html.parser")
    base_tag = soup.find("base", href=True)
    if base_tag is not None:
        base_url = normalize_link(base_url, str(base_tag["href"])) or base_url

    links: list[str] = []
    seen: set[str] = set()
    for anchor in soup.select("a[href]"):
        absolute = normalize_link(base_url, str(anchor.get("href", "")))
        if absolute is None or absolute in seen:
            continue
        seen.add(absolute)
        links.append(absolute)
    return links


class PageFetcher:
    """
    Fetches one page and returns the links found on it.
    """

    def __init__(
        self,
        *,
        session: requests.Session,
        timeout_seconds: float = 10.0,
        user_agent: str = "ExpiredBot",
    ) -> None:
        self._session = session
        self._timeout_seconds = timeout_seconds
        self._headers = {"User-Agent": user_agent}

    def fetch_and_extract(self, url: str) -> list[str]:
        try:
            response = self._session.get(
                url,
                headers=self._headers,
                timeout=self._timeout_seconds,
                allow_redirects=True,
            )
        except requests.RequestException as exc:
            raise PageFetchError(url, classify_request_error(exc), str(exc)) from exc

        if response.status_code >= 400:
            raise PageFetchError(
                url,
                f"HTTP_{response.status_code}",
                f"HTTP status {response.status_code}",
            )

        content_type = (response.headers.get("Content-Type") or "").lower()
        if content_type and not content_type.startswith(HTML_CONTENT_TYPES):
            return []

        # Relative links resolve against the requested URL, not the redirect
        # target, so they stay on the scanned origin.
        return extract_links(html=response.text, base_url=url)
