"""
Scanner exception hierarchy and transport error classification.
"""

from __future__ import annotations

import requests


class ScannerError(Exception):
    """Base exception for scanner failures."""


class InvalidSeedUrlError(ScannerError, ValueError):
    """Raised when a scan request carries an unusable seed URL."""


class ScanAlreadyRunningError(ScannerError):
    """Raised when a site already has an active scan in this process."""


class CheckpointPersistenceError(ScannerError):
    """Raised when the scan checkpoint cannot be read or written."""


class ResultPersistenceError(ScannerError):
    """Raised when a liveness result cannot be written."""


class PageFetchError(ScannerError):
    """
    Raised when one page cannot be fetched.

    `error_code` is a short classification such as ``ETIMEDOUT`` or
    ``HTTP_404`` that ends up in page events.
    """

    def __init__(self, url: str, error_code: str, message: str) -> None:
        super().__init__(f"{url}: {message}")
        self.url = url
        self.error_code = error_code


def classify_request_error(exc: requests.RequestException) -> str:
    """
    Map a requests exception onto a stable error code.
    """

    # SSLError and ConnectTimeout both subclass ConnectionError; order matters.
    if isinstance(exc, requests.exceptions.SSLError):
        return "ECERT"
    if isinstance(exc, requests.Timeout):
        return "ETIMEDOUT"
    if isinstance(exc, requests.TooManyRedirects):
        return "ETOOMANYREDIRECTS"
    if isinstance(exc, requests.ConnectionError):
        return "ECONNECTION"
    return "EREQUEST"
