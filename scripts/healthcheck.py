"""
Container health check for the scanner API.

Exits 0 only when ``/health`` answers with ``{"status": "ok"}``.
"""

from __future__ import annotations

import os

import requests


def main() -> int:
    port = os.getenv("PORT", "8000")
    url = os.getenv("HEALTHCHECK_URL", f"http://127.0.0.1:{port}/health")

    try:
        response = requests.get(url, timeout=2)
        payload = response.json()
    except (requests.RequestException, ValueError):
        return 1
    healthy = response.ok and isinstance(payload, dict) and payload.get("status") == "ok"
    return 0 if healthy else 1


if __name__ == "__main__":
    raise SystemExit(main())
