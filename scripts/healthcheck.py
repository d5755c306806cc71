"""
Container health check for the API process.

Exits 0 when the endpoint answers with a 2xx/3xx status. Set
HEALTHCHECK_PATH=/ready to also require database connectivity.
"""

from __future__ import annotations

import os

import requests


def main() -> int:
    port = os.getenv("PORT", "8000")
    path = os.getenv("HEALTHCHECK_PATH", "/health")
    url = f"http://127.0.0.1:{port}{path}"

    try:
        response = requests.get(url, timeout=2)
    except requests.RequestException:
        return 1
    return 0 if 200 <= response.status_code < 400 else 1


if __name__ == "__main__":
    raise SystemExit(main())
