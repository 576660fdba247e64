#!/usr/bin/env python3
from __future__ import annotations

import os
import sys
import time

import httpx


def main() -> int:
    base_url = os.getenv("PLACELORE_API_URL", "http://localhost:8000").rstrip("/")
    try:
        with httpx.Client(base_url=base_url, timeout=5.0) as client:
            health = client.get("/healthz")
            health.raise_for_status()
            print("/healthz:", health.text)
            # Give the service a moment to finish boot
            time.sleep(0.5)
            live = client.get("/livez")
            live.raise_for_status()
            print("/livez:", live.text)
            selection = client.get("/selection")
            selection.raise_for_status()
            print("/selection:", selection.json().get("state"))
    except httpx.HTTPError as exc:
        print(f"Compose smoke failed: {exc}", file=sys.stderr)
        return 1
    print("Compose smoke passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
