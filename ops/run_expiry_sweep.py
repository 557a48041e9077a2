from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
import urllib.request
import urllib.error


DEFAULT_BASE_URL = os.getenv("ENGINE_BASE_URL", "http://localhost:8000")
DEFAULT_ADMIN_KEY = os.getenv("INTERNAL_ADMIN_KEY", "")

DEFAULT_TIMEOUT_SECONDS = 300

ACTIONS = {
    "sweep": "/v1/internal/expiry-sweep",
    "dispatch": "/v1/internal/outbox/dispatch",
}


def http_post(url: str, admin_key: str) -> dict[str, Any]:
    req = urllib.request.Request(
        url=url,
        data=b"{}",
        method="POST",
        headers={
            "Content-Type": "application/json",
            "X-Internal-Admin-Key": admin_key,
        },
    )
    try:
        with urllib.request.urlopen(req, timeout=DEFAULT_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        body = e.read().decode("utf-8", errors="replace")
        print(f"HTTP {e.code} {e.reason} for {url}", file=sys.stderr)
        if body:
            print(body, file=sys.stderr)
        return {"error": {"status": e.code, "reason": e.reason, "body": body}}
    except urllib.error.URLError as e:
        print(f"Network error for {url}: {e}", file=sys.stderr)
        return {"error": {"reason": str(e)}}


def main() -> int:
    p = argparse.ArgumentParser(description="Trigger the listing expiry sweep (or an outbox dispatch) on a running engine.")
    p.add_argument("action", nargs="?", choices=sorted(ACTIONS), default="sweep")
    p.add_argument("--base-url", default=DEFAULT_BASE_URL)
    p.add_argument("--admin-key", default=DEFAULT_ADMIN_KEY, help="X-Internal-Admin-Key (or INTERNAL_ADMIN_KEY env)")
    args = p.parse_args()

    if not args.admin_key:
        print("Missing internal admin key (use --admin-key or INTERNAL_ADMIN_KEY)", file=sys.stderr)
        return 2

    url = args.base_url.rstrip("/") + ACTIONS[args.action]
    result = http_post(url, args.admin_key)
    print(json.dumps(result, indent=2, sort_keys=True))
    return 1 if "error" in result else 0


if __name__ == "__main__":
    raise SystemExit(main())
