from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
import urllib.request
import urllib.error


DEFAULT_BASE_URL = os.getenv("MEDIA_BASE_URL", "http://localhost:5000")
DEFAULT_API_KEY = os.getenv("MEDIA_API_KEY", "")

DEFAULT_TIMEOUT_SECONDS = 120

COLLECTIONS = ("gallery", "projects")


def http_post(url: str, api_key: str) -> dict[str, Any]:
    req = urllib.request.Request(
        url=url,
        data=b"",
        method="POST",
        headers={"X-API-Key": api_key},
    )
    try:
        with urllib.request.urlopen(req, timeout=DEFAULT_TIMEOUT_SECONDS) as resp:
            raw = resp.read().decode("utf-8")
            return json.loads(raw) if raw else {}
    except urllib.error.HTTPError as e:
        body = ""
        try:
            body = e.read().decode("utf-8")
        except OSError:
            body = ""
        print(f"HTTP {e.code} {e.reason} for {url}", file=sys.stderr)
        if body:
            print(body, file=sys.stderr)
        return {"error": {"status": e.code, "reason": e.reason, "body": body}}
    except urllib.error.URLError as e:
        print(f"Network error for {url}: {e}", file=sys.stderr)
        return {"error": {"reason": str(e)}}


def main() -> int:
    parser = argparse.ArgumentParser(description="Remove media records whose image file is gone.")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--api-key", default=DEFAULT_API_KEY)
    parser.add_argument("--collection", choices=COLLECTIONS, action="append")
    args = parser.parse_args()

    failed = False
    for collection in args.collection or COLLECTIONS:
        url = f"{args.base_url.rstrip('/')}/v1/{collection}/cleanup"
        result = http_post(url, args.api_key)
        if "error" in result:
            failed = True
            continue
        print(f"{collection}: removed {result.get('data', {}).get('count', 0)} records")

    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
