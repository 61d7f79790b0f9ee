from __future__ import annotations

import argparse
import os
import sys

from app.core.security import generate_api_key


def main() -> int:
    parser = argparse.ArgumentParser(description="Mint an admin API key and print the hash for ADMIN_API_KEY_HASH.")
    parser.add_argument("--pepper", default=os.getenv("API_KEY_PEPPER", ""), help="defaults to $API_KEY_PEPPER")
    args = parser.parse_args()

    if not args.pepper:
        print("API_KEY_PEPPER is not set (pass --pepper)", file=sys.stderr)
        return 2

    key = generate_api_key(args.pepper)
    print(f"X-API-Key:          {key.plain}")
    print(f"ADMIN_API_KEY_HASH={key.hashed}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
