#!/usr/bin/env python3
"""Fetch the booth sheet once and print what the API would serve.

Handy when a sheet editor reports that a booth is missing from the map:
run this against the same URLs the deployment uses and check whether the
row was dropped (no booth id above it) or merged into another booth.
"""
from __future__ import annotations

import argparse
import json
import logging
import os
from pathlib import Path

from boothmap.integrations.booths import normalize_csv
from boothmap.integrations.google_sheets_source import fetch_first_valid, resolve_candidates


def dump_booths(args: argparse.Namespace) -> dict:
    """Resolve candidates, fetch the first usable CSV and normalize it.

    Returns
    -------
    dict
        The ``{"byId": ..., "all": ...}`` payload served by ``/api/stalls``.
    """

    candidates = resolve_candidates(
        args.publish_url,
        edit_url=args.edit_url or None,
        gid=args.gid,
        override=args.src or None,
        publish_only=args.publish_only,
    )
    for url in candidates:
        print(f"candidate: {url}")

    fetched = fetch_first_valid(candidates, timeout=args.timeout)
    print(f"using: {fetched.url} ({fetched.content_type or 'no content-type'})")
    return normalize_csv(fetched.text).to_payload()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Fetch and normalize the booth spreadsheet")
    parser.add_argument("--publish-url", default=os.getenv("PUBLIC_CSV_URL", ""))
    parser.add_argument("--edit-url", default=os.getenv("PUBLIC_SHEET_EDIT_URL", ""))
    parser.add_argument("--gid", default=os.getenv("DEFAULT_GID", "0"))
    parser.add_argument("--src", default="", help="Use exactly this URL as the only candidate")
    parser.add_argument(
        "--publish-only",
        action="store_true",
        help="Skip the live query endpoint (same as force=pub)",
    )
    parser.add_argument("--timeout", type=float, default=8.0)
    parser.add_argument("--json", action="store_true", help="Print the full JSON payload")
    parser.add_argument("-o", "--output", type=Path, help="Also write the JSON payload here")
    return parser.parse_args()


def main() -> None:
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "WARNING").upper())
    args = parse_args()
    payload = dump_booths(args)
    text = json.dumps(payload, ensure_ascii=False, indent=2)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text, encoding="utf-8")
        print(f"Payload written to {args.output}")

    if args.json:
        print(text)
        return

    for booth in payload["all"]:
        print(f"{booth['id']:<8} {booth.get('name', '-'):<30} items={len(booth['items'])}")
    print(f"{len(payload['all'])} booths")


if __name__ == "__main__":
    main()
