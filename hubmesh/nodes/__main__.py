"""hubmesh node listing entry point.

Usage::

    python -m hubmesh.nodes [--url URL | --redis URL] [--raw] [--json]
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import sys

import httpx

from hubmesh.config import Settings
from hubmesh.nodes import fetch_nodes, format_table, query_registry
from hubmesh.registry import StoreUnavailable


def main() -> None:
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    parser = argparse.ArgumentParser(
        prog="python -m hubmesh.nodes",
        description="List the active hubmesh nodes",
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--url",
        default="http://localhost:5200",
        help="Base URL of any running node (default: http://localhost:5200)",
    )
    source.add_argument(
        "--redis",
        metavar="URL",
        default=None,
        help="Read the registry directly from this Redis URL instead",
    )
    parser.add_argument(
        "--raw",
        action="store_true",
        help="With --redis: list every stored record, stale ones included",
    )
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    args = parser.parse_args()

    if args.raw and not args.redis:
        parser.error("--raw requires --redis")

    try:
        if args.redis:
            settings = dataclasses.replace(Settings.from_env(), store="redis", redis_url=args.redis)
            data = asyncio.run(query_registry(settings, raw=args.raw))
        else:
            data = asyncio.run(fetch_nodes(args.url))
    except (httpx.HTTPError, StoreUnavailable, ValueError) as exc:
        # ValueError: invalid HUBMESH_* settings.
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps(data, indent=2))
    else:
        print(format_table(data))


if __name__ == "__main__":
    main()
