"""hubmesh.nodes — query the active node set from the command line.

Two sources:
  - a running node's ``/nodes`` endpoint (HTTP, via httpx)
  - the registry store directly (same algorithm the server runs)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from hubmesh.config import Settings
from hubmesh.registry import DiscoveryReader
from hubmesh.registry.models import format_timestamp, utcnow
from hubmesh.stores import store_from_settings

logger = logging.getLogger(__name__)

CLI_IDENTITY = "hubmesh-cli"


async def fetch_nodes(base_url: str, timeout: float = 5.0) -> dict[str, Any]:
    """GET ``<base_url>/nodes`` and return the decoded payload.

    Raises:
        httpx.HTTPError: on connection failure or a non-2xx status.
    """
    url = f"{base_url.rstrip('/')}/nodes"
    async with httpx.AsyncClient(timeout=timeout) as client:
        resp = await client.get(url)
        resp.raise_for_status()
        return resp.json()


async def query_registry(settings: Settings, raw: bool = False) -> dict[str, Any]:
    """Run discovery against the store named by *settings*.

    With *raw*, every record still present in the store is listed with its
    age, including records already past the staleness threshold.

    Raises:
        StoreUnavailable: if the store cannot be reached.
    """
    store = store_from_settings(settings)
    reader = DiscoveryReader(store, settings, current_node=CLI_IDENTITY)
    try:
        if not raw:
            result = await reader.discover()
            return result.to_dict(include_skipped=True)

        records, skipped = await reader.scan()
        now = utcnow()
        return {
            "records": [
                {
                    **r.to_entry(),
                    "age_seconds": round(r.age(now), 1),
                    "stale": r.age(now) >= settings.stale_after,
                }
                for r in records
            ],
            "skipped_records": skipped,
            "timestamp": format_timestamp(now),
        }
    finally:
        await store.aclose()


def format_table(data: dict[str, Any]) -> str:
    """Render a ``/nodes`` or raw payload as a plain-text table."""
    rows = data.get("available_nodes")
    raw = rows is None
    if raw:
        rows = data.get("records", [])

    lines = []
    if raw:
        lines.append(f"{'ID':<32} {'ADDRESS':<16} {'AGE':>7}  STATE")
        for r in rows:
            state = "stale" if r["stale"] else "active"
            lines.append(
                f"{r['id']:<32} {r['ipAddress']:<16} {r['age_seconds']:>6.1f}s  {state}"
            )
    else:
        lines.append(f"{'ID':<32} {'ADDRESS':<16} LAST SEEN")
        for r in rows:
            lines.append(f"{r['id']:<32} {r['ipAddress']:<16} {_short_time(r['lastSeen'])}")
        lines.append("")
        lines.append(
            f"{data.get('active_count', 0)} active node(s), "
            f"answered by {data.get('current_node', '?')}"
        )

    skipped = data.get("skipped_records") or []
    if skipped:
        lines.append(f"{len(skipped)} malformed record(s) skipped: {', '.join(skipped)}")
    return "\n".join(lines)


def _short_time(value: str) -> str:
    try:
        return datetime.fromisoformat(value).strftime("%H:%M:%S")
    except ValueError:
        return value
