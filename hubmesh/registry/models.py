"""Registry record model and its flat field codec.

Records are stored as flat string mappings (one Redis hash per node)::

    hubmesh:nodes:<nodeId> -> {nodeId, name, url, description,
                               ipAddress, lastSeen, status, type}

``lastSeen`` is an ISO-8601 timestamp with an explicit UTC offset.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from hubmesh.registry.errors import RecordMalformed

UNKNOWN_ADDRESS = "unknown"
STATUS_HEALTHY = "healthy"
RECORD_TYPE_NODE = "node"

BALANCED_ID = "balanced"
BALANCED_NAME = "Load Balanced"
BALANCED_ADDRESS = "load-balancer"

_FRACTION = re.compile(r"\.(\d+)")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Encode *value* as ISO-8601, normalised to UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_timestamp(raw: str) -> datetime:
    """Decode an ISO-8601 timestamp. Naive values are taken as UTC.

    Raises:
        ValueError: if *raw* is not a valid ISO-8601 timestamp.
    """
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits.
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    value = datetime.fromisoformat(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class NodeRecord:
    """One live node as advertised in the registry."""

    node_id: str
    name: str = ""
    url: str = "/chathub"
    description: str = ""
    ip_address: str = UNKNOWN_ADDRESS
    last_seen: datetime = field(default_factory=utcnow)
    status: str = STATUS_HEALTHY
    type: str = RECORD_TYPE_NODE

    def to_fields(self) -> dict[str, str]:
        """Flat string mapping written to the store."""
        return {
            "nodeId": self.node_id,
            "name": self.name,
            "url": self.url,
            "description": self.description,
            "ipAddress": self.ip_address,
            "lastSeen": format_timestamp(self.last_seen),
            "status": self.status,
            "type": self.type,
        }

    @classmethod
    def from_fields(cls, key: str, data: Mapping[str, str]) -> NodeRecord:
        """Parse a stored mapping.

        Raises:
            RecordMalformed: if ``nodeId`` or ``lastSeen`` is missing, or
                ``lastSeen`` does not parse.
        """
        node_id = data.get("nodeId")
        if not node_id:
            raise RecordMalformed(key, "missing nodeId")
        raw_seen = data.get("lastSeen")
        if not raw_seen:
            raise RecordMalformed(key, "missing lastSeen")
        try:
            last_seen = parse_timestamp(raw_seen)
        except ValueError:
            raise RecordMalformed(key, f"unparseable lastSeen {raw_seen!r}") from None

        return cls(
            node_id=node_id,
            name=data.get("name", ""),
            url=data.get("url", ""),
            description=data.get("description", ""),
            ip_address=data.get("ipAddress") or UNKNOWN_ADDRESS,
            last_seen=last_seen,
            status=data.get("status", STATUS_HEALTHY),
            type=data.get("type", RECORD_TYPE_NODE),
        )

    def age(self, now: datetime) -> float:
        """Seconds since the record was last written."""
        return (now - self.last_seen).total_seconds()

    def to_entry(self) -> dict[str, Any]:
        """Shape exposed by the discovery API."""
        return {
            "id": self.node_id,
            "name": self.name,
            "url": self.url,
            "description": self.description,
            "lastSeen": format_timestamp(self.last_seen),
            "ipAddress": self.ip_address,
        }


def balanced_entry(active_count: int, url: str, now: datetime) -> dict[str, Any]:
    """Synthetic "any active node" entry placed ahead of the real nodes."""
    return {
        "id": BALANCED_ID,
        "name": BALANCED_NAME,
        "url": url,
        "description": f"Auto-balanced across {active_count} active nodes",
        "lastSeen": format_timestamp(now),
        "ipAddress": BALANCED_ADDRESS,
    }
