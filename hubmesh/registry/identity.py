"""Node identity and outbound address resolution."""

from __future__ import annotations

import logging
import socket
import uuid
from typing import Callable

from hubmesh.registry.models import UNKNOWN_ADDRESS

logger = logging.getLogger(__name__)

# Returns the node's reachable address, or UNKNOWN_ADDRESS.
AddressResolver = Callable[[], str]

_PROBE_TARGET = ("8.8.8.8", 80)


def generate_node_id(hostname: str | None = None) -> str:
    """Build a per-instance identity: ``<hostname>-<8 hex chars>``.

    The random suffix keeps two processes that share a hostname (e.g. a
    container restarted under the same name) from overwriting each other.
    """
    host = hostname or socket.gethostname() or "node"
    return f"{host}-{uuid.uuid4().hex[:8]}"


def resolve_node_id(configured: str | None = None) -> str:
    """Return *configured* when set, else a freshly generated identity."""
    if configured:
        return configured
    return generate_node_id()


def resolve_outbound_address() -> str:
    """Best-effort address of the interface used for outbound traffic.

    Connecting a UDP socket sends no packets; it only makes the kernel pick
    a route and local address.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.settimeout(2)
            s.connect(_PROBE_TARGET)
            return s.getsockname()[0]
    except OSError as exc:
        logger.debug("Outbound address lookup failed: %s", exc)
        return UNKNOWN_ADDRESS


def static_address(address: str) -> AddressResolver:
    """Resolver that always answers *address* (explicit configuration)."""
    return lambda: address
