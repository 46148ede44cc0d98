"""
Identifier and host facts provider.

Every lookup here degrades to ``UNKNOWN`` instead of raising, so a broken
clock or resolver never stops a log line from being written.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass

import uuid_utils

UNKNOWN = "unknown"

# Only used to pick the outbound interface; UDP connect() sends no packets.
_PROBE_ADDRESS = ("8.8.8.8", 80)


def new_id() -> str:
    """Return a time-ordered UUIDv7 string, or ``UNKNOWN`` if generation fails."""
    try:
        return str(uuid_utils.uuid7())
    except Exception:
        return UNKNOWN


def host_name() -> str:
    try:
        name = socket.gethostname()
    except OSError:
        return UNKNOWN
    return name or UNKNOWN


def outbound_ip() -> str:
    """Discover the local address the OS would route public traffic through."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(_PROBE_ADDRESS)
            return sock.getsockname()[0]
    except OSError:
        return UNKNOWN


@dataclass(frozen=True)
class HostFacts:
    """Host name and outbound IP, resolved once per logger."""

    host_name: str = UNKNOWN
    ip_address: str = UNKNOWN

    @classmethod
    def discover(cls) -> HostFacts:
        return cls(host_name=host_name(), ip_address=outbound_ip())
