"""
Log line layouts and color utilities.

Two fixed layouts are rendered here; both are treated as a wire contract by
downstream log parsers, so field order must stay stable:

- simple:    [ts] [LEVEL] [id] [host@ip] [file:line:function] message
- mandatory: [ts] | [LEVEL] | [FLAG] | Service: x | [METHOD] /path | TxnID: x | ... | → message
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

import orjson

from .identity import UNKNOWN

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
SEPARATOR = " | "
NO_DURATION = "0ms"


class LogLevel(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    SUCCESS = "SUCCESS"
    INFO = "INFO"


class LogFlag(str, Enum):
    START = "START"
    STOP = "STOP"


# =============================================================================
# ANSI Color Codes
# =============================================================================

RESET = "\033[0m"

LEVEL_COLORS = {
    "ERROR": "\033[31m",  # Red
    "WARNING": "\033[33m",  # Yellow
    "SUCCESS": "\033[32m",  # Green
    "INFO": "\033[36m",  # Cyan
}

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


def colorize(text: str, level: str) -> str:
    """Wrap a whole line in the color of its level; unknown levels stay plain."""
    color = LEVEL_COLORS.get(level_name(level).upper())
    if not color:
        return text
    return f"{color}{text}{RESET}"


def strip_ansi(text: str) -> str:
    return _ANSI_ESCAPE.sub("", text)


def format_timestamp(moment: datetime) -> str:
    """Local time with millisecond precision: ``2024-01-31 13:45:01.123``."""
    return f"{moment.strftime(TIMESTAMP_FORMAT)}.{moment.microsecond // 1000:03d}"


def level_name(level: Any) -> str:
    if isinstance(level, Enum):
        return str(level.value)
    return str(level)


def stringify_body(body: Any) -> str:
    """Render a payload for the ``Body:`` segment."""
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body).decode("utf-8", errors="replace")
    return orjson.dumps(body, default=str).decode()


# =============================================================================
# Simple Layout
# =============================================================================


def format_simple(
    *,
    timestamp: str,
    level: str,
    unique_id: str,
    host_name: str,
    ip_address: str,
    filename: str,
    lineno: int,
    func_name: str,
    message: str,
) -> str:
    return (
        f"[{timestamp}] [{level}] [{unique_id}] [{host_name}@{ip_address}] "
        f"[{filename}:{lineno}:{func_name}] {message}"
    )


# =============================================================================
# Mandatory Layout
# =============================================================================


@dataclass(frozen=True)
class LogEntry:
    """Projection of a carrier plus call arguments, rendered once and discarded."""

    timestamp: str
    level: str
    message: str
    transaction_id: str = ""
    service_name: str = UNKNOWN
    endpoint: str = UNKNOWN
    method: str = UNKNOWN
    execution_time: str = NO_DURATION
    server_ip: str = UNKNOWN
    trace_id: str = ""
    body: str = ""
    flag: str = ""


def _route_segment(method: str, endpoint: str) -> str | None:
    if method != UNKNOWN and endpoint != UNKNOWN:
        return f"[{method}] {endpoint}"
    if method != UNKNOWN:
        return f"Method: {method}"
    if endpoint != UNKNOWN:
        return f"Route: {endpoint}"
    return None


def format_mandatory(entry: LogEntry) -> str:
    parts = [f"[{entry.timestamp}]", f"[{entry.level}]"]

    if entry.flag:
        parts.append(f"[{entry.flag}]")

    parts.append(f"Service: {entry.service_name}")

    route = _route_segment(entry.method, entry.endpoint)
    if route:
        parts.append(route)

    if entry.transaction_id:
        parts.append(f"TxnID: {entry.transaction_id}")
    if entry.trace_id and entry.trace_id != entry.transaction_id:
        parts.append(f"TraceID: {entry.trace_id}")

    # "0ms" marks an untimed entry, so a zero duration is never shown.
    if entry.execution_time and entry.execution_time != NO_DURATION:
        parts.append(f"Duration: {entry.execution_time}")

    parts.append(f"IP: {entry.server_ip}")

    if entry.body:
        parts.append(f"Body: {entry.body}")

    parts.append(f"→ {entry.message}")
    return SEPARATOR.join(parts)
