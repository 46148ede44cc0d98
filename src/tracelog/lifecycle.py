"""
START/STOP lifecycle helpers.

The logger keeps no side table for in-flight requests: everything a STOP
needs (ids, route, start time) travels on the carrier returned by START.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from .carrier import FieldCarrier, ensure_carrier
from .formatters import NO_DURATION, LogLevel
from .identity import new_id

DEFAULT_START_LEVEL = LogLevel.INFO
DEFAULT_START_MESSAGE = "Request started"
DEFAULT_STOP_LEVEL = LogLevel.SUCCESS
DEFAULT_STOP_MESSAGE = "Request completed"


@dataclass(frozen=True)
class StartConfig:
    """How to seed a new lifecycle. Empty fields fall back to defaults."""

    service_name: str = ""
    endpoint: str = ""
    method: str = ""
    transaction_id: str = ""
    trace_id: str = ""
    body: Any = ""
    message: str = ""
    level: LogLevel | str = ""


def seed_carrier(
    carrier: Optional[FieldCarrier],
    config: StartConfig,
    now: datetime,
    clock_ns: Optional[int] = None,
) -> FieldCarrier:
    """Layer ids, route and start time from ``config`` onto ``carrier``."""
    transaction_id = config.transaction_id or new_id()
    seeded = ensure_carrier(carrier).with_unique_id(transaction_id).with_transaction_id(transaction_id)

    if config.service_name:
        seeded = seeded.with_service_name(config.service_name)
    if config.endpoint:
        seeded = seeded.with_endpoint(config.endpoint)
    if config.method:
        seeded = seeded.with_method(config.method)
    if config.trace_id:
        seeded = seeded.with_trace_id(config.trace_id)

    return seeded.with_start_time(now, clock_ns)


def execution_time(carrier: Optional[FieldCarrier], now: datetime, clock_ns: Optional[int] = None) -> str:
    """Whole milliseconds since the carrier's start time, or ``"0ms"`` if untimed.

    Measured on the monotonic clock when both readings exist; the wall clock
    is only the fallback for carriers stamped without one.
    """
    carrier = ensure_carrier(carrier)
    start_time, ok = carrier.get_start_time()
    if not ok or start_time is None:
        return NO_DURATION
    start_clock = carrier.get_start_clock()
    if clock_ns is not None and start_clock is not None:
        return f"{(clock_ns - start_clock) // 1_000_000}ms"
    return f"{(now - start_time) // timedelta(milliseconds=1)}ms"


def level_for_status(status_code: int) -> LogLevel:
    if status_code >= 400:
        return LogLevel.ERROR
    if status_code >= 300:
        return LogLevel.WARNING
    return LogLevel.SUCCESS
