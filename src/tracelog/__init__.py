"""
Request-tracing logger.

Attaches transaction/trace ids, service name and route to an immutable
per-request carrier, emits START/STOP lines with computed durations, and
mirrors every line to a colored console and a plain-text file.

Library: structlog processor chain feeding a dual-sink writer.
"""

from .adapters import (
    RequestAdapter,
    StarletteRequestAdapter,
    WsgiRequestAdapter,
    adapt_request,
    buffer_wsgi_body,
    carrier_from_request,
)
from .carrier import EMPTY_CARRIER, CarrierKey, FieldCarrier, ensure_carrier
from .core import TraceLogger
from .errors import ConfigurationError, SinkClosedError, TraceLogError
from .formatters import LogEntry, LogFlag, LogLevel
from .identity import UNKNOWN, HostFacts, new_id
from .lifecycle import StartConfig
from .middleware import MiddlewareConfig, TraceMiddleware, WsgiTraceMiddleware
from .sinks import SinkMode

__all__ = [
    "TraceLogger",
    "StartConfig",
    "FieldCarrier",
    "CarrierKey",
    "EMPTY_CARRIER",
    "ensure_carrier",
    "LogLevel",
    "LogFlag",
    "LogEntry",
    "SinkMode",
    "HostFacts",
    "new_id",
    "UNKNOWN",
    "RequestAdapter",
    "StarletteRequestAdapter",
    "WsgiRequestAdapter",
    "adapt_request",
    "buffer_wsgi_body",
    "carrier_from_request",
    "MiddlewareConfig",
    "TraceMiddleware",
    "WsgiTraceMiddleware",
    "ConfigurationError",
    "SinkClosedError",
    "TraceLogError",
]
