"""
Exception taxonomy for tracelog.

Identity lookups (ids, host name, outbound IP) never raise; they degrade to
the ``"unknown"`` sentinel instead. Only construction and closed-sink writes
surface errors to the caller.
"""

from __future__ import annotations


class TraceLogError(Exception):
    """Base class for tracelog errors."""


class ConfigurationError(TraceLogError, ValueError):
    """Invalid sink mode/path combination, or the log file could not be opened."""


class SinkClosedError(TraceLogError, RuntimeError):
    """A write was attempted on a sink after it was closed."""

    def __init__(self, sink_name: str):
        super().__init__(f"cannot write to closed sink: {sink_name}")
        self.sink_name = sink_name
