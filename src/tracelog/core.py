"""
Logger facade.

``TraceLogger`` owns the sink configuration and cached host facts. Every log
call runs synchronously through a structlog processor chain:

    add_timestamp -> add_callsite (simple layout only) -> render_lines -> DualSinkWriter.emit

The last processor returns the keyword arguments for ``DualSinkWriter.emit``
so the wrapped "logger" structlog proxies to is the writer itself.
"""

from __future__ import annotations

import time
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import TYPE_CHECKING, Any, Optional, TextIO

import structlog
from structlog.typing import EventDict, WrappedLogger

from .carrier import CarrierKey, FieldCarrier, ensure_carrier
from .formatters import (
    LogEntry,
    LogFlag,
    LogLevel,
    colorize,
    format_mandatory,
    format_simple,
    format_timestamp,
    level_name,
    stringify_body,
)
from .identity import UNKNOWN, HostFacts, new_id
from .lifecycle import (
    DEFAULT_START_LEVEL,
    DEFAULT_START_MESSAGE,
    DEFAULT_STOP_LEVEL,
    DEFAULT_STOP_MESSAGE,
    StartConfig,
    execution_time,
    seed_carrier,
)
from .sinks import DualSinkWriter, SinkMode

if TYPE_CHECKING:
    from .adapters import RequestAdapter
    from .config import LoggingSettings

SIMPLE_LAYOUT = "simple"
MANDATORY_LAYOUT = "mandatory"


# =============================================================================
# Structlog Processors
# =============================================================================


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the event unless the caller already fixed the time."""
    event_dict.setdefault("timestamp", format_timestamp(datetime.now()))
    return event_dict


class CallsiteAdder:
    """Capture file/line/function of the application frame for simple-layout events.

    Frames inside structlog and this package are skipped, so the captured call
    site is the caller of the ``TraceLogger`` method.
    """

    def __init__(self) -> None:
        self._adder = structlog.processors.CallsiteParameterAdder(
            parameters={
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            },
            additional_ignores=[f"{__package__}."],
        )

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        if event_dict.get("layout") != SIMPLE_LAYOUT:
            return event_dict
        return self._adder(logger, method_name, event_dict)


def render_lines(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> dict[str, str]:
    """Render the event into colored and plain lines for the writer."""
    level = event_dict["level"]

    if event_dict.get("layout") == SIMPLE_LAYOUT:
        line = format_simple(
            timestamp=event_dict["timestamp"],
            level=level,
            unique_id=event_dict.get("unique_id", UNKNOWN),
            host_name=event_dict.get("host_name", UNKNOWN),
            ip_address=event_dict.get("ip_address", UNKNOWN),
            filename=event_dict.get("filename", UNKNOWN),
            lineno=event_dict.get("lineno", 0),
            func_name=event_dict.get("func_name", UNKNOWN),
            message=event_dict.get("event", ""),
        )
    else:
        line = format_mandatory(
            LogEntry(
                timestamp=event_dict["timestamp"],
                level=level,
                message=event_dict.get("event", ""),
                transaction_id=event_dict.get("transaction_id", ""),
                service_name=event_dict.get("service_name", UNKNOWN),
                endpoint=event_dict.get("endpoint", UNKNOWN),
                method=event_dict.get("method", UNKNOWN),
                execution_time=event_dict.get("execution_time", ""),
                server_ip=event_dict.get("ip_address", UNKNOWN),
                trace_id=event_dict.get("trace_id", ""),
                body=event_dict.get("body", ""),
                flag=event_dict.get("flag", ""),
            )
        )

    return {"level": level, "colored": colorize(line, level), "plain": line}


class TraceBoundLogger(structlog.BoundLoggerBase):
    """structlog wrapper whose single entry point feeds a ``DualSinkWriter``."""

    def emit_event(self, level: str, event: str, **event_kw: Any) -> Any:
        return self._proxy_to_logger("emit", event, level=level, **event_kw)


def _format_message(message: str, args: tuple[Any, ...]) -> str:
    return message % args if args else message


# =============================================================================
# Logger Facade
# =============================================================================


class TraceLogger:
    """Request-tracing logger writing to a colored console and/or a plain file.

    Args:
        mode: ``console``, ``file`` or ``both`` (``all`` is accepted too).
            Defaults to ``both`` when ``log_file`` is given, else ``console``.
        log_file: Path of the durable sink, required for ``file``/``both``.
        buffer_size: When positive, sink writes go through a bounded queue.
        stdout / stderr: Console streams; default to the process streams.

    Raises:
        ConfigurationError: invalid mode/path combination or unopenable file.
    """

    def __init__(
        self,
        mode: Optional[SinkMode | str] = None,
        log_file: Optional[str | Path] = None,
        *,
        buffer_size: int = 0,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        host_facts: Optional[HostFacts] = None,
    ):
        if mode is None or mode == "":
            self._mode = SinkMode.BOTH if log_file else SinkMode.CONSOLE
        else:
            self._mode = SinkMode.parse(mode)

        self._writer = DualSinkWriter.open(
            self._mode,
            log_file,
            buffer_size=buffer_size,
            stdout=stdout,
            stderr=stderr,
        )
        self._host = host_facts or HostFacts.discover()
        self._closed = False
        self._log = TraceBoundLogger(
            self._writer,
            processors=[add_timestamp, CallsiteAdder(), render_lines],
            context={"host_name": self._host.host_name, "ip_address": self._host.ip_address},
        )

    @classmethod
    def simple(cls, log_file: Optional[str | Path] = None) -> TraceLogger:
        """Console-only logger, or console plus file when a path is given."""
        if not log_file:
            return cls(SinkMode.CONSOLE)
        return cls(SinkMode.BOTH, log_file)

    @classmethod
    def from_settings(cls, settings: Optional[LoggingSettings] = None) -> TraceLogger:
        from .config import get_settings

        settings = settings or get_settings()
        return cls(settings.mode, settings.file_path, buffer_size=settings.buffer_size)

    @property
    def mode(self) -> SinkMode:
        return self._mode

    @property
    def host_name(self) -> str:
        return self._host.host_name

    @property
    def ip_address(self) -> str:
        return self._host.ip_address

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Flush and close the sinks. Further calls are no-ops."""
        if self._closed:
            return
        self._closed = True
        self._writer.close()

    def __enter__(self) -> TraceLogger:
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Simple layout
    # ------------------------------------------------------------------

    def _write_simple(self, level: LogLevel, unique_id: str, message: str, args: tuple[Any, ...]) -> None:
        self._log.emit_event(
            level.value,
            _format_message(message, args),
            layout=SIMPLE_LAYOUT,
            unique_id=unique_id,
        )

    def error(self, message: str, *args: Any) -> None:
        self._write_simple(LogLevel.ERROR, new_id(), message, args)

    def warning(self, message: str, *args: Any) -> None:
        self._write_simple(LogLevel.WARNING, new_id(), message, args)

    def success(self, message: str, *args: Any) -> None:
        self._write_simple(LogLevel.SUCCESS, new_id(), message, args)

    def info(self, message: str, *args: Any) -> None:
        self._write_simple(LogLevel.INFO, new_id(), message, args)

    def error_ctx(self, carrier: Optional[FieldCarrier], message: str, *args: Any) -> None:
        self._write_simple(LogLevel.ERROR, ensure_carrier(carrier).unique_id(), message, args)

    def warning_ctx(self, carrier: Optional[FieldCarrier], message: str, *args: Any) -> None:
        self._write_simple(LogLevel.WARNING, ensure_carrier(carrier).unique_id(), message, args)

    def success_ctx(self, carrier: Optional[FieldCarrier], message: str, *args: Any) -> None:
        self._write_simple(LogLevel.SUCCESS, ensure_carrier(carrier).unique_id(), message, args)

    def info_ctx(self, carrier: Optional[FieldCarrier], message: str, *args: Any) -> None:
        self._write_simple(LogLevel.INFO, ensure_carrier(carrier).unique_id(), message, args)

    # printf-style spellings
    errorf = error
    warningf = warning
    successf = success
    infof = info
    errorf_ctx = error_ctx
    warningf_ctx = warning_ctx
    successf_ctx = success_ctx
    infof_ctx = info_ctx

    # ------------------------------------------------------------------
    # Mandatory layout
    # ------------------------------------------------------------------

    def log_with_mandatory_fields(
        self,
        carrier: Optional[FieldCarrier],
        level: LogLevel | str,
        flag: Optional[LogFlag | str],
        message: str,
        body: Any = "",
    ) -> None:
        self._emit_mandatory(ensure_carrier(carrier), level, flag, message, body, datetime.now(), time.monotonic_ns())

    def _emit_mandatory(
        self,
        carrier: FieldCarrier,
        level: LogLevel | str,
        flag: Optional[LogFlag | str],
        message: str,
        body: Any,
        now: datetime,
        clock_ns: int,
    ) -> None:
        unique_id = carrier.unique_id()

        self._log.emit_event(
            level_name(level).upper(),
            message,
            layout=MANDATORY_LAYOUT,
            timestamp=format_timestamp(now),
            flag=level_name(flag) if flag else "",
            transaction_id=carrier.get(CarrierKey.TRANSACTION_ID, unique_id),
            trace_id=carrier.get(CarrierKey.TRACE_ID, unique_id),
            service_name=carrier.get(CarrierKey.SERVICE_NAME, UNKNOWN),
            endpoint=carrier.get(CarrierKey.ENDPOINT, UNKNOWN),
            method=carrier.get(CarrierKey.METHOD, UNKNOWN),
            execution_time=execution_time(carrier, now, clock_ns),
            body=stringify_body(body),
        )

    def log_start(self, carrier: Optional[FieldCarrier], level: LogLevel | str, message: str, body: Any = "") -> None:
        self.log_with_mandatory_fields(carrier, level, LogFlag.START, message, body)

    def log_stop(self, carrier: Optional[FieldCarrier], level: LogLevel | str, message: str, body: Any = "") -> None:
        self.log_with_mandatory_fields(carrier, level, LogFlag.STOP, message, body)

    def log_with_body(self, carrier: Optional[FieldCarrier], level: LogLevel | str, message: str, body: Any = "") -> None:
        self.log_with_mandatory_fields(carrier, level, None, message, body)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, carrier: Optional[FieldCarrier] = None, config: Optional[StartConfig] = None) -> FieldCarrier:
        """Seed a carrier from ``config``, emit START and return the carrier for ``stop``."""
        config = config or StartConfig()
        now, clock_ns = datetime.now(), time.monotonic_ns()
        seeded = seed_carrier(carrier, config, now, clock_ns)
        self._emit_mandatory(
            seeded,
            config.level or DEFAULT_START_LEVEL,
            LogFlag.START,
            config.message or DEFAULT_START_MESSAGE,
            config.body,
            now,
            clock_ns,
        )
        return seeded

    def stop(
        self,
        carrier: Optional[FieldCarrier],
        level: LogLevel | str = "",
        message: str = "",
        body: Any = "",
    ) -> None:
        """Emit STOP with the elapsed time since ``start``. Not idempotent."""
        self.log_stop(carrier, level or DEFAULT_STOP_LEVEL, message or DEFAULT_STOP_MESSAGE, body)

    def start_from_adapter(self, adapter: Optional[RequestAdapter], config: Optional[StartConfig] = None) -> FieldCarrier:
        """Start a lifecycle from any request adapter; explicit config values win."""
        config = config or StartConfig()
        carrier = ensure_carrier(adapter.ambient_context() if adapter is not None else None)
        carrier = carrier.with_request(adapter)

        body = config.body
        if not body and adapter is not None:
            body = adapter.body()

        return self.start(
            carrier,
            StartConfig(
                service_name=config.service_name,
                endpoint=config.endpoint,
                method=config.method,
                transaction_id=config.transaction_id,
                trace_id=config.trace_id,
                body=body,
                message=config.message,
                level=config.level,
            ),
        )

    def start_from_request(self, request: Any, config: Optional[StartConfig] = None) -> FieldCarrier:
        """Start a lifecycle from a Starlette request or a WSGI environ.

        Without ``config.body`` a WSGI request body is read for the START line
        and put back into the environ for the handler.
        """
        from .adapters import adapt_request

        read_body = not (config and config.body)
        return self.start_from_adapter(adapt_request(request, read_body=read_body), config)
