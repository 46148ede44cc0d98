"""
Log sink abstractions and concrete implementations.

Every rendered line arrives as a (level, colored, plain) triple; the console
sink writes the colored variant and the file sink writes the plain one.
"""

from __future__ import annotations

import queue
import sys
import threading
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Optional, TextIO

from .errors import ConfigurationError, SinkClosedError
from .formatters import LogLevel, level_name


class SinkMode(str, Enum):
    CONSOLE = "console"
    FILE = "file"
    BOTH = "both"

    @classmethod
    def parse(cls, value: Any) -> SinkMode:
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        if normalized == "all":
            return cls.BOTH
        try:
            return cls(normalized)
        except ValueError:
            raise ConfigurationError(f"unknown sink mode: {value!r}") from None

    @property
    def uses_console(self) -> bool:
        return self in (SinkMode.CONSOLE, SinkMode.BOTH)

    @property
    def uses_file(self) -> bool:
        return self in (SinkMode.FILE, SinkMode.BOTH)


def write_notice(stream: Optional[TextIO], text: str) -> None:
    """Report a sink problem on stderr without ever raising to the log caller."""
    stream = stream or sys.stderr
    try:
        stream.write(text + "\n")
        stream.flush()
    except OSError:
        # stderr itself is gone; nowhere left to report
        pass


# =============================================================================
# Sink Abstraction (Strategy Pattern)
# =============================================================================


class BaseSink(ABC):
    """Abstract base class for log sinks."""

    name = "sink"

    @abstractmethod
    def emit(self, level: str, colored: str, plain: str) -> None:
        """Write one rendered line to the sink."""
        ...

    @abstractmethod
    def close(self) -> None:
        """Close the sink and release resources."""
        ...


class ConsoleSink(BaseSink):
    """Interactive sink: colored lines, ERROR to stderr and everything else to stdout.

    Streams default to whatever ``sys.stdout``/``sys.stderr`` are at write time.
    """

    name = "console"

    def __init__(self, stdout: Optional[TextIO] = None, stderr: Optional[TextIO] = None):
        self._stdout = stdout
        self._stderr = stderr
        self._lock = threading.Lock()

    def _stream_for(self, level: str) -> TextIO:
        if level_name(level).upper() == LogLevel.ERROR.value:
            return self._stderr or sys.stderr
        return self._stdout or sys.stdout

    def emit(self, level: str, colored: str, plain: str) -> None:
        stream = self._stream_for(level)
        with self._lock:
            stream.write(colored + "\n")
            stream.flush()

    def close(self) -> None:
        pass


class FileSink(BaseSink):
    """Durable sink: plain lines appended to a file opened once at construction."""

    name = "file"

    def __init__(self, path: str | Path):
        self._path = Path(path)
        try:
            self._file: TextIO = open(self._path, "a", encoding="utf-8")
        except OSError as exc:
            raise ConfigurationError(f"failed to open log file {str(self._path)!r}: {exc}") from exc
        self._lock = threading.Lock()
        self._closed = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, level: str, colored: str, plain: str) -> None:
        with self._lock:
            if self._closed:
                raise SinkClosedError(self.name)
            self._file.write(plain + "\n")
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._file.close()


class BufferedSink(BaseSink):
    """Bounded-queue wrapper that moves writes of ``sink`` onto one worker thread.

    Enqueue never blocks: when the queue is full the line is dropped and a
    notice goes to stderr. ``close()`` blocks until every queued line has been
    written, then closes the wrapped sink.
    """

    _STOP = object()

    def __init__(self, sink: BaseSink, buffer_size: int, notice_stream: Optional[TextIO] = None):
        if buffer_size <= 0:
            raise ConfigurationError("buffer_size must be positive for a buffered sink")
        self._sink = sink
        self._notice_stream = notice_stream
        self._queue: queue.Queue[Any] = queue.Queue(maxsize=buffer_size)
        self._lock = threading.Lock()
        self._closed = False
        self._worker = threading.Thread(target=self._drain, name=f"tracelog-{sink.name}", daemon=True)
        self._worker.start()

    @property
    def name(self) -> str:  # type: ignore[override]
        return self._sink.name

    def _notice(self, text: str) -> None:
        write_notice(self._notice_stream, text)

    def emit(self, level: str, colored: str, plain: str) -> None:
        with self._lock:
            if self._closed:
                raise SinkClosedError(self.name)
            try:
                self._queue.put_nowait((level, colored, plain))
            except queue.Full:
                self._notice(f"tracelog: {self.name} buffer full, dropped log line")

    def _drain(self) -> None:
        while True:
            item = self._queue.get()
            if item is self._STOP:
                return
            try:
                self._sink.emit(*item)
            except Exception as exc:
                self._notice(f"tracelog: {self.name} write failed: {exc}")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._queue.put(self._STOP)
        self._worker.join()
        self._sink.close()


# =============================================================================
# Dual-Sink Writer
# =============================================================================


class DualSinkWriter:
    """Fans one rendered line out to the configured console and file sinks.

    Sinks are written independently: a failing sink never prevents the
    other from being written. Write errors are reported as a notice on stderr
    and never reach the caller; only a write to a closed sink is re-raised,
    after every sink was attempted.
    """

    def __init__(
        self,
        console: Optional[BaseSink] = None,
        file: Optional[BaseSink] = None,
        notice_stream: Optional[TextIO] = None,
    ):
        self._console = console
        self._file = file
        self._notice_stream = notice_stream

    @classmethod
    def open(
        cls,
        mode: SinkMode,
        log_file: Optional[str | Path] = None,
        *,
        buffer_size: int = 0,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> DualSinkWriter:
        if mode.uses_file and not log_file:
            raise ConfigurationError(f"a log file path is required when mode is {mode.value!r}")
        if buffer_size < 0:
            raise ConfigurationError("buffer_size must not be negative")

        console: Optional[BaseSink] = ConsoleSink(stdout=stdout, stderr=stderr) if mode.uses_console else None
        file: Optional[BaseSink] = FileSink(log_file) if mode.uses_file and log_file else None

        if buffer_size:
            if console is not None:
                console = BufferedSink(console, buffer_size, notice_stream=stderr)
            if file is not None:
                file = BufferedSink(file, buffer_size, notice_stream=stderr)
        return cls(console=console, file=file, notice_stream=stderr)

    @property
    def console_enabled(self) -> bool:
        return self._console is not None

    @property
    def file_enabled(self) -> bool:
        return self._file is not None

    @property
    def sinks(self) -> list[BaseSink]:
        return [sink for sink in (self._console, self._file) if sink is not None]

    def emit(self, level: str, colored: str, plain: str) -> None:
        closed: list[SinkClosedError] = []
        for sink in self.sinks:
            try:
                sink.emit(level, colored, plain)
            except SinkClosedError as exc:
                closed.append(exc)
            except Exception as exc:
                write_notice(self._notice_stream, f"tracelog: {sink.name} write failed: {exc}")
        if closed:
            raise closed[0]

    def close(self) -> None:
        for sink in self.sinks:
            sink.close()
