"""
Tracing middleware for ASGI and WSGI applications.

Each traced request gets a START line before the wrapped app runs and a STOP
line afterwards, leveled by response status (<300 SUCCESS, 3xx WARNING,
>=400 ERROR). The seeded carrier is handed to downstream handlers through
the request state; read it back with ``carrier_from_request``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Iterable, Iterator, Optional

from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .adapters import (
    CARRIER_ENVIRON_KEY,
    CARRIER_STATE_KEY,
    StarletteRequestAdapter,
    WsgiRequestAdapter,
    buffer_wsgi_body,
)
from .carrier import FieldCarrier
from .formatters import LogLevel, stringify_body
from .lifecycle import DEFAULT_STOP_MESSAGE, StartConfig, level_for_status

if TYPE_CHECKING:
    from .config import LoggingSettings
    from .core import TraceLogger


@dataclass(frozen=True)
class MiddlewareConfig:
    service_name: str = ""
    skip_paths: tuple[str, ...] = ()

    @classmethod
    def from_settings(cls, settings: Optional[LoggingSettings] = None) -> MiddlewareConfig:
        from .config import get_settings

        settings = settings or get_settings()
        return cls(service_name=settings.service_name, skip_paths=tuple(settings.skip_paths))


@dataclass
class _ResponseCapture:
    """Status code and last body chunk the wrapped app produced."""

    status_code: int = 200
    body: bytes = b""
    failed: bool = False

    def observe_body(self, chunk: bytes) -> None:
        if chunk:
            self.body = chunk

    @property
    def level(self) -> LogLevel:
        if self.failed:
            return LogLevel.ERROR
        return level_for_status(self.status_code)


class _TracingBase:
    def __init__(
        self,
        logger: TraceLogger,
        config: Optional[MiddlewareConfig] = None,
        *,
        service_name: Optional[str] = None,
        skip_paths: Optional[Iterable[str]] = None,
    ):
        config = config or MiddlewareConfig()
        self.logger = logger
        self.service_name = config.service_name if service_name is None else service_name
        self.skip_paths = frozenset(config.skip_paths if skip_paths is None else skip_paths)

    def _should_skip(self, path: str) -> bool:
        return path in self.skip_paths

    def _stop(self, carrier: FieldCarrier, capture: _ResponseCapture) -> None:
        self.logger.stop(carrier, capture.level, DEFAULT_STOP_MESSAGE, stringify_body(capture.body))


class TraceMiddleware(_TracingBase):
    """Pure ASGI middleware; non-HTTP scopes pass through untouched.

    Usage:
        app.add_middleware(TraceMiddleware, logger=logger, config=MiddlewareConfig("user-service", ("/health",)))
    """

    def __init__(self, app: ASGIApp, logger: TraceLogger, config: Optional[MiddlewareConfig] = None, **kwargs: Any):
        super().__init__(logger, config, **kwargs)
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope.get("type") != "http":
            await self.app(scope, receive, send)
            return

        adapter = StarletteRequestAdapter(HTTPConnection(scope))
        if self._should_skip(adapter.path()):
            await self.app(scope, receive, send)
            return

        carrier = self.logger.start_from_adapter(adapter, StartConfig(service_name=self.service_name))
        scope = dict(scope)
        scope["state"] = {**(scope.get("state") or {}), CARRIER_STATE_KEY: carrier}

        capture = _ResponseCapture()

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                capture.status_code = int(message.get("status", 200))
            elif message["type"] == "http.response.body":
                capture.observe_body(message.get("body", b""))
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        except Exception:
            capture.status_code = 500
            capture.failed = True
            self._stop(carrier, capture)
            raise
        self._stop(carrier, capture)


StartResponse = Callable[..., Any]


class WsgiTraceMiddleware(_TracingBase):
    """WSGI middleware; STOP is emitted once the response iterable is exhausted or closed.

    The request body (up to ``CONTENT_LENGTH``) is logged on START and replayed
    to the wrapped app.
    """

    def __init__(self, app: Callable[..., Iterable[bytes]], logger: TraceLogger, config: Optional[MiddlewareConfig] = None, **kwargs: Any):
        super().__init__(logger, config, **kwargs)
        self.app = app

    def __call__(self, environ: dict[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        if self._should_skip(WsgiRequestAdapter(environ).path()):
            return self.app(environ, start_response)

        environ = dict(environ)
        adapter = WsgiRequestAdapter(environ, buffer_wsgi_body(environ))
        carrier = self.logger.start_from_adapter(adapter, StartConfig(service_name=self.service_name))
        environ[CARRIER_ENVIRON_KEY] = carrier
        capture = _ResponseCapture()

        def capturing_start_response(status: str, headers: list[tuple[str, str]], exc_info: Any = None) -> Any:
            capture.status_code = int(status.split(" ", 1)[0])
            return start_response(status, headers, exc_info)

        try:
            result = self.app(environ, capturing_start_response)
        except Exception:
            capture.status_code = 500
            capture.failed = True
            self._stop(carrier, capture)
            raise
        return self._iterate(result, carrier, capture)

    def _iterate(self, result: Iterable[bytes], carrier: FieldCarrier, capture: _ResponseCapture) -> Iterator[bytes]:
        try:
            for chunk in result:
                capture.observe_body(chunk)
                yield chunk
        except Exception:
            capture.failed = True
            raise
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
            self._stop(carrier, capture)
