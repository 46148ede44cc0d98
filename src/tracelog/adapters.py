"""
Request adapters.

The lifecycle code only talks to ``RequestAdapter``; each supported framework
gets one thin adapter. A Starlette ``Request`` and a WSGI environ are
supported out of the box.
"""

from __future__ import annotations

import io
from collections.abc import Mapping, MutableMapping
from typing import Any, Optional, Protocol, runtime_checkable

from starlette.requests import HTTPConnection

from .carrier import FieldCarrier, ensure_carrier
from .formatters import stringify_body

# Where the middleware stores the seeded carrier for downstream handlers.
CARRIER_STATE_KEY = "tracelog_carrier"
CARRIER_ENVIRON_KEY = "tracelog.carrier"


@runtime_checkable
class RequestAdapter(Protocol):
    def method(self) -> str: ...

    def path(self) -> str: ...

    def body(self) -> str: ...

    def header(self, key: str) -> str: ...

    def ambient_context(self) -> FieldCarrier: ...


class StarletteRequestAdapter:
    """Adapter over a Starlette/FastAPI request (or any ``HTTPConnection``).

    Reading a Starlette body is asynchronous, so the adapter only reports a
    body that was read beforehand and passed in.
    """

    def __init__(self, request: Optional[HTTPConnection], body: Any = ""):
        self._request = request
        self._body = stringify_body(body)

    def method(self) -> str:
        if self._request is None:
            return ""
        return self._request.scope.get("method", "")

    def path(self) -> str:
        if self._request is None:
            return ""
        return self._request.url.path

    def body(self) -> str:
        return self._body

    def header(self, key: str) -> str:
        if self._request is None:
            return ""
        return self._request.headers.get(key, "")

    def ambient_context(self) -> FieldCarrier:
        if self._request is None:
            return ensure_carrier(None)
        return carrier_from_scope(self._request.scope)


class WsgiRequestAdapter:
    """Adapter over a PEP 3333 environ dict."""

    _UNPREFIXED_HEADERS = {"CONTENT_TYPE", "CONTENT_LENGTH"}

    def __init__(self, environ: Optional[Mapping[str, Any]], body: Any = ""):
        self._environ: Mapping[str, Any] = environ or {}
        self._body = stringify_body(body)

    def method(self) -> str:
        return self._environ.get("REQUEST_METHOD", "")

    def path(self) -> str:
        return f"{self._environ.get('SCRIPT_NAME', '')}{self._environ.get('PATH_INFO', '')}"

    def body(self) -> str:
        return self._body

    def header(self, key: str) -> str:
        name = key.upper().replace("-", "_")
        if name not in self._UNPREFIXED_HEADERS:
            name = f"HTTP_{name}"
        return self._environ.get(name, "")

    def ambient_context(self) -> FieldCarrier:
        return ensure_carrier(self._environ.get(CARRIER_ENVIRON_KEY))


def buffer_wsgi_body(environ: MutableMapping[str, Any]) -> bytes:
    """Read up to ``CONTENT_LENGTH`` bytes of the request body and put a
    rewound copy back under ``wsgi.input`` so the application can still read it.

    Requests without a usable ``CONTENT_LENGTH`` are left untouched.
    """
    try:
        length = int(environ.get("CONTENT_LENGTH") or 0)
    except ValueError:
        return b""
    stream = environ.get("wsgi.input")
    if length <= 0 or stream is None:
        return b""
    body = stream.read(length)
    environ["wsgi.input"] = io.BytesIO(body)
    return body


def carrier_from_scope(scope: Mapping[str, Any]) -> FieldCarrier:
    state = scope.get("state") or {}
    return ensure_carrier(state.get(CARRIER_STATE_KEY))


def carrier_from_request(request: Any) -> FieldCarrier:
    """Return the carrier the tracing middleware attached to ``request``.

    Accepts a Starlette request, an ASGI scope or a WSGI environ; anything
    without a carrier yields the empty carrier.
    """
    if isinstance(request, HTTPConnection):
        return carrier_from_scope(request.scope)
    if isinstance(request, Mapping):
        if "type" in request:
            return carrier_from_scope(request)
        return ensure_carrier(request.get(CARRIER_ENVIRON_KEY))
    return ensure_carrier(None)


def adapt_request(request: Any, *, read_body: bool = False) -> Optional[RequestAdapter]:
    """Wrap a supported request object in its adapter.

    With ``read_body`` a WSGI environ's body is buffered into the adapter.
    """
    if request is None:
        return None
    if isinstance(request, HTTPConnection):
        return StarletteRequestAdapter(request)
    if isinstance(request, Mapping):
        if read_body and isinstance(request, MutableMapping):
            return WsgiRequestAdapter(request, buffer_wsgi_body(request))
        return WsgiRequestAdapter(request)
    if isinstance(request, RequestAdapter):
        return request
    raise TypeError(f"unsupported request type: {type(request).__name__}")
