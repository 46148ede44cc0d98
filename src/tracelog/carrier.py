"""
Request-scoped field carrier.

A ``FieldCarrier`` is an immutable, chain-linked key/value association passed
explicitly through a call chain. Each ``with_*`` call returns a new carrier
layered on top of the current one; ancestors are never mutated, so a carrier
can be shared freely between threads and sibling call chains.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, Optional

from .identity import new_id

if TYPE_CHECKING:
    from .adapters import RequestAdapter


class CarrierKey(str, Enum):
    UNIQUE_ID = "logger_uuid"
    SERVICE_NAME = "logger_service_name"
    ENDPOINT = "logger_endpoint"
    METHOD = "logger_method"
    TRACE_ID = "logger_trace_id"
    TRANSACTION_ID = "logger_transaction_id"
    START_TIME = "logger_start_time"
    START_CLOCK = "logger_start_clock"


class FieldCarrier:
    """Immutable key/value node linked to its parent carrier."""

    __slots__ = ("_parent", "_key", "_value")

    def __init__(self, parent: Optional[FieldCarrier] = None, key: Optional[CarrierKey] = None, value: Any = None):
        self._parent = parent
        self._key = key
        self._value = value

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, name):
            raise AttributeError(f"{type(self).__name__} is immutable")
        object.__setattr__(self, name, value)

    def __repr__(self) -> str:
        fields = ", ".join(f"{key.name.lower()}={value!r}" for key, value in self.items())
        return f"FieldCarrier({fields})"

    # ------------------------------------------------------------------
    # Derivation
    # ------------------------------------------------------------------

    def with_value(self, key: CarrierKey, value: Any) -> FieldCarrier:
        return FieldCarrier(self, key, value)

    def with_unique_id(self, unique_id: str) -> FieldCarrier:
        return self.with_value(CarrierKey.UNIQUE_ID, unique_id)

    def with_new_unique_id(self) -> FieldCarrier:
        return self.with_unique_id(new_id())

    def with_service_name(self, service_name: str) -> FieldCarrier:
        return self.with_value(CarrierKey.SERVICE_NAME, service_name)

    def with_endpoint(self, endpoint: str) -> FieldCarrier:
        return self.with_value(CarrierKey.ENDPOINT, endpoint)

    def with_method(self, method: str) -> FieldCarrier:
        return self.with_value(CarrierKey.METHOD, method)

    def with_trace_id(self, trace_id: str) -> FieldCarrier:
        return self.with_value(CarrierKey.TRACE_ID, trace_id)

    def with_transaction_id(self, transaction_id: str) -> FieldCarrier:
        return self.with_value(CarrierKey.TRANSACTION_ID, transaction_id)

    def with_start_time(self, start_time: datetime, clock_ns: Optional[int] = None) -> FieldCarrier:
        """Layer the wall-clock start time and, when given, the matching
        ``time.monotonic_ns()`` reading that durations are measured from.
        """
        return self.with_value(CarrierKey.START_TIME, start_time).with_value(CarrierKey.START_CLOCK, clock_ns)

    def with_request(self, adapter: Optional[RequestAdapter]) -> FieldCarrier:
        """Layer the method and path of an inbound request, skipping empty ones."""
        if adapter is None:
            return self
        carrier = self
        method = adapter.method()
        if method:
            carrier = carrier.with_method(method)
        path = adapter.path()
        if path:
            carrier = carrier.with_endpoint(path)
        return carrier

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _lookup(self, key: CarrierKey) -> tuple[Any, bool]:
        node: Optional[FieldCarrier] = self
        while node is not None:
            if node._key is key:
                return node._value, True
            node = node._parent
        return None, False

    def get(self, key: CarrierKey, default: str = "") -> str:
        """Return the nearest string value for ``key``; empty strings count as unset."""
        value, found = self._lookup(key)
        if found and isinstance(value, str) and value:
            return value
        return default

    def get_start_time(self) -> tuple[Optional[datetime], bool]:
        value, found = self._lookup(CarrierKey.START_TIME)
        if found and isinstance(value, datetime):
            return value, True
        return None, False

    def get_start_clock(self) -> Optional[int]:
        value, found = self._lookup(CarrierKey.START_CLOCK)
        if found and isinstance(value, int):
            return value
        return None

    def unique_id(self) -> str:
        """The carrier's unique id, or a freshly generated one when none is set."""
        return self.get(CarrierKey.UNIQUE_ID) or new_id()

    def items(self) -> Iterator[tuple[CarrierKey, Any]]:
        """Yield the effective (nearest) value of every key set on the chain."""
        seen: set[CarrierKey] = set()
        node: Optional[FieldCarrier] = self
        while node is not None:
            if node._key is not None and node._key not in seen:
                seen.add(node._key)
                yield node._key, node._value
            node = node._parent


EMPTY_CARRIER = FieldCarrier()


def ensure_carrier(carrier: Optional[FieldCarrier]) -> FieldCarrier:
    """Treat a missing carrier as the empty one."""
    return EMPTY_CARRIER if carrier is None else carrier
