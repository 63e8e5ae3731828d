"""Read-only span data used by the trace exporters."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

from .resourcemapping import attribute_as_string

AttributePairs = tuple[tuple[str, Any], ...]

_TRACE_ID_LEN = 16
_SPAN_ID_LEN = 8
FLAGS_SAMPLED = 0x01


class SpanKind(enum.IntEnum):
    UNSPECIFIED = 0
    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5


class StatusCode(enum.IntEnum):
    UNSET = 0
    ERROR = 1
    OK = 2


@dataclass(frozen=True)
class Status:
    code: StatusCode = StatusCode.UNSET
    description: str = ""


@dataclass(frozen=True)
class SpanContext:
    """Identifies a span within a trace."""

    trace_id: bytes = bytes(_TRACE_ID_LEN)
    span_id: bytes = bytes(_SPAN_ID_LEN)
    trace_flags: int = 0
    remote: bool = False
    trace_state: str = ""

    def __post_init__(self) -> None:
        if len(self.trace_id) != _TRACE_ID_LEN:
            raise ValueError(f"trace id must be {_TRACE_ID_LEN} bytes, got {len(self.trace_id)}")
        if len(self.span_id) != _SPAN_ID_LEN:
            raise ValueError(f"span id must be {_SPAN_ID_LEN} bytes, got {len(self.span_id)}")
        if not 0 <= self.trace_flags <= 0xFF:
            raise ValueError(f"trace flags out of range: {self.trace_flags}")

    def has_trace_id(self) -> bool:
        return any(self.trace_id)

    def has_span_id(self) -> bool:
        return any(self.span_id)

    def is_valid(self) -> bool:
        return self.has_trace_id() and self.has_span_id()

    def is_sampled(self) -> bool:
        return bool(self.trace_flags & FLAGS_SAMPLED)

    def trace_id_hex(self) -> str:
        return self.trace_id.hex()

    def span_id_hex(self) -> str:
        return self.span_id.hex()


@dataclass(frozen=True)
class Resource:
    """Attributes describing the entity that produced telemetry."""

    attributes: dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.attributes)

    def get(self, key: str) -> Any:
        return self.attributes.get(key)

    def as_string(self, key: str) -> str | None:
        if key not in self.attributes:
            return None
        return attribute_as_string(self.attributes[key])

    def items(self):
        return self.attributes.items()


@dataclass(frozen=True)
class InstrumentationScope:
    name: str = ""
    version: str = ""


@dataclass(frozen=True)
class Link:
    span_context: SpanContext = field(default_factory=SpanContext)
    attributes: AttributePairs = ()


@dataclass(frozen=True)
class Event:
    name: str = ""
    time_ns: int = 0
    attributes: AttributePairs = ()


@dataclass(frozen=True)
class SpanSnapshot:
    """A finished span with all of its recorded data."""

    name: str = ""
    span_context: SpanContext = field(default_factory=SpanContext)
    parent: SpanContext = field(default_factory=SpanContext)
    span_kind: SpanKind = SpanKind.UNSPECIFIED
    start_time_ns: int = 0
    end_time_ns: int = 0
    attributes: AttributePairs = ()
    links: tuple[Link, ...] = ()
    events: tuple[Event, ...] = ()
    status: Status = field(default_factory=Status)
    resource: Resource = field(default_factory=Resource)
    instrumentation_scope: InstrumentationScope = field(default_factory=InstrumentationScope)
    dropped_attributes: int = 0
    dropped_links: int = 0
    dropped_events: int = 0
    child_span_count: int = 0