"""Conversion of collector span data into span snapshots, and the collector trace exporter."""

from __future__ import annotations

import enum
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from .trace_exporter import CloudTraceExporter, TraceClient
from .trace_proto import default_attribute_mapping
from .tracemodel import (
    Event,
    InstrumentationScope,
    Link,
    Resource,
    SpanContext,
    SpanKind,
    SpanSnapshot,
    Status,
    StatusCode,
)


class PdataSpanKind(enum.IntEnum):
    UNSPECIFIED = 0
    INTERNAL = 1
    SERVER = 2
    CLIENT = 3
    PRODUCER = 4
    CONSUMER = 5


class PdataStatusCode(enum.IntEnum):
    UNSET = 0
    OK = 1
    ERROR = 2


@dataclass
class PdataEvent:
    name: str = ""
    time_ns: int = 0
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class PdataLink:
    trace_id: bytes = bytes(16)
    span_id: bytes = bytes(8)
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class PdataSpan:
    """A span as received by the collector."""

    name: str = ""
    trace_id: bytes = bytes(16)
    span_id: bytes = bytes(8)
    parent_span_id: bytes = bytes(8)
    kind: PdataSpanKind = PdataSpanKind.UNSPECIFIED
    start_time_ns: int = 0
    end_time_ns: int = 0
    attributes: dict[str, Any] = field(default_factory=dict)
    events: list[PdataEvent] = field(default_factory=list)
    links: list[PdataLink] = field(default_factory=list)
    status_code: PdataStatusCode = PdataStatusCode.UNSET
    status_message: str = ""
    dropped_attributes_count: int = 0
    dropped_events_count: int = 0
    dropped_links_count: int = 0


@dataclass
class ScopeSpans:
    scope: InstrumentationScope = field(default_factory=InstrumentationScope)
    spans: list[PdataSpan] = field(default_factory=list)


@dataclass
class ResourceSpans:
    resource: dict[str, Any] = field(default_factory=dict)
    scope_spans: list[ScopeSpans] = field(default_factory=list)


@dataclass(frozen=True)
class AttributeMapping:
    """Replace attribute ``key`` with ``replacement`` when exporting."""

    key: str
    replacement: str


_KIND_MAP = {
    PdataSpanKind.UNSPECIFIED: SpanKind.INTERNAL,
    PdataSpanKind.INTERNAL: SpanKind.INTERNAL,
    PdataSpanKind.SERVER: SpanKind.SERVER,
    PdataSpanKind.CLIENT: SpanKind.CLIENT,
    PdataSpanKind.PRODUCER: SpanKind.PRODUCER,
    PdataSpanKind.CONSUMER: SpanKind.CONSUMER,
}


def span_kind_to_ot(kind: int) -> SpanKind:
    """Map a collector span kind; unspecified becomes internal, unknown becomes unspecified."""
    return _KIND_MAP.get(kind, SpanKind.UNSPECIFIED)


def status_code_to_ot(code: int) -> StatusCode:
    """Map a collector status code onto the trace status code."""
    if code == PdataStatusCode.OK:
        return StatusCode.OK
    if code == PdataStatusCode.ERROR:
        return StatusCode.ERROR
    return StatusCode.UNSET


def _supported(value: Any) -> bool:
    return isinstance(value, (str, bool, int, float))


def attributes_to_ot(
    attrs: Mapping[str, Any], resource_attrs: Mapping[str, Any]
) -> tuple[tuple[str, Any], ...]:
    """Resource attributes followed by the given ones, keeping only scalar values."""
    return tuple(
        (key, value)
        for source in (resource_attrs, attrs)
        for key, value in source.items()
        if _supported(value)
    )


def span_to_snapshot(
    span: PdataSpan, resource: Mapping[str, Any], scope: InstrumentationScope
) -> SpanSnapshot:
    """Turn one collector span into a span snapshot."""
    return SpanSnapshot(
        name=span.name,
        span_context=SpanContext(trace_id=bytes(span.trace_id), span_id=bytes(span.span_id)),
        parent=SpanContext(trace_id=bytes(span.trace_id), span_id=bytes(span.parent_span_id)),
        span_kind=span_kind_to_ot(span.kind),
        start_time_ns=span.start_time_ns,
        end_time_ns=span.end_time_ns,
        attributes=attributes_to_ot(span.attributes, resource),
        links=tuple(
            Link(
                span_context=SpanContext(trace_id=bytes(link.trace_id), span_id=bytes(link.span_id)),
                attributes=attributes_to_ot(link.attributes, {}),
            )
            for link in span.links
        ),
        events=tuple(
            Event(
                name=event.name,
                time_ns=event.time_ns,
                attributes=attributes_to_ot(event.attributes, {}),
            )
            for event in span.events
        ),
        status=Status(code=status_code_to_ot(span.status_code), description=span.status_message),
        resource=Resource(attributes=dict(attributes_to_ot({}, resource))),
        instrumentation_scope=InstrumentationScope(name=scope.name, version=scope.version),
        dropped_attributes=span.dropped_attributes_count,
        dropped_events=span.dropped_events_count,
        dropped_links=span.dropped_links_count,
    )


def resource_spans_to_snapshots(resource_spans: ResourceSpans) -> list[SpanSnapshot]:
    """Convert every span of a resource into snapshots, in order."""
    return [
        span_to_snapshot(span, resource_spans.resource, scope_spans.scope)
        for scope_spans in resource_spans.scope_spans
        for span in scope_spans.spans
    ]


def mapping_func_from_config(mappings: Iterable[AttributeMapping]) -> Callable[[str], str]:
    """Build an attribute key mapper; keys without a replacement are kept."""
    table = {mapping.key: mapping.replacement for mapping in mappings}

    def mapper(key: str) -> str:
        return table.get(key, key)

    return mapper


class CollectorTraceExporter:
    """Sends collector span data to Cloud Trace."""

    def __init__(
        self,
        client: TraceClient,
        *,
        project_id: str,
        timeout: float = 0.0,
        destination_project_quota: bool = False,
        attribute_mappings: Sequence[AttributeMapping] | None = None,
    ) -> None:
        map_attribute = (
            default_attribute_mapping
            if attribute_mappings is None
            else mapping_func_from_config(attribute_mappings)
        )
        try:
            self._exporter = CloudTraceExporter(
                client,
                project_id=project_id,
                timeout=timeout,
                map_attribute=map_attribute,
                destination_project_quota=destination_project_quota,
            )
        except ValueError as err:
            raise ValueError(f"error creating GoogleCloud Trace exporter: {err}") from err

    def push_traces(self, resource_spans: Iterable[ResourceSpans]) -> None:
        """Convert and upload every span in the given resource spans."""
        spans = [
            snapshot
            for rs in resource_spans
            for snapshot in resource_spans_to_snapshots(rs)
        ]
        self._exporter.export_spans(spans)

    def shutdown(self) -> None:
        self._exporter.shutdown()