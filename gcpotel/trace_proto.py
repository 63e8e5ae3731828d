"""Conversion of finished spans into Cloud Trace span records."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from .observability import GrpcCode
from .resourcemapping import (
    PROJECT_ID_ATTRIBUTE_KEY,
    attribute_as_string,
    resource_attributes_to_monitored_resource,
)
from .tracemodel import Link, SpanKind, SpanSnapshot, StatusCode

MAX_ANNOTATION_EVENTS_PER_SPAN = 32
MAX_ATTRIBUTE_STRING_VALUE = 256
MAX_NUM_LINKS = 128
MAX_DISPLAY_NAME = 128
MAX_ATTRIBUTE_KEY = 128
AGENT_LABEL = "g.co/agent"

HOST_ATTRIBUTE = "http.host"
METHOD_ATTRIBUTE = "http.method"
PATH_ATTRIBUTE = "http.path"
URL_ATTRIBUTE = "http.url"
USER_AGENT_ATTRIBUTE = "http.user_agent"
STATUS_CODE_ATTRIBUTE = "http.status_code"
SERVICE_ATTRIBUTE = "service.name"

LABEL_HTTP_HOST = "/http/host"
LABEL_HTTP_METHOD = "/http/method"
LABEL_HTTP_STATUS_CODE = "/http/status_code"
LABEL_HTTP_PATH = "/http/path"
LABEL_HTTP_USER_AGENT = "/http/user_agent"
# Prefixed for App Engine, but shown as the service in the trace UI.
LABEL_SERVICE = "g.co/gae/app/module"

INSTRUMENTATION_SCOPE_NAME_ATTRIBUTE = "otel.scope.name"
INSTRUMENTATION_SCOPE_VERSION_ATTRIBUTE = "otel.scope.version"

LINK_TYPE_UNSPECIFIED = 0

_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1

_VERSION = "1.11.2"
OTEL_VERSION = "1.11.2"


def version() -> str:
    """Return the release version of the trace exporter."""
    return _VERSION


USER_AGENT = f"opentelemetry-python {OTEL_VERSION}; google-cloud-trace-exporter {version()}"

_DEFAULT_MAPPING = {
    PATH_ATTRIBUTE: LABEL_HTTP_PATH,
    HOST_ATTRIBUTE: LABEL_HTTP_HOST,
    METHOD_ATTRIBUTE: LABEL_HTTP_METHOD,
    USER_AGENT_ATTRIBUTE: LABEL_HTTP_USER_AGENT,
    STATUS_CODE_ATTRIBUTE: LABEL_HTTP_STATUS_CODE,
    SERVICE_ATTRIBUTE: LABEL_SERVICE,
}


@dataclass(frozen=True)
class TruncatableString:
    value: str = ""
    truncated_byte_count: int = 0


@dataclass(frozen=True)
class AttributeValue:
    """Exactly one of the three fields is set."""

    string_value: TruncatableString | None = None
    int_value: int | None = None
    bool_value: bool | None = None


@dataclass
class Attributes:
    attribute_map: dict[str, AttributeValue] = field(default_factory=dict)
    dropped_attributes_count: int = 0


@dataclass
class TimeEvent:
    """An annotation recorded at a point in time; time is (seconds, nanos)."""

    time: tuple[int, int] = (0, 0)
    description: TruncatableString = field(default_factory=TruncatableString)
    attributes: Attributes | None = None


@dataclass
class TimeEvents:
    time_event: list[TimeEvent] = field(default_factory=list)
    dropped_annotations_count: int = 0


@dataclass
class CloudLink:
    trace_id: str = ""
    span_id: str = ""
    type: int = LINK_TYPE_UNSPECIFIED
    attributes: Attributes | None = None


@dataclass
class CloudLinks:
    link: list[CloudLink] = field(default_factory=list)
    dropped_links_count: int = 0


@dataclass
class CloudStatus:
    code: int = int(GrpcCode.OK)
    message: str = ""


@dataclass
class CloudSpan:
    """A span in the shape Cloud Trace accepts."""

    name: str = ""
    span_id: str = ""
    display_name: TruncatableString = field(default_factory=TruncatableString)
    start_time: tuple[int, int] = (0, 0)
    end_time: tuple[int, int] = (0, 0)
    same_process_as_parent_span: bool = True
    span_kind: SpanKind = SpanKind.INTERNAL
    parent_span_id: str = ""
    status: CloudStatus | None = None
    attributes: Attributes | None = None
    time_events: TimeEvents | None = None
    links: CloudLinks | None = None


def clip32(x: int) -> int:
    """Clip an integer to the int32 range."""
    return max(_INT32_MIN, min(_INT32_MAX, x))


def trunc(s: str, limit: int) -> TruncatableString:
    """Truncate a string to at most limit UTF-8 bytes without splitting a character."""
    raw = s.encode("utf-8", "surrogatepass")
    if len(raw) <= limit:
        return TruncatableString(value=s, truncated_byte_count=0)
    kept = raw[:limit].decode("utf-8", "ignore")
    kept_len = len(kept.encode("utf-8"))
    return TruncatableString(value=kept, truncated_byte_count=clip32(len(raw) - kept_len))


def timestamp_proto(time_ns: int) -> tuple[int, int]:
    """Split nanoseconds since the epoch into (seconds, nanos)."""
    seconds, nanos = divmod(int(time_ns), 1_000_000_000)
    return seconds, nanos


def default_attribute_mapping(key: str) -> str:
    """Map well-known attribute keys onto the keys the trace UI features."""
    return _DEFAULT_MAPPING.get(key, key)


def attribute_value(value: Any) -> AttributeValue | None:
    """Convert an attribute value, or return None for unsupported types."""
    if isinstance(value, bool):
        return AttributeValue(bool_value=value)
    if isinstance(value, int):
        return AttributeValue(int_value=value)
    if isinstance(value, float):
        return AttributeValue(
            string_value=trunc(attribute_as_string(value), MAX_ATTRIBUTE_STRING_VALUE)
        )
    if isinstance(value, str):
        return AttributeValue(string_value=trunc(value, MAX_ATTRIBUTE_STRING_VALUE))
    return None


def convert_span_kind(kind: SpanKind) -> SpanKind:
    """Return the Cloud Trace span kind; unspecified becomes internal."""
    if kind in (SpanKind.SERVER, SpanKind.CLIENT, SpanKind.PRODUCER, SpanKind.CONSUMER):
        return SpanKind(kind)
    return SpanKind.INTERNAL


def attributes_with_labels_from_resources(span: SpanSnapshot) -> list[tuple[str, Any]]:
    """Combine span, resource, scope and monitored-resource attributes; the first key wins."""
    attributes = list(span.attributes)
    if len(span.resource) == 0:
        return attributes
    seen = {key for key, _ in attributes}
    for key, value in span.resource.items():
        if key in seen:
            continue
        seen.add(key)
        attributes.append((key, value))

    scope = span.instrumentation_scope
    if INSTRUMENTATION_SCOPE_NAME_ATTRIBUTE not in seen:
        seen.add(INSTRUMENTATION_SCOPE_NAME_ATTRIBUTE)
        attributes.append((INSTRUMENTATION_SCOPE_NAME_ATTRIBUTE, scope.name))
    if INSTRUMENTATION_SCOPE_VERSION_ATTRIBUTE not in seen and scope.version:
        seen.add(INSTRUMENTATION_SCOPE_VERSION_ATTRIBUTE)
        attributes.append((INSTRUMENTATION_SCOPE_VERSION_ATTRIBUTE, scope.version))

    monitored = resource_attributes_to_monitored_resource(span.resource.attributes)
    attributes.extend(
        (f"g.co/r/{monitored.type}/{key}", value) for key, value in monitored.labels.items()
    )
    return attributes


class SpanConverter:
    """Turns span snapshots into Cloud Trace spans for one default project."""

    def __init__(
        self,
        project_id: str = "",
        map_attribute: Callable[[str], str] = default_attribute_mapping,
    ) -> None:
        self.project_id = project_id
        self.map_attribute = map_attribute

    def attributes_from(self, pairs: Iterable[tuple[str, Any]]) -> Attributes | None:
        """Convert attribute pairs; None when there are none."""
        pairs = list(pairs)
        if not pairs:
            return None
        out = Attributes()
        dropped = 0
        for key, value in pairs:
            converted = attribute_value(value)
            if converted is None:
                continue
            mapped = self.map_attribute(key)
            if len(mapped.encode("utf-8")) > MAX_ATTRIBUTE_KEY:
                dropped += 1
                continue
            out.attribute_map[mapped] = converted
        out.dropped_attributes_count = dropped
        return out

    def links_from(self, links: Sequence[Link]) -> CloudLinks | None:
        """Convert links in order, keeping at most the first MAX_NUM_LINKS."""
        if not links:
            return None
        kept = links[:MAX_NUM_LINKS]
        return CloudLinks(
            link=[
                CloudLink(
                    trace_id=link.span_context.trace_id_hex(),
                    span_id=link.span_context.span_id_hex(),
                    type=LINK_TYPE_UNSPECIFIED,
                    attributes=self.attributes_from(link.attributes),
                )
                for link in kept
            ],
            dropped_links_count=clip32(len(links) - len(kept)),
        )

    def _project_for(self, span: SpanSnapshot) -> str:
        override = span.resource.as_string(PROJECT_ID_ATTRIBUTE_KEY)
        return self.project_id if override is None else override

    def convert(self, span: SpanSnapshot | None) -> tuple[CloudSpan | None, str]:
        """Return the converted span and the project it belongs to."""
        if span is None:
            return None, ""
        trace_hex = span.span_context.trace_id_hex()
        span_hex = span.span_context.span_id_hex()
        project_id = self._project_for(span)

        out = CloudSpan(
            name=f"projects/{project_id}/traces/{trace_hex}/spans/{span_hex}",
            span_id=span_hex,
            display_name=trunc(span.name, MAX_DISPLAY_NAME),
            start_time=timestamp_proto(span.start_time_ns),
            end_time=timestamp_proto(span.end_time_ns),
            same_process_as_parent_span=not span.parent.remote,
            span_kind=convert_span_kind(span.span_kind),
        )
        if span.parent.span_id != span.span_context.span_id and span.parent.has_span_id():
            out.parent_span_id = span.parent.span_id_hex()

        code = span.status.code
        if code == StatusCode.OK:
            out.status = CloudStatus(code=int(GrpcCode.OK))
        elif code == StatusCode.ERROR:
            out.status = CloudStatus(code=int(GrpcCode.UNKNOWN), message=span.status.description)
        elif code != StatusCode.UNSET:
            out.status = CloudStatus(code=int(GrpcCode.UNKNOWN))

        out.attributes = self.attributes_from(attributes_with_labels_from_resources(span))

        events = span.events
        for event in events[:MAX_ANNOTATION_EVENTS_PER_SPAN]:
            if out.time_events is None:
                out.time_events = TimeEvents()
            out.time_events.time_event.append(
                TimeEvent(
                    time=timestamp_proto(event.time_ns),
                    description=trunc(event.name, MAX_ATTRIBUTE_STRING_VALUE),
                    attributes=self.attributes_from(event.attributes),
                )
            )

        if out.attributes is None:
            out.attributes = Attributes()
        if AGENT_LABEL not in out.attributes.attribute_map:
            out.attributes.attribute_map[AGENT_LABEL] = AttributeValue(
                string_value=trunc(USER_AGENT, MAX_ATTRIBUTE_STRING_VALUE)
            )

        dropped = len(events) - MAX_ANNOTATION_EVENTS_PER_SPAN
        if dropped > 0:
            if out.time_events is None:
                out.time_events = TimeEvents()
            out.time_events.dropped_annotations_count = clip32(dropped)

        out.links = self.links_from(span.links)
        return out, project_id