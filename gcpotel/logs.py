"""Mapping of collector log records onto Cloud Logging entries."""

from __future__ import annotations

import dataclasses
import enum
import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote, urlsplit

from .observability import SelfObservability
from .resourcemapping import MonitoredResource, attribute_as_string

DEFAULT_MAX_ENTRY_SIZE = 256_000
DEFAULT_MAX_REQUEST_SIZE = 10_000_000

HTTP_REQUEST_ATTRIBUTE_KEY = "gcp.http_request"
LOG_NAME_ATTRIBUTE_KEY = "gcp.log_name"
SOURCE_LOCATION_ATTRIBUTE_KEY = "gcp.source_location"
TRACE_SAMPLED_ATTRIBUTE_KEY = "gcp.trace_sampled"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class LogMappingError(ValueError):
    """Raised when a log record cannot be turned into log entries."""


class Severity(enum.IntEnum):
    DEFAULT = 0
    DEBUG = 100
    INFO = 200
    NOTICE = 300
    WARNING = 400
    ERROR = 500
    CRITICAL = 600
    ALERT = 700
    EMERGENCY = 800


# Severity numbers 0..24 onto Cloud Logging severities.
_SEVERITY_MAPPING: tuple[Severity, ...] = (
    (Severity.DEFAULT,)
    + (Severity.DEBUG,) * 8
    + (Severity.INFO,) * 2
    + (Severity.NOTICE,) * 2
    + (Severity.WARNING,) * 4
    + (Severity.ERROR,) * 4
    + (Severity.CRITICAL,) * 2
    + (Severity.ALERT, Severity.EMERGENCY)
)

# Generic severity text aliases onto severity numbers.
_SEVERITY_FOR_TEXT: dict[str, int] = {
    f"{name}{suffix}": base * 4 + 1 + offset
    for base, name in enumerate(("trace", "debug", "info", "warn", "error", "fatal"))
    for offset, suffix in enumerate(("", "2", "3", "4"))
}


def severity_for(number: int, text: str = "") -> Severity:
    """Map a severity number, or a known severity text when the number is 0."""
    if number < 0 or number >= len(_SEVERITY_MAPPING):
        raise LogMappingError(f"unknown SeverityNumber {number}")
    from_text = _SEVERITY_FOR_TEXT.get(text.lower())
    if from_text is not None and number == 0:
        number = from_text
    return _SEVERITY_MAPPING[number]


@dataclass
class LogBody:
    """The body of a log record: None, str, bytes, a mapping or another scalar."""

    value: Any = None

    @property
    def type_name(self) -> str:
        value = self.value
        if value is None:
            return "Empty"
        if isinstance(value, str):
            return "Str"
        if isinstance(value, bool):
            return "Bool"
        if isinstance(value, int):
            return "Int"
        if isinstance(value, float):
            return "Double"
        if isinstance(value, (bytes, bytearray)):
            return "Bytes"
        if isinstance(value, Mapping):
            return "Map"
        if isinstance(value, (list, tuple)):
            return "Slice"
        return type(value).__name__

    def as_string(self) -> str:
        return attribute_as_string(self.value)


@dataclass
class LogRecord:
    """A log record as received by the collector."""

    body: LogBody = field(default_factory=LogBody)
    attributes: dict[str, Any] = field(default_factory=dict)
    timestamp_ns: int = 0
    trace_id: bytes = bytes(16)
    span_id: bytes = bytes(8)
    severity_number: int = 0
    severity_text: str = ""


@dataclass(frozen=True)
class SourceLocation:
    file: str = ""
    line: int = 0
    function: str = ""


@dataclass
class HttpRequest:
    """HTTP request details attached to a log entry; requests are built as HTTP/1.1."""

    method: str = "GET"
    url: str = ""
    referer: str = ""
    user_agent: str = ""
    request_size: int = 0
    status: int = 0
    response_size: int = 0
    local_ip: str = ""
    remote_ip: str = ""
    cache_hit: bool = False
    cache_validated_with_origin_server: bool = False
    cache_fill_bytes: int = 0
    cache_lookup: bool = False
    latency: timedelta | None = None
    protocol: str = "HTTP/1.1"


@dataclass
class LogEntry:
    """A Cloud Logging entry before it is addressed to a log."""

    timestamp: datetime
    severity: Severity = Severity.DEFAULT
    payload: Any = None
    labels: dict[str, str] | None = None
    http_request: HttpRequest | None = None
    trace: str = ""
    span_id: str = ""
    trace_sampled: bool = False
    source_location: SourceLocation | None = None
    resource: MonitoredResource | None = None


def parse_entry_payload(body: LogBody, max_entry_size: int) -> tuple[Any, int]:
    """Return the payload and how many entries a string payload must be split into."""
    if not body.as_string():
        return None, 0
    kind = body.type_name
    if kind == "Bytes":
        return bytes(body.value), 1
    if kind == "Str":
        if max_entry_size <= 0:
            return body.value, 1
        size = len(body.value.encode("utf-8"))
        return body.value, -(-size // max_entry_size)
    if kind == "Map":
        return dict(body.value), 1
    raise LogMappingError(f"unknown log body value {kind}")


# --- HTTP request attribute -------------------------------------------------

_HTTP_REQUEST_FIELDS: dict[str, tuple[str, str]] = {
    "remoteip": ("remote_ip", "str"),
    "requesturl": ("request_url", "str"),
    "latency": ("latency", "str"),
    "referer": ("referer", "str"),
    "serverip": ("server_ip", "str"),
    "useragent": ("user_agent", "str"),
    "requestmethod": ("request_method", "str"),
    "protocol": ("protocol", "str"),
    "responsesize": ("response_size", "int"),
    "requestsize": ("request_size", "int"),
    "cachefillbytes": ("cache_fill_bytes", "int"),
    "status": ("status", "int"),
    "cachelookup": ("cache_lookup", "bool"),
    "cachehit": ("cache_hit", "bool"),
    "cachevalidatedwithoriginserver": ("cache_validated_with_origin_server", "bool"),
}

_TOKEN_RE = re.compile(r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+")
_INT_TEXT_RE = re.compile(r"-?\d+")
_DURATION_PART_RE = re.compile(r"(\d*\.?\d*)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "µs": Decimal(1_000),
    "μs": Decimal(1_000),
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60_000_000_000),
    "h": Decimal(3_600_000_000_000),
}


def _parse_duration(text: str) -> timedelta | None:
    """Parse a duration such as "1.5s" or "2h45m"; None if it is malformed."""
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        return None
    total = Decimal(0)
    pos = 0
    while pos < len(text):
        match = _DURATION_PART_RE.match(text, pos)
        if match is None or match[1] in ("", "."):
            return None
        try:
            total += Decimal(match[1]) * _DURATION_UNITS[match[2]]
        except InvalidOperation:
            return None
        pos = match.end()
    return timedelta(microseconds=float(sign * total / 1000))


def _decode_http_fields(data: Any) -> dict[str, Any]:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise LogMappingError("json: cannot unmarshal non-object into http request")
    fields: dict[str, Any] = {}
    for key, value in data.items():
        known = _HTTP_REQUEST_FIELDS.get(key.lower())
        if known is None or value is None:
            continue
        name, kind = known
        if kind == "str":
            if not isinstance(value, str):
                raise LogMappingError(f"json: cannot unmarshal {type(value).__name__} into {key}")
            fields[name] = value
        elif kind == "bool":
            if not isinstance(value, bool):
                raise LogMappingError(f"json: cannot unmarshal {type(value).__name__} into {key}")
            fields[name] = value
        else:
            if not isinstance(value, str) or not _INT_TEXT_RE.fullmatch(value):
                raise LogMappingError(f"json: invalid use of ,string struct tag for {key}: {value!r}")
            number = int(value)
            if not _INT64_MIN <= number <= _INT64_MAX:
                raise LogMappingError(f"json: value {value} out of range for {key}")
            fields[name] = number
    return fields


def _validate_url(url: str) -> None:
    if any(ord(ch) < 0x20 or ord(ch) == 0x7F for ch in url):
        raise LogMappingError(f'parse "{url}": net/url: invalid control character in URL')
    if url.startswith(":"):
        raise LogMappingError(f'parse "{url}": missing protocol scheme')
    try:
        urlsplit(url)
    except ValueError as err:
        raise LogMappingError(f'parse "{url}": {err}') from err


def parse_http_request(value: Any) -> HttpRequest:
    """Parse the JSON form of an HTTP request attribute (bytes, str or mapping)."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, (str, Mapping)):
        raw = attribute_as_string(value).encode("utf-8")
    else:
        raw = b""
    try:
        data = json.loads(raw)
    except ValueError as err:
        raise LogMappingError(f"invalid http request: {err}") from err
    fields = _decode_http_fields(data)

    method = fields.get("request_method", "") or "GET"
    if not _TOKEN_RE.fullmatch(method):
        raise LogMappingError(f"net/http: invalid method {method!r}")
    url = fields.get("request_url", "")
    _validate_url(url)

    request = HttpRequest(
        method=method,
        url=url,
        referer=fields.get("referer", ""),
        user_agent=fields.get("user_agent", ""),
        request_size=fields.get("request_size", 0),
        status=fields.get("status", 0),
        response_size=fields.get("response_size", 0),
        local_ip=fields.get("server_ip", ""),
        remote_ip=fields.get("remote_ip", ""),
        cache_hit=fields.get("cache_hit", False),
        cache_validated_with_origin_server=fields.get("cache_validated_with_origin_server", False),
        cache_fill_bytes=fields.get("cache_fill_bytes", 0),
        cache_lookup=fields.get("cache_lookup", False),
    )
    latency = fields.get("latency", "")
    if latency:
        request.latency = _parse_duration(latency)
    return request


def _parse_source_location(value: Any) -> SourceLocation:
    raw = bytes(value) if isinstance(value, (bytes, bytearray)) else b""
    try:
        data = json.loads(raw)
    except ValueError as err:
        raise LogMappingError(f"invalid source location: {err}") from err
    if data is None:
        return SourceLocation()
    if not isinstance(data, dict):
        raise LogMappingError("invalid source location: not a JSON object")
    fields: dict[str, Any] = {}
    for key, item in data.items():
        name = key.lower()
        if name not in ("file", "line", "function") or item is None:
            continue
        if name == "line":
            if isinstance(item, bool) or not isinstance(item, int):
                raise LogMappingError(f"invalid source location line: {item!r}")
        elif not isinstance(item, str):
            raise LogMappingError(f"invalid source location {name}: {item!r}")
        fields[name] = item
    return SourceLocation(**fields)


# --- encoded size estimation -------------------------------------------------


def _varint_size(n: int) -> int:
    if n < 0:
        return 10
    size = 1
    while n >= 0x80:
        n >>= 7
        size += 1
    return size


def _tag(number: int) -> int:
    return _varint_size(number << 3)


def _len_field(number: int, length: int) -> int:
    return _tag(number) + _varint_size(length) + length


def _str_field(number: int, text: str) -> int:
    length = len(text.encode("utf-8"))
    return _len_field(number, length) if length else 0


def _varint_field(number: int, value: int) -> int:
    return _tag(number) + _varint_size(value) if value else 0


def _bool_field(number: int, value: bool) -> int:
    return _tag(number) + 1 if value else 0


def _map_field(number: int, mapping: Mapping[str, str]) -> int:
    return sum(
        _len_field(
            number,
            _len_field(1, len(key.encode("utf-8"))) + _len_field(2, len(value.encode("utf-8"))),
        )
        for key, value in mapping.items()
    )


def _struct_value_size(value: Any) -> int:
    if value is None:
        return _tag(1) + 1
    if isinstance(value, bool):
        return _tag(4) + 1
    if isinstance(value, (int, float)):
        return _tag(2) + 8
    if isinstance(value, str):
        return _len_field(3, len(value.encode("utf-8")))
    if isinstance(value, Mapping):
        return _len_field(5, _struct_size(value))
    if isinstance(value, (list, tuple)):
        return _len_field(6, sum(_len_field(1, _struct_value_size(item)) for item in value))
    return _len_field(3, len(attribute_as_string(value).encode("utf-8")))


def _struct_size(mapping: Mapping[str, Any]) -> int:
    return sum(
        _len_field(
            1,
            _len_field(1, len(str(key).encode("utf-8"))) + _len_field(2, _struct_value_size(value)),
        )
        for key, value in mapping.items()
    )


def _payload_size(payload: Any) -> int:
    if payload is None:
        return _len_field(6, 0)
    if isinstance(payload, str):
        return _len_field(3, len(payload.encode("utf-8")))
    if isinstance(payload, (bytes, bytearray)):
        try:
            payload = json.loads(bytes(payload))
        except ValueError as err:
            raise LogMappingError(f"payload is not a JSON object: {err}") from err
        if not isinstance(payload, dict):
            raise LogMappingError("payload is not a JSON object")
    if isinstance(payload, Mapping):
        return _len_field(6, _struct_size(payload))
    raise LogMappingError(f"unsupported payload type {type(payload).__name__}")


def _timestamp_size(moment: timedelta) -> int:
    seconds = moment.days * 86_400 + moment.seconds
    nanos = moment.microseconds * 1000
    return _varint_field(1, seconds) + _varint_field(2, nanos)


def _http_request_size(request: HttpRequest) -> int:
    size = (
        _str_field(1, request.method)
        + _str_field(2, request.url)
        + _varint_field(3, request.request_size)
        + _varint_field(4, request.status)
        + _varint_field(5, request.response_size)
        + _str_field(6, request.user_agent)
        + _str_field(7, request.remote_ip)
        + _str_field(8, request.referer)
        + _bool_field(9, request.cache_hit)
        + _bool_field(10, request.cache_validated_with_origin_server)
        + _bool_field(11, request.cache_lookup)
        + _varint_field(12, request.cache_fill_bytes)
        + _str_field(13, request.local_ip)
        + _str_field(15, request.protocol)
    )
    if request.latency:
        size += _len_field(14, _timestamp_size(request.latency))
    return size


def _ns_to_datetime(ns: int) -> datetime:
    return _EPOCH + timedelta(microseconds=ns // 1000)


def _char_boundary(raw: bytes, start: int, end: int) -> int:
    """Move a split point so it does not fall inside a UTF-8 character."""
    back = end
    while start < back < len(raw) and raw[back] & 0xC0 == 0x80:
        back -= 1
    if back > start or end >= len(raw):
        return back if back > start else end
    forward = end
    while forward < len(raw) and raw[forward] & 0xC0 == 0x80:
        forward += 1
    return forward


class LogMapper:
    """Turns collector log records into Cloud Logging entries."""

    def __init__(
        self,
        default_log_name: str = "",
        *,
        max_entry_size: int = DEFAULT_MAX_ENTRY_SIZE,
        max_request_size: int = DEFAULT_MAX_REQUEST_SIZE,
        obs: SelfObservability | None = None,
    ) -> None:
        self.default_log_name = default_log_name
        self.max_entry_size = max_entry_size
        self.max_request_size = max_request_size
        self.obs = obs if obs is not None else SelfObservability()

    def get_log_name(self, record: LogRecord) -> str:
        """The log name from the record's attribute, else the configured default."""
        if LOG_NAME_ATTRIBUTE_KEY in record.attributes:
            return attribute_as_string(record.attributes[LOG_NAME_ATTRIBUTE_KEY])
        if self.default_log_name:
            return self.default_log_name
        raise LogMappingError(
            "no log name provided.  Set the 'default_log_name' option, "
            "or add the 'gcp.log_name' attribute to set a log name"
        )

    def entry_size(self, entry: LogEntry, log_name: str, project_id: str) -> int:
        """Encoded size of the entry once addressed to the named log of the project."""
        full_name = f"projects/{project_id}/logs/{quote(log_name, safe='$&+,;=:@')}"
        timestamp = entry.timestamp
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        size = _str_field(12, full_name)
        size += _len_field(9, _timestamp_size(timestamp - _EPOCH))
        size += _varint_field(10, int(entry.severity))
        size += _payload_size(entry.payload)
        if entry.http_request is not None:
            size += _len_field(7, _http_request_size(entry.http_request))
        if entry.labels:
            size += _map_field(11, entry.labels)
        if entry.resource is not None:
            size += _len_field(
                8, _str_field(1, entry.resource.type) + _map_field(2, entry.resource.labels)
            )
        size += _str_field(22, entry.trace)
        if entry.source_location is not None:
            location = entry.source_location
            size += _len_field(
                23,
                _str_field(1, location.file)
                + _varint_field(2, location.line)
                + _str_field(3, location.function),
            )
        size += _str_field(27, entry.span_id)
        size += _bool_field(30, entry.trace_sampled)
        return size

    def log_to_split_entries(
        self,
        record: LogRecord,
        monitored_resource: MonitoredResource | None,
        labels: Mapping[str, str] | None,
        process_time: datetime,
        log_name: str,
        project_id: str,
    ) -> list[LogEntry]:
        """Build the entry for a record, split into several when a text payload is too large."""
        timestamp = process_time if record.timestamp_ns == 0 else _ns_to_datetime(record.timestamp_ns)
        entry = LogEntry(timestamp=timestamp, resource=monitored_resource)

        attrs = dict(record.attributes)
        if SOURCE_LOCATION_ATTRIBUTE_KEY in attrs:
            entry.source_location = _parse_source_location(attrs.pop(SOURCE_LOCATION_ATTRIBUTE_KEY))
        if TRACE_SAMPLED_ATTRIBUTE_KEY in attrs:
            sampled = attrs.pop(TRACE_SAMPLED_ATTRIBUTE_KEY)
            entry.trace_sampled = sampled if isinstance(sampled, bool) else False

        if any(record.trace_id):
            entry.trace = f"projects/{project_id}/traces/{bytes(record.trace_id).hex()}"
        if any(record.span_id):
            entry.span_id = bytes(record.span_id).hex()

        if HTTP_REQUEST_ATTRIBUTE_KEY in attrs:
            try:
                entry.http_request = parse_http_request(attrs.pop(HTTP_REQUEST_ATTRIBUTE_KEY))
            except LogMappingError as err:
                self.obs.log.debug("Unable to parse httpRequest: %s", err)

        entry.severity = severity_for(record.severity_number, record.severity_text)

        entry_labels = dict(labels) if labels is not None else None
        for key, value in attrs.items():
            if key.startswith("gcp."):
                continue
            if entry_labels is None:
                entry_labels = {}
            entry_labels.setdefault(key, attribute_as_string(value))
        entry.labels = entry_labels

        overhead = self.entry_size(entry, log_name, project_id)
        payload, splits = parse_entry_payload(record.body, self.max_entry_size - overhead)

        if splits > 1:
            raw = payload.encode("utf-8")
            total = len(raw)
            entries = []
            start = 0
            for index in range(1, splits + 1):
                end = _char_boundary(raw, start, index * total // splits)
                entries.append(dataclasses.replace(entry, payload=raw[start:end].decode("utf-8")))
                start = end
            return entries

        entry.payload = payload
        return [entry]