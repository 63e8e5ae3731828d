"""Propagation of trace context through the X-Cloud-Trace-Context header."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, MutableMapping

from .tracemodel import FLAGS_SAMPLED, SpanContext

TRACE_CONTEXT_HEADER_NAME = "x-cloud-trace-context"

TRACE_CONTEXT_HEADER_RE = re.compile(
    r"(?P<trace_id>[0-9a-f]{32})/(?P<span_id>[0-9]{1,20})(;o=(?P<trace_flags>[0-9]))?"
)

_MAX_UINT64 = 2**64 - 1
_ZERO_TRACE_ID = "0" * 32

_log = logging.getLogger(__name__)


class InvalidHeaderError(ValueError):
    """Raised when a trace context header value cannot be parsed."""

    def __init__(self, header: str) -> None:
        super().__init__(f"invalid header {header}")
        self.header = header


def _get_header(carrier: Mapping[str, str], name: str) -> str:
    """Look a header up without regard to the case of its name."""
    if name in carrier:
        return carrier[name]
    wanted = name.lower()
    return next((value for key, value in carrier.items() if key.lower() == wanted), "")


def span_context_from_header(header: str) -> SpanContext:
    """Build a remote span context from an X-Cloud-Trace-Context value."""
    match = TRACE_CONTEXT_HEADER_RE.fullmatch(header)
    if match is None:
        raise InvalidHeaderError(header)
    trace_id = match["trace_id"]
    span_id = match["span_id"]
    trace_flags = match["trace_flags"] or ""

    if trace_id == _ZERO_TRACE_ID or span_id == "0":
        raise InvalidHeaderError(header)

    span_number = int(span_id)
    if span_number > _MAX_UINT64:
        _log.warning("CloudTraceFormatPropagator: span ID %s out of range", span_id)
        raise InvalidHeaderError(header)

    flags = 0 if trace_flags in ("", "0") else FLAGS_SAMPLED
    return SpanContext(
        trace_id=bytes.fromhex(trace_id),
        span_id=span_number.to_bytes(8, "big"),
        trace_flags=flags,
        remote=True,
    )


def span_context_from_headers(headers: Mapping[str, str]) -> SpanContext:
    """Extract a span context from request headers, raising if it is missing or invalid."""
    return span_context_from_header(_get_header(headers, TRACE_CONTEXT_HEADER_NAME))


class CloudTraceFormatPropagator:
    """Injects and extracts span contexts in the Cloud Trace header format."""

    def inject(self, span_context: SpanContext, carrier: MutableMapping[str, str]) -> None:
        """Write the span context into the carrier; the span ID is read big endian."""
        flag_text = f"{span_context.trace_flags:02x}"
        if not flag_text.isdigit():
            return
        span_number = int.from_bytes(span_context.span_id, "big")
        header = f"{span_context.trace_id_hex()}/{span_number};o={int(flag_text)}"
        for key in [k for k in carrier if k.lower() == TRACE_CONTEXT_HEADER_NAME]:
            del carrier[key]
        carrier[TRACE_CONTEXT_HEADER_NAME] = header

    def extract(self, carrier: Mapping[str, str]) -> SpanContext | None:
        """Return the remote span context carried, or None when there is none usable."""
        header = _get_header(carrier, TRACE_CONTEXT_HEADER_NAME)
        if not header:
            return None
        try:
            return span_context_from_header(header)
        except InvalidHeaderError as err:
            _log.warning("CloudTraceFormatPropagator: %s", err)
            return None

    def fields(self) -> list[str]:
        return [TRACE_CONTEXT_HEADER_NAME]


class CloudTraceOneWayPropagator(CloudTraceFormatPropagator):
    """Extracts Cloud Trace context but never injects it."""

    def inject(self, span_context: SpanContext, carrier: MutableMapping[str, str]) -> None:
        return None

    def fields(self) -> list[str]:
        return []