import dataclasses

import pytest

from gcpotel.tracemodel import (
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

VALID_TRACE_ID = bytes(
    [0xD3, 0x6A, 0x10, 0x5D, 0x70, 0x02, 0xF0, 0xDE, 0xE7, 0x3C, 0x0D, 0xFB, 0x95, 0x53, 0x76, 0x4A]
)
VALID_SPAN_ID = bytes([0x00, 0x00, 0x00, 0x00, 0x08, 0x52, 0x01, 0x9D])


def test_default_span_context_is_invalid():
    sc = SpanContext()
    assert sc.is_valid() is False
    assert sc.is_sampled() is False


def test_valid_span_context_hex():
    sc = SpanContext(trace_id=VALID_TRACE_ID, span_id=VALID_SPAN_ID, trace_flags=1)
    assert sc.is_valid()
    assert sc.is_sampled()
    assert sc.trace_id_hex() == "d36a105d7002f0dee73c0dfb9553764a"
    assert int(sc.span_id_hex(), 16) == int("139592093")


def test_zero_span_id_is_invalid():
    sc = SpanContext(trace_id=VALID_TRACE_ID)
    assert sc.has_trace_id()
    assert not sc.is_valid()


@pytest.mark.parametrize(
    "kwargs",
    [{"trace_id": b"\x01" * 15}, {"span_id": b"\x01" * 9}, {"trace_flags": 256}],
)
def test_span_context_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        SpanContext(**kwargs)


def test_span_context_equality():
    a = SpanContext(trace_id=VALID_TRACE_ID, span_id=VALID_SPAN_ID, remote=True)
    b = SpanContext(trace_id=VALID_TRACE_ID, span_id=VALID_SPAN_ID, remote=True)
    assert a == b
    assert a != dataclasses.replace(b, remote=False)


def test_resource_access():
    res = Resource({"rk1": "rv1", "rk2": 5, "flag": False})
    assert len(res) == 3
    assert res.get("rk1") == "rv1"
    assert res.get("missing") is None
    assert res.as_string("rk2") == "5"
    assert res.as_string("flag") == "false"
    assert res.as_string("missing") is None
    assert list(dict(res.items())) == ["rk1", "rk2", "flag"]


def test_snapshot_defaults():
    snap = SpanSnapshot(name="op")
    assert snap.span_kind == SpanKind.UNSPECIFIED
    assert snap.status == Status(StatusCode.UNSET, "")
    assert len(snap.resource) == 0
    assert snap.instrumentation_scope == InstrumentationScope()


def test_snapshot_is_immutable():
    snap = SpanSnapshot(name="op")
    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.name = "other"  # type: ignore[misc]
    assert snap.name == "op"


def test_snapshot_holds_links_and_events():
    link = Link(SpanContext(trace_id=VALID_TRACE_ID, span_id=VALID_SPAN_ID), (("hello", "world"),))
    event = Event("start", 10, (("flag", False),))
    snap = SpanSnapshot(name="op", links=(link,), events=(event,))
    assert snap.links[0].attributes == (("hello", "world"),)
    assert snap.events[0].time_ns == 10
    assert snap.events[0].name == "start"