import re
import threading
import time

import pytest

from gcpotel.observability import GrpcCode
from gcpotel.trace_exporter import (
    DEFAULT_TIMEOUT,
    BatchWriteSpansRequest,
    CloudTraceExporter,
    ExportFailedError,
)
from gcpotel.tracemodel import Link, Resource, SpanContext, SpanSnapshot, Status, StatusCode


class FakeClient:
    def __init__(self, delay=0.0, error=None):
        self.delay = delay
        self.error = error
        self.retries = 0
        self.closed = False
        self.timeouts = []
        self.metadata = []
        self._requests = []
        self._lock = threading.Lock()

    def batch_write_spans(self, request, *, timeout, metadata):
        time.sleep(self.delay)
        with self._lock:
            self.timeouts.append(timeout)
            self.metadata.append(dict(metadata))
            if self.error is not None:
                self.retries += 1
                raise self.error
            self._requests.append(request)

    def requests(self):
        with self._lock:
            reqs, self._requests = self._requests, []
            return reqs

    def close(self):
        self.closed = True


class Recorder:
    def __init__(self):
        self.errs = []

    def __call__(self, err):
        self.errs.append(err)


def make_context(n):
    return SpanContext(trace_id=bytes([n]) * 16, span_id=bytes([n]) * 8, trace_flags=1)


def ok_span():
    return SpanSnapshot(
        name="test-span",
        span_context=make_context(1),
        status=Status(StatusCode.OK, "Status message"),
    )


def error_span():
    return SpanSnapshot(
        name="test-span-with-error-status",
        span_context=make_context(2),
        status=Status(StatusCode.ERROR, "Error Message"),
        links=(Link(span_context=make_context(3)),),
    )


def test_export_span():
    client = FakeClient()
    exporter = CloudTraceExporter(client, project_id="PROJECT_ID_NOT_REAL")
    exporter.export_spans([ok_span()])
    exporter.export_spans([error_span()])
    batch = client.requests()
    assert len(batch) == 2
    assert batch[0].name == "projects/PROJECT_ID_NOT_REAL"
    assert batch[1].name == "projects/PROJECT_ID_NOT_REAL"
    assert len(batch[0].spans) == 1
    assert len(batch[1].spans) == 1
    assert batch[0].spans[0].status.code == GrpcCode.OK
    assert batch[0].spans[0].status.message == ""
    assert batch[1].spans[0].status.code == GrpcCode.UNKNOWN
    assert batch[1].spans[0].status.message == "Error Message"
    assert batch[0].spans[0].links is None
    assert len(batch[1].spans[0].links.link) == 1
    assert client.retries == 0


def test_error_is_handled_and_raised():
    client = FakeClient(error=ConnectionError("unavailable"))
    handler = Recorder()
    exporter = CloudTraceExporter(
        client, project_id="PROJECT_ID_NOT_REAL", error_handler=handler
    )
    with pytest.raises(ExportFailedError) as info:
        exporter.export_spans([ok_span()])
    assert client.requests() == []
    assert len(handler.errs) == 1
    assert str(handler.errs[0]) == "failed to export to Google Cloud Trace: unavailable"
    assert client.retries > 0
    assert isinstance(info.value.errors[0], ConnectionError)


def test_timeout():
    client = FakeClient(delay=0.2)
    handler = Recorder()
    exporter = CloudTraceExporter(
        client, project_id="PROJECT_ID_NOT_REAL", timeout=0.001, error_handler=handler
    )
    with pytest.raises(ExportFailedError):
        exporter.export_spans([ok_span()])
    assert client.requests() == []
    assert len(handler.errs) == 1
    assert re.search(
        "failed to export to Google Cloud Trace: context deadline exceeded", str(handler.errs[0])
    )
    exporter.shutdown()


def test_user_agent_sent():
    client = FakeClient()
    exporter = CloudTraceExporter(client, project_id="PROJECT_ID_NOT_REAL")
    exporter.export_spans([ok_span()])
    assert re.search(
        "opentelemetry-.* .*; google-cloud-trace-exporter .*", client.metadata[0]["user-agent"]
    )
    assert "x-goog-user-project" not in client.metadata[0]


def test_spans_grouped_by_project_with_quota_header():
    client = FakeClient()
    exporter = CloudTraceExporter(
        client, project_id="default-project", destination_project_quota=True
    )
    other = SpanSnapshot(
        name="other",
        span_context=make_context(4),
        resource=Resource({"gcp.project.id": "other-project"}),
    )
    exporter.export_spans([ok_span(), other, error_span()])
    batch = {req.name: req for req in client.requests()}
    assert set(batch) == {"projects/default-project", "projects/other-project"}
    assert len(batch["projects/default-project"].spans) == 2
    assert len(batch["projects/other-project"].spans) == 1
    assert sorted(md["x-goog-user-project"] for md in client.metadata) == [
        "default-project",
        "other-project",
    ]


def test_default_timeout_used():
    client = FakeClient()
    exporter = CloudTraceExporter(client, project_id="p")
    exporter.export_spans([ok_span()])
    assert client.timeouts == [DEFAULT_TIMEOUT]
    assert DEFAULT_TIMEOUT == 12.0


def test_empty_export_sends_nothing():
    client = FakeClient()
    exporter = CloudTraceExporter(client, project_id="p")
    exporter.export_spans([])
    assert client.requests() == []


def test_blank_project_rejected():
    with pytest.raises(ValueError, match="no project found"):
        CloudTraceExporter(FakeClient(), project_id="")


def test_convert_span_uses_project():
    exporter = CloudTraceExporter(FakeClient(), project_id="proj")
    converted = exporter.convert_span(ok_span())
    assert converted.name == f"projects/proj/traces/{'01' * 16}/spans/{'01' * 8}"
    assert converted.display_name.value == "test-span"


def test_shutdown_closes_client():
    client = FakeClient()
    exporter = CloudTraceExporter(client, project_id="p")
    exporter.shutdown()
    assert client.closed is True


def test_request_project_id():
    request = BatchWriteSpansRequest(name="projects/abc")
    assert request.project_id == "abc"
    assert request.spans == []