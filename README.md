# gcpotel

Helpers for preparing OpenTelemetry data for Google Cloud's observability
services. The package covers:

- trace-context propagation in the `X-Cloud-Trace-Context` header format;
- conversion of finished spans into the Cloud Trace span shape;
- mapping of resource attributes onto monitored resources;
- mapping of log records onto Cloud Logging entries, with splitting of
  oversized text payloads.

It has no runtime dependencies and makes no network calls. The trace
exporters build upload requests and hand them to a client object that you
supply.

## Installation

```
pip install gcpotel
```

To run the test suite:

```
pip install "gcpotel[test]"
pytest
```

## Modules

### `gcpotel.propagator`

- `CloudTraceFormatPropagator`
  - `inject(span_context, carrier)` writes `x-cloud-trace-context` in the
    form `<trace-id-hex>/<span-id-decimal>;o=<0|1>`.
  - `extract(carrier)` returns a remote `SpanContext`. It returns `None` when
    the header is missing or invalid. Header names are matched without regard
    to case.
  - `fields()` returns the list of header names the propagator uses.
- `CloudTraceOneWayPropagator` extracts the same way but never injects. Its
  `fields()` is empty.
- `span_context_from_header(header)` and `span_context_from_headers(headers)`
  parse a value and raise `InvalidHeaderError`, a `ValueError`, when the value
  is malformed. An all-zero trace ID or a span ID of `0` also raises.

### `gcpotel.tracemodel`

The span data model:

- `SpanContext`, with `is_valid()`, `is_sampled()`, `trace_id_hex()` and
  `span_id_hex()`;
- `SpanKind` and `StatusCode` (enums), and `Status`;
- `Resource`, with `get(key)` and `as_string(key)`;
- `InstrumentationScope`, `Link`, `Event` and `SpanSnapshot`.

Times are integers in nanoseconds since the Unix epoch.

### `gcpotel.resourcemapping`

`resource_attributes_to_monitored_resource(attrs)` picks a monitored resource
type and fills its labels from a mapping of resource attributes. The type is
one of:

- `gce_instance`
- `k8s_container`, `k8s_pod`, `k8s_node`, `k8s_cluster`
- `gae_instance`
- `aws_ec2_instance`
- `generic_task`, `generic_node`

The result is a `MonitoredResource` with `type` and `labels`.

### `gcpotel.trace_proto`

`SpanConverter(project_id, map_attribute)` has these methods:

- `convert(span)` returns `(CloudSpan, project_id)`. A `gcp.project.id`
  resource attribute overrides the default project.
- `attributes_from(pairs)`
- `links_from(links)`

Conversion applies these limits:

- display names are truncated to 128 bytes;
- string attribute values are truncated to 256 bytes, at a UTF-8 character
  boundary;
- attribute keys longer than 128 bytes are dropped and counted;
- at most 32 annotations and 128 links are kept, and the rest are counted as
  dropped.

Resource attributes, the instrumentation scope (`otel.scope.name`,
`otel.scope.version`) and monitored-resource labels
(`g.co/r/<type>/<label>`) are added after the span's own attributes. Where
keys clash, the span's attributes win. A `g.co/agent` label is added when the
span has none.

`default_attribute_mapping` renames these keys:

| Attribute key      | Renamed to            |
|--------------------|-----------------------|
| `http.host`        | `/http/host`          |
| `http.method`      | `/http/method`        |
| `http.path`        | `/http/path`          |
| `http.user_agent`  | `/http/user_agent`    |
| `http.status_code` | `/http/status_code`   |
| `service.name`     | `g.co/gae/app/module` |

The module also provides the helpers `trunc`, `clip32`, `attribute_value`,
`convert_span_kind`, `timestamp_proto`, `attributes_with_labels_from_resources`
and `version()`.

### `gcpotel.trace_exporter`

`CloudTraceExporter(client, project_id=..., timeout=..., error_handler=...,
map_attribute=..., destination_project_quota=...)` converts spans and uploads
them:

- Spans are grouped by project, with one `BatchWriteSpansRequest` per project.
- Each request is passed to `client.batch_write_spans(request, timeout=...,
  metadata=...)`. The metadata carries a `user-agent` entry. When
  `destination_project_quota` is set, it also carries `x-goog-user-project`.
- The default timeout is 12 seconds.
- Each failed upload is reported to `error_handler` and collected. If any
  upload failed, `export_spans` raises `ExportFailedError`.
- `shutdown()` calls `client.close()` if the client has one.

A blank `project_id` raises `ValueError`.

```python
from gcpotel.trace_exporter import CloudTraceExporter

class PrintingClient:
    def batch_write_spans(self, request, *, timeout, metadata):
        print(request.name, len(request.spans), metadata)

exporter = CloudTraceExporter(PrintingClient(), project_id="example-project")
exporter.export_spans(spans)   # spans: iterable of SpanSnapshot
exporter.shutdown()
```

### `gcpotel.spandata`

Collector-style span data is described by these classes:

- `ResourceSpans`, `ScopeSpans`, `PdataSpan`, `PdataEvent`, `PdataLink`;
- `PdataSpanKind` and `PdataStatusCode`.

The module converts it into snapshots:

- `resource_spans_to_snapshots(rs)` and `span_to_snapshot(...)` produce
  `SpanSnapshot` objects. Resource attributes come first, and only scalar
  attribute values are kept.
- `span_kind_to_ot`, `status_code_to_ot` and `attributes_to_ot` are the
  individual converters.

`CollectorTraceExporter(client, project_id=..., attribute_mappings=...)`
pushes the snapshots through a `CloudTraceExporter`:

- `push_traces(resource_spans)` converts and uploads them.
- `attribute_mappings` is a list of `AttributeMapping(key, replacement)`. It
  replaces the default key mapping, even when the list is empty.
- `mapping_func_from_config(mappings)` builds the key mapper from such a list.

### `gcpotel.logs`

`LogMapper(default_log_name, max_entry_size=..., max_request_size=...)` has
these methods:

- `get_log_name(record)` returns the `gcp.log_name` attribute, or else the
  default. It raises `LogMappingError` if there is neither.
- `log_to_split_entries(record, monitored_resource, labels, process_time,
  log_name, project_id)` returns `LogEntry` objects:
  - `gcp.source_location`, `gcp.trace_sampled` and `gcp.http_request`
    attributes fill the matching entry fields.
  - Trace and span IDs become `trace` and `span_id`.
  - Other non-`gcp.` attributes become labels.
  - A string payload too large for `max_entry_size` is split across several
    entries.
- `entry_size(entry, log_name, project_id)` estimates an entry's encoded size.

Helper functions:

- `severity_for(number, text)` maps severity numbers 0–24 onto `Severity`.
  When the number is 0, texts such as `"fatal3"` are used instead. Other
  numbers raise `LogMappingError`.
- `parse_entry_payload(body, max_entry_size)`
- `parse_http_request(value)`

```python
from datetime import datetime, timezone
from gcpotel.logs import LogBody, LogMapper, LogRecord

mapper = LogMapper(default_log_name="app-log")
record = LogRecord(body=LogBody("hello"), severity_number=9)
entries = mapper.log_to_split_entries(
    record, None, None, datetime.now(timezone.utc),
    mapper.get_log_name(record), "example-project",
)
# entries[0].severity is Severity.INFO, entries[0].payload == "hello"
```

### `gcpotel.metric_options`

`MetricOptions` holds the settings for a metric exporter:

- `validate()` raises `BlankProjectIdError` when no project ID is set.
- `includes_resource_attribute(key, value)` applies the configured filter.
- `descriptor_type(name)` returns `workload.googleapis.com/<name>` unless a
  formatter is set.

Related names:

- resource attribute filters: `default_resource_attributes_filter` (keeps
  `service.name`, `service.namespace` and `service.instance.id`) and
  `no_attributes`;
- `UnexpectedAggregationKindError`;
- `version()`.

### `gcpotel.observability`

- `SelfObservability` keeps in-memory counts of points written, per status,
  and of exemplar attachments dropped.
- `status_code_to_string(code)` names a gRPC status code, such as
  `"NOT_FOUND"`, or returns `"CODE_<n>"` for codes it does not know.

## Propagation example

```python
from gcpotel.propagator import CloudTraceFormatPropagator

propagator = CloudTraceFormatPropagator()
incoming = {"X-Cloud-Trace-Context": "d36a105d7002f0dee73c0dfb9553764a/139592093;o=1"}
span_context = propagator.extract(incoming)

outgoing = {}
propagator.inject(span_context, outgoing)
# outgoing == {"x-cloud-trace-context": "d36a105d7002f0dee73c0dfb9553764a/139592093;o=1"}
```

## What this package does not do

- It contains no client for the Cloud Trace, Cloud Logging or Cloud
  Monitoring APIs. It does no authentication and does not look up default
  credentials or projects. Uploading is left to the client object you pass
  to the trace exporters.
- Log records are mapped to `LogEntry` objects only. Nothing batches them
  into write requests or sends them.
- There is no metric exporter. `MetricOptions` and the filters describe
  settings only.
- There is no command-line tool.