"""Exporter that uploads finished spans to Cloud Trace in batches."""

from __future__ import annotations

import concurrent.futures
import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from .trace_proto import USER_AGENT, CloudSpan, SpanConverter, default_attribute_mapping
from .tracemodel import SpanSnapshot

DEFAULT_TIMEOUT = 12.0
USER_PROJECT_HEADER = "x-goog-user-project"
USER_AGENT_HEADER = "user-agent"

_log = logging.getLogger(__name__)


@dataclass
class BatchWriteSpansRequest:
    """One upload: the spans of a single project."""

    name: str
    spans: list[CloudSpan] = field(default_factory=list)

    @property
    def project_id(self) -> str:
        return self.name.removeprefix("projects/")


class TraceClient(Protocol):
    """The transport used to send batches to Cloud Trace."""

    def batch_write_spans(
        self, request: BatchWriteSpansRequest, *, timeout: float, metadata: dict[str, str]
    ) -> None: ...


class ExportFailedError(Exception):
    """Raised when one or more uploads failed; the causes are in ``errors``."""

    def __init__(self, message: str, errors: Sequence[BaseException] = ()) -> None:
        super().__init__(message)
        self.errors = list(errors)

    @classmethod
    def combine(cls, errors: Sequence[BaseException]) -> "ExportFailedError":
        return cls("; ".join(str(err) for err in errors), errors)


ErrorHandler = Callable[[BaseException], None]


def _default_error_handler(err: BaseException) -> None:
    _log.error("%s", err)


class CloudTraceExporter:
    """Converts span snapshots and writes them to Cloud Trace, one batch per project."""

    def __init__(
        self,
        client: TraceClient,
        *,
        project_id: str,
        timeout: float = 0.0,
        error_handler: ErrorHandler | None = None,
        map_attribute: Callable[[str], str] = default_attribute_mapping,
        destination_project_quota: bool = False,
        max_workers: int = 4,
    ) -> None:
        if not project_id:
            raise ValueError("stackdriver: no project found with application default credentials")
        self.project_id = project_id
        self.timeout = timeout if timeout > 0 else DEFAULT_TIMEOUT
        self.destination_project_quota = destination_project_quota
        self._client = client
        self._handle_error = error_handler or _default_error_handler
        self._converter = SpanConverter(project_id=project_id, map_attribute=map_attribute)
        self._executor = concurrent.futures.ThreadPoolExecutor(max_workers=max_workers)

    def convert_span(self, span: SpanSnapshot) -> CloudSpan | None:
        """Convert one span without uploading it."""
        converted, _ = self._converter.convert(span)
        return converted

    def export_spans(self, spans: Iterable[SpanSnapshot]) -> None:
        """Upload the spans, grouped by project; raise ExportFailedError if any upload failed."""
        by_project: dict[str, list[CloudSpan]] = {}
        for span in spans:
            converted, project = self._converter.convert(span)
            if converted is not None:
                by_project.setdefault(project, []).append(converted)

        errors: list[BaseException] = []
        for project, project_spans in by_project.items():
            request = BatchWriteSpansRequest(name=f"projects/{project}", spans=project_spans)
            try:
                self._upload(request)
            except Exception as err:  # noqa: BLE001 - every failure is collected
                errors.append(err)
        if errors:
            raise ExportFailedError.combine(errors)

    def _upload(self, request: BatchWriteSpansRequest) -> None:
        metadata = {USER_AGENT_HEADER: USER_AGENT}
        if self.destination_project_quota:
            metadata[USER_PROJECT_HEADER] = request.project_id
        future = self._executor.submit(
            self._client.batch_write_spans, request, timeout=self.timeout, metadata=metadata
        )
        try:
            future.result(timeout=self.timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            err: BaseException = TimeoutError("context deadline exceeded")
            self._report(err)
            raise err from None
        except Exception as exc:
            self._report(exc)
            raise

    def _report(self, err: BaseException) -> None:
        wrapped = ExportFailedError(f"failed to export to Google Cloud Trace: {err}", [err])
        wrapped.__cause__ = err
        self._handle_error(wrapped)

    def shutdown(self) -> None:
        """Stop accepting uploads and close the client."""
        self._executor.shutdown(wait=False)
        close = getattr(self._client, "close", None)
        if callable(close):
            close()