"""Self-observability counters for the exporters."""

from __future__ import annotations

import enum
import logging
import threading
from collections import Counter

POINT_COUNT_METRIC = "googlecloudmonitoring/point_count"
EXEMPLAR_ATTACHMENTS_DROPPED_METRIC = "googlecloudmonitoring/exemplar_attachments_dropped"


class GrpcCode(enum.IntEnum):
    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


def status_code_to_string(code: int) -> str:
    """Return the canonical name of a gRPC status code."""
    try:
        return GrpcCode(int(code)).name
    except ValueError:
        return f"CODE_{int(code)}"


class SelfObservability:
    """Counts points written and exemplar attachments dropped."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self.log = log if log is not None else logging.getLogger("gcpotel")
        self._lock = threading.Lock()
        self._point_counts: Counter[str] = Counter()
        self._exemplars_dropped = 0

    def record_point_count(self, points: int, status: str) -> None:
        with self._lock:
            self._point_counts[status] += points

    def record_exemplar_failure(self, points: int) -> None:
        with self._lock:
            self._exemplars_dropped += points

    def point_count(self, status: str) -> int:
        with self._lock:
            return self._point_counts[status]

    @property
    def exemplar_attachments_dropped(self) -> int:
        with self._lock:
            return self._exemplars_dropped