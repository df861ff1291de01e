import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from enum import Enum

from trust_safety.logging.logger import Log


class Counter(str, Enum):
    SUBMISSIONS_ACCEPTED = "submissions_accepted"
    SUBMISSIONS_REJECTED = "submissions_rejected"
    SUBMISSIONS_COMPLETED = "submissions_completed"
    SUBMISSIONS_FAILED = "submissions_failed"
    SUBMISSIONS_FLAGGED = "submissions_flagged"
    PROVIDER_SUCCEEDED = "provider_succeeded"
    PROVIDER_FAILED = "provider_failed"
    PROVIDER_TIMED_OUT = "provider_timed_out"
    SECURITY_FLAGS_APPLIED = "security_flags_applied"
    MODERATION_ENROLLED = "moderation_enrolled"
    MODERATION_MERGED = "moderation_merged"
    MODERATION_ASSIGNED = "moderation_assigned"
    MODERATION_RESOLVED = "moderation_resolved"
    TRUST_RECOMPUTED = "trust_recomputed"
    NOTIFICATIONS_ENQUEUED = "notifications_enqueued"
    NOTIFICATIONS_SENT = "notifications_sent"
    NOTIFICATIONS_RETRIED = "notifications_retried"
    NOTIFICATIONS_FAILED = "notifications_failed"


class Gauge(str, Enum):
    NOTIFICATION_BATCH_SIZE = "notification_batch_size"
    ANALYSIS_DURATION_SECONDS = "analysis_duration_seconds"


class MetricsSink(ABC):
    """Receives typed metric updates from every pipeline component."""

    @abstractmethod
    def increment(self, counter: Counter, amount: int = 1, **labels: str) -> None:
        """Add ``amount`` to a counter."""

    @abstractmethod
    def gauge(self, gauge: Gauge, value: float, **labels: str) -> None:
        """Record the latest value of a gauge."""


class LogMetricsSink(MetricsSink):
    """Writes metric updates to the debug log."""

    def increment(self, counter: Counter, amount: int = 1, **labels: str) -> None:
        Log.debug(f"metric {counter.value} +{amount}", **labels)

    def gauge(self, gauge: Gauge, value: float, **labels: str) -> None:
        Log.debug(f"metric {gauge.value} = {value}", **labels)


class InMemoryMetricsSink(MetricsSink):
    """Thread-safe in-process totals, used by tests and local runs."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: dict[Counter, int] = defaultdict(int)
        self._gauges: dict[Gauge, float] = {}

    def increment(self, counter: Counter, amount: int = 1, **labels: str) -> None:
        _ = labels
        with self._lock:
            self._counters[counter] += amount

    def gauge(self, gauge: Gauge, value: float, **labels: str) -> None:
        _ = labels
        with self._lock:
            self._gauges[gauge] = value

    def count(self, counter: Counter) -> int:
        with self._lock:
            return self._counters.get(counter, 0)

    def last(self, gauge: Gauge) -> float | None:
        with self._lock:
            return self._gauges.get(gauge)
