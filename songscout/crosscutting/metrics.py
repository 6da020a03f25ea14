import threading
from collections import Counter
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict


@dataclass
class ServiceMetrics:
    """Process-lifetime counters for the catalog facade."""
    started_at: datetime
    requests: Counter = field(default_factory=Counter)
    errors_by_status: Counter = field(default_factory=Counter)
    upstream_calls: Counter = field(default_factory=Counter)
    upstream_failures: Counter = field(default_factory=Counter)
    upstream_duration_ms: int = 0
    credential_exchanges: int = 0
    credential_failures: int = 0
    degraded_responses: Counter = field(default_factory=Counter)

    @property
    def total_requests(self) -> int:
        return sum(self.requests.values())

    @property
    def total_upstream_calls(self) -> int:
        return sum(self.upstream_calls.values())

    @property
    def upstream_failure_rate(self) -> float:
        """Share of upstream calls that failed."""
        total = self.total_upstream_calls
        if total == 0:
            return 0.0
        return sum(self.upstream_failures.values()) / total

    @property
    def average_upstream_ms(self) -> float:
        total = self.total_upstream_calls
        if total == 0:
            return 0.0
        return self.upstream_duration_ms / total


class MetricsCollector:
    """Collects counters shared by all request threads."""

    def __init__(self):
        """Initialize metrics collector."""
        self.metrics = ServiceMetrics(started_at=datetime.now())
        self._lock = threading.Lock()

    def record_request(self, endpoint: str) -> None:
        with self._lock:
            self.metrics.requests[endpoint] += 1

    def record_error(self, status_code: int) -> None:
        with self._lock:
            self.metrics.errors_by_status[str(status_code)] += 1

    def record_upstream_call(self, path: str, duration_ms: int, failed: bool = False) -> None:
        """Record one catalog call keyed by its path template."""
        with self._lock:
            self.metrics.upstream_calls[path] += 1
            self.metrics.upstream_duration_ms += duration_ms
            if failed:
                self.metrics.upstream_failures[path] += 1

    def record_credential_exchange(self, success: bool) -> None:
        with self._lock:
            self.metrics.credential_exchanges += 1
            if not success:
                self.metrics.credential_failures += 1

    def record_degraded(self, endpoint: str) -> None:
        """Record an upstream failure swallowed into an empty result."""
        with self._lock:
            self.metrics.degraded_responses[endpoint] += 1

    @contextmanager
    def upstream_timer(self, path: str):
        """Context manager timing a catalog call; marks it failed if the body raises."""
        start = datetime.now()
        failed = False
        try:
            yield self
        except Exception:
            failed = True
            raise
        finally:
            elapsed = int((datetime.now() - start).total_seconds() * 1000)
            self.record_upstream_call(path, elapsed, failed=failed)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        with self._lock:
            m = self.metrics
            return {
                'started_at': m.started_at.isoformat(),
                'total_requests': m.total_requests,
                'requests': dict(m.requests),
                'errors_by_status': dict(m.errors_by_status),
                'upstream_calls': dict(m.upstream_calls),
                'upstream_failures': dict(m.upstream_failures),
                'upstream_failure_rate': round(m.upstream_failure_rate, 4),
                'average_upstream_ms': round(m.average_upstream_ms, 1),
                'credential_exchanges': m.credential_exchanges,
                'credential_failures': m.credential_failures,
                'degraded_responses': dict(m.degraded_responses),
            }

    def reset(self) -> None:
        with self._lock:
            self.metrics = ServiceMetrics(started_at=datetime.now())
