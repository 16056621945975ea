"""Rolling statistics window for circuit breakers."""

import time
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class CallOutcome(str, Enum):
    """Outcome of a single breaker call, as counted by the statistics."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    REJECTED = "rejected"
    FALLBACK = "fallback"


_OUTCOME_FIELDS = {
    CallOutcome.SUCCESS: "successes",
    CallOutcome.FAILURE: "failures",
    CallOutcome.TIMEOUT: "timeouts",
    CallOutcome.REJECTED: "rejects",
    CallOutcome.FALLBACK: "fallbacks",
}


@dataclass
class StatsBucket:
    """Counters for one slice of the rolling window."""

    index: int = 0
    fires: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    rejects: int = 0
    fallbacks: int = 0
    latency_total_ms: float = 0.0
    latency_count: int = 0

    def add(self, other: "StatsBucket") -> None:
        self.fires += other.fires
        self.successes += other.successes
        self.failures += other.failures
        self.timeouts += other.timeouts
        self.rejects += other.rejects
        self.fallbacks += other.fallbacks
        self.latency_total_ms += other.latency_total_ms
        self.latency_count += other.latency_count


@dataclass(frozen=True)
class CircuitBreakerStats:
    """Point-in-time view of a breaker's window and lifetime counters."""

    fires: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    rejects: int = 0
    fallbacks: int = 0
    latency_mean_ms: float = 0.0
    total_fires: int = 0
    total_successes: int = 0
    total_failures: int = 0
    total_timeouts: int = 0
    total_rejects: int = 0
    total_fallbacks: int = 0

    @property
    def samples(self) -> int:
        """Calls in the window whose outcome counts towards the error rate."""
        return self.successes + self.failures + self.timeouts

    @property
    def error_percentage(self) -> float:
        """Failure percentage over the current window.

        Rejections are not part of the ratio.
        """
        if self.samples == 0:
            return 0.0
        return (self.failures + self.timeouts) / self.samples * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        data = asdict(self)
        data["samples"] = self.samples
        data["error_percentage"] = round(self.error_percentage, 2)
        return data


class RollingWindow:
    """Bucketed counters covering the last ``window_ms`` milliseconds.

    Time is split into ``buckets`` slices. A bucket is dropped once it is
    older than the window, so old outcomes stop influencing the error rate.
    Lifetime totals are kept separately and survive ``reset``.
    """

    def __init__(
        self,
        window_ms: int,
        buckets: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.window_ms = window_ms
        self.buckets = buckets
        self.bucket_ms = window_ms / buckets
        self._clock = clock
        self._buckets: deque[StatsBucket] = deque()
        self._totals = StatsBucket()

    def _current_bucket(self) -> StatsBucket:
        index = int(self._clock() * 1000 // self.bucket_ms)
        self._expire(index)
        if not self._buckets or self._buckets[-1].index != index:
            self._buckets.append(StatsBucket(index=index))
        return self._buckets[-1]

    def _expire(self, index: int) -> None:
        while self._buckets and self._buckets[0].index <= index - self.buckets:
            self._buckets.popleft()

    def record_fire(self) -> None:
        self._current_bucket().fires += 1
        self._totals.fires += 1

    def record(self, outcome: CallOutcome, latency_ms: float | None = None) -> None:
        """Count one outcome, with the call latency when it was attempted."""
        field_name = _OUTCOME_FIELDS[outcome]
        bucket = self._current_bucket()
        for target in (bucket, self._totals):
            setattr(target, field_name, getattr(target, field_name) + 1)
            if latency_ms is not None:
                target.latency_total_ms += latency_ms
                target.latency_count += 1

    def reset(self) -> None:
        """Forget the window; lifetime totals are kept."""
        self._buckets.clear()

    def snapshot(self) -> CircuitBreakerStats:
        self._expire(int(self._clock() * 1000 // self.bucket_ms))
        window = StatsBucket()
        for bucket in self._buckets:
            window.add(bucket)

        latency_mean = (
            window.latency_total_ms / window.latency_count
            if window.latency_count
            else 0.0
        )
        return CircuitBreakerStats(
            fires=window.fires,
            successes=window.successes,
            failures=window.failures,
            timeouts=window.timeouts,
            rejects=window.rejects,
            fallbacks=window.fallbacks,
            latency_mean_ms=round(latency_mean, 3),
            total_fires=self._totals.fires,
            total_successes=self._totals.successes,
            total_failures=self._totals.failures,
            total_timeouts=self._totals.timeouts,
            total_rejects=self._totals.rejects,
            total_fallbacks=self._totals.fallbacks,
        )
