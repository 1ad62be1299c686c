import threading
from collections import deque

from labreport.logging.logger import Log
from labreport.routing.models import (
    AttemptMetric,
    MethodStats,
    OCRMethod,
    PerformanceAnalytics,
    utcnow,
)

HISTORY_LIMIT = 100
ANALYTICS_WINDOW = 50


class PerformanceTracker:
    """Thread-safe record of OCR attempts and the method they recommend.

    Keeps the last ``HISTORY_LIMIT`` attempts and derives analytics from
    the most recent ``ANALYTICS_WINDOW`` of them.
    """

    def __init__(self, default_method: OCRMethod = OCRMethod.REMOTE) -> None:
        self._lock = threading.Lock()
        self._metrics: deque[AttemptMetric] = deque(maxlen=HISTORY_LIMIT)
        self._consecutive_failures = {method: 0 for method in OCRMethod}
        self._default_method = default_method
        self._recommended = default_method

    def record(
        self,
        method: OCRMethod,
        latency_seconds: float,
        success: bool,
        quality: float = 0.0,
        document_size: int = 0,
    ) -> None:
        metric = AttemptMetric(
            method=method,
            latency_seconds=latency_seconds,
            success=success,
            quality=quality if success else 0.0,
            document_size=document_size,
            recorded_at=utcnow(),
        )
        with self._lock:
            self._metrics.append(metric)
            if success:
                self._consecutive_failures[method] = 0
            else:
                self._consecutive_failures[method] += 1
            previous = self._recommended
            self._recommended = self._recommend(self._window())
        if previous is not self._recommended:
            Log.info(f"Recommended OCR method changed: {previous.value} -> {self._recommended.value}")

    @property
    def recommended_method(self) -> OCRMethod:
        with self._lock:
            return self._recommended

    def consecutive_failures(self, method: OCRMethod) -> int:
        with self._lock:
            return self._consecutive_failures[method]

    def analytics(self) -> PerformanceAnalytics:
        with self._lock:
            window = self._window()
            return PerformanceAnalytics(
                total_operations=len(window),
                remote=self._stats(window, OCRMethod.REMOTE),
                local=self._stats(window, OCRMethod.LOCAL),
                recommended_method=self._recommended,
                generated_at=utcnow(),
            )

    def reset(self) -> None:
        with self._lock:
            self._metrics.clear()
            self._consecutive_failures = {method: 0 for method in OCRMethod}
            self._recommended = self._default_method

    def _window(self) -> list[AttemptMetric]:
        return list(self._metrics)[-ANALYTICS_WINDOW:]

    def _stats(self, window: list[AttemptMetric], method: OCRMethod) -> MethodStats:
        metrics = [m for m in window if m.method is method]
        if not metrics:
            return MethodStats(0, 0.0, 0.0, 0.0, self._consecutive_failures[method])
        successes = [m for m in metrics if m.success]
        return MethodStats(
            operations=len(metrics),
            success_rate=len(successes) / len(metrics),
            average_latency_seconds=sum(m.latency_seconds for m in metrics) / len(metrics),
            average_quality=(
                sum(m.quality for m in successes) / len(successes) if successes else 0.0
            ),
            consecutive_failures=self._consecutive_failures[method],
        )

    def _recommend(self, window: list[AttemptMetric]) -> OCRMethod:
        # Higher success rate wins, then lower latency; unobserved methods never win.
        candidates = []
        for method in OCRMethod:
            stats = self._stats(window, method)
            if stats.operations:
                candidates.append((-stats.success_rate, stats.average_latency_seconds, method))
        if not candidates:
            return self._default_method
        candidates.sort(key=lambda c: (c[0], c[1], c[2] is not self._default_method))
        return candidates[0][2]
