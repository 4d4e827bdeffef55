from __future__ import annotations

import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Any

LATENCY_WINDOW = 1000


@dataclass
class MetricsCollector:
    counters: Counter[str] = field(default_factory=Counter)
    latencies_ms: deque[int] = field(default_factory=lambda: deque(maxlen=LATENCY_WINDOW))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self.counters[name] += value

    def observe_latency(self, value_ms: int) -> None:
        with self._lock:
            self.latencies_ms.append(value_ms)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            counters = dict(self.counters)
            ordered = sorted(self.latencies_ms)
        p95 = 0
        if ordered:
            idx = int(0.95 * (len(ordered) - 1))
            p95 = ordered[idx]
        return {
            "bills_created_total": counters.get("bills_created_total", 0),
            "payments_approved_total": counters.get("payments_approved_total", 0),
            "payments_rejected_total": counters.get("payments_rejected_total", 0),
            "validation_failures_total": counters.get("validation_failures_total", 0),
            "not_found_total": counters.get("not_found_total", 0),
            "internal_errors_total": counters.get("internal_errors_total", 0),
            "create_latency_p95_ms": p95,
        }
