from __future__ import annotations

import time
from collections import deque, defaultdict
from dataclasses import dataclass
from typing import Deque, Dict


@dataclass
class MetricSample:
    ts: float
    model: str
    status: int
    latency_ms: float
    prompt_tokens: int
    completion_tokens: int
    stream: bool


class MetricsAggregator:
    def __init__(self, capacity: int = 500):
        self.capacity = capacity
        self.samples: Deque[MetricSample] = deque(maxlen=capacity)
        self.start_ts = time.time()
        self.status_counters: Dict[str, Dict[str, int]] = defaultdict(
            lambda: {"total_requests": 0, "streaming_requests": 0}
        )

    def add(self, sample: MetricSample):
        self.samples.append(sample)
        counters = self.status_counters[str(sample.status)]
        counters["total_requests"] += 1
        if sample.stream:
            counters["streaming_requests"] += 1

    def summary(self) -> dict:
        base = {
            "uptime_seconds": time.time() - self.start_ts,
            "requests_by_status": dict(self.status_counters),
            "schema_version": 1,
        }
        if not self.samples:
            base["rolling"] = {"count": 0}
            return base
        latencies = sorted(s.latency_ms for s in self.samples)
        ok = [s for s in self.samples if s.status == 200]
        base["rolling"] = {
            "count": len(self.samples),
            "avg_latency_ms": sum(latencies) / len(latencies),
            "p95_latency_ms": latencies[int(0.95 * (len(latencies) - 1))],
            "avg_completion_tokens": (
                sum(s.completion_tokens for s in ok) / len(ok) if ok else None
            ),
        }
        return base
