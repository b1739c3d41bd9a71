from __future__ import annotations

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque


@dataclass(frozen=True)
class RequestSample:
    ts: float
    path: str
    status_code: int
    latency_ms: float


_request_samples: Deque[RequestSample] = deque(maxlen=20000)
_counters: dict[str, int] = defaultdict(int)
_gauges: dict[str, float] = {}


def record_request(*, path: str, status_code: int, latency_ms: float) -> None:
    # Track request latency and status for ops dashboards.
    _request_samples.append(
        RequestSample(ts=time.time(), path=path, status_code=status_code, latency_ms=latency_ms)
    )


def increment_counter(name: str, value: int = 1) -> None:
    _counters[name] += value


def get_counter(name: str) -> int:
    return _counters.get(name, 0)


def set_gauge(name: str, value: float) -> None:
    _gauges[name] = value


def get_gauge(name: str) -> float | None:
    return _gauges.get(name)


def request_count(window_s: int) -> int:
    cutoff = time.time() - window_s
    return sum(1 for sample in _request_samples if sample.ts >= cutoff)


def error_rate(window_s: int) -> float | None:
    # Percentage of 5xx responses over the window.
    cutoff = time.time() - window_s
    samples = [sample for sample in _request_samples if sample.ts >= cutoff]
    if not samples:
        return None
    failures = sum(1 for sample in samples if sample.status_code >= 500)
    return (failures / len(samples)) * 100.0


def snapshot() -> dict[str, object]:
    return {"counters": dict(_counters), "gauges": dict(_gauges)}


def reset() -> None:
    # Test helper: clear in-process state between cases.
    _request_samples.clear()
    _counters.clear()
    _gauges.clear()
