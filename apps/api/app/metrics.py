from __future__ import annotations

from collections import deque
from threading import Lock
from time import monotonic


class RuntimeMetrics:
  """Request counters since process start plus a rolling latency window."""

  def __init__(self, window: int = 1000) -> None:
    self._started_monotonic = monotonic()
    self._lock = Lock()
    self._latencies: deque[float] = deque(maxlen=window)
    self._total = 0
    self._client_errors = 0
    self._server_errors = 0

  def uptime_seconds(self) -> int:
    return max(0, int(monotonic() - self._started_monotonic))

  def observe_request(self, status_code: int, latency_ms: float) -> None:
    with self._lock:
      self._total += 1
      if 400 <= status_code < 500:
        self._client_errors += 1
      elif status_code >= 500:
        self._server_errors += 1
      self._latencies.append(latency_ms)

  def snapshot(self) -> dict[str, float]:
    with self._lock:
      latencies = sorted(self._latencies)
      total = self._total
      client_errors = self._client_errors
      server_errors = self._server_errors

    p95_ms = 0.0
    if latencies:
      p95_ms = latencies[max(0, int(len(latencies) * 0.95) - 1)]
    return {
      "total": total,
      "clientErrors": client_errors,
      "serverErrors": server_errors,
      "serverErrorRate": round((server_errors / total) * 100, 2) if total else 0.0,
      "p95LatencyMs": round(p95_ms, 2),
    }


runtime_metrics = RuntimeMetrics()
